# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Error kinds raised by the link engine, the change ledger and the orchestrator.

Per-document errors (read, write, snapshot) are caught by the batch orchestrator
and reported as DocumentFailure records; PendingChangesExist is fatal to starting
a batch. LogAppendFailure only degrades reviewability and never rolls back a
document mutation.
"""

from typing import Optional


class TitleLinkerError(Exception):
    """Base class for all title linker errors."""

    kind = "error"

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path


class ReadFailure(TitleLinkerError):
    """A document could not be read (missing, unreadable or oversized)."""

    kind = "read_failure"


class WriteFailure(TitleLinkerError):
    """Rewritten content could not be written back to the document."""

    kind = "write_failure"


class SnapshotFailure(TitleLinkerError):
    """The pre-mutation snapshot could not be persisted.

    The document is left untouched when this is raised.
    """

    kind = "snapshot_failure"


class LogAppendFailure(TitleLinkerError):
    """An entry could not be appended to the review log."""

    kind = "log_append_failure"


class RevertTargetMissing(TitleLinkerError):
    """No snapshot exists for the document being reverted."""

    kind = "revert_target_missing"


class PendingChangesExist(TitleLinkerError):
    """Unresolved snapshots block a new batch run."""

    kind = "pending_changes_exist"

    def __init__(self, pending_count: int):
        super().__init__(
            f"{pending_count} pending change(s) exist. "
            "Accept or revert current changes before running the process again."
        )
        self.pending_count = pending_count


class InvalidExclusionPath(TitleLinkerError):
    """A configured exclusion does not resolve to a folder in the vault."""

    kind = "invalid_exclusion_path"

    def __init__(self, missing: list):
        super().__init__(
            "The following excluded folders do not exist and may need to be reviewed: "
            + ", ".join(missing)
        )
        self.missing = missing
