# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Change ledger: snapshots, review log and the pending/accepted/reverted lifecycle.

A document has a pending change exactly when a snapshot file exists for it in
the backup folder. The snapshot holds the pre-rewrite text byte-for-byte.

Lifecycle:
- snapshot(): created strictly before the live document is overwritten; never
  replaces an existing snapshot
- accept(): snapshot deleted, rewritten content becomes permanent
- revert(): snapshot restored as live content, then deleted along with the
  document's review log entries

Layout inside the vault (folder names are configurable):
- _tmlbackups/<encoded path>.bak          pre-rewrite snapshot
- _tmldata/ReviewChanges.md               append-only review log
- _tmldata/Changes-<encoded path>.md      per-document change report

Path encoding maps "%" to "%25" and "/" to "%2F". The mapping is injective, so
two distinct document paths can never share a snapshot name, and it is
reversible, so every snapshot names the document it belongs to.

Thread Safety:
- NOT thread-safe: all operations for one vault must run sequentially
"""

import logging
import re
from typing import List, Optional

from title_linker.config import Config
from title_linker.errors import (
    LogAppendFailure,
    ReadFailure,
    RevertTargetMissing,
    SnapshotFailure,
    WriteFailure,
)
from title_linker.models import ChangeLogEntry, DocumentFailure, PendingChange, RevertResult
from title_linker.storage import DocumentStore

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".bak"
CHANGE_REPORT_PREFIX = "Changes-"
REVIEW_LOG_HEADER = "# Review Changes\n\n"

_ESCAPE_SEQUENCE = re.compile(r"%(25|2F)")


def encode_path(path: str) -> str:
    """Flatten a vault path into a single file name component."""
    return path.replace("%", "%25").replace("/", "%2F")


def decode_path(name: str) -> str:
    """Invert encode_path()."""
    return _ESCAPE_SEQUENCE.sub(lambda m: "%" if m.group(1) == "25" else "/", name)


class ChangeLedger:
    """Tracks pending changes for one vault through a DocumentStore."""

    def __init__(
        self,
        store: DocumentStore,
        backup_folder: str = "_tmlbackups",
        data_folder: str = "_tmldata",
        review_log_name: str = "ReviewChanges.md",
    ):
        self._store = store
        self.backup_folder = backup_folder
        self.data_folder = data_folder
        self.review_log_name = review_log_name

    @classmethod
    def from_config(cls, store: DocumentStore, config: Config) -> "ChangeLedger":
        return cls(
            store,
            backup_folder=config.backup_folder,
            data_folder=config.data_folder,
            review_log_name=config.review_log_name,
        )

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    def backup_path(self, path: str) -> str:
        return f"{self.backup_folder}/{encode_path(path)}{BACKUP_SUFFIX}"

    def change_report_path(self, path: str) -> str:
        return f"{self.data_folder}/{CHANGE_REPORT_PREFIX}{encode_path(path)}.md"

    @property
    def review_log_path(self) -> str:
        return f"{self.data_folder}/{self.review_log_name}"

    def _backup_names(self) -> List[str]:
        if not self._store.folder_exists(self.backup_folder):
            return []
        files, _ = self._store.list_folder(self.backup_folder)
        names = [f.rsplit("/", 1)[-1] for f in files]
        return [name for name in names if name.endswith(BACKUP_SUFFIX)]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_pending(self) -> bool:
        """Whether any snapshot exists in the backup folder."""
        return bool(self._backup_names())

    def has_snapshot(self, path: str) -> bool:
        return self._store.file_exists(self.backup_path(path))

    def pending_paths(self) -> List[str]:
        """Document paths with an outstanding snapshot, sorted."""
        return sorted(decode_path(name[: -len(BACKUP_SUFFIX)]) for name in self._backup_names())

    def read_review_log(self) -> List[ChangeLogEntry]:
        """Parse every entry of the review log. Empty if the log is missing."""
        if not self._store.file_exists(self.review_log_path):
            return []
        text = self._store.read_document(self.review_log_path)
        entries = (ChangeLogEntry.parse(line) for line in text.split("\n"))
        return [entry for entry in entries if entry is not None]

    def pending_changes(self) -> List[PendingChange]:
        """Describe every pending change, with link counts from the review log."""
        try:
            latest = {entry.path: entry.links_added for entry in self.read_review_log()}
        except OSError as e:
            logger.warning(f"Unable to read review log {self.review_log_path}: {e}")
            latest = {}
        return [
            PendingChange(
                path=path,
                backup_name=self.backup_path(path).rsplit("/", 1)[-1],
                links_added=latest.get(path),
            )
            for path in self.pending_paths()
        ]

    def read_snapshot(self, path: str) -> str:
        """Return the pre-rewrite text of a document.

        Raises:
            RevertTargetMissing: If no snapshot exists.
            ReadFailure: If the snapshot cannot be read.
        """
        backup = self.backup_path(path)
        if not self._store.file_exists(backup):
            raise RevertTargetMissing(f"Backup not found for '{path}'. Reversion not possible.", path)
        try:
            return self._store.read_document(backup)
        except (OSError, UnicodeDecodeError) as e:
            raise ReadFailure(f"Unable to read backup {backup}: {e}", path) from e

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def snapshot(self, path: str, original_content: str) -> str:
        """Persist the pre-rewrite content of a document.

        Must be called before the document is overwritten. An existing
        snapshot is never replaced.

        Returns:
            Path of the snapshot file.

        Raises:
            SnapshotFailure: If a snapshot already exists or cannot be written.
        """
        backup = self.backup_path(path)
        try:
            if not self._store.folder_exists(self.backup_folder):
                self._store.create_folder(self.backup_folder)
            self._store.create_file(backup, original_content)
        except FileExistsError as e:
            raise SnapshotFailure(
                f"'{path}' already has a pending change. Accept or revert it first.", path
            ) from e
        except OSError as e:
            raise SnapshotFailure(f"Error creating backup for '{path}': {e}", path) from e
        logger.debug(f"Snapshot created for {path} at {backup}")
        return backup

    def record_change(self, path: str, links_added: int, title: str) -> ChangeLogEntry:
        """Append one entry to the review log.

        Failure does not undo the document mutation it describes.

        Raises:
            LogAppendFailure: If the log cannot be read or written.
        """
        entry = ChangeLogEntry(path=path, links_added=links_added, title=title)
        log_path = self.review_log_path
        try:
            if not self._store.folder_exists(self.data_folder):
                self._store.create_folder(self.data_folder)
            if self._store.file_exists(log_path):
                existing = self._store.read_document(log_path)
                if existing and not existing.endswith("\n"):
                    existing += "\n"
            else:
                existing = REVIEW_LOG_HEADER
            self._store.write_document(log_path, existing + entry.to_line() + "\n")
        except OSError as e:
            raise LogAppendFailure(f"Failed to write to {log_path}: {e}", path) from e
        return entry

    def write_change_report(self, path: str, name: str, links_added: int, modified_content: str) -> str:
        """Write the per-document change report for a single-document run.

        Raises:
            LogAppendFailure: If the report cannot be written.
        """
        report_path = self.change_report_path(path)
        report = f"# Links Added to {name}\n\n- {links_added} links added.\n\n---\n\n{modified_content}"
        try:
            if not self._store.folder_exists(self.data_folder):
                self._store.create_folder(self.data_folder)
            self._store.write_document(report_path, report)
        except OSError as e:
            raise LogAppendFailure(f"Failed to log changes for '{name}': {e}", path) from e
        return report_path

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _discard(self, path: str) -> None:
        """Delete a document's snapshot and change report."""
        self._store.delete_file(self.backup_path(path))
        report = self.change_report_path(path)
        if self._store.file_exists(report):
            try:
                self._store.delete_file(report)
            except OSError as e:
                logger.warning(f"Error deleting change report {report}: {e}")

    def _drop_log_entries(self, path: str) -> None:
        """Remove a document's lines from the review log.

        The log is deleted once no entries remain. Failures are logged,
        not raised.
        """
        try:
            if self.find_entry(path) is None:
                return
            text = self._store.read_document(self.review_log_path)
            kept: List[str] = []
            remaining = 0
            for line in text.split("\n"):
                entry = ChangeLogEntry.parse(line)
                if entry is not None and entry.path == path:
                    continue
                if entry is not None:
                    remaining += 1
                kept.append(line)
            if remaining:
                self._store.write_document(self.review_log_path, "\n".join(kept))
            else:
                self._store.delete_file(self.review_log_path)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Error removing '{path}' from {self.review_log_path}: {e}")

    def revert(self, path: str) -> None:
        """Restore a document's snapshot as its live content and drop the snapshot.

        The document's review log entries are removed along with its
        change report.

        Raises:
            RevertTargetMissing: If no snapshot exists for the document.
            ReadFailure: If the snapshot cannot be read.
            WriteFailure: If the document cannot be restored (snapshot kept) or
                the snapshot cannot be removed after restoring.
        """
        original = self.read_snapshot(path)
        try:
            self._store.write_document(path, original)
        except OSError as e:
            raise WriteFailure(f"Error reverting '{path}': {e}", path) from e
        try:
            self._discard(path)
        except OSError as e:
            raise WriteFailure(f"'{path}' was restored but its backup could not be removed: {e}", path) from e
        self._drop_log_entries(path)
        logger.info(f"Reverted {path} to its previous state")
        self.cleanup_empty_folders()

    def accept(self, path: str) -> bool:
        """Make a document's rewritten content permanent.

        Returns:
            True if a pending change was accepted, False if none existed.

        Raises:
            WriteFailure: If the snapshot cannot be deleted.
        """
        if not self.has_snapshot(path):
            logger.info(f"No pending change to accept for {path}")
            return False
        try:
            self._discard(path)
        except OSError as e:
            raise WriteFailure(f"Error deleting backup for '{path}': {e}", path) from e
        logger.info(f"Accepted changes for {path}")
        self.cleanup_empty_folders()
        return True

    def revert_all(self) -> RevertResult:
        """Revert every pending change, then delete the review log.

        Per-document failures are reported and leave that snapshot in place.
        """
        result = RevertResult()
        had_log = self._store.file_exists(self.review_log_path)
        for path in self.pending_paths():
            if not self._store.file_exists(path):
                message = f"Original file not found for backup: {self.backup_path(path)}"
                logger.error(message)
                result.failures.append(DocumentFailure(path, RevertTargetMissing.kind, message))
                continue
            try:
                self.revert(path)
            except (ReadFailure, WriteFailure) as e:
                logger.error(f"Error reverting file from backup: {e.message}")
                result.failures.append(DocumentFailure(path, e.kind, e.message))
                continue
            result.reverted.append(path)

        try:
            if self._store.file_exists(self.review_log_path):
                self._store.delete_file(self.review_log_path)
            if had_log:
                result.log_deleted = True
                logger.info(f"{self.review_log_path} log has been deleted")
        except OSError as e:
            logger.error(f"Error deleting {self.review_log_path}: {e}")
        self.cleanup_empty_folders()
        return result

    def accept_all(self, also_delete_log: bool = False) -> int:
        """Accept every pending change by deleting the backup folder.

        Args:
            also_delete_log: Also delete the data folder (review log and
                change reports).

        Returns:
            Number of pending changes accepted.

        Raises:
            WriteFailure: If a folder cannot be deleted.
        """
        count = len(self._backup_names())
        try:
            self._store.delete_folder_recursive(self.backup_folder)
            if also_delete_log:
                self._store.delete_folder_recursive(self.data_folder)
        except OSError as e:
            raise WriteFailure(f"An error occurred while accepting changes: {e}") from e
        logger.info(
            f"Accepted {count} pending change(s); "
            + ("backup and data folders deleted" if also_delete_log else "data folder retained for review")
        )
        return count

    def cleanup_empty_folders(self) -> List[str]:
        """Delete the reserved folders when they hold nothing.

        Returns:
            Folders that were deleted.
        """
        deleted: List[str] = []
        for folder in (self.backup_folder, self.data_folder):
            if not self._store.folder_exists(folder):
                continue
            try:
                files, folders = self._store.list_folder(folder)
                if not files and not folders:
                    self._store.delete_folder_recursive(folder)
                    deleted.append(folder)
                    logger.debug(f"Deleted empty folder: {folder}")
            except OSError as e:
                logger.warning(f"Error deleting folder {folder}: {e}")
        return deleted

    def find_entry(self, path: str) -> Optional[ChangeLogEntry]:
        """Latest review log entry for a document, if any."""
        matches = [entry for entry in self.read_review_log() if entry.path == path]
        return matches[-1] if matches else None
