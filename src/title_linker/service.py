# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""TitleLinkerService - orchestration layer for title match linking.

This module coordinates the rewrite engine and the change ledger across a
vault (batch mode) or a single document, and is the only layer the host
surfaces (MCP server, CLI) talk to.

Batch run state machine:
    Idle -> Scanning -> per document:
        Reading -> Rewriting -> [Snapshotting -> Writing -> Logging] | Skipped
    -> Idle

Key Responsibilities:
- Refuse to start a batch while pending changes exist
- Apply exclusions to both the processing queue and the title catalog
- Never mutate a document without a durable snapshot
- Keep going after per-document failures and report each one
- Report progress and honor cancellation between documents only
"""

import logging
from typing import Callable, List, Optional

from title_linker.config import Config
from title_linker.errors import (
    InvalidExclusionPath,
    LogAppendFailure,
    PendingChangesExist,
    ReadFailure,
    SnapshotFailure,
    TitleLinkerError,
    WriteFailure,
)
from title_linker.ledger import ChangeLedger
from title_linker.models import (
    BatchResult,
    Document,
    DocumentFailure,
    PendingChange,
    RevertResult,
    RewriteResult,
    SingleResult,
)
from title_linker.rewrite_engine import rewrite
from title_linker.run_logger import RunEvent, RunEventType, RunLogger
from title_linker.storage import DocumentStore, normalize_path

logger = logging.getLogger(__name__)

# Host capabilities
ConfirmCallback = Callable[[str], bool]
ProgressCallback = Callable[[int, int, str], None]
CancelCallback = Callable[[], bool]


class SkipReason:
    """Why a single-document run made no change."""

    EXCLUDED = "excluded"
    NOT_A_DOCUMENT = "not_a_document"
    NO_MATCHES = "no_matches"


class TitleLinkerService:
    """Business logic coordinator for title match linking.

    Owned Components:
    - DocumentStore: vault access (injected by the host)
    - ChangeLedger: snapshots, review log, pending-change lifecycle
    - RunLogger: JSONL journal of document outcomes

    Thread Safety:
    - NOT thread-safe: documents are processed strictly one at a time so that
      snapshot, write and review-log appends never interleave
    """

    def __init__(
        self,
        config: Config,
        store: DocumentStore,
        ledger: Optional[ChangeLedger] = None,
        run_logger: Optional[RunLogger] = None,
    ):
        """Initialize the service with its dependencies.

        Args:
            config: Configuration object
            store: Vault storage backend
            ledger: Change ledger (default: built from config over store)
            run_logger: Run journal (default: static-file journal in the
                default data root, honoring enable_run_logging)
        """
        self.config = config
        self.store = store
        self.ledger = ledger if ledger is not None else ChangeLedger.from_config(store, config)
        self._run_logger = (
            run_logger if run_logger is not None else RunLogger(enabled=config.enable_run_logging)
        )

    # ------------------------------------------------------------------
    # Scope
    # ------------------------------------------------------------------

    @staticmethod
    def _is_excluded(path: str, exclusions: List[str]) -> bool:
        return any(path.startswith(prefix) for prefix in exclusions)

    def eligible_documents(self, exclusions: Optional[List[str]] = None) -> List[Document]:
        """Documents visible to both the processing queue and the title catalog.

        Args:
            exclusions: User exclusion prefixes for this call. If None, the
                configured excluded_folders are used. Reserved folders are
                always excluded.
        """
        effective = self.config.effective_exclusions(exclusions)
        documents = self.store.list_documents(self.config.document_extensions)
        return [doc for doc in documents if not self._is_excluded(doc.path, effective)]

    def validate_exclusions(self, exclusions: Optional[List[str]] = None) -> List[str]:
        """Find user exclusions that do not resolve to a folder in the vault.

        Returns:
            Missing exclusion prefixes.

        Raises:
            InvalidExclusionPath: If any are missing and strict_exclusions is set.
        """
        user = self.config.excluded_folders if exclusions is None else exclusions
        missing = [prefix for prefix in user if not self.store.folder_exists(prefix.rstrip("/"))]
        if missing:
            if self.config.strict_exclusions:
                raise InvalidExclusionPath(missing)
            logger.warning(
                f"The following excluded folders do not exist and may need to be reviewed: "
                f"{', '.join(missing)}"
            )
        return missing

    def confirmation_message(self, document_count: int, exclusions: Optional[List[str]] = None) -> str:
        """Message shown to the host before a batch run starts."""
        user = self.config.excluded_folders if exclusions is None else exclusions
        reserved = set(self.config.reserved_folders)
        message = f"Are you sure you want to start the link creation process on {document_count} notes?"
        if not [prefix for prefix in user if prefix.rstrip("/") not in reserved]:
            message = (
                "You have not added any additional folders to the exclusion list. " + message
            )
        return message

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_pending(self) -> bool:
        return self.ledger.has_pending()

    def pending_changes(self) -> List[PendingChange]:
        return self.ledger.pending_changes()

    def preview(self, path: str, exclusions: Optional[List[str]] = None) -> RewriteResult:
        """Compute the rewrite for one document without changing anything.

        Raises:
            ReadFailure: If the document cannot be read.
        """
        path = normalize_path(path)
        content = self._read(path)
        return self._rewrite(Document(path=path), content, self._catalog_titles(exclusions))

    # ------------------------------------------------------------------
    # Per-document steps
    # ------------------------------------------------------------------

    def _catalog_titles(self, exclusions: Optional[List[str]]) -> List[str]:
        return [doc.title for doc in self.eligible_documents(exclusions)]

    def _read(self, path: str) -> str:
        limit = self.config.max_document_size_kb * 1024
        try:
            size = self.store.file_size(path)
            if size > limit:
                raise ReadFailure(
                    f"'{path}' is {size} bytes, larger than the {limit} byte limit", path
                )
            return self.store.read_document(path)
        except (OSError, UnicodeDecodeError) as e:
            raise ReadFailure(f"Error reading '{path}': {e}", path) from e

    def _rewrite(self, document: Document, content: str, titles: List[str]) -> RewriteResult:
        return rewrite(
            content,
            titles,
            document.title,
            link_case=self.config.link_case,
            protect_inline_code=self.config.protect_inline_code,
        )

    def _write(self, path: str, content: str) -> None:
        try:
            self.store.write_document(path, content)
        except OSError as e:
            raise WriteFailure(f"Error modifying '{path}': {e}", path) from e

    def _journal(self, event_type: str, path: str = "", links_added: int = 0, detail: str = "") -> None:
        self._run_logger.log_event(RunEvent.create(event_type, path, links_added, detail))

    def _fail(self, result: BatchResult, error: TitleLinkerError, path: str) -> None:
        logger.error(error.message)
        result.failures.append(DocumentFailure(path, error.kind, error.message))
        self._journal(RunEventType.DOCUMENT_FAILED, path, detail=error.message)

    def _process_document(self, document: Document, titles: List[str], result: BatchResult) -> None:
        path = document.path
        try:
            original = self._read(path)
        except ReadFailure as e:
            self._fail(result, e, path)
            return

        rewritten = self._rewrite(document, original, titles)
        if rewritten.links_added == 0:
            self._journal(RunEventType.DOCUMENT_SKIPPED, path, detail=SkipReason.NO_MATCHES)
            return

        try:
            self.ledger.snapshot(path, original)
        except SnapshotFailure as e:
            self._fail(result, e, path)
            return

        try:
            self._write(path, rewritten.content)
        except WriteFailure as e:
            # Snapshot stays so the document remains revertible
            self._fail(result, e, path)
            return

        result.modified_count += 1
        result.links_added += rewritten.links_added
        self._journal(RunEventType.DOCUMENT_LINKED, path, rewritten.links_added)

        try:
            entry = self.ledger.record_change(path, rewritten.links_added, document.name)
        except LogAppendFailure as e:
            logger.warning(e.message)
            result.failures.append(DocumentFailure(path, e.kind, e.message))
            return
        result.entries.append(entry)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def run_batch(
        self,
        exclusions: Optional[List[str]] = None,
        confirm: Optional[ConfirmCallback] = None,
        progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCallback] = None,
    ) -> BatchResult:
        """Link title matches across every eligible document.

        Args:
            exclusions: User exclusion prefixes for this run. If None, the
                configured excluded_folders are used.
            confirm: Host confirmation capability. A False answer ends the run
                before anything is touched.
            progress: Called after each document with (processed, total, path).
            should_cancel: Polled before each document; True stops the run.
                Completed documents keep their pending changes.

        Returns:
            BatchResult tally.

        Raises:
            PendingChangesExist: If any snapshot is outstanding.
            InvalidExclusionPath: If an exclusion is missing and
                strict_exclusions is set.
        """
        self.validate_exclusions(exclusions)

        if self.ledger.has_pending():
            raise PendingChangesExist(len(self.ledger.pending_paths()))

        documents = self.eligible_documents(exclusions)
        result = BatchResult(total_documents=len(documents))
        if not documents:
            logger.info("No files to process")
            return result

        if confirm is not None and not confirm(self.confirmation_message(len(documents), exclusions)):
            logger.info("Link creation process not confirmed")
            result.cancelled = True
            return result

        titles = [doc.title for doc in documents]
        logger.info(f"Starting link creation across {len(documents)} notes")

        for document in documents:
            if should_cancel is not None and should_cancel():
                logger.info(f"Link creation cancelled after {result.processed_count} notes")
                result.cancelled = True
                break
            self._process_document(document, titles, result)
            result.processed_count += 1
            if progress is not None:
                progress(result.processed_count, len(documents), document.path)

        self._journal(
            RunEventType.BATCH_COMPLETED,
            links_added=result.links_added,
            detail=f"{result.modified_count} notes modified, {len(result.failures)} failures",
        )
        logger.info(
            f"Link creation process completed: {result.links_added} links added "
            f"across {result.modified_count} notes"
        )
        return result

    # ------------------------------------------------------------------
    # Single document
    # ------------------------------------------------------------------

    def run_single(self, path: str, exclusions: Optional[List[str]] = None) -> SingleResult:
        """Link title matches in one document.

        Not gated on other pending changes, but refuses to run over this
        document's own outstanding snapshot.

        Raises:
            SnapshotFailure: If the document already has a pending change or
                the snapshot cannot be written.
            ReadFailure: If the document cannot be read.
            WriteFailure: If the rewritten content cannot be written (the
                snapshot is kept).
        """
        path = normalize_path(path)
        document = Document(path=path)
        result = SingleResult(path=path)

        extensions = {ext.lower() for ext in self.config.document_extensions}
        if not any(path.lower().endswith(ext) for ext in extensions):
            result.skipped_reason = SkipReason.NOT_A_DOCUMENT
            return result

        if self._is_excluded(path, self.config.effective_exclusions(exclusions)):
            logger.info(f"Skipping '{document.name}': located in an excluded folder")
            result.skipped_reason = SkipReason.EXCLUDED
            self._journal(RunEventType.DOCUMENT_SKIPPED, path, detail=SkipReason.EXCLUDED)
            return result

        if self.ledger.has_snapshot(path):
            raise SnapshotFailure(
                f"'{path}' already has a pending change. Accept or revert it first.", path
            )

        original = self._read(path)
        titles = [doc.title for doc in self.eligible_documents(exclusions) if doc.path != path]
        rewritten = self._rewrite(document, original, titles)
        if rewritten.links_added == 0:
            logger.info(f"No links added to '{document.name}'")
            result.skipped_reason = SkipReason.NO_MATCHES
            self._journal(RunEventType.DOCUMENT_SKIPPED, path, detail=SkipReason.NO_MATCHES)
            return result

        self.ledger.snapshot(path, original)
        self._write(path, rewritten.content)
        result.links_added = rewritten.links_added
        self._journal(RunEventType.DOCUMENT_LINKED, path, rewritten.links_added)

        try:
            self.ledger.record_change(path, rewritten.links_added, document.name)
            report = self.ledger.write_change_report(
                path, document.name, rewritten.links_added, rewritten.content
            )
            logger.info(f"{rewritten.links_added} links added to '{document.name}'. Review changes in '{report}'")
        except LogAppendFailure as e:
            logger.warning(e.message)
            result.log_warning = e.message
        return result

    def revert_single(self, path: str) -> None:
        """Restore one document from its snapshot.

        Raises:
            RevertTargetMissing: If the document has no pending change.
            ReadFailure / WriteFailure: If restoring fails.
        """
        path = normalize_path(path)
        self.ledger.revert(path)
        self._journal(RunEventType.DOCUMENT_REVERTED, path)

    def accept_single(self, path: str) -> bool:
        """Make one document's changes permanent.

        Returns:
            True if a pending change was accepted, False if none existed.
        """
        path = normalize_path(path)
        accepted = self.ledger.accept(path)
        if accepted:
            self._journal(RunEventType.DOCUMENT_ACCEPTED, path)
        return accepted

    # ------------------------------------------------------------------
    # Whole vault resolution
    # ------------------------------------------------------------------

    def revert_all(self) -> RevertResult:
        """Revert every pending change and delete the review log."""
        result = self.ledger.revert_all()
        for path in result.reverted:
            self._journal(RunEventType.DOCUMENT_REVERTED, path)
        for failure in result.failures:
            self._journal(RunEventType.DOCUMENT_FAILED, failure.path, detail=failure.message)
        return result

    def accept_all(self, also_delete_log: bool = False) -> int:
        """Accept every pending change.

        Args:
            also_delete_log: Also delete the review log and change reports.

        Returns:
            Number of pending changes accepted.
        """
        pending = self.ledger.pending_paths()
        count = self.ledger.accept_all(also_delete_log=also_delete_log)
        for path in pending:
            self._journal(RunEventType.DOCUMENT_ACCEPTED, path)
        return count

    def shutdown(self) -> None:
        """Release the run journal."""
        self._run_logger.close()
