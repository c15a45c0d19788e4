# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for the change ledger.

Tests cover:
- Reversible, collision-free snapshot naming
- Snapshot creation never overwrites
- Review log format and append behavior
- Revert restores byte-for-byte and is terminal
- Accept is final (later revert finds nothing)
- revert_all / accept_all bulk resolution
- Cleanup of empty reserved folders
"""

import pytest

from title_linker.errors import (
    LogAppendFailure,
    RevertTargetMissing,
    SnapshotFailure,
    WriteFailure,
)
from title_linker.ledger import REVIEW_LOG_HEADER, ChangeLedger, decode_path, encode_path
from title_linker.models import ChangeLogEntry
from title_linker.storage import InMemoryDocumentStore


@pytest.fixture
def store():
    return InMemoryDocumentStore(
        {
            "Foo.md": "original foo\r\n",
            "Projects/Alpha.md": "original alpha",
        }
    )


@pytest.fixture
def ledger(store):
    return ChangeLedger(store)


class TestPathEncoding:
    """Tests for encode_path() / decode_path()."""

    def test_nested_path(self):
        """Test that folder separators are escaped."""
        assert encode_path("Projects/Alpha.md") == "Projects%2FAlpha.md"

    def test_distinct_paths_never_collide(self):
        """Test that paths that a naive flattening would merge stay distinct."""
        names = {encode_path(p) for p in ["a/b.md", "a%2Fb.md", "a_b.md", "a%b.md"]}
        assert len(names) == 4

    @pytest.mark.parametrize("path", ["a.md", "x/y/z.md", "100%/done.md", "odd%2Fname.md"])
    def test_decode_inverts_encode(self, path):
        """Test that every snapshot name maps back to its document."""
        assert decode_path(encode_path(path)) == path


class TestSnapshot:
    """Tests for snapshot()."""

    def test_snapshot_stores_original_bytes(self, ledger, store):
        """Test that the snapshot holds the exact pre-rewrite text."""
        backup = ledger.snapshot("Foo.md", "original foo\r\n")

        assert backup == "_tmlbackups/Foo.md.bak"
        assert store.read_document(backup) == "original foo\r\n"
        assert ledger.has_snapshot("Foo.md")
        assert ledger.has_pending()

    def test_second_snapshot_refused(self, ledger, store):
        """Test that an existing snapshot is never replaced."""
        ledger.snapshot("Foo.md", "original foo\r\n")

        with pytest.raises(SnapshotFailure):
            ledger.snapshot("Foo.md", "rewritten")
        assert store.read_document("_tmlbackups/Foo.md.bak") == "original foo\r\n"

    def test_snapshot_write_failure(self, ledger, store):
        """Test that storage errors surface as SnapshotFailure."""
        store.fail_writes.add("_tmlbackups/")

        with pytest.raises(SnapshotFailure) as exc_info:
            ledger.snapshot("Foo.md", "x")
        assert exc_info.value.path == "Foo.md"
        assert not ledger.has_pending()

    def test_pending_paths_decoded(self, ledger):
        """Test that pending paths name the original documents."""
        ledger.snapshot("Projects/Alpha.md", "a")
        ledger.snapshot("Foo.md", "f")

        assert ledger.pending_paths() == ["Foo.md", "Projects/Alpha.md"]


class TestReviewLog:
    """Tests for record_change() and log parsing."""

    def test_log_created_with_header(self, ledger, store):
        """Test that the first append writes the header."""
        ledger.record_change("Foo.md", 3, "Foo.md")

        text = store.read_document("_tmldata/ReviewChanges.md")
        assert text == REVIEW_LOG_HEADER + "- Foo.md: 3 links added to [[Foo.md]].\n"

    def test_entries_appended_in_order(self, ledger):
        """Test that the log is append-only."""
        ledger.record_change("Foo.md", 3, "Foo.md")
        ledger.record_change("Projects/Alpha.md", 1, "Alpha.md")

        entries = ledger.read_review_log()
        assert entries == [
            ChangeLogEntry("Foo.md", 3, "Foo.md"),
            ChangeLogEntry("Projects/Alpha.md", 1, "Alpha.md"),
        ]

    def test_append_failure(self, ledger, store):
        """Test that log write errors raise LogAppendFailure."""
        store.fail_writes.add("_tmldata/")

        with pytest.raises(LogAppendFailure):
            ledger.record_change("Foo.md", 1, "Foo.md")

    def test_pending_changes_carry_link_counts(self, ledger):
        """Test that pending changes are joined with their log entries."""
        ledger.snapshot("Foo.md", "f")
        ledger.record_change("Foo.md", 2, "Foo.md")
        ledger.snapshot("Projects/Alpha.md", "a")

        pending = {change.path: change for change in ledger.pending_changes()}
        assert pending["Foo.md"].links_added == 2
        assert pending["Foo.md"].backup_name == "Foo.md.bak"
        assert pending["Projects/Alpha.md"].links_added is None

    def test_change_report(self, ledger, store):
        """Test that single-document reports land in the data folder."""
        report = ledger.write_change_report("Projects/Alpha.md", "Alpha.md", 2, "new text")

        assert report == "_tmldata/Changes-Projects%2FAlpha.md.md"
        text = store.read_document(report)
        assert text.startswith("# Links Added to Alpha.md\n\n- 2 links added.")
        assert text.endswith("new text")

    def test_find_entry_returns_latest(self, ledger):
        """Test that the most recent entry for a path wins."""
        ledger.record_change("Foo.md", 1, "Foo.md")
        ledger.record_change("Foo.md", 4, "Foo.md")

        assert ledger.find_entry("Foo.md").links_added == 4
        assert ledger.find_entry("Other.md") is None


class TestRevert:
    """Tests for revert()."""

    def test_revert_restores_byte_for_byte(self, ledger, store):
        """Test that revert returns the document to its pre-rewrite state."""
        ledger.snapshot("Foo.md", "original foo\r\n")
        store.write_document("Foo.md", "[[bar]] foo\r\n")

        ledger.revert("Foo.md")

        assert store.read_document("Foo.md") == "original foo\r\n"
        assert not ledger.has_snapshot("Foo.md")

    def test_revert_is_terminal(self, ledger, store):
        """Test that a second revert finds no target."""
        ledger.snapshot("Foo.md", "original foo\r\n")
        ledger.revert("Foo.md")

        with pytest.raises(RevertTargetMissing):
            ledger.revert("Foo.md")

    def test_revert_removes_change_report(self, ledger, store):
        """Test that the per-document report goes with the snapshot."""
        ledger.snapshot("Foo.md", "x")
        ledger.write_change_report("Foo.md", "Foo.md", 1, "y")

        ledger.revert("Foo.md")

        assert not store.file_exists(ledger.change_report_path("Foo.md"))

    def test_revert_drops_review_log_entries(self, ledger, store):
        """Test that only the reverted document's entries leave the log."""
        ledger.snapshot("Foo.md", "original foo\r\n")
        ledger.record_change("Foo.md", 1, "Foo.md")
        ledger.record_change("Projects/Alpha.md", 2, "Alpha.md")
        ledger.record_change("Foo.md", 3, "Foo.md")

        ledger.revert("Foo.md")

        assert ledger.find_entry("Foo.md") is None
        assert ledger.read_review_log() == [ChangeLogEntry("Projects/Alpha.md", 2, "Alpha.md")]
        text = store.read_document("_tmldata/ReviewChanges.md")
        assert text == REVIEW_LOG_HEADER + "- Projects/Alpha.md: 2 links added to [[Alpha.md]].\n"

    def test_revert_deletes_log_left_without_entries(self, ledger, store):
        """Test that a log with nothing left to review is removed."""
        ledger.snapshot("Foo.md", "original foo\r\n")
        ledger.record_change("Foo.md", 1, "Foo.md")

        ledger.revert("Foo.md")

        assert not store.file_exists("_tmldata/ReviewChanges.md")
        assert not store.folder_exists("_tmldata")

    def test_revert_survives_log_rewrite_failure(self, ledger, store):
        """Test that a log that cannot be rewritten does not fail the revert."""
        ledger.snapshot("Foo.md", "original foo\r\n")
        store.write_document("Foo.md", "[[bar]] foo\r\n")
        ledger.record_change("Foo.md", 1, "Foo.md")
        store.fail_writes.add("_tmldata/")

        ledger.revert("Foo.md")

        assert store.read_document("Foo.md") == "original foo\r\n"
        assert not ledger.has_snapshot("Foo.md")
        assert ledger.find_entry("Foo.md") is not None

    def test_revert_write_failure_keeps_snapshot(self, ledger, store):
        """Test that a failed restore leaves the document revertible."""
        ledger.snapshot("Foo.md", "original foo\r\n")
        store.fail_writes.add("Foo.md")

        with pytest.raises(WriteFailure):
            ledger.revert("Foo.md")
        assert ledger.has_snapshot("Foo.md")

    def test_revert_after_rename_restores_original_path(self, ledger, store):
        """Test that snapshot names are tied to the path they were taken for."""
        ledger.snapshot("Projects/Alpha.md", "original alpha")
        store.write_document("Projects/Alpha.md", "changed")

        ledger.revert("Projects/Alpha.md")
        assert store.read_document("Projects/Alpha.md") == "original alpha"


class TestAccept:
    """Tests for accept()."""

    def test_accept_keeps_rewritten_content(self, ledger, store):
        """Test that accepting drops the snapshot and keeps the new text."""
        ledger.snapshot("Foo.md", "original foo\r\n")
        store.write_document("Foo.md", "[[bar]]")

        assert ledger.accept("Foo.md") is True
        assert store.read_document("Foo.md") == "[[bar]]"
        assert not ledger.has_pending()

    def test_accept_is_final(self, ledger):
        """Test that an accepted change can no longer be reverted."""
        ledger.snapshot("Foo.md", "x")
        ledger.accept("Foo.md")

        with pytest.raises(RevertTargetMissing):
            ledger.revert("Foo.md")

    def test_accept_without_pending(self, ledger):
        """Test that accepting nothing reports False."""
        assert ledger.accept("Foo.md") is False


class TestBulkResolution:
    """Tests for revert_all() and accept_all()."""

    def test_revert_all(self, ledger, store):
        """Test that every document is restored and the log deleted."""
        ledger.snapshot("Foo.md", "original foo\r\n")
        ledger.snapshot("Projects/Alpha.md", "original alpha")
        store.write_document("Foo.md", "changed")
        store.write_document("Projects/Alpha.md", "changed")
        ledger.record_change("Foo.md", 1, "Foo.md")

        result = ledger.revert_all()

        assert result.reverted == ["Foo.md", "Projects/Alpha.md"]
        assert result.failures == []
        assert result.log_deleted is True
        assert store.read_document("Foo.md") == "original foo\r\n"
        assert store.read_document("Projects/Alpha.md") == "original alpha"
        assert not store.folder_exists("_tmlbackups")
        assert not store.folder_exists("_tmldata")

    def test_revert_all_reports_missing_document(self, ledger, store):
        """Test that a deleted document is reported and its snapshot kept."""
        ledger.snapshot("Foo.md", "original foo\r\n")
        ledger.snapshot("Projects/Alpha.md", "original alpha")
        store.delete_file("Projects/Alpha.md")

        result = ledger.revert_all()

        assert result.reverted == ["Foo.md"]
        assert len(result.failures) == 1
        assert result.failures[0].path == "Projects/Alpha.md"
        assert result.failures[0].error_kind == "revert_target_missing"
        assert ledger.pending_paths() == ["Projects/Alpha.md"]

    def test_accept_all_keeps_log_by_default(self, ledger, store):
        """Test that accept_all retains the review log unless asked."""
        ledger.snapshot("Foo.md", "x")
        ledger.snapshot("Projects/Alpha.md", "y")
        ledger.record_change("Foo.md", 1, "Foo.md")

        assert ledger.accept_all() == 2
        assert not ledger.has_pending()
        assert store.file_exists("_tmldata/ReviewChanges.md")

    def test_accept_all_can_delete_log(self, ledger, store):
        """Test that accept_all optionally removes the data folder."""
        ledger.snapshot("Foo.md", "x")
        ledger.record_change("Foo.md", 1, "Foo.md")

        ledger.accept_all(also_delete_log=True)

        assert not store.folder_exists("_tmldata")
        assert not store.folder_exists("_tmlbackups")

    def test_cleanup_empty_folders(self, ledger, store):
        """Test that only empty reserved folders are deleted."""
        store.create_folder("_tmlbackups")
        ledger.record_change("Foo.md", 1, "Foo.md")

        assert ledger.cleanup_empty_folders() == ["_tmlbackups"]
        assert store.folder_exists("_tmldata")
