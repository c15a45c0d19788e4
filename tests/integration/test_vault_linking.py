# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Integration tests: linking a vault on disk end to end.

Tests cover:
- Batch linking honors front matter, code, URLs, existing links and exclusions
- Notes that are not UTF-8 are reported without stopping the batch
- Snapshots on disk and byte-exact revert (CRLF included)
- Reverting one note removes it from the review log
- Accept followed by a second batch adds nothing
- Single-document runs alongside other pending changes
"""

from pathlib import Path

import pytest

from title_linker.errors import PendingChangesExist
from title_linker.run_logger import RunEventType, read_run_events


def _yes(message):
    return True


def _read(root: Path, rel_path: str) -> str:
    return (root / rel_path).read_bytes().decode("utf-8")


class TestBatchLinking:
    """Tests for a full batch over the sample vault."""

    def test_batch_rewrites_expected_lines(self, sample_vault, vault_service):
        """Only eligible prose lines receive links."""
        result = vault_service.run_batch(confirm=_yes)

        assert result.total_documents == 4
        assert result.modified_count == 3
        assert result.links_added == 4
        assert result.failures == []

        alpha = _read(sample_vault, "Projects/Alpha.md")
        assert alpha == (
            "---\n"
            "title: Alpha\n"
            "related: Beta\n"
            "---\n"
            "Alpha depends on [[beta]] and the [[machine learning]] toolkit.\n"
            "See https://example.com/beta for the Beta release notes.\n"
        )

    def test_crlf_document(self, sample_vault, vault_service):
        """CRLF endings survive and existing wiki links are left alone."""
        vault_service.run_batch(confirm=_yes)

        assert _read(sample_vault, "Projects/Beta.md") == (
            "# Beta\r\n"
            "Beta is consumed by [[alpha]].\r\n"
            "Already linked: [[machine learning]].\r\n"
        )

    def test_code_regions_untouched(self, sample_vault, vault_service):
        """Fenced and inline code keep their plain titles."""
        vault_service.run_batch(confirm=_yes)

        assert _read(sample_vault, "Topics/Machine Learning.md") == (
            "Notes on Machine Learning.\n"
            "\n"
            "```python\n"
            "alpha = Beta()\n"
            "```\n"
            "Run `Beta` before [[alpha]].\n"
        )

    def test_out_of_scope_files_untouched(self, sample_vault, sample_files, vault_service):
        """Excluded, hidden and non-markdown files are never rewritten."""
        vault_service.run_batch(confirm=_yes)

        for rel_path in ("Templates/Daily.md", ".obsidian/workspace.md", "attachments/diagram.png", "Inbox.md"):
            assert _read(sample_vault, rel_path) == sample_files[rel_path]

    def test_undecodable_note_does_not_stop_batch(self, sample_vault, vault_service):
        """A note that is not UTF-8 is reported and the rest of the vault is linked."""
        legacy = sample_vault / "Archive" / "Legacy.md"
        legacy.parent.mkdir()
        legacy.write_bytes(b"Caf\xe9 notes on Alpha\n")

        result = vault_service.run_batch(confirm=_yes)

        assert result.total_documents == 5
        assert [(f.path, f.error_kind) for f in result.failures] == [("Archive/Legacy.md", "read_failure")]
        assert result.modified_count == 3
        assert result.links_added == 4
        assert legacy.read_bytes() == b"Caf\xe9 notes on Alpha\n"
        assert not (sample_vault / "_tmlbackups" / "Archive%2FLegacy.md.bak").exists()

    def test_snapshots_on_disk(self, sample_vault, sample_files, vault_service):
        """Each modified note has an encoded backup holding its original bytes."""
        vault_service.run_batch(confirm=_yes)

        backups = sorted(p.name for p in (sample_vault / "_tmlbackups").iterdir())
        assert backups == [
            "Projects%2FAlpha.md.bak",
            "Projects%2FBeta.md.bak",
            "Topics%2FMachine Learning.md.bak",
        ]
        assert _read(sample_vault, "_tmlbackups/Projects%2FBeta.md.bak") == sample_files["Projects/Beta.md"]

    def test_review_log_on_disk(self, sample_vault, vault_service):
        """The review log lists every modified note."""
        vault_service.run_batch(confirm=_yes)

        log = _read(sample_vault, "_tmldata/ReviewChanges.md")
        assert log.startswith("# Review Changes\n\n")
        assert "- Projects/Alpha.md: 2 links added to [[Alpha.md]]." in log
        assert "- Topics/Machine Learning.md: 1 links added to [[Machine Learning.md]]." in log


class TestLifecycle:
    """Tests for accept / revert over a real vault."""

    def test_revert_all_is_byte_exact(self, sample_vault, sample_files, vault_service):
        """Reverting restores every note and removes linker folders."""
        vault_service.run_batch(confirm=_yes)

        result = vault_service.revert_all()

        assert len(result.reverted) == 3
        for rel_path, content in sample_files.items():
            assert _read(sample_vault, rel_path) == content
        assert not (sample_vault / "_tmlbackups").exists()
        assert not (sample_vault / "_tmldata").exists()

    def test_second_batch_blocked_until_resolved(self, vault_service):
        """Pending changes gate the next batch until accepted."""
        vault_service.run_batch(confirm=_yes)

        with pytest.raises(PendingChangesExist):
            vault_service.run_batch(confirm=_yes)

        assert vault_service.accept_all() == 3
        again = vault_service.run_batch(confirm=_yes)
        assert again.modified_count == 0
        assert again.links_added == 0

    def test_single_runs_alongside_pending_changes(self, sample_vault, sample_files, vault_service):
        """Single runs work while other notes are pending and stay revertible."""
        vault_service.run_single("Projects/Beta.md")
        vault_service.run_single("Topics/Machine Learning.md")
        assert vault_service.ledger.pending_paths() == ["Projects/Beta.md", "Topics/Machine Learning.md"]
        assert (sample_vault / "_tmldata" / "Changes-Projects%2FBeta.md.md").exists()

        vault_service.revert_single("Projects/Beta.md")
        assert _read(sample_vault, "Projects/Beta.md") == sample_files["Projects/Beta.md"]
        assert not (sample_vault / "_tmldata" / "Changes-Projects%2FBeta.md.md").exists()
        assert "Projects/Beta.md" not in _read(sample_vault, "_tmldata/ReviewChanges.md")
        assert vault_service.ledger.pending_paths() == ["Topics/Machine Learning.md"]

    def test_journal_records_outcomes(self, tmp_path, vault_service):
        """The run journal holds one event per document plus the batch summary."""
        vault_service.run_batch(confirm=_yes)
        vault_service.shutdown()

        events = read_run_events(tmp_path / "data" / "runs" / "runs.jsonl")
        linked = [e.path for e in events if e.event_type == RunEventType.DOCUMENT_LINKED]
        assert linked == ["Projects/Alpha.md", "Projects/Beta.md", "Topics/Machine Learning.md"]
        assert events[-1].event_type == RunEventType.BATCH_COMPLETED
