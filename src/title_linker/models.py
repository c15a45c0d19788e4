# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Core data models for title match linking.

This module defines the data structures shared by the engine, the ledger and
the orchestrator:
- BlockKind: Region a line belongs to (metadata, code or prose)
- LineClassification: Per-line flags driving rewrite eligibility
- Document: A vault document identified by its path
- TitleMatch / RewriteResult: Output of the title matcher and rewrite engine
- ChangeLogEntry: One line of the human-readable review log
- PendingChange: A document with an outstanding snapshot
- DocumentFailure / BatchResult / SingleResult / RevertResult: Operation outcomes

All models use JSON-compatible primitives so results can be returned over MCP.
"""

import posixpath
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class BlockKind:
    """Region a line belongs to.

    Design: Using class constants (not Enum) for JSON-compatible strings.
    Exactly one kind holds per line.
    """

    METADATA = "metadata"  # front matter delimited by --- at document start
    CODE = "code"  # fenced ``` block
    PROSE = "prose"  # everything else


@dataclass(frozen=True)
class LineClassification:
    """Flags for a single line of a document.

    The block kind and the existing-link flag are computed independently; the
    link flag is layered on top of the block kind.
    """

    block_kind: str
    has_existing_link: bool = False

    @property
    def in_metadata_block(self) -> bool:
        return self.block_kind == BlockKind.METADATA

    @property
    def in_code_block(self) -> bool:
        return self.block_kind == BlockKind.CODE

    @property
    def is_eligible(self) -> bool:
        """Whether the title matcher may rewrite this line."""
        return self.block_kind == BlockKind.PROSE and not self.has_existing_link


@dataclass(frozen=True)
class Document:
    """A document in the vault.

    The path is vault-relative with forward slashes and is the unique key.
    """

    path: str

    @property
    def name(self) -> str:
        """File name including extension."""
        return posixpath.basename(self.path)

    @property
    def title(self) -> str:
        """Base name without extension."""
        stem, _ = posixpath.splitext(self.name)
        return stem


@dataclass(frozen=True)
class TitleMatch:
    """A title occurrence found in a line, as a half-open [start, end) span."""

    start: int
    end: int
    title: str  # catalog casing
    link_target: str  # text placed inside [[...]]


@dataclass
class RewriteResult:
    """Result of rewriting one document's content."""

    content: str
    links_added: int
    linked_titles: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "links_added": self.links_added,
            "linked_titles": self.linked_titles,
        }


# - <path>: <N> links added to [[<title>]].
_LOG_ENTRY_PATTERN = re.compile(r"^- (?P<path>.+): (?P<count>\d+) links added to \[\[(?P<title>.*)\]\]\.$")


@dataclass(frozen=True)
class ChangeLogEntry:
    """One line of the review log. Never mutated after it is appended."""

    path: str
    links_added: int
    title: str

    def to_line(self) -> str:
        return f"- {self.path}: {self.links_added} links added to [[{self.title}]]."

    @classmethod
    def parse(cls, line: str) -> Optional["ChangeLogEntry"]:
        """Parse a review log line, returning None for headers and blank lines."""
        match = _LOG_ENTRY_PATTERN.match(line.rstrip("\r"))
        if match is None:
            return None
        return cls(
            path=match.group("path"),
            links_added=int(match.group("count")),
            title=match.group("title"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "links_added": self.links_added, "title": self.title}


@dataclass(frozen=True)
class PendingChange:
    """A document whose pre-rewrite snapshot has not been accepted or reverted."""

    path: str
    backup_name: str
    links_added: Optional[int] = None  # None when no review log entry was found

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "backup_name": self.backup_name,
            "links_added": self.links_added,
        }


@dataclass(frozen=True)
class DocumentFailure:
    """A per-document failure reported by a batch operation."""

    path: str
    error_kind: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "error_kind": self.error_kind, "message": self.message}


@dataclass
class BatchResult:
    """Final tally of a batch link run."""

    modified_count: int = 0
    links_added: int = 0
    processed_count: int = 0
    total_documents: int = 0
    entries: List[ChangeLogEntry] = field(default_factory=list)
    failures: List[DocumentFailure] = field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "modified_count": self.modified_count,
            "links_added": self.links_added,
            "processed_count": self.processed_count,
            "total_documents": self.total_documents,
            "entries": [entry.to_dict() for entry in self.entries],
            "failures": [failure.to_dict() for failure in self.failures],
            "cancelled": self.cancelled,
        }


@dataclass
class SingleResult:
    """Outcome of linking a single document."""

    path: str
    links_added: int = 0
    skipped_reason: Optional[str] = None
    log_warning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "links_added": self.links_added,
            "skipped_reason": self.skipped_reason,
            "log_warning": self.log_warning,
        }


@dataclass
class RevertResult:
    """Outcome of reverting every pending change."""

    reverted: List[str] = field(default_factory=list)
    failures: List[DocumentFailure] = field(default_factory=list)
    log_deleted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reverted": self.reverted,
            "failures": [failure.to_dict() for failure in self.failures],
            "log_deleted": self.log_deleted,
        }
