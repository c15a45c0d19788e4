# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Title Match Linker: reversible note-title cross-linking for markdown vaults."""

from .config import Config
from .errors import (
    InvalidExclusionPath,
    LogAppendFailure,
    PendingChangesExist,
    ReadFailure,
    RevertTargetMissing,
    SnapshotFailure,
    TitleLinkerError,
    WriteFailure,
)
from .ledger import ChangeLedger
from .models import BatchResult, ChangeLogEntry, PendingChange, RewriteResult, SingleResult
from .rewrite_engine import rewrite
from .run_logger import RunEvent, RunLogger, read_run_events
from .service import TitleLinkerService
from .storage import DocumentStore, InMemoryDocumentStore, VaultStore
from .title_matcher import LinkCase, TitleMatcher

__version__ = "0.1.0"

__all__ = [
    "Config",
    "TitleLinkerError",
    "ReadFailure",
    "WriteFailure",
    "SnapshotFailure",
    "LogAppendFailure",
    "RevertTargetMissing",
    "PendingChangesExist",
    "InvalidExclusionPath",
    "ChangeLedger",
    "BatchResult",
    "ChangeLogEntry",
    "PendingChange",
    "RewriteResult",
    "SingleResult",
    "rewrite",
    "RunEvent",
    "RunLogger",
    "read_run_events",
    "TitleLinkerService",
    "DocumentStore",
    "InMemoryDocumentStore",
    "VaultStore",
    "LinkCase",
    "TitleMatcher",
]
