# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Storage abstraction for vault documents, backups and review logs.

The linker never touches the filesystem directly; every read, write and delete
goes through a DocumentStore so the engine can run against a folder on disk or
against an in-memory vault.

Components:
- DocumentStore: Abstract interface for storage backends
- VaultStore: A vault directory on disk with atomic writes
- InMemoryDocumentStore: Dict-backed vault for tests and embedding

Paths are vault-relative strings using forward slashes. Missing files raise
FileNotFoundError; other failures raise OSError.
"""

import logging
import os
import posixpath
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from title_linker.models import Document

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """Normalize a vault-relative path and reject anything escaping the vault.

    Raises:
        ValueError: If the path is empty, absolute, contains null bytes or
            parent references.
    """
    if not path or "\0" in path:
        raise ValueError(f"Invalid vault path: {path!r}")
    path = path.replace("\\", "/")
    if path.startswith("/"):
        raise ValueError(f"Vault paths must be relative: {path}")
    normalized = posixpath.normpath(path)
    if normalized == ".." or normalized.startswith("../"):
        raise ValueError(f"Directory traversal not allowed: {path}")
    return normalized


class DocumentStore(ABC):
    """Abstract storage interface for a vault.

    Enables swapping storage backend without changing linking logic.
    """

    @abstractmethod
    def list_documents(self, extensions: Sequence[str] = (".md",)) -> List[Document]:
        """List documents with one of the given extensions, sorted by path."""
        pass

    @abstractmethod
    def read_document(self, path: str) -> str:
        """Read a file's full text.

        Raises:
            FileNotFoundError: If the file does not exist.
            OSError: If the file cannot be read.
        """
        pass

    @abstractmethod
    def write_document(self, path: str, text: str) -> None:
        """Replace a file's text atomically, creating it if needed.

        Raises:
            OSError: If the write fails. The previous content is left intact.
        """
        pass

    @abstractmethod
    def create_file(self, path: str, text: str) -> None:
        """Create a new file.

        Raises:
            FileExistsError: If the file already exists.
            OSError: If the file cannot be created.
        """
        pass

    @abstractmethod
    def delete_file(self, path: str) -> None:
        """Delete a file.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        pass

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def file_size(self, path: str) -> int:
        """Size of a file in bytes.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        pass

    @abstractmethod
    def folder_exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def create_folder(self, path: str) -> None:
        """Create a folder (and parents). No-op if it already exists."""
        pass

    @abstractmethod
    def list_folder(self, path: str) -> Tuple[List[str], List[str]]:
        """List a folder's direct children.

        Returns:
            Tuple of (file paths, folder paths), each sorted.

        Raises:
            FileNotFoundError: If the folder does not exist.
        """
        pass

    @abstractmethod
    def delete_folder_recursive(self, path: str) -> None:
        """Delete a folder and everything beneath it. No-op if missing."""
        pass


class VaultStore(DocumentStore):
    """A vault directory on disk.

    Writes go to a temporary file in the destination folder and are moved into
    place with os.replace, so a failed write never leaves partial content.
    Text is read and written with newline="" so line endings round-trip
    byte-for-byte. Dot-folders (.obsidian, .git, ...) are not listed.

    Limitations:
    - NOT thread-safe: Designed for single-threaded use only
    """

    def __init__(self, root: Path):
        self.root = Path(root).resolve()
        if not self.root.is_dir():
            raise FileNotFoundError(f"Vault root does not exist: {self.root}")

    def _resolve(self, path: str) -> Path:
        return self.root / normalize_path(path)

    def _relative(self, absolute: Path) -> str:
        return absolute.relative_to(self.root).as_posix()

    def list_documents(self, extensions: Sequence[str] = (".md",)) -> List[Document]:
        wanted = {ext.lower() for ext in extensions}
        documents: List[Document] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]
            for filename in filenames:
                if os.path.splitext(filename)[1].lower() in wanted:
                    documents.append(Document(path=self._relative(Path(dirpath) / filename)))
        documents.sort(key=lambda d: d.path)
        return documents

    def read_document(self, path: str) -> str:
        with open(self._resolve(path), encoding="utf-8", newline="") as f:
            return f.read()

    def write_document(self, path: str, text: str) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tml-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def create_file(self, path: str, text: str) -> None:
        target = self._resolve(path)
        if target.exists():
            raise FileExistsError(f"File already exists: {path}")
        self.write_document(path, text)

    def delete_file(self, path: str) -> None:
        target = self._resolve(path)
        if not target.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        target.unlink()

    def file_exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def file_size(self, path: str) -> int:
        return self._resolve(path).stat().st_size

    def folder_exists(self, path: str) -> bool:
        return self._resolve(path).is_dir()

    def create_folder(self, path: str) -> None:
        self._resolve(path).mkdir(parents=True, exist_ok=True)

    def list_folder(self, path: str) -> Tuple[List[str], List[str]]:
        folder = self._resolve(path)
        if not folder.is_dir():
            raise FileNotFoundError(f"Folder not found: {path}")
        files: List[str] = []
        folders: List[str] = []
        for child in folder.iterdir():
            (folders if child.is_dir() else files).append(self._relative(child))
        return sorted(files), sorted(folders)

    def delete_folder_recursive(self, path: str) -> None:
        folder = self._resolve(path)
        if folder.is_dir():
            shutil.rmtree(folder)


class InMemoryDocumentStore(DocumentStore):
    """In-memory vault.

    Features:
    - Folders are tracked explicitly and implied by file parents
    - Fault injection: paths (or folder prefixes) listed in ``fail_reads`` /
      ``fail_writes`` raise OSError on read / on write, create or delete

    Limitations:
    - NOT thread-safe: Designed for single-threaded use only
    """

    def __init__(self, files: Optional[Dict[str, str]] = None):
        self._files: Dict[str, str] = {}
        self._folders: Set[str] = set()
        self.fail_reads: Set[str] = set()
        self.fail_writes: Set[str] = set()
        for path, text in (files or {}).items():
            self._files[normalize_path(path)] = text

    @staticmethod
    def _matches(path: str, patterns: Iterable[str]) -> bool:
        for pattern in patterns:
            prefix = pattern.rstrip("/")
            if path == prefix or path.startswith(prefix + "/"):
                return True
        return False

    def _check_write(self, path: str) -> None:
        if self._matches(path, self.fail_writes):
            raise OSError(f"Simulated write failure: {path}")

    def _all_folders(self) -> Set[str]:
        folders = set(self._folders)
        for path in self._files:
            parent = posixpath.dirname(path)
            while parent:
                folders.add(parent)
                parent = posixpath.dirname(parent)
        return folders

    def list_documents(self, extensions: Sequence[str] = (".md",)) -> List[Document]:
        wanted = {ext.lower() for ext in extensions}
        return [
            Document(path=path)
            for path in sorted(self._files)
            if posixpath.splitext(path)[1].lower() in wanted
            and not any(part.startswith(".") for part in path.split("/")[:-1])
        ]

    def read_document(self, path: str) -> str:
        path = normalize_path(path)
        if self._matches(path, self.fail_reads):
            raise OSError(f"Simulated read failure: {path}")
        if path not in self._files:
            raise FileNotFoundError(f"File not found: {path}")
        return self._files[path]

    def write_document(self, path: str, text: str) -> None:
        path = normalize_path(path)
        self._check_write(path)
        self._files[path] = text

    def create_file(self, path: str, text: str) -> None:
        path = normalize_path(path)
        if path in self._files:
            raise FileExistsError(f"File already exists: {path}")
        self.write_document(path, text)

    def delete_file(self, path: str) -> None:
        path = normalize_path(path)
        self._check_write(path)
        if path not in self._files:
            raise FileNotFoundError(f"File not found: {path}")
        del self._files[path]

    def file_exists(self, path: str) -> bool:
        return normalize_path(path) in self._files

    def file_size(self, path: str) -> int:
        return len(self.read_document(path).encode("utf-8"))

    def folder_exists(self, path: str) -> bool:
        return normalize_path(path) in self._all_folders()

    def create_folder(self, path: str) -> None:
        path = normalize_path(path)
        self._check_write(path)
        self._folders.add(path)

    def list_folder(self, path: str) -> Tuple[List[str], List[str]]:
        path = normalize_path(path)
        folders = self._all_folders()
        if path not in folders:
            raise FileNotFoundError(f"Folder not found: {path}")
        files = sorted(p for p in self._files if posixpath.dirname(p) == path)
        children = sorted(f for f in folders if posixpath.dirname(f) == path)
        return files, children

    def delete_folder_recursive(self, path: str) -> None:
        path = normalize_path(path)
        self._check_write(path)
        prefix = path + "/"
        for file_path in [p for p in self._files if p.startswith(prefix)]:
            del self._files[file_path]
        self._folders = {f for f in self._folders if f != path and not f.startswith(prefix)}
