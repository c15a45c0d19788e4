# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures for integration tests.

Provides a representative markdown vault on disk and a service wired to it.
"""

from pathlib import Path

import pytest

from title_linker.config import Config
from title_linker.run_logger import RunLogger
from title_linker.service import TitleLinkerService
from title_linker.storage import VaultStore

# Vault-relative path -> file content
SAMPLE_VAULT = {
    "Projects/Alpha.md": (
        "---\n"
        "title: Alpha\n"
        "related: Beta\n"
        "---\n"
        "Alpha depends on Beta and the Machine Learning toolkit.\n"
        "See https://example.com/beta for the Beta release notes.\n"
    ),
    "Projects/Beta.md": (
        "# Beta\r\n"
        "Beta is consumed by alpha.\r\n"
        "Already linked: [[machine learning]].\r\n"
    ),
    "Topics/Machine Learning.md": (
        "Notes on Machine Learning.\n"
        "\n"
        "```python\n"
        "alpha = Beta()\n"
        "```\n"
        "Run `Beta` before Alpha.\n"
    ),
    "Templates/Daily.md": "Alpha Beta template\n",
    "Inbox.md": "Nothing to link here.",
    ".obsidian/workspace.md": "Alpha Beta",
    "attachments/diagram.png": "Alpha",
}


@pytest.fixture
def sample_files() -> dict:
    """Vault-relative path to original content of the sample vault."""
    return dict(SAMPLE_VAULT)


@pytest.fixture
def sample_vault(tmp_path: Path) -> Path:
    """Create a representative vault for integration testing.

    Covers:
    - Front matter, fenced code and inline code
    - A URL line, an existing wiki link and CRLF line endings
    - A template folder to exclude, a dot-folder and a non-markdown file
    - A multi-word title

    Returns:
        Path to the vault root directory
    """
    root = tmp_path / "vault"
    for rel_path, content in SAMPLE_VAULT.items():
        target = root / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content.encode("utf-8"))
    return root


@pytest.fixture
def vault_service(sample_vault: Path, tmp_path: Path) -> TitleLinkerService:
    """Service over the sample vault with Templates/ excluded."""
    config = Config.for_vault(sample_vault, overrides={"excluded_folders": ["Templates/"]})
    service = TitleLinkerService(
        config=config,
        store=VaultStore(sample_vault),
        run_logger=RunLogger(data_root=tmp_path / "data"),
    )
    yield service
    service.shutdown()
