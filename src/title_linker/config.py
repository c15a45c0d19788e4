# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Configuration loading and validation for Title Match Linker."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from title_linker.title_matcher import LinkCase

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".title_match_linker.yml"


def _is_safe_component(value: Any) -> bool:
    """Whether value can be used as a single vault-root folder or file name."""
    if not isinstance(value, str) or not value.strip():
        return False
    if "\0" in value or "/" in value or "\\" in value:
        return False
    return value not in (".", "..")


class Config:
    """Configuration for Title Match Linker.

    Loads configuration from .title_match_linker.yml with validation and defaults.
    """

    DEFAULTS: Dict[str, Any] = {
        "excluded_folders": [],
        "backup_folder": "_tmlbackups",
        "data_folder": "_tmldata",
        "review_log_name": "ReviewChanges.md",
        "document_extensions": [".md"],
        "link_case": LinkCase.LOWER,
        "protect_inline_code": True,
        "strict_exclusions": False,
        "max_document_size_kb": 10240,
        "enable_run_logging": True,
    }

    def __init__(self, config_path: Optional[Path] = None, overrides: Optional[Dict[str, Any]] = None):
        """Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, uses the default
                file name in the current directory.
            overrides: Values applied after the file is loaded, validated the
                same way as file values.
        """
        if config_path is None:
            config_path = Path.cwd() / CONFIG_FILENAME

        self.config_path = config_path
        self._config: Dict[str, Any] = {}
        self._load_config()
        if overrides:
            self._validate_and_merge(overrides)

    @classmethod
    def for_vault(cls, vault_root: Path, overrides: Optional[Dict[str, Any]] = None) -> "Config":
        """Load the configuration file that lives at the vault root."""
        return cls(config_path=Path(vault_root) / CONFIG_FILENAME, overrides=overrides)

    def _defaults(self) -> Dict[str, Any]:
        # Lists are copied so instances never share mutable defaults
        return {key: list(value) if isinstance(value, list) else value for key, value in self.DEFAULTS.items()}

    def _load_config(self) -> None:
        """Load and validate configuration from file."""
        if not self.config_path.exists():
            logger.info(f"Configuration file not found at {self.config_path}, using defaults")
            self._config = self._defaults()
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                loaded_config = yaml.safe_load(f)

            if loaded_config is None:
                logger.warning("Configuration file is empty, using defaults")
                self._config = self._defaults()
                return

            if not isinstance(loaded_config, dict):
                logger.warning(
                    f"Configuration file must contain a YAML dictionary, "
                    f"got {type(loaded_config)}, using defaults"
                )
                self._config = self._defaults()
                return

            self._config = self._defaults()
            self._validate_and_merge(loaded_config)

        except yaml.YAMLError as e:
            logger.warning(
                f"Error parsing configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self._defaults()
        except OSError as e:
            logger.warning(
                f"Unable to read configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self._defaults()

    def _validate_and_merge(self, loaded_config: Dict[str, Any]) -> None:
        """Validate loaded configuration and merge with defaults.

        Invalid parameters are logged as warnings and defaults are used.
        """
        for key, value in loaded_config.items():
            if key not in self.DEFAULTS:
                logger.warning(f"Unknown configuration parameter '{key}', ignoring")
                continue

            if not self._validate_parameter(key, value):
                logger.warning(
                    f"Invalid value for '{key}': {value}, using default {self.DEFAULTS[key]}"
                )
                continue

            self._config[key] = value

        if len({self.backup_folder, self.data_folder}) == 1:
            logger.warning("backup_folder and data_folder must differ, using defaults for both")
            self._config["backup_folder"] = self.DEFAULTS["backup_folder"]
            self._config["data_folder"] = self.DEFAULTS["data_folder"]

    def _validate_parameter(self, key: str, value: Any) -> bool:
        """Validate a configuration parameter.

        Returns:
            True if valid, False if invalid
        """
        expected_type = type(self.DEFAULTS[key])
        # bool is a subclass of int; reject it for numeric keys
        if not isinstance(value, expected_type) or (expected_type is int and isinstance(value, bool)):
            return False

        if key == "max_document_size_kb":
            return value > 0
        elif key == "excluded_folders":
            return all(isinstance(folder, str) and folder for folder in value)
        elif key == "document_extensions":
            return bool(value) and all(
                isinstance(ext, str) and ext.startswith(".") and len(ext) > 1 for ext in value
            )
        elif key in ("backup_folder", "data_folder", "review_log_name"):
            return _is_safe_component(value)
        elif key == "link_case":
            return value in LinkCase.ALL

        return True

    @property
    def excluded_folders(self) -> List[str]:
        """User-configured path prefixes excluded from linking."""
        value = self._config["excluded_folders"]
        assert isinstance(value, list)
        return value

    @property
    def backup_folder(self) -> str:
        """Vault folder holding pre-rewrite snapshots."""
        value = self._config["backup_folder"]
        assert isinstance(value, str)
        return value

    @property
    def data_folder(self) -> str:
        """Vault folder holding the review log and change reports."""
        value = self._config["data_folder"]
        assert isinstance(value, str)
        return value

    @property
    def review_log_name(self) -> str:
        """File name of the review log inside the data folder."""
        value = self._config["review_log_name"]
        assert isinstance(value, str)
        return value

    @property
    def document_extensions(self) -> List[str]:
        """File extensions treated as documents."""
        value = self._config["document_extensions"]
        assert isinstance(value, list)
        return value

    @property
    def link_case(self) -> str:
        """LinkCase used for inserted link targets."""
        value = self._config["link_case"]
        assert isinstance(value, str)
        return value

    @property
    def protect_inline_code(self) -> bool:
        """Whether inline code spans are left untouched."""
        value = self._config["protect_inline_code"]
        assert isinstance(value, bool)
        return value

    @property
    def strict_exclusions(self) -> bool:
        """Whether missing excluded folders block a batch run."""
        value = self._config["strict_exclusions"]
        assert isinstance(value, bool)
        return value

    @property
    def max_document_size_kb(self) -> int:
        """Documents larger than this are skipped as unreadable."""
        value = self._config["max_document_size_kb"]
        assert isinstance(value, int)
        return value

    @property
    def enable_run_logging(self) -> bool:
        """Whether link-run events are written to the JSONL journal."""
        value = self._config["enable_run_logging"]
        assert isinstance(value, bool)
        return value

    @property
    def reserved_folders(self) -> List[str]:
        """Folders owned by the linker; never linked and never in the catalog."""
        return [self.backup_folder, self.data_folder]

    def effective_exclusions(self, exclusions: Optional[List[str]] = None) -> List[str]:
        """Combine user exclusions with the reserved folders.

        Args:
            exclusions: Explicit exclusion prefixes for one call. If None, the
                configured excluded_folders are used.

        Returns:
            Path prefixes to exclude, reserved folders last, without duplicates.
        """
        user = list(self.excluded_folders if exclusions is None else exclusions)
        reserved = [f"{folder}/" for folder in self.reserved_folders]
        combined: List[str] = []
        for prefix in user + reserved:
            if prefix and prefix not in combined:
                combined.append(prefix)
        return combined

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._config)
