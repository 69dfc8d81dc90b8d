"""Obsidian vault detection and plugin settings module.

This module provides utilities for:
- Auto-detecting Obsidian vaults in common locations
- Validating vault structure
- Loading and saving the sync settings kept in the plugin's data.json
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

PLUGIN_ID = "github-vault"

# Common Obsidian vault locations to check
DEFAULT_VAULT_PATHS: Sequence[str] = [
    "~/Obsidian",
    "~/Documents/Obsidian",
    "~/obsidian",
    "~/notes",
    "~/Notes",
]

# Plugin data.json keys and their defaults
DEFAULT_SETTINGS: dict[str, Any] = {
    "remoteUrl": "",
    "branchName": "main",
    "personalAccessToken": "",
    "backend": "gitpython",
    "pullRebase": False,
}


class VaultError(Exception):
    """Raised when there's an issue with the Obsidian vault."""


class SettingsError(Exception):
    """Raised when the plugin settings cannot be read or written."""


@dataclass(frozen=True)
class SyncConfig:
    """Sync settings for one vault."""

    remote_url: str = ""
    branch_name: str = "main"
    personal_access_token: Optional[str] = field(default=None, repr=False)
    backend: str = "gitpython"
    pull_rebase: bool = False

    @property
    def is_complete(self) -> bool:
        """Both remote URL and branch are required before syncing."""
        return bool(self.remote_url.strip() and self.branch_name.strip())

    @classmethod
    def from_settings(cls, data: dict[str, Any]) -> SyncConfig:
        settings = {**DEFAULT_SETTINGS, **data}
        return cls(
            remote_url=str(settings["remoteUrl"] or "").strip(),
            branch_name=str(settings["branchName"] or "").strip(),
            personal_access_token=settings["personalAccessToken"] or None,
            backend=str(settings["backend"] or DEFAULT_SETTINGS["backend"]),
            pull_rebase=bool(settings["pullRebase"]),
        )

    def to_settings(self) -> dict[str, Any]:
        return {
            "remoteUrl": self.remote_url,
            "branchName": self.branch_name,
            "personalAccessToken": self.personal_access_token or "",
            "backend": self.backend,
            "pullRebase": self.pull_rebase,
        }

    def with_overrides(self, **overrides: Any) -> SyncConfig:
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        changes = {k: v for k, v in overrides.items() if k in known and v is not None}
        return replace(self, **changes)


def find_vault_path() -> str | None:
    """Auto-detect Obsidian vault in common locations.

    Returns:
        Path to the detected vault, or None if no vault found.
    """
    for path in DEFAULT_VAULT_PATHS:
        expanded_path = Path(path).expanduser()
        if expanded_path.exists() and expanded_path.is_dir():
            if _is_vault_directory(expanded_path):
                return str(expanded_path)
    return None


def _is_vault_directory(path: Path) -> bool:
    """Check if a directory appears to be an Obsidian vault.

    A valid vault typically has a .obsidian directory containing
    configuration files, or contains .md files.
    """
    obsidian_dir = path / ".obsidian"
    if obsidian_dir.exists() and obsidian_dir.is_dir():
        return True

    try:
        md_files = list(path.glob("*.md"))
        if len(md_files) > 0:
            return True
    except (PermissionError, OSError):
        pass

    return False


def validate_vault(vault_path: str | Path) -> bool:
    """Check if directory is a valid Obsidian vault.

    A valid vault must:
    - Exist as a directory
    - Be readable/writable
    - Either have a .obsidian directory or contain .md files

    Raises:
        VaultError: If the vault is invalid with detailed reason.
    """
    path = Path(vault_path).expanduser()

    if not path.exists():
        raise VaultError(f"Vault path does not exist: {vault_path}")

    if not path.is_dir():
        raise VaultError(f"Vault path is not a directory: {vault_path}")

    if not os.access(path, os.R_OK):
        raise VaultError(f"Vault directory is not readable: {vault_path}")

    if not os.access(path, os.W_OK):
        raise VaultError(f"Vault directory is not writable: {vault_path}")

    if not _is_vault_directory(path):
        raise VaultError(
            f"Directory does not appear to be an Obsidian vault: {vault_path}\n"
            "Expected either a .obsidian directory or markdown (.md) files."
        )

    return True


def get_vault_name(vault_path: str | Path) -> str:
    """Extract vault name from path."""
    return Path(vault_path).expanduser().name


def settings_path(vault_path: str | Path) -> Path:
    """Location of the plugin's data.json inside a vault."""
    return Path(vault_path).expanduser() / ".obsidian" / "plugins" / PLUGIN_ID / "data.json"


def _read_settings_file(config_file: Path) -> dict[str, Any]:
    try:
        with open(config_file, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, json.JSONDecodeError) as e:
        raise SettingsError(
            f"Failed to read plugin settings: {config_file}\nError: {e}"
        ) from e

    if not isinstance(data, dict):
        raise SettingsError(f"Plugin settings must be a JSON object: {config_file}")
    return data


def load_settings(vault_path: str | Path) -> SyncConfig:
    """Load sync settings, filling missing keys with defaults.

    Raises:
        SettingsError: If the settings file exists but cannot be parsed.
    """
    config_file = settings_path(vault_path)
    data = _read_settings_file(config_file)
    logger.debug(f"Loaded settings from {config_file}")
    return SyncConfig.from_settings(data)


def save_settings(vault_path: str | Path, config: SyncConfig) -> Path:
    """Write sync settings, keeping any keys this tool does not manage.

    Raises:
        SettingsError: If the settings file cannot be written.
    """
    config_file = settings_path(vault_path)
    data = _read_settings_file(config_file)
    data.update(config.to_settings())

    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
    except OSError as e:
        raise SettingsError(
            f"Failed to write plugin settings: {config_file}\nError: {e}"
        ) from e

    logger.info(f"Saved settings to {config_file}")
    return config_file
