"""Keeps required exclusions in the vault's .gitignore."""

from __future__ import annotations

import logging

from .filesystem import FileSystem

logger = logging.getLogger(__name__)

GITIGNORE_PATH = ".gitignore"

# Obsidian's private configuration directory
OBSIDIAN_CONFIG_ENTRY = ".obsidian/"


def has_entry(content: str, entry: str) -> bool:
    """Check whether ``entry`` appears as a line of ``content``."""
    return any(line.strip() == entry for line in content.splitlines())


def ensure_excluded(
    fs: FileSystem,
    entry: str = OBSIDIAN_CONFIG_ENTRY,
    path: str = GITIGNORE_PATH,
) -> bool:
    """
    Make sure the ignore file lists ``entry`` exactly once.

    Creates the file when it is missing. Read and write failures other than
    a missing file propagate to the caller.

    Returns:
        True if the file was created or changed
    """
    try:
        content = fs.read_text(path)
    except FileNotFoundError:
        fs.write_text(path, f"{entry}\n")
        logger.info(f"Created {path} excluding {entry}")
        return True

    if has_entry(content, entry):
        logger.debug(f"{path} already excludes {entry}")
        return False

    if content and not content.endswith("\n"):
        content += "\n"
    fs.write_text(path, f"{content}{entry}\n")
    logger.info(f"Added {entry} to {path}")
    return True
