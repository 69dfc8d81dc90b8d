"""Brings the vault repository to the initialized, remote-configured state."""

from __future__ import annotations

import logging

from .git_ops import GitBackend
from .obsidian_config import SyncConfig

logger = logging.getLogger(__name__)

REMOTE_NAME = "origin"


class RepositoryStateMachine:
    """Uninitialized -> Initialized, entered once per session.

    The remote URL is reapplied on every run so the repository always
    follows the current settings.
    """

    def __init__(self, backend: GitBackend, config: SyncConfig) -> None:
        self.backend = backend
        self.config = config

    def ensure_ready(self) -> bool:
        """Initialize the repository if needed and point origin at the configured URL.

        Returns:
            True if the repository was initialized by this call
        """
        initialized = False
        if not self.backend.is_initialized():
            logger.info(f"No repository at {self.backend.root}, initializing on {self.config.branch_name}")
            self.backend.initialize(self.config.branch_name)
            initialized = True

        self.backend.set_remote(REMOTE_NAME, self.config.remote_url)
        return initialized
