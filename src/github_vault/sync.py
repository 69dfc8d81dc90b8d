"""
Sync orchestrator for github-vault.

Owns the repository backend for the session, sequences the git operations
behind the push and pull commands, and keeps the status display current.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from .filesystem import FileSystem
from .git_ops import GitBackend, GitError, NothingToCommitError, create_backend
from .gitignore import OBSIDIAN_CONFIG_ENTRY, ensure_excluded
from .host import FileChangeKind, HostShell
from .obsidian_config import SyncConfig
from .repo_state import REMOTE_NAME, RepositoryStateMachine
from .status import GIT_UNAVAILABLE, NOT_CONFIGURED, PULLING, PUSHING, StatusReducer, StatusSignal

logger = logging.getLogger(__name__)

PUSH_COMMAND_ID = "github-vault-push"
PULL_COMMAND_ID = "github-vault-pull"

NOTICE_DURATION_MS = 5000
COMMIT_LABEL = "GitHub Vault"

BackendFactory = Callable[[str, FileSystem, Optional[str]], GitBackend]


class SyncOrchestrator:
    """Coordinates setup, push, pull and status for one vault.

    Commands run one at a time: a push or pull started while another is in
    progress waits for it to finish. Failures inside a command are reported
    through the host's notices and never escape the command.
    """

    def __init__(
        self,
        config: SyncConfig,
        fs: FileSystem,
        host: HostShell,
        backend_factory: BackendFactory = create_backend,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config
        self.fs = fs
        self.host = host
        self._backend_factory = backend_factory
        self._clock = clock
        self._command_lock = threading.Lock()
        self._registered = False
        self.backend: Optional[GitBackend] = None
        self.status = StatusReducer(self._query_status, host.set_status)

    @property
    def is_ready(self) -> bool:
        return self.backend is not None

    @property
    def is_busy(self) -> bool:
        return self._command_lock.locked()

    def _notify(self, text: str) -> None:
        self.host.show_notice(text, NOTICE_DURATION_MS)

    def _query_status(self):
        if self.backend is None:
            raise GitError("Repository is not set up")
        return self.backend.status_list()

    def setup(self) -> bool:
        """Prepare the repository and register the sync commands.

        Returns:
            True if commands were registered, False if settings are
            incomplete or git is unavailable

        Raises:
            OSError: If the ignore file cannot be read or written
            GitError: If the repository cannot be initialized or its remote set
        """
        if not self.config.is_complete:
            logger.warning("Remote URL or branch name missing, sync disabled")
            self.status.emit(NOT_CONFIGURED)
            self._notify("GitHub Vault: Please set the remote URL and branch name in settings")
            return False

        try:
            backend = self._backend_factory(
                self.config.backend, self.fs, self.config.personal_access_token
            )
        except GitError as e:
            logger.warning(f"Cannot create git backend: {e}")
            self.status.emit(NOT_CONFIGURED)
            self._notify(f"GitHub Vault: {e.message}")
            return False

        if not backend.probe_available():
            self.status.emit(GIT_UNAVAILABLE)
            self._notify("GitHub Vault: Git is not installed or not in PATH")
            return False

        self.backend = backend
        logger.info(f"Using {backend.name} backend for {backend.root}")

        if RepositoryStateMachine(backend, self.config).ensure_ready():
            self._notify("GitHub Vault: Git repository initialized")

        if ensure_excluded(self.fs, OBSIDIAN_CONFIG_ENTRY):
            self._notify(f"GitHub Vault: Added {OBSIDIAN_CONFIG_ENTRY} to .gitignore")

        self.status.refresh()

        if not self._registered:
            self.host.register_command(PUSH_COMMAND_ID, self.push)
            self.host.register_command(PULL_COMMAND_ID, self.pull)
            self.host.on_file_change(self.on_file_change)
            self._registered = True
        return True

    def commit_message(self) -> str:
        timestamp = self._clock().strftime("%Y-%m-%d %H:%M:%S")
        return f"{COMMIT_LABEL} - {timestamp}"

    def push(self) -> bool:
        """Stage everything, commit and push to origin.

        Returns:
            True if the push succeeded
        """
        with self._command_lock:
            if self.backend is None:
                logger.warning("Push ignored: sync is not set up")
                return False

            self.status.begin(PUSHING)
            try:
                self.backend.stage_all()
                try:
                    self.backend.commit(self.commit_message())
                except NothingToCommitError:
                    logger.info("No local changes to commit")
                self.backend.push(REMOTE_NAME, self.config.branch_name)
                return True
            except GitError as e:
                logger.error(f"Push failed: {e}")
                self._notify(f"GitHub Vault Push Error: {e.message}")
            except Exception as e:
                logger.exception("Unexpected error during push")
                self._notify(f"GitHub Vault Push Error: {e}")
            finally:
                self.status.end()
            return False

    def pull(self) -> bool:
        """Pull the configured branch from origin.

        Returns:
            True if the pull succeeded
        """
        with self._command_lock:
            if self.backend is None:
                logger.warning("Pull ignored: sync is not set up")
                return False

            self.status.begin(PULLING)
            try:
                self.backend.pull(
                    REMOTE_NAME, self.config.branch_name, rebase=self.config.pull_rebase
                )
                return True
            except GitError as e:
                logger.error(f"Pull failed: {e}")
                self._notify(f"GitHub Vault Pull Error: {e.message}")
            except Exception as e:
                logger.exception("Unexpected error during pull")
                self._notify(f"GitHub Vault Pull Error: {e}")
            finally:
                self.status.end()
            return False

    def on_file_change(self, path: str, kind: Optional[FileChangeKind] = None) -> Optional[StatusSignal]:
        """Refresh the status after a file in the vault changed."""
        if self.backend is None:
            return None
        if path == ".git" or path.startswith(".git/"):
            return None
        if self.is_busy:
            # The running command refreshes when it finishes
            logger.debug(f"Change to {path} while busy, deferring status refresh")
            return None
        return self.status.refresh()

    def apply_settings(self, config: SyncConfig) -> bool:
        """Switch to new settings, re-running setup where needed."""
        with self._command_lock:
            previous = self.config
            self.config = config
            if (
                self.backend is not None
                and config.is_complete
                and config.backend == previous.backend
            ):
                self.backend.credential = config.personal_access_token
                RepositoryStateMachine(self.backend, config).ensure_ready()
                return True

        self.shutdown()
        return self.setup()

    def shutdown(self) -> None:
        """Release the repository backend."""
        with self._command_lock:
            if self.backend is not None:
                self.backend.close()
                logger.debug("Released git backend")
            self.backend = None
