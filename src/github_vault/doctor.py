"""Doctor module for diagnosing common issues."""

from __future__ import annotations

import logging
from pathlib import Path

from .filesystem import FileSystem, LocalFileSystem
from .git_ops import GitBackend, GitError, create_backend
from .gitignore import GITIGNORE_PATH, OBSIDIAN_CONFIG_ENTRY, ensure_excluded, has_entry
from .obsidian_config import SyncConfig
from .repo_state import REMOTE_NAME, RepositoryStateMachine

logger = logging.getLogger(__name__)


class Doctor:
    """Diagnose and fix common vault sync setup issues."""

    def __init__(
        self,
        vault_path: Path,
        config: SyncConfig,
        fs: FileSystem | None = None,
        backend: GitBackend | None = None,
    ) -> None:
        self.vault_path = vault_path
        self.config = config
        self.fs = fs or LocalFileSystem(vault_path)
        self.backend = backend
        self.issues: list[dict] = []

    def _get_backend(self) -> GitBackend:
        if self.backend is None:
            self.backend = create_backend(
                self.config.backend, self.fs, self.config.personal_access_token
            )
        return self.backend

    def run_checks(self, fix: bool = False) -> list[dict]:
        """Run all diagnostic checks."""
        self.issues = []

        if not self._check_settings():
            return self.issues
        if not self._check_git_available():
            return self.issues

        self._check_git_initialized()
        self._check_remote_configured()
        self._check_gitignore()

        if fix:
            self._attempt_fixes()

        return self.issues

    def _check_settings(self) -> bool:
        """Check that remote URL and branch are configured."""
        if self.config.is_complete:
            return True
        self.issues.append({
            "severity": "error",
            "message": "Remote URL or branch name not configured (run 'config set')",
            "fixable": False,
            "fix_action": None,
        })
        return False

    def _check_git_available(self) -> bool:
        """Check that the configured backend can run git."""
        try:
            available = self._get_backend().probe_available()
        except GitError as e:
            available = False
            message = e.message
        else:
            message = "Git is not installed or not in PATH"
        if not available:
            self.issues.append({
                "severity": "error",
                "message": message,
                "fixable": False,
                "fix_action": None,
            })
        return available

    def _check_git_initialized(self) -> None:
        """Check if Git repository is initialized."""
        if not self._get_backend().is_initialized():
            self.issues.append({
                "severity": "error",
                "message": "Git repository not initialized",
                "fixable": True,
                "fix_action": "repository",
            })

    def _check_remote_configured(self) -> None:
        """Check that origin points at the configured URL."""
        backend = self._get_backend()
        if not backend.is_initialized():
            return

        try:
            url = backend.get_remote_url(REMOTE_NAME)
        except GitError as e:
            self.issues.append({
                "severity": "error",
                "message": f"Git error: {e}",
                "fixable": False,
                "fix_action": None,
            })
            return

        if url is None:
            message = f"Remote '{REMOTE_NAME}' not configured"
        elif url != self.config.remote_url:
            message = f"Remote '{REMOTE_NAME}' points to {url}, settings say {self.config.remote_url}"
        else:
            return
        self.issues.append({
            "severity": "warning",
            "message": message,
            "fixable": True,
            "fix_action": "repository",
        })

    def _check_gitignore(self) -> None:
        """Check that .gitignore excludes the Obsidian config directory."""
        try:
            content = self.fs.read_text(GITIGNORE_PATH)
        except FileNotFoundError:
            content = ""
        if not has_entry(content, OBSIDIAN_CONFIG_ENTRY):
            self.issues.append({
                "severity": "warning",
                "message": f"{GITIGNORE_PATH} does not exclude {OBSIDIAN_CONFIG_ENTRY}",
                "fixable": True,
                "fix_action": "gitignore",
            })

    def _attempt_fixes(self) -> None:
        """Attempt to fix auto-fixable issues."""
        repository_fixed = False
        for issue in self.issues:
            if not issue.get("fixable"):
                continue

            action = issue.get("fix_action")

            if action == "repository":
                if not repository_fixed:
                    try:
                        RepositoryStateMachine(self._get_backend(), self.config).ensure_ready()
                        repository_fixed = True
                    except GitError as e:
                        logger.error(f"Could not fix repository: {e}")
                        continue
                issue["fixed"] = True

            elif action == "gitignore":
                ensure_excluded(self.fs, OBSIDIAN_CONFIG_ENTRY)
                issue["fixed"] = True
