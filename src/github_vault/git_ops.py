"""
Git operations module for github-vault.

Provides the version-control adapter used by the sync orchestrator. Two
backends implement the same contract: ``GitCliBackend`` shells out to the
``git`` executable for every call, ``GitPythonBackend`` drives the
repository in-process through GitPython.
"""

from __future__ import annotations

import base64
import configparser
import logging
import os
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

# Let probe_available() report a missing git binary instead of failing at import
os.environ.setdefault("GIT_PYTHON_REFRESH", "quiet")

import git  # noqa: E402
from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError  # noqa: E402
from git.exc import GitCommandNotFound  # noqa: E402

from .filesystem import FileSystem, LocalFileSystem  # noqa: E402

logger = logging.getLogger(__name__)

DEFAULT_USER_NAME = "GitHub Vault"
DEFAULT_USER_EMAIL = "vault@github-vault.local"

PUSH_TIMEOUT = 60
PULL_TIMEOUT = 120
LOCAL_TIMEOUT = 30


class GitError(Exception):
    """Base exception for Git operations."""

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class GitNotInstalledError(GitError):
    """Raised when Git is not installed or not in PATH."""
    pass


class NotAGitRepoError(GitError):
    """Raised when operation requires a Git repository but none exists."""
    pass


class NothingToCommitError(GitError):
    """Raised when a commit is requested with nothing staged."""
    pass


class MergeConflictError(GitError):
    """Raised when a merge conflict occurs during pull."""
    pass


class AuthenticationError(GitError):
    """Raised when authentication fails for remote operations."""
    pass


class PushRejectedError(GitError):
    """Raised when push is rejected by remote."""
    pass


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


@dataclass(frozen=True)
class ChangedPath:
    """One entry of the working-tree status."""

    path: str
    kind: ChangeKind


_KIND_BY_CODE = {
    "A": ChangeKind.ADDED,
    "C": ChangeKind.ADDED,
    "D": ChangeKind.DELETED,
    "M": ChangeKind.MODIFIED,
    "R": ChangeKind.RENAMED,
    "T": ChangeKind.MODIFIED,
    "U": ChangeKind.MODIFIED,
}


def _kind_from_codes(index_status: str, worktree_status: str) -> ChangeKind:
    if index_status == "?":
        return ChangeKind.ADDED
    for code in ("R", "C", "A", "D"):
        if code in (index_status, worktree_status):
            return _KIND_BY_CODE[code]
    return ChangeKind.MODIFIED


def _unquote(path: str) -> str:
    if len(path) >= 2 and path[0] == path[-1] == '"':
        return path[1:-1].replace('\\"', '"')
    return path


def parse_porcelain(output: str) -> list[ChangedPath]:
    """Parse ``git status --porcelain`` (v1) output into changed paths."""
    changes = []
    for line in output.splitlines():
        if len(line) < 4 or line.startswith("##") or line.startswith("!!"):
            continue
        index_status, worktree_status, path = line[0], line[1], line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        changes.append(ChangedPath(_unquote(path), _kind_from_codes(index_status, worktree_status)))
    return changes


def group_by_kind(changes: list[ChangedPath]) -> dict[ChangeKind, list[str]]:
    """Group changed paths by change kind, keeping listing order."""
    grouped: dict[ChangeKind, list[str]] = {}
    for change in changes:
        grouped.setdefault(change.kind, []).append(change.path)
    return grouped


def _auth_header_config(credential: str) -> str:
    token = base64.b64encode(f"x-access-token:{credential}".encode()).decode()
    return f"http.extraHeader=Authorization: Basic {token}"


def _redact(text: str, credential: Optional[str]) -> str:
    if not credential:
        return text
    text = text.replace(credential, "***")
    token = base64.b64encode(f"x-access-token:{credential}".encode()).decode()
    return text.replace(token, "***")


def _is_auth_failure(error: str) -> bool:
    return any(
        marker in error
        for marker in ("authentication", "permission", "could not read username", "403")
    )


def _push_error(error_text: str) -> GitError:
    error = error_text.lower()
    if "rejected" in error:
        return PushRejectedError(
            "Push was rejected by remote",
            "Pull changes first to resolve any conflicts"
        )
    if _is_auth_failure(error):
        return AuthenticationError(
            "Authentication failed during push",
            "Check your access token or SSH keys"
        )
    return GitError(f"Push failed: {error_text.strip()}")


def _pull_error(error_text: str) -> GitError:
    error = error_text.lower()
    if "conflict" in error:
        return MergeConflictError(
            "Pull resulted in merge conflicts",
            "Resolve conflicts manually and pull again"
        )
    if _is_auth_failure(error):
        return AuthenticationError(
            "Authentication failed during pull",
            "Check your access token or SSH keys"
        )
    return GitError(f"Pull failed: {error_text.strip()}")


def _is_nothing_to_commit(output: str) -> bool:
    output = output.lower()
    return "nothing to commit" in output or "nothing added to commit" in output


class GitBackend(ABC):
    """Capability set over the repository rooted at ``fs.root``."""

    name = "abstract"

    def __init__(self, fs: FileSystem, credential: Optional[str] = None) -> None:
        self.fs = fs
        self.credential = credential or None

    @property
    def root(self) -> Path:
        return self.fs.root

    def is_initialized(self) -> bool:
        """Check whether the root is inside a repository work tree.

        A vault nested in an existing repository counts as initialized.
        """
        # .git is a file for worktrees and submodules
        if self.fs.exists(".git"):
            return True
        return self._in_enclosing_repository()

    def _in_enclosing_repository(self) -> bool:
        return False

    @abstractmethod
    def probe_available(self) -> bool:
        ...

    @abstractmethod
    def initialize(self, default_branch: str) -> None:
        ...

    @abstractmethod
    def get_remote_url(self, name: str) -> Optional[str]:
        ...

    @abstractmethod
    def set_remote(self, name: str, url: str) -> None:
        ...

    @abstractmethod
    def stage_all(self) -> None:
        ...

    @abstractmethod
    def commit(self, message: str) -> None:
        ...

    @abstractmethod
    def push(self, remote: str, branch: str) -> None:
        ...

    @abstractmethod
    def pull(self, remote: str, branch: str, rebase: bool = False) -> None:
        ...

    @abstractmethod
    def status_list(self) -> list[ChangedPath]:
        ...

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.root)!r})"


class GitCliBackend(GitBackend):
    """Backend that invokes the ``git`` executable once per operation."""

    name = "cli"

    def _run(
        self,
        *args: str,
        timeout: int = LOCAL_TIMEOUT,
        authenticated: bool = False,
    ) -> subprocess.CompletedProcess:
        cmd = ["git"]
        if authenticated and self.credential:
            cmd.extend(["-c", _auth_header_config(self.credential)])
        cmd.extend(["-C", str(self.root), *args])
        logger.debug(f"Running: git {' '.join(args)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout
            )
        except FileNotFoundError:
            raise GitNotInstalledError(
                "Git is not installed or not in PATH",
                "Please install Git: https://git-scm.com/downloads"
            )
        except subprocess.TimeoutExpired:
            raise GitError(
                f"git {args[0]} timed out after {timeout}s",
                "Check your network connection and remote configuration"
            )
        if result.stdout:
            logger.debug(f"git {args[0]} output: {result.stdout.strip()}")
        return result

    def _check(self, result: subprocess.CompletedProcess, action: str) -> None:
        if result.returncode != 0:
            stderr = _redact(result.stderr.strip() or result.stdout.strip(), self.credential)
            raise GitError(f"Failed to {action}: {stderr}")

    def probe_available(self) -> bool:
        try:
            result = subprocess.run(
                ["git", "--version"],
                capture_output=True,
                text=True,
                timeout=10
            )
        except (FileNotFoundError, subprocess.TimeoutExpired, OSError) as e:
            logger.warning(f"Git is not available: {e}")
            return False
        if result.returncode != 0:
            logger.warning(f"Git check failed: {result.stderr.strip()}")
            return False
        logger.debug(result.stdout.strip())
        return True

    def initialize(self, default_branch: str) -> None:
        self._check(self._run("init"), "initialize Git repository")
        self._check(
            self._run("symbolic-ref", "HEAD", f"refs/heads/{default_branch}"),
            "set default branch"
        )
        logger.info(f"Initialized Git repository at: {self.root}")

    def _in_enclosing_repository(self) -> bool:
        try:
            result = self._run("rev-parse", "--git-dir")
        except GitError:
            return False
        return result.returncode == 0

    def get_remote_url(self, name: str) -> Optional[str]:
        result = self._run("remote", "get-url", name)
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def set_remote(self, name: str, url: str) -> None:
        existing_url = self.get_remote_url(name)
        if existing_url is None:
            self._check(self._run("remote", "add", name, url), f"add remote '{name}'")
            logger.info(f"Added remote '{name}': {url}")
        elif existing_url != url:
            self._check(self._run("remote", "set-url", name, url), f"update remote '{name}'")
            logger.info(f"Updated remote '{name}' to: {url}")
        else:
            logger.debug(f"Remote '{name}' already points to {url}")

    def stage_all(self) -> None:
        self._check(self._run("add", "-A"), "stage changes")
        logger.debug("Staged all files")

    def _ensure_identity(self) -> None:
        for key, default in [("user.name", DEFAULT_USER_NAME), ("user.email", DEFAULT_USER_EMAIL)]:
            result = self._run("config", key)
            if not result.stdout.strip():
                self._check(self._run("config", key, default), f"set {key}")
                logger.info(f"Set default git {key}")

    def commit(self, message: str) -> None:
        self._ensure_identity()
        result = self._run("commit", "-m", message)
        if result.returncode != 0:
            if _is_nothing_to_commit(result.stdout + result.stderr):
                raise NothingToCommitError("No changes to commit")
            self._check(result, "commit")
        logger.info(f"Created commit: {message}")

    def push(self, remote: str, branch: str) -> None:
        result = self._run("push", remote, branch, timeout=PUSH_TIMEOUT, authenticated=True)
        if result.returncode != 0:
            raise _push_error(_redact(result.stderr or result.stdout, self.credential))
        logger.info(f"Pushed {branch} to {remote}")

    def pull(self, remote: str, branch: str, rebase: bool = False) -> None:
        mode = "--rebase" if rebase else "--no-rebase"
        result = self._run("pull", mode, remote, branch, timeout=PULL_TIMEOUT, authenticated=True)
        if result.returncode != 0:
            error = _pull_error(_redact(result.stderr or result.stdout, self.credential))
            if isinstance(error, MergeConflictError):
                abort = self._run("rebase" if rebase else "merge", "--abort")
                if abort.returncode != 0:
                    logger.warning(f"Could not abort after conflict: {abort.stderr.strip()}")
            raise error
        logger.info(f"Pulled from {remote}/{branch}")

    def status_list(self) -> list[ChangedPath]:
        result = self._run("status", "--porcelain", "--untracked-files=all")
        self._check(result, "read repository status")
        return parse_porcelain(result.stdout)


class GitPythonBackend(GitBackend):
    """Backend that works on the repository in-process through GitPython."""

    name = "gitpython"

    def __init__(self, fs: FileSystem, credential: Optional[str] = None) -> None:
        super().__init__(fs, credential)
        self._repo: Any = None

    @property
    def repo(self) -> Any:
        if self._repo is None:
            try:
                self._repo = git.Repo(self.root, search_parent_directories=True)
            except InvalidGitRepositoryError:
                raise NotAGitRepoError(
                    f"'{self.root}' is not a valid Git repository",
                    "Run setup first to initialize"
                )
            except NoSuchPathError:
                raise GitError(
                    f"Path does not exist: {self.root}",
                    "Create the directory before initializing Git"
                )
        return self._repo

    def _in_enclosing_repository(self) -> bool:
        try:
            self.repo
        except GitError:
            return False
        return True

    def _git(self, authenticated: bool = False) -> Any:
        if authenticated and self.credential:
            return self.repo.git(c=_auth_header_config(self.credential))
        return self.repo.git

    def _error_text(self, error: GitCommandError) -> str:
        return _redact(f"{error.stderr or ''}\n{error.stdout or ''}".strip(), self.credential)

    def probe_available(self) -> bool:
        try:
            version = git.Git().version_info
        except (GitCommandNotFound, GitCommandError, OSError) as e:
            logger.warning(f"Git is not available: {e}")
            return False
        logger.debug(f"git version {'.'.join(str(part) for part in version)}")
        return True

    def initialize(self, default_branch: str) -> None:
        try:
            self._repo = git.Repo.init(self.root)
            self._repo.git.symbolic_ref("HEAD", f"refs/heads/{default_branch}")
        except GitCommandError as e:
            raise GitError(
                f"Failed to initialize Git repository: {self._error_text(e)}",
                "Check directory permissions and disk space"
            )
        logger.info(f"Initialized Git repository at: {self.root}")

    def get_remote_url(self, name: str) -> Optional[str]:
        try:
            remote = self.repo.remote(name)
        except ValueError:
            return None
        urls = list(remote.urls)
        return urls[0] if urls else None

    def set_remote(self, name: str, url: str) -> None:
        try:
            existing = self.repo.remote(name)
        except ValueError:
            self.repo.create_remote(name, url)
            logger.info(f"Added remote '{name}': {url}")
            return

        existing_url = list(existing.urls)[0] if existing.urls else None
        if existing_url == url:
            logger.debug(f"Remote '{name}' already points to {url}")
            return
        existing.set_url(url)
        logger.info(f"Updated remote '{name}' to: {url}")

    def stage_all(self) -> None:
        try:
            self.repo.git.add(A=True)
        except GitCommandError as e:
            raise GitError(f"Failed to stage changes: {self._error_text(e)}")
        logger.debug("Staged all files")

    def _ensure_identity(self) -> None:
        config = self.repo.config_reader()
        for key, default in [("name", DEFAULT_USER_NAME), ("email", DEFAULT_USER_EMAIL)]:
            try:
                config.get_value("user", key)
            except (configparser.NoSectionError, configparser.NoOptionError):
                writer = self.repo.config_writer()
                try:
                    writer.set_value("user", key, default)
                finally:
                    writer.release()
                logger.info(f"Set default git user.{key}")

    def commit(self, message: str) -> None:
        self._ensure_identity()
        try:
            self.repo.git.commit("-m", message)
        except GitCommandError as e:
            error_text = self._error_text(e)
            if _is_nothing_to_commit(error_text):
                raise NothingToCommitError("No changes to commit")
            raise GitError(f"Failed to commit: {error_text}")
        logger.info(f"Created commit: {self.repo.head.commit.hexsha[:8]} - {message}")

    def push(self, remote: str, branch: str) -> None:
        try:
            self._git(authenticated=True).push(remote, branch, kill_after_timeout=PUSH_TIMEOUT)
        except GitCommandError as e:
            raise _push_error(self._error_text(e))
        logger.info(f"Pushed {branch} to {remote}")

    def pull(self, remote: str, branch: str, rebase: bool = False) -> None:
        mode = "--rebase" if rebase else "--no-rebase"
        try:
            self._git(authenticated=True).pull(mode, remote, branch, kill_after_timeout=PULL_TIMEOUT)
        except GitCommandError as e:
            error = _pull_error(self._error_text(e))
            if isinstance(error, MergeConflictError):
                try:
                    if rebase:
                        self.repo.git.rebase("--abort")
                    else:
                        self.repo.git.merge("--abort")
                except GitCommandError as abort_error:
                    logger.warning(f"Could not abort after conflict: {abort_error}")
            raise error
        logger.info(f"Pulled from {remote}/{branch}")

    def status_list(self) -> list[ChangedPath]:
        repo = self.repo
        changes: dict[str, ChangeKind] = {}
        try:
            head = repo.head.commit
        except ValueError:
            head = None  # No commits yet

        try:
            if head is not None:
                # HEAD against the index: staged changes
                for item in head.diff():
                    path = item.b_path or item.a_path
                    changes[path] = _KIND_BY_CODE.get(item.change_type, ChangeKind.MODIFIED)
            else:
                for path, _stage in repo.index.entries.keys():
                    changes[path] = ChangeKind.ADDED

            # Index against the working tree: unstaged changes
            for item in repo.index.diff(None):
                changes.setdefault(item.a_path, _KIND_BY_CODE.get(item.change_type, ChangeKind.MODIFIED))

            for path in repo.untracked_files:
                changes.setdefault(path, ChangeKind.ADDED)
        except GitCommandError as e:
            raise GitError(f"Failed to read repository status: {self._error_text(e)}")

        return [ChangedPath(path, kind) for path, kind in sorted(changes.items())]

    def close(self) -> None:
        if self._repo is not None:
            self._repo.close()
            self._repo = None


BACKENDS = {
    GitCliBackend.name: GitCliBackend,
    GitPythonBackend.name: GitPythonBackend,
}


def create_backend(
    kind: str,
    root: Union[str, Path, FileSystem],
    credential: Optional[str] = None,
) -> GitBackend:
    """Build the backend named ``kind`` for the vault at ``root``."""
    try:
        backend_cls = BACKENDS[kind]
    except KeyError:
        raise GitError(
            f"Unknown git backend: {kind}",
            f"Use one of: {', '.join(sorted(BACKENDS))}"
        )
    fs = LocalFileSystem(root) if isinstance(root, (str, Path)) else root
    return backend_cls(fs, credential)
