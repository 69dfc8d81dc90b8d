"""Shared fixtures: in-memory filesystem, scripted git backend, recording host."""

import os
import shutil
import subprocess
import threading
from pathlib import Path
from typing import Callable, Optional

import pytest

from github_vault.git_ops import ChangedPath, ChangeKind, GitBackend, NothingToCommitError
from github_vault.obsidian_config import SyncConfig

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


class MemoryFileSystem:
    """FileSystem over a dict of relative path -> content."""

    def __init__(self, files: Optional[dict[str, str]] = None, root: str = "/vault") -> None:
        self.files = dict(files or {})
        self.dirs: set[str] = set()
        self._root = Path(root)
        self.fail_reads: Optional[OSError] = None

    @property
    def root(self) -> Path:
        return self._root

    def read_text(self, rel_path: str) -> str:
        if self.fail_reads is not None:
            raise self.fail_reads
        try:
            return self.files[rel_path]
        except KeyError:
            raise FileNotFoundError(rel_path)

    def write_text(self, rel_path: str, content: str) -> None:
        self.files[rel_path] = content

    def list_dir(self, rel_path: str = "") -> list[str]:
        prefix = f"{rel_path}/" if rel_path else ""
        names = set()
        for path in list(self.files) + list(self.dirs):
            if path.startswith(prefix) and path != rel_path:
                names.add(path[len(prefix):].split("/", 1)[0])
        return sorted(names)

    def mkdir(self, rel_path: str) -> None:
        self.dirs.add(rel_path)

    def stat(self, rel_path: str) -> os.stat_result:
        if rel_path not in self.files:
            raise FileNotFoundError(rel_path)
        size = len(self.files[rel_path])
        return os.stat_result((0o100644, 0, 0, 1, 0, 0, size, 0, 0, 0))

    def exists(self, rel_path: str) -> bool:
        return rel_path in self.files or self.is_dir(rel_path)

    def is_dir(self, rel_path: str) -> bool:
        prefix = f"{rel_path}/"
        return rel_path in self.dirs or any(p.startswith(prefix) for p in self.files)


class FakeBackend(GitBackend):
    """Scripted backend recording every call in order."""

    name = "fake"

    def __init__(self, fs, credential=None, *, initialized=True, available=True, calls=None) -> None:
        super().__init__(fs, credential)
        self.initialized = initialized
        self.available = available
        self.calls: list[tuple] = calls if calls is not None else []
        self.changes: list[ChangedPath] = []
        self.remotes: dict[str, str] = {}
        self.push_error: Optional[Exception] = None
        self.pull_error: Optional[Exception] = None
        self.commit_error: Optional[Exception] = None
        self.status_error: Optional[Exception] = None
        self.push_gate: Optional[threading.Event] = None
        self.push_entered = threading.Event()
        self.status_hook: Optional[Callable[[], None]] = None
        self.closed = False

    def probe_available(self) -> bool:
        self.calls.append(("probe_available",))
        return self.available

    def is_initialized(self) -> bool:
        self.calls.append(("is_initialized",))
        return self.initialized

    def initialize(self, default_branch: str) -> None:
        self.calls.append(("initialize", default_branch))
        self.initialized = True

    def get_remote_url(self, name: str) -> Optional[str]:
        return self.remotes.get(name)

    def set_remote(self, name: str, url: str) -> None:
        self.calls.append(("set_remote", name, url))
        self.remotes[name] = url

    def stage_all(self) -> None:
        self.calls.append(("stage_all",))

    def commit(self, message: str) -> None:
        self.calls.append(("commit", message))
        if self.commit_error is not None:
            raise self.commit_error

    def push(self, remote: str, branch: str) -> None:
        self.calls.append(("push", remote, branch))
        self.push_entered.set()
        if self.push_gate is not None:
            gate, self.push_gate = self.push_gate, None
            gate.wait(5)
        self.calls.append(("push_done",))
        if self.push_error is not None:
            raise self.push_error

    def pull(self, remote: str, branch: str, rebase: bool = False) -> None:
        self.calls.append(("pull", remote, branch, rebase))
        if self.pull_error is not None:
            raise self.pull_error

    def status_list(self) -> list[ChangedPath]:
        self.calls.append(("status_list",))
        if self.status_error is not None:
            raise self.status_error
        result = list(self.changes)
        if self.status_hook is not None:
            hook, self.status_hook = self.status_hook, None
            hook()
        return result

    def close(self) -> None:
        self.closed = True

    def names(self) -> list[str]:
        """Call names without arguments."""
        return [call[0] for call in self.calls]


class RecordingHost:
    """HostShell that records what the core asked of it."""

    def __init__(self) -> None:
        self.commands = {}
        self.file_change_handlers = []
        self.notices: list[tuple[str, int]] = []
        self.statuses = []

    def register_command(self, command_id, handler) -> None:
        self.commands[command_id] = handler

    def on_file_change(self, handler) -> None:
        self.file_change_handlers.append(handler)

    def show_notice(self, text: str, duration_ms: int = 5000) -> None:
        self.notices.append((text, duration_ms))

    def set_status(self, signal) -> None:
        self.statuses.append(signal)


def changes(count: int) -> list[ChangedPath]:
    return [ChangedPath(f"note-{i}.md", ChangeKind.MODIFIED) for i in range(count)]


@pytest.fixture
def memory_fs():
    return MemoryFileSystem()


@pytest.fixture
def host():
    return RecordingHost()


@pytest.fixture
def config():
    return SyncConfig(remote_url="https://github.com/user/vault.git", branch_name="main")


@pytest.fixture
def bare_remote(tmp_path):
    """An empty bare repository usable as origin, HEAD on main."""
    remote = tmp_path / "remote.git"
    subprocess.run(["git", "init", "--bare", str(remote)], capture_output=True, check=True)
    subprocess.run(
        ["git", "--git-dir", str(remote), "symbolic-ref", "HEAD", "refs/heads/main"],
        capture_output=True,
        check=True,
    )
    return remote


def git(*args: str, cwd: Path) -> str:
    """Run git with a throwaway identity and return stdout."""
    result = subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout
