"""
GitHub Vault - Keep an Obsidian vault in sync with a GitHub repository.
"""

from .git_ops import (
    # Backends
    GitBackend,
    GitCliBackend,
    GitPythonBackend,
    create_backend,

    # Exceptions
    GitError,
    GitNotInstalledError,
    NotAGitRepoError,
    NothingToCommitError,
    MergeConflictError,
    AuthenticationError,
    PushRejectedError,

    # Data classes
    ChangeKind,
    ChangedPath,
)
from .filesystem import FileSystem, LocalFileSystem
from .gitignore import ensure_excluded
from .obsidian_config import SyncConfig, load_settings, save_settings
from .repo_state import RepositoryStateMachine
from .status import StatusColor, StatusKind, StatusReducer, StatusSignal, reduce_status
from .sync import PULL_COMMAND_ID, PUSH_COMMAND_ID, SyncOrchestrator

__version__ = "0.1.0"

__all__ = [
    # Backends
    "GitBackend",
    "GitCliBackend",
    "GitPythonBackend",
    "create_backend",

    # Exceptions
    "GitError",
    "GitNotInstalledError",
    "NotAGitRepoError",
    "NothingToCommitError",
    "MergeConflictError",
    "AuthenticationError",
    "PushRejectedError",

    # Data classes
    "ChangeKind",
    "ChangedPath",
    "StatusColor",
    "StatusKind",
    "StatusSignal",
    "SyncConfig",

    # Core
    "FileSystem",
    "LocalFileSystem",
    "ensure_excluded",
    "load_settings",
    "save_settings",
    "reduce_status",
    "RepositoryStateMachine",
    "StatusReducer",
    "SyncOrchestrator",
    "PUSH_COMMAND_ID",
    "PULL_COMMAND_ID",
]
