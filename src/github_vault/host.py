"""Host shell seam: commands, notices, file-change events and the status display."""

from __future__ import annotations

import logging
import threading
from collections.abc import Set as AbstractSet
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Protocol

from rich.console import Console
from rich.markup import escape
from watchfiles import Change, DefaultFilter, watch

from .filesystem import FileSystem
from .status import StatusSignal

logger = logging.getLogger(__name__)

CommandHandler = Callable[[], None]


class FileChangeKind(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


FileChangeHandler = Callable[[str, FileChangeKind], None]

WATCH_DEBOUNCE_MS = 1600

_KIND_BY_CHANGE = {
    Change.added: FileChangeKind.CREATED,
    Change.modified: FileChangeKind.MODIFIED,
    Change.deleted: FileChangeKind.DELETED,
}


class HostShell(Protocol):
    """What the sync core needs from the application hosting it."""

    def register_command(self, command_id: str, handler: CommandHandler) -> None:
        ...

    def on_file_change(self, handler: FileChangeHandler) -> None:
        ...

    def show_notice(self, text: str, duration_ms: int = 5000) -> None:
        ...

    def set_status(self, signal: StatusSignal) -> None:
        ...


class ConsoleHost:
    """Host shell for the command line: notices and status go to a rich console."""

    def __init__(self, console: Optional[Console] = None, show_status: bool = True) -> None:
        self.console = console or Console()
        self.show_status = show_status
        self.commands: dict[str, CommandHandler] = {}
        self.file_change_handlers: list[FileChangeHandler] = []
        self.status: Optional[StatusSignal] = None

    def register_command(self, command_id: str, handler: CommandHandler) -> None:
        self.commands[command_id] = handler
        logger.debug(f"Registered command {command_id}")

    def run_command(self, command_id: str) -> bool:
        """Run a registered command. Returns False if it is not registered."""
        handler = self.commands.get(command_id)
        if handler is None:
            return False
        handler()
        return True

    def on_file_change(self, handler: FileChangeHandler) -> None:
        self.file_change_handlers.append(handler)

    def notify_file_change(self, path: str, kind: FileChangeKind) -> None:
        for handler in self.file_change_handlers:
            handler(path, kind)

    def show_notice(self, text: str, duration_ms: int = 5000) -> None:
        self.console.print(f"[bold]{escape(text)}[/bold]")

    def set_status(self, signal: StatusSignal) -> None:
        self.status = signal
        if self.show_status:
            self.console.print(f"[{signal.color.value}]● {signal.label}[/{signal.color.value}]")


class VaultFilter(DefaultFilter):
    """watchfiles filter that drops repository metadata under ``.git/``."""

    def __init__(self) -> None:
        super().__init__(ignore_dirs=(".git",))


class VaultWatcher:
    """Reports created, modified and deleted vault files as they change on disk."""

    def __init__(
        self,
        fs: FileSystem,
        handler: FileChangeHandler,
        debounce: int = WATCH_DEBOUNCE_MS,
        watch_filter: Optional[DefaultFilter] = None,
    ) -> None:
        self.fs = fs
        self.handler = handler
        self.debounce = debounce
        self.watch_filter = watch_filter or VaultFilter()
        self.stop_event = threading.Event()

    def _relative(self, path: str) -> Optional[str]:
        try:
            return Path(path).relative_to(self.fs.root).as_posix()
        except ValueError:
            return None

    def dispatch(self, changes: AbstractSet[tuple[Change, str]]) -> int:
        """Forward one batch of watchfiles changes to the handler.

        Returns:
            Number of changes reported
        """
        reported = []
        for change, path in changes:
            rel_path = self._relative(path)
            if rel_path is None:
                logger.debug(f"Ignoring change outside the vault: {path}")
                continue
            reported.append((rel_path, _KIND_BY_CHANGE[change]))

        for rel_path, kind in sorted(reported):
            self.handler(rel_path, kind)
        return len(reported)

    def run(self) -> None:
        """Block and report changes until ``stop`` is called.

        Raises:
            KeyboardInterrupt: On Ctrl+C
        """
        logger.info(f"Watching {self.fs.root}")
        for changes in watch(
            self.fs.root,
            watch_filter=self.watch_filter,
            debounce=self.debounce,
            stop_event=self.stop_event,
        ):
            self.dispatch(changes)
        logger.info(f"Stopped watching {self.fs.root}")

    def stop(self) -> None:
        self.stop_event.set()
