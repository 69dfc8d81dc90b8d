"""Status signal shown in the status display, and the reducer that drives it."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from .git_ops import ChangedPath, GitError

logger = logging.getLogger(__name__)


class StatusKind(str, Enum):
    CLEAN = "clean"
    BUSY = "busy"
    DIRTY = "dirty"
    NOT_CONFIGURED = "not_configured"
    UNAVAILABLE = "unavailable"


class StatusColor(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


@dataclass(frozen=True)
class StatusSignal:
    """What the status display renders."""

    kind: StatusKind
    label: str
    color: StatusColor
    count: int = 0

    @classmethod
    def clean(cls) -> StatusSignal:
        return cls(StatusKind.CLEAN, "No Uncommitted Changes", StatusColor.GREEN)

    @classmethod
    def busy(cls, label: str) -> StatusSignal:
        return cls(StatusKind.BUSY, label, StatusColor.YELLOW)

    @classmethod
    def dirty(cls, count: int) -> StatusSignal:
        suffix = "" if count == 1 else "s"
        return cls(StatusKind.DIRTY, f"{count} Uncommitted Change{suffix}", StatusColor.RED, count)

    def __str__(self) -> str:
        return self.label


PUSHING = StatusSignal.busy("Pushing changes...")
PULLING = StatusSignal.busy("Pulling changes...")
NOT_CONFIGURED = StatusSignal(StatusKind.NOT_CONFIGURED, "GitHub Vault Not Configured", StatusColor.RED)
GIT_UNAVAILABLE = StatusSignal(StatusKind.UNAVAILABLE, "Git Unavailable", StatusColor.RED)
STATUS_UNAVAILABLE = StatusSignal(StatusKind.UNAVAILABLE, "Status Unavailable", StatusColor.RED)

StatusCallback = Callable[[StatusSignal], None]


def reduce_status(changes: Sequence[ChangedPath]) -> StatusSignal:
    """Collapse a working-tree diff listing into a clean or dirty signal."""
    if not changes:
        return StatusSignal.clean()
    return StatusSignal.dirty(len(changes))


class StatusReducer:
    """Recomputes the status signal from the repository and reports it.

    At most one status query runs at a time. Refreshes requested while one
    is running collapse into a single trailing recomputation done by the
    thread already running.

    While a command holds the display (``begin`` .. ``end``) computed
    results are discarded, as is any result whose query started before the
    command ended.
    """

    def __init__(
        self,
        query: Callable[[], Sequence[ChangedPath]],
        callback: Optional[StatusCallback] = None,
    ) -> None:
        self._query = query
        self._callback = callback
        self._lock = threading.Lock()
        self._emit_lock = threading.RLock()
        self._running = False
        self._pending = False
        self._hold: Optional[StatusSignal] = None
        self._generation = 0
        self.current: Optional[StatusSignal] = None

    def set_callback(self, callback: Optional[StatusCallback]) -> None:
        self._callback = callback

    def _publish(self, signal: StatusSignal) -> None:
        self.current = signal
        logger.debug(f"Status: {signal.label} ({signal.color.value})")
        if self._callback is not None:
            self._callback(signal)

    def emit(self, signal: StatusSignal) -> None:
        with self._emit_lock:
            self._publish(signal)

    def begin(self, signal: StatusSignal) -> None:
        """Show a busy signal until ``end`` is called."""
        with self._emit_lock:
            self._generation += 1
            self._hold = signal
            self._publish(signal)

    def end(self) -> Optional[StatusSignal]:
        """Release the busy signal and recompute."""
        with self._emit_lock:
            self._generation += 1
            self._hold = None
        return self.refresh()

    def _compute(self) -> StatusSignal:
        try:
            changes = self._query()
        except GitError as e:
            logger.error(f"Error getting repo status: {e}")
            return STATUS_UNAVAILABLE
        return reduce_status(changes)

    def refresh(self) -> Optional[StatusSignal]:
        """Query the repository and emit the result.

        Returns:
            The emitted signal, or None if the refresh was handed to a
            query already in flight or its result was discarded
        """
        with self._lock:
            if self._running:
                self._pending = True
                return None
            self._running = True

        try:
            while True:
                generation = self._generation
                signal = self._compute()
                with self._lock:
                    if not self._pending:
                        self._running = False
                        break
                    self._pending = False
        except BaseException:
            with self._lock:
                self._running = False
                self._pending = False
            raise

        with self._emit_lock:
            if self._hold is not None or generation != self._generation:
                logger.debug(f"Discarding status computed during a command: {signal.label}")
                return None
            self._publish(signal)
        return signal
