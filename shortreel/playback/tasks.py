"""
Preload task state and cancellation.

A PreloadTask is created when a video becomes a preload candidate and is
dropped on navigation away. Each task owns an AbortSignal; aborting it is the
only way to stop the work attached to the task. A retry is a new task.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class Priority(str, enum.Enum):
    METADATA = "metadata"
    PARTIAL = "partial"
    FULL = "full"


class PreloadState(str, enum.Enum):
    IDLE = "idle"
    METADATA = "metadata"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class AbortSignal:
    """One-shot cancellation signal; callbacks run synchronously on abort."""

    def __init__(self):
        self._aborted = False
        self._callbacks: List[Callable[[], None]] = []
        self.reason: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self._aborted

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Register ``callback``; it runs immediately when already aborted."""
        if self._aborted:
            callback()
            return
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def abort(self, reason: str = "aborted") -> None:
        if self._aborted:
            return
        self._aborted = True
        self.reason = reason
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Abort callback %r failed", callback)


@dataclass
class PreloadTask:
    """Transient preload state of one video."""
    video_id: str
    url: str
    priority: Priority = Priority.METADATA
    state: PreloadState = PreloadState.IDLE
    buffered_seconds: float = 0.0
    total_seconds: float = 0.0
    percentage: float = 0.0
    error: Optional[str] = None
    signal: AbortSignal = field(default_factory=AbortSignal, repr=False, compare=False)

    @property
    def finished(self) -> bool:
        return self.state in (PreloadState.READY, PreloadState.ERROR)

    def abort(self, reason: str = "aborted") -> None:
        self.signal.abort(reason)
