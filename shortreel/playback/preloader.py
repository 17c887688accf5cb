"""
Progressive preloading of upcoming videos.

ProgressivePreloader walks one PreloadTask through
``idle -> metadata -> loading -> ready | error`` against a media element.
PreloadManager keeps at most one task per video id and runs the queued tasks
one at a time.

Stop conditions:
- metadata: ready as soon as metadata is known.
- partial: ready once ``min(30% of duration, 10 s)`` is buffered, or at once
  when the byte cache already holds the URL.
- full: ready once 95% is buffered.

A ready task stops buffering and releases the transport of its element.
The manager keeps the newest ``retain_finished`` finished tasks and forgets
older ones.
"""

import asyncio
import logging
from collections import OrderedDict, deque
from typing import Callable, List, Optional

from .media import (
    ERROR, LOADED_METADATA, PRELOAD_AUTO, PRELOAD_METADATA, PRELOAD_NONE, MediaElement,
)
from .tasks import Priority, PreloadState, PreloadTask

logger = logging.getLogger(__name__)

FRAME_INTERVAL = 1 / 60
PROGRESS_THROTTLE = 0.1
RETAIN_FINISHED = 16
PARTIAL_FRACTION = 0.30
PARTIAL_SECONDS = 10.0
FULL_PERCENT = 95.0


class PreloadAborted(Exception):
    pass


class PreloadError(Exception):
    pass


class ProgressivePreloader:
    def __init__(self, element: MediaElement, coordinator=None, on_progress: Optional[Callable] = None,
                 frame_interval: float = FRAME_INTERVAL, throttle: float = PROGRESS_THROTTLE):
        self.element = element
        self._coordinator = coordinator
        self._on_progress = on_progress
        self._frame_interval = frame_interval
        self._throttle = throttle

    async def run(self, task: PreloadTask) -> PreloadTask:
        """
        Drive ``task`` to a terminal state.

        Aborting the task's signal detaches the element at once and makes this
        coroutine return with the state reached so far. Media errors put the
        task in the error state; they are never raised. A ready task stops
        buffering and frees the element's transport, keeping what was buffered.
        """
        if task.signal.aborted:
            return task
        task.signal.add_callback(self._release)
        try:
            await self._load_metadata(task)
            self._announce(task)
            if task.priority == Priority.METADATA:
                self._complete(task)
                return task

            self._set_state(task, PreloadState.LOADING)
            if task.priority == Priority.PARTIAL and self._is_cached(task.url):
                logger.debug("Preload %s served from byte cache", task.video_id)
                task.buffered_seconds = task.total_seconds
                task.percentage = 100.0
                self._complete(task)
                return task

            await self._buffer(task)
            self._complete(task)
        except PreloadAborted:
            logger.debug("Preload %s aborted (%s)", task.video_id, task.signal.reason)
        except PreloadError as exc:
            logger.warning("Preload %s failed: %s", task.video_id, exc)
            task.error = str(exc)
            self._set_state(task, PreloadState.ERROR)
            task.signal.remove_callback(self._release)
            self._release()
        return task

    def _release(self) -> None:
        self.element.preload = PRELOAD_NONE
        self.element.detach()

    def _complete(self, task: PreloadTask) -> None:
        task.signal.remove_callback(self._release)
        self._set_state(task, PreloadState.READY)
        if self.element.preload == PRELOAD_AUTO:
            self.element.preload = PRELOAD_METADATA
        self.element.release()

    def _notify(self, task: PreloadTask) -> None:
        if self._on_progress is not None:
            self._on_progress(task)

    def _set_state(self, task: PreloadTask, state: PreloadState) -> None:
        task.state = state
        self._notify(task)

    def _announce(self, task: PreloadTask) -> None:
        if self._coordinator is not None:
            self._coordinator.preload_video(task.url, task.priority, task.video_id)

    def _is_cached(self, url: str) -> bool:
        return self._coordinator is not None and self._coordinator.is_cached(url)

    def _media_error(self) -> PreloadError:
        return PreloadError(getattr(self.element, "error", None) or "media error")

    async def _load_metadata(self, task: PreloadTask) -> None:
        self._set_state(task, PreloadState.METADATA)
        element = self.element
        done = asyncio.get_running_loop().create_future()

        def settle(exc=None):
            if done.done():
                return
            if exc is None:
                done.set_result(None)
            else:
                done.set_exception(exc)

        def on_loaded(*_):
            settle()

        def on_error(*_):
            settle(self._media_error())

        def on_abort():
            settle(PreloadAborted())

        element.add_listener(LOADED_METADATA, on_loaded)
        element.add_listener(ERROR, on_error)
        task.signal.add_callback(on_abort)
        try:
            element.preload = PRELOAD_METADATA
            element.src = task.url
            await done
        finally:
            element.remove_listener(LOADED_METADATA, on_loaded)
            element.remove_listener(ERROR, on_error)
            task.signal.remove_callback(on_abort)
        task.total_seconds = element.duration or 0.0

    async def _buffer(self, task: PreloadTask) -> None:
        element = self.element
        loop = asyncio.get_running_loop()
        done = loop.create_future()
        frame = {"handle": None, "last_emit": None}

        def settle(exc=None):
            if frame["handle"] is not None:
                frame["handle"].cancel()
                frame["handle"] = None
            if done.done():
                return
            if exc is None:
                done.set_result(None)
            else:
                done.set_exception(exc)

        def on_error(*_):
            settle(self._media_error())

        def on_abort():
            settle(PreloadAborted())

        def tick():
            frame["handle"] = None
            try:
                finished = self._sample(task, loop.time(), frame)
            except Exception as exc:
                settle(exc)
                return
            if finished:
                settle()
            elif not done.done():
                frame["handle"] = loop.call_later(self._frame_interval, tick)

        element.add_listener(ERROR, on_error)
        task.signal.add_callback(on_abort)
        try:
            element.preload = PRELOAD_AUTO
            tick()
            await done
        finally:
            settle()
            element.remove_listener(ERROR, on_error)
            task.signal.remove_callback(on_abort)

    def _sample(self, task: PreloadTask, now: float, frame: dict) -> bool:
        """Read the buffered position; True once the stop condition holds."""
        last = frame["last_emit"]
        if last is not None and now - last < self._throttle:
            return False
        end = self.element.buffered_end()
        if end is None:
            return False
        frame["last_emit"] = now
        duration = self.element.duration or 1.0
        task.total_seconds = self.element.duration or task.total_seconds
        task.buffered_seconds = end
        task.percentage = min(end / duration * 100.0, 100.0)
        self._notify(task)
        if task.priority == Priority.PARTIAL:
            return end >= min(PARTIAL_FRACTION * duration, PARTIAL_SECONDS)
        return task.percentage >= FULL_PERCENT


class PreloadManager:
    """
    Owns the preload tasks of a feed.

    ``element_factory`` builds a fresh media element per task. When a
    SessionContext is given and preloading is disabled for the session,
    ``add`` queues nothing.
    """

    def __init__(self, element_factory: Callable, coordinator=None, session=None,
                 on_progress: Optional[Callable] = None, retain_finished: int = RETAIN_FINISHED,
                 **preloader_options):
        self._element_factory = element_factory
        self._coordinator = coordinator
        self._session = session
        self._on_progress = on_progress
        self._preloader_options = preloader_options
        self._tasks: "OrderedDict[str, PreloadTask]" = OrderedDict()
        self._hot: Optional[PreloadTask] = None
        self._retain_finished = max(0, int(retain_finished))
        self._finished: "deque[PreloadTask]" = deque()

    @property
    def tasks(self) -> List[PreloadTask]:
        return list(self._tasks.values())

    @property
    def hot(self) -> Optional[PreloadTask]:
        return self._hot

    def get(self, video_id: str) -> Optional[PreloadTask]:
        return self._tasks.get(video_id)

    def add(self, video_id: str, url: str, priority=Priority.METADATA) -> Optional[PreloadTask]:
        if self._session is not None and not self._session.preload_enabled:
            logger.debug("Preloading disabled for this session; skipping %s", video_id)
            return None
        previous = self._tasks.pop(video_id, None)
        if previous is not None:
            previous.abort("replaced")
        task = PreloadTask(video_id=video_id, url=url, priority=Priority(priority))
        self._tasks[video_id] = task
        return task

    def remove(self, video_id: str) -> None:
        task = self._tasks.pop(video_id, None)
        if task is not None:
            task.abort("removed")

    def clear(self) -> None:
        tasks, self._tasks = list(self._tasks.values()), OrderedDict()
        self._finished.clear()
        for task in tasks:
            task.abort("cleared")

    def prioritize(self, video_id: str, url: str, priority=Priority.FULL) -> Optional[PreloadTask]:
        """Abort the running task for another video and queue this one first."""
        if self._hot is not None and self._hot.video_id != video_id:
            self.remove(self._hot.video_id)
        task = self.add(video_id, url, priority)
        if task is not None:
            self._tasks.move_to_end(video_id, last=False)
        return task

    async def run_task(self, task: PreloadTask) -> PreloadTask:
        preloader = ProgressivePreloader(self._element_factory(), self._coordinator,
                                         self._on_progress, **self._preloader_options)
        self._hot = task
        try:
            await preloader.run(task)
        finally:
            if self._hot is task:
                self._hot = None
        if task.finished:
            self._forget_finished(task)
        return task

    def _forget_finished(self, task: PreloadTask) -> None:
        self._finished.append(task)
        while len(self._finished) > self._retain_finished:
            old = self._finished.popleft()
            if self._tasks.get(old.video_id) is old:
                del self._tasks[old.video_id]

    def _next_idle(self) -> Optional[PreloadTask]:
        for task in self._tasks.values():
            if task.state == PreloadState.IDLE and not task.signal.aborted:
                return task
        return None

    async def run_next(self) -> Optional[PreloadTask]:
        task = self._next_idle()
        if task is None:
            return None
        return await self.run_task(task)

    async def run(self) -> None:
        """Run idle tasks one after another until none is left."""
        while await self.run_next() is not None:
            pass
