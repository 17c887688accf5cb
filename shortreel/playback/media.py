"""
Media elements the preloader drives.

A media element exposes the handful of members the preloader relies on: a
``preload`` hint, a ``src``, the ``duration`` and buffered position in
seconds, listeners for ``loadedmetadata`` and ``error``, and ``detach`` to
release the underlying source. HttpMediaElement implements this over HTTP
Range requests with aiohttp.
"""

import asyncio
import logging
import re
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Protocol, Set

import aiohttp
from aiohttp import ClientTimeout

logger = logging.getLogger(__name__)

LOADED_METADATA = "loadedmetadata"
ERROR = "error"

PRELOAD_NONE = "none"
PRELOAD_METADATA = "metadata"
PRELOAD_AUTO = "auto"

_CONTENT_RANGE_TOTAL = re.compile(r"/(\d+)\s*$")


class MediaElement(Protocol):
    preload: str
    src: Optional[str]

    @property
    def duration(self) -> float: ...

    def buffered_end(self) -> Optional[float]: ...

    def add_listener(self, event: str, callback: Callable) -> None: ...

    def remove_listener(self, event: str, callback: Callable) -> None: ...

    def release(self) -> None: ...

    def detach(self) -> None: ...


class MediaError(Exception):
    pass


class MediaEventSource:
    """Listener bookkeeping shared by media element implementations."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = defaultdict(list)

    def add_listener(self, event: str, callback: Callable) -> None:
        self._listeners[event].append(callback)

    def remove_listener(self, event: str, callback: Callable) -> None:
        if callback in self._listeners.get(event, ()):
            self._listeners[event].remove(callback)

    def listener_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._listeners.get(event, ()))
        return sum(len(callbacks) for callbacks in self._listeners.values())

    def emit(self, event: str, *args) -> None:
        for callback in list(self._listeners.get(event, ())):
            callback(*args)


def _total_size(response: aiohttp.ClientResponse) -> Optional[int]:
    match = _CONTENT_RANGE_TOTAL.search(response.headers.get("Content-Range", ""))
    if match:
        return int(match.group(1))
    if response.status == 200 and response.content_length:
        return response.content_length
    return None


class HttpMediaElement(MediaEventSource):
    """
    Buffer a video over HTTP the way a browser media element would.

    Setting ``src`` while ``preload`` is not "none" issues a HEAD request to
    learn the size; ``loadedmetadata`` fires on success and ``error`` on a
    failed status or an HTML body. While ``preload`` is "auto" the bytes are
    fetched in sequential Range requests; switching back to "metadata" or
    "none" suspends buffering and keeps what was fetched.

    The buffered position is reported in seconds, proportional to the bytes
    fetched. Without a ``duration_hint`` the duration is 1 and the position
    is the buffered fraction.
    """

    def __init__(
        self,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        duration_hint: Optional[float] = None,
        chunk_size: int = 1024 * 1024,
        timeout_s: float = 15.0,
        sink: Optional[Callable[[int, bytes], None]] = None,
    ):
        super().__init__()
        self._session = session
        self._owns_session = session is None
        self._duration_hint = duration_hint
        self._chunk_size = max(64 * 1024, int(chunk_size))
        self._timeout = ClientTimeout(total=None, sock_connect=timeout_s, sock_read=timeout_s)
        self._sink = sink
        self._src: Optional[str] = None
        self._preload = PRELOAD_NONE
        self._size: Optional[int] = None
        self._buffered_bytes = 0
        self._metadata_loaded = False
        self._metadata_task: Optional[asyncio.Task] = None
        self._buffer_task: Optional[asyncio.Task] = None
        self._closing: Set[asyncio.Task] = set()
        self.error: Optional[str] = None

    @property
    def preload(self) -> str:
        return self._preload

    @preload.setter
    def preload(self, value: str) -> None:
        self._preload = value
        if value == PRELOAD_AUTO:
            self._start_buffering()
        else:
            self._cancel_buffering()

    @property
    def src(self) -> Optional[str]:
        return self._src

    @src.setter
    def src(self, value: Optional[str]) -> None:
        self._cancel_all()
        self._src = value
        self._size = None
        self._buffered_bytes = 0
        self._metadata_loaded = False
        self.error = None
        if value and self._preload != PRELOAD_NONE:
            self._metadata_task = asyncio.get_running_loop().create_task(self._load_metadata())

    @property
    def duration(self) -> float:
        if not self._metadata_loaded:
            return 0.0
        return float(self._duration_hint or 1.0)

    @property
    def size(self) -> Optional[int]:
        return self._size

    @property
    def buffered_bytes(self) -> int:
        return self._buffered_bytes

    def buffered_end(self) -> Optional[float]:
        if not self._metadata_loaded or not self._size:
            return None
        fraction = min(self._buffered_bytes / self._size, 1.0)
        return fraction * self.duration

    @property
    def session_open(self) -> bool:
        return self._session is not None and not self._session.closed

    def release(self) -> None:
        """
        Stop transfers and close the HTTP session.

        ``src``, the metadata and the buffered position are kept; setting
        ``preload`` to "auto" again opens a new session and resumes.
        """
        self._cancel_all()
        self._close_session()

    def detach(self) -> None:
        """Stop all transfers, drop the source and release the HTTP session."""
        self._cancel_all()
        self._src = None
        self._preload = PRELOAD_NONE
        self._close_session()

    async def aclose(self) -> None:
        self._cancel_all()
        if self._owns_session and self._session is not None:
            session, self._session = self._session, None
            await session.close()
        if self._closing:
            await asyncio.gather(*list(self._closing), return_exceptions=True)

    def _close_session(self) -> None:
        if not self._owns_session or self._session is None:
            return
        session, self._session = self._session, None
        if session.closed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; media session left for garbage collection")
            return
        closing = loop.create_task(session.close())
        self._closing.add(closing)
        closing.add_done_callback(self._session_closed)

    def _session_closed(self, closing: asyncio.Task) -> None:
        self._closing.discard(closing)
        if not closing.cancelled() and closing.exception() is not None:
            logger.warning("Closing media session failed: %s", closing.exception())

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    def _cancel_buffering(self) -> None:
        if self._buffer_task is not None and not self._buffer_task.done():
            self._buffer_task.cancel()
        self._buffer_task = None

    def _cancel_all(self) -> None:
        if self._metadata_task is not None and not self._metadata_task.done():
            self._metadata_task.cancel()
        self._metadata_task = None
        self._cancel_buffering()

    def _start_buffering(self) -> None:
        if not self._metadata_loaded or self._src is None:
            return
        if self._buffer_task is not None and not self._buffer_task.done():
            return
        if self._size is not None and self._buffered_bytes >= self._size:
            return
        self._buffer_task = asyncio.get_running_loop().create_task(self._buffer())

    def _fail(self, message: str) -> None:
        logger.warning("Media %s failed: %s", self._src, message)
        self.error = message
        self._cancel_buffering()
        self.emit(ERROR)

    async def _load_metadata(self) -> None:
        session = self._get_session()
        try:
            async with session.head(self._src, allow_redirects=True) as response:
                if response.status >= 400:
                    raise MediaError(f"HTTP {response.status}")
                if "text/html" in response.headers.get("Content-Type", "").lower():
                    raise MediaError("Server returned an HTML page instead of media")
                self._size = response.content_length or None
        except (aiohttp.ClientError, asyncio.TimeoutError, MediaError) as exc:
            self._fail(str(exc) or exc.__class__.__name__)
            return
        self._metadata_loaded = True
        self.emit(LOADED_METADATA)
        if self._preload == PRELOAD_AUTO:
            self._start_buffering()

    async def _buffer(self) -> None:
        session = self._get_session()
        try:
            while self._size is None or self._buffered_bytes < self._size:
                start = self._buffered_bytes
                end = start + self._chunk_size - 1
                if self._size is not None:
                    end = min(end, self._size - 1)
                headers = {"Range": f"bytes={start}-{end}"}
                received = 0
                async with session.get(self._src, headers=headers) as response:
                    if response.status not in (200, 206):
                        raise MediaError(f"HTTP {response.status}")
                    if self._size is None:
                        self._size = _total_size(response)
                    if response.status == 200:
                        # Range ignored; the body starts over at byte 0
                        self._buffered_bytes = 0
                    async for chunk in response.content.iter_chunked(64 * 1024):
                        if self._sink is not None:
                            self._sink(self._buffered_bytes, chunk)
                        self._buffered_bytes += len(chunk)
                        received += len(chunk)
                    if response.status == 200:
                        self._size = self._buffered_bytes
                        break
                if not received:
                    break
        except (aiohttp.ClientError, asyncio.TimeoutError, MediaError) as exc:
            self._fail(str(exc) or exc.__class__.__name__)
            return
        logger.debug("Media %s fully buffered (%s bytes)", self._src, self._buffered_bytes)
