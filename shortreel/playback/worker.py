"""
Background cache worker.

The worker runs on its own thread and only talks to the rest of the client
through its inbox queue. Messages are dicts with a ``type``:

- PRELOAD_VIDEO ``{"videoUrl", "priority", "videoId"}``: fetch the video and
  keep it in the byte cache when it is small enough. Metadata-priority
  requests are acknowledged without fetching.
- CLEAR_CACHE: wipe the cache and reply ``{"success": True}``.

A message may come with a reply queue; the handler result is put on it.
"""

import logging
import queue
import threading
from typing import Callable, Optional

import requests

from .cache import VideoByteCache

logger = logging.getLogger(__name__)

PRELOAD_VIDEO = "PRELOAD_VIDEO"
CLEAR_CACHE = "CLEAR_CACHE"

FETCH_HEADERS = {"Accept": "video/*,*/*;q=0.8"}

_STOP = object()


class VideoCacheWorker(threading.Thread):
    def __init__(self, cache: VideoByteCache, fetch: Optional[Callable] = None, timeout: float = 30.0):
        super().__init__(name="video-cache-worker", daemon=True)
        self.cache = cache
        self._fetch = fetch or requests.get
        self._timeout = timeout
        self._inbox: "queue.Queue" = queue.Queue()

    def post_message(self, message: dict, reply_to: Optional[queue.Queue] = None) -> None:
        self._inbox.put((message, reply_to))

    def stop(self, timeout: Optional[float] = None) -> None:
        self._inbox.put(_STOP)
        if self.is_alive():
            self.join(timeout)

    def run(self) -> None:
        logger.info("Cache worker started (%s)", self.cache.directory)
        while True:
            item = self._inbox.get()
            if item is _STOP:
                break
            message, reply_to = item
            try:
                result = self.handle(message)
            except Exception:  # keep serving the queue
                logger.exception("Cache worker failed on %s message", message.get("type"))
                result = {"success": False, "error": "internal error"}
            if reply_to is not None:
                reply_to.put(result)
        logger.info("Cache worker stopped")

    def handle(self, message: dict) -> dict:
        kind = message.get("type")
        if kind == PRELOAD_VIDEO:
            return self._preload(message)
        if kind == CLEAR_CACHE:
            removed = self.cache.clear()
            logger.info("Cache cleared (%d entries)", removed)
            return {"success": True, "removed": removed}
        logger.warning("Cache worker ignoring unknown message type %r", kind)
        return {"success": False, "error": f"unknown message type {kind!r}"}

    def _preload(self, message: dict) -> dict:
        url = message.get("videoUrl")
        if not url:
            return {"success": False, "error": "videoUrl missing"}
        if message.get("priority") == "metadata":
            return {"success": True, "cached": False}
        if self.cache.contains(url):
            return {"success": True, "cached": True}

        try:
            response = self._fetch(url, headers=FETCH_HEADERS, stream=True, timeout=self._timeout)
        except requests.RequestException as exc:
            logger.warning("Preload fetch of %s failed: %s", url, exc)
            return {"success": False, "error": str(exc)}
        with response:
            if not response.ok:
                logger.warning("Preload fetch of %s returned %s", url, response.status_code)
                return {"success": False, "error": f"HTTP {response.status_code}"}
            length = int(response.headers.get("Content-Length") or 0)
            if length > self.cache.max_entry_bytes:
                logger.info("Skipping cache for %s (%d bytes)", url, length)
                return {"success": True, "cached": False}
            stored = self.cache.put(url, response.iter_content(64 * 1024))
        logger.info("Preloaded %s for video %s (cached=%s)", url, message.get("videoId"), stored)
        return {"success": True, "cached": stored}
