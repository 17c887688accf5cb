"""
Client side of the cache worker protocol.

Every call degrades to a no-op when no worker is running: preload requests
return False, clear_cache returns None and cache lookups miss.
"""

import asyncio
import logging
import queue
from typing import Optional

from .worker import CLEAR_CACHE, PRELOAD_VIDEO

logger = logging.getLogger(__name__)


class CacheCoordinator:
    def __init__(self, worker=None):
        self._worker = worker

    @property
    def available(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def preload_video(self, url: str, priority, video_id: str) -> bool:
        if not self.available:
            return False
        self._worker.post_message({
            "type": PRELOAD_VIDEO,
            "videoUrl": url,
            "priority": getattr(priority, "value", priority),
            "videoId": video_id,
        })
        return True

    def clear_cache(self, timeout: float = 5.0) -> Optional[dict]:
        """Ask the worker to wipe the cache and wait for its reply."""
        if not self.available:
            return None
        reply: "queue.Queue" = queue.Queue(maxsize=1)
        self._worker.post_message({"type": CLEAR_CACHE}, reply_to=reply)
        try:
            return reply.get(timeout=timeout)
        except queue.Empty:
            logger.warning("Cache worker did not answer CLEAR_CACHE within %.1fs", timeout)
            return None

    async def clear_cache_async(self, timeout: float = 5.0) -> Optional[dict]:
        return await asyncio.get_running_loop().run_in_executor(None, self.clear_cache, timeout)

    def is_cached(self, url: str) -> bool:
        if self._worker is None:
            return False
        try:
            return self._worker.cache.contains(url)
        except OSError as exc:
            logger.debug("Cache lookup for %s failed: %s", url, exc)
            return False
