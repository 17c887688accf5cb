import queue

from playback.cache import VideoByteCache
from playback.coordinator import CacheCoordinator
from playback.tasks import Priority
from playback.worker import CLEAR_CACHE, PRELOAD_VIDEO, VideoCacheWorker

URL = "https://cdn.example/v1/play_720p.mp4"


class RecordingWorker:
    def __init__(self):
        self.messages = []

    def is_alive(self):
        return True

    def post_message(self, message, reply_to=None):
        self.messages.append(message)
        if reply_to is not None:
            reply_to.put({"success": True})


def test_missing_worker_makes_every_call_a_no_op() -> None:
    coordinator = CacheCoordinator()
    assert not coordinator.available
    assert coordinator.preload_video(URL, Priority.FULL, "v1") is False
    assert coordinator.clear_cache(timeout=0.1) is None
    assert coordinator.is_cached(URL) is False


def test_stopped_worker_is_unavailable(tmp_path) -> None:
    worker = VideoCacheWorker(VideoByteCache(tmp_path))
    coordinator = CacheCoordinator(worker)
    assert coordinator.preload_video(URL, Priority.FULL, "v1") is False
    assert coordinator.clear_cache(timeout=0.1) is None


def test_preload_message_shape() -> None:
    worker = RecordingWorker()
    assert CacheCoordinator(worker).preload_video(URL, Priority.PARTIAL, "v1") is True
    assert worker.messages == [
        {"type": PRELOAD_VIDEO, "videoUrl": URL, "priority": "partial", "videoId": "v1"},
    ]


def test_clear_cache_waits_for_the_worker_reply(tmp_path) -> None:
    cache = VideoByteCache(tmp_path / "cache")
    cache.put(URL, [b"abc"])
    worker = VideoCacheWorker(cache)
    worker.start()
    try:
        reply = CacheCoordinator(worker).clear_cache(timeout=5)
    finally:
        worker.stop(timeout=5)

    assert reply == {"success": True, "removed": 1}
    assert not cache.contains(URL)
    assert not worker.is_alive()


def test_worker_caches_preloaded_video(tmp_path, fake_fetch, upstream) -> None:
    response = upstream(body=b"v" * 1000, headers={"Content-Length": "1000"})
    fetch = fake_fetch({URL: response})
    worker = VideoCacheWorker(VideoByteCache(tmp_path), fetch=fetch)

    result = worker.handle({"type": PRELOAD_VIDEO, "videoUrl": URL, "priority": "full", "videoId": "v1"})

    assert result == {"success": True, "cached": True}
    assert worker.cache.match(URL).read_bytes() == b"v" * 1000
    assert response.closed
    assert CacheCoordinator(worker).is_cached(URL)
    assert fetch.calls[0][1]["stream"] is True


def test_worker_skips_oversized_and_metadata_requests(tmp_path, fake_fetch, upstream) -> None:
    big = upstream(headers={"Content-Length": str(60 * 1024 * 1024)})
    fetch = fake_fetch({URL: big})
    worker = VideoCacheWorker(VideoByteCache(tmp_path), fetch=fetch)

    assert worker.handle({"type": PRELOAD_VIDEO, "videoUrl": URL, "priority": "metadata"}) == \
        {"success": True, "cached": False}
    assert fetch.calls == []

    assert worker.handle({"type": PRELOAD_VIDEO, "videoUrl": URL, "priority": "full"}) == \
        {"success": True, "cached": False}
    assert big.closed
    assert not worker.cache.contains(URL)


def test_worker_reports_failed_fetches(tmp_path, fake_fetch) -> None:
    worker = VideoCacheWorker(VideoByteCache(tmp_path), fetch=fake_fetch())
    result = worker.handle({"type": PRELOAD_VIDEO, "videoUrl": URL, "priority": "full"})
    assert result == {"success": False, "error": "HTTP 404"}
    assert worker.handle({"type": "SKIP_WAITING"})["success"] is False


def test_worker_replies_on_the_queue_it_was_given(tmp_path) -> None:
    worker = VideoCacheWorker(VideoByteCache(tmp_path))
    worker.start()
    reply = queue.Queue()
    worker.post_message({"type": CLEAR_CACHE}, reply_to=reply)
    try:
        assert reply.get(timeout=5)["success"] is True
    finally:
        worker.stop(timeout=5)


def test_byte_cache_rejects_entries_over_the_limit(tmp_path) -> None:
    cache = VideoByteCache(tmp_path, max_entry_bytes=10)
    assert cache.put(URL, [b"12345", b"678901"]) is False
    assert not cache.contains(URL)
    assert list(tmp_path.rglob("*.part")) == []

    assert cache.put(URL, [b"12345", b"", b"67890"]) is True
    assert cache.match(URL).read_bytes() == b"1234567890"
    assert cache.clear() == 1
