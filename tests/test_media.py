import asyncio
import re

from aiohttp import web
from aiohttp.test_utils import TestServer

from playback.media import HttpMediaElement
from playback.preloader import ProgressivePreloader
from playback.tasks import Priority, PreloadState, PreloadTask

BODY = bytes(i % 251 for i in range(300 * 1024))
_RANGE = re.compile(r"bytes=(\d+)-(\d+)")


def _app(requests_seen):
    async def clip(request):
        requests_seen.append((request.method, request.headers.get("Range")))
        match = _RANGE.match(request.headers.get("Range", ""))
        if not match:
            return web.Response(body=BODY, content_type="video/mp4")
        start, end = int(match.group(1)), min(int(match.group(2)), len(BODY) - 1)
        return web.Response(
            status=206, body=BODY[start:end + 1], content_type="video/mp4",
            headers={"Content-Range": f"bytes {start}-{end}/{len(BODY)}"},
        )

    async def page(request):
        return web.Response(text="<html>quota exceeded</html>", content_type="text/html")

    app = web.Application()
    app.router.add_get("/clip.mp4", clip)
    app.router.add_get("/page", page)
    return app


async def _preload(path, priority, requests_seen):
    server = TestServer(_app(requests_seen))
    await server.start_server()
    received = bytearray()
    element = HttpMediaElement(duration_hint=20.0, chunk_size=64 * 1024,
                               sink=lambda offset, chunk: received.extend(chunk))
    try:
        task = PreloadTask("v1", str(server.make_url(path)), priority)
        await ProgressivePreloader(element, frame_interval=0.001, throttle=0).run(task)
        session_open = element.session_open
        await element.aclose()
        await asyncio.sleep(0)
        return task, element, bytes(received), session_open
    finally:
        await server.close()


def test_full_preload_over_http_range_requests() -> None:
    seen = []
    task, element, received, session_open = asyncio.run(_preload("/clip.mp4", Priority.FULL, seen))

    assert task.state == PreloadState.READY
    assert task.total_seconds == 20.0
    assert task.percentage >= 95.0
    assert element.size == len(BODY)
    assert not session_open
    assert element.src is not None
    assert element.buffered_end() >= 19.0
    assert received == BODY[:len(received)]
    assert seen[0] == ("HEAD", None)
    assert seen[1] == ("GET", "bytes=0-65535")


def test_metadata_only_preload_issues_a_single_head() -> None:
    seen = []
    task, element, received, session_open = asyncio.run(_preload("/clip.mp4", Priority.METADATA, seen))

    assert task.state == PreloadState.READY
    assert task.total_seconds == 20.0
    assert seen == [("HEAD", None)]
    assert not session_open
    assert received == b""


def test_html_response_is_a_media_error() -> None:
    task, element, _, _ = asyncio.run(_preload("/page", Priority.PARTIAL, []))

    assert task.state == PreloadState.ERROR
    assert "HTML" in task.error
    assert element.src is None


def test_detach_keeps_the_session_close_until_it_finishes() -> None:
    async def scenario():
        element = HttpMediaElement()
        session = element._get_session()
        element.detach()
        pending = set(element._closing)
        await element.aclose()
        return session, pending, set(element._closing)

    session, pending, remaining = asyncio.run(scenario())
    assert len(pending) == 1
    assert session.closed
    assert remaining == set()
