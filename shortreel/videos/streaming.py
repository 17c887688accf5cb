"""
HTTP response builders for the streaming endpoint.

This module holds the delivery side of the stream view:
- redirect responses to CDN-direct URLs with per-backend cache lifetimes,
- proxied upstream responses that mirror status and range headers,
- local file responses with conditional requests and byte ranges,
- JSON error responses for the StreamError taxonomy.

Bodies are streamed through small iterable wrappers whose ``close()`` releases
the file handle or upstream connection; Django calls it when the response
completes or the client goes away.
"""

import logging
import re
import time
from pathlib import Path
from typing import Optional, Tuple

from django.conf import settings
from django.http import HttpResponse, HttpResponseNotModified, HttpResponseRedirect
from django.http import JsonResponse, StreamingHttpResponse
from django.utils.http import http_date, parse_http_date_safe

from .exceptions import LocalFileMissing, RangeUnsatisfiable, StreamError
from .models import BackendKind

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "video/mp4"

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".ogg": "video/ogg",
    ".ogv": "video/ogg",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
}

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "Range, Content-Range, Content-Type",
    "Access-Control-Expose-Headers": "Content-Length, Content-Range, Accept-Ranges",
}

# (max-age seconds, immutable)
REDIRECT_CACHE = {
    BackendKind.CLOUD_TRANSFORM: (31536000, True),
    BackendKind.MANAGED_CDN: (3600, False),
}

LOCAL_MAX_AGE = 86400
LOCAL_CACHE_CONTROL = f"public, max-age={LOCAL_MAX_AGE}, must-revalidate"

_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")


class FileRange:
    """Iterable over ``length`` bytes of a file starting at ``start``."""

    def __init__(self, path, start: int, length: int, chunk_size: int = 64 * 1024):
        self._file = open(path, "rb")
        self._file.seek(start)
        self._remaining = length
        self._chunk_size = chunk_size

    def __iter__(self):
        while self._remaining > 0:
            data = self._file.read(min(self._chunk_size, self._remaining))
            if not data:
                break
            self._remaining -= len(data)
            yield data

    def close(self):
        self._file.close()


class UpstreamBody:
    """Iterable over an upstream ``requests`` response, closed with the client response."""

    def __init__(self, upstream, chunk_size: int = 64 * 1024, read: bool = True):
        self._upstream = upstream
        self._chunk_size = chunk_size
        self._read = read

    def __iter__(self):
        if not self._read:
            return iter(())
        return self._upstream.iter_content(chunk_size=self._chunk_size)

    def close(self):
        self._upstream.close()


def apply_cors(response):
    for header, value in CORS_HEADERS.items():
        response[header] = value
    return response


def options_response() -> HttpResponse:
    return apply_cors(HttpResponse(status=200))


def content_type_for(path) -> str:
    """Map a file extension to its video content type, defaulting to MP4."""
    return CONTENT_TYPES.get(Path(path).suffix.lower(), DEFAULT_CONTENT_TYPE)


def parse_range(header: str, size: int) -> Tuple[int, int]:
    """
    Parse a single ``bytes=`` range against a file of ``size`` bytes.

    Supports ``start-end``, open-ended ``start-`` and suffix ``-N`` forms;
    an end past the file is clamped to the last byte.

    Args:
        header (str): Raw Range header value.
        size (int): File size in bytes.

    Returns:
        tuple[int, int]: Inclusive ``(start, end)`` byte offsets.

    Raises:
        RangeUnsatisfiable: For malformed, multi-range, inverted or
        out-of-file ranges.
    """
    value = header.strip().replace(" ", "")
    if "," in value:
        raise RangeUnsatisfiable("Multiple ranges are not supported", size=size)
    match = _RANGE_RE.match(value)
    if not match or not any(match.groups()):
        raise RangeUnsatisfiable(f"Malformed Range header: {header!r}", size=size)
    first, last = match.groups()
    if first == "":
        suffix = int(last)
        if suffix == 0:
            raise RangeUnsatisfiable("Empty suffix range", size=size)
        start, end = max(size - suffix, 0), size - 1
    else:
        start = int(first)
        end = int(last) if last else size - 1
        if end < start:
            raise RangeUnsatisfiable(f"Inverted range: {header!r}", size=size)
        end = min(end, size - 1)
    if start >= size:
        raise RangeUnsatisfiable(f"Range starts beyond end of file: {header!r}", size=size)
    return start, end


def local_etag(video_id: str, mtime_ns: int, size: int, width: int, height: int) -> str:
    return f'"{video_id}-{mtime_ns // 1_000_000}-{size}-{width}x{height}"'


def is_not_modified(request, etag: str, mtime: float) -> bool:
    """True when If-None-Match matches ``etag`` or If-Modified-Since is not older than ``mtime``."""
    if_none_match = request.headers.get("If-None-Match")
    if if_none_match:
        tags = [tag.strip() for tag in if_none_match.split(",")]
        if "*" in tags or etag in tags or f"W/{etag}" in tags:
            return True
    if_modified_since = request.headers.get("If-Modified-Since")
    if if_modified_since:
        since = parse_http_date_safe(if_modified_since)
        if since is not None and since >= int(mtime):
            return True
    return False


def resolve_local_path(relative: str) -> Path:
    """
    Resolve a stored relative path under MEDIA_ROOT.

    Raises:
        LocalFileMissing: If the path escapes MEDIA_ROOT or is not a file.
    """
    root = Path(settings.MEDIA_ROOT).resolve()
    candidate = (root / relative.lstrip("/")).resolve()
    if candidate != root and root not in candidate.parents:
        raise LocalFileMissing("Video path is outside the media root", path=relative)
    if not candidate.is_file():
        raise LocalFileMissing("Video file not found", path=relative)
    return candidate


def redirect_response(url: str, storage_kind, video_id: str, width: int, height: int,
                      quality: str) -> HttpResponseRedirect:
    """
    Redirect the client to a CDN-direct URL.

    Immutable cloud-transform renditions are cached for a year, third-party
    CDN URLs for an hour.
    """
    max_age, immutable = REDIRECT_CACHE.get(storage_kind, (3600, False))
    resp = HttpResponseRedirect(url)
    cache_control = f"public, max-age={max_age}"
    if immutable:
        cache_control += ", immutable"
    resp["Cache-Control"] = cache_control
    resp["Expires"] = http_date(time.time() + max_age)
    resp["ETag"] = f'"{video_id}-{width}x{height}-{quality}"'
    resp["Vary"] = "Accept-Encoding"
    return apply_cors(resp)


def upstream_response(request, upstream, cache_control: str,
                      content_type: Optional[str] = None) -> StreamingHttpResponse:
    """
    Stream an open upstream ``requests`` response back to the client.

    Status 206 is preserved, anything else successful becomes 200. The
    Content-Length and Content-Range headers are mirrored.

    Args:
        request (HttpRequest): Incoming request, HEAD requests get no body.
        upstream (requests.Response): Open upstream response (``stream=True``).
        cache_control (str): Cache-Control value for the client response.
        content_type (str): Overrides the upstream Content-Type when given.

    Returns:
        StreamingHttpResponse: The proxied response.
    """
    content_type = content_type or upstream.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE
    status = 206 if upstream.status_code == 206 else 200
    body = UpstreamBody(upstream, settings.STREAM_CHUNK_SIZE, read=request.method != "HEAD")
    resp = StreamingHttpResponse(body, status=status, content_type=content_type)
    for header in ("Content-Length", "Content-Range"):
        if header in upstream.headers:
            resp[header] = upstream.headers[header]
    resp["Accept-Ranges"] = "bytes"
    resp["Cache-Control"] = cache_control
    return apply_cors(resp)


def local_file_response(request, path: Path, video_id: str, width: int,
                        height: int) -> HttpResponse:
    """
    Serve a local video file with conditional request and byte range support.

    Args:
        request (HttpRequest): Incoming request with optional Range,
            If-None-Match and If-Modified-Since headers.
        path (Path): Absolute path of the file, as returned by resolve_local_path.
        video_id (str): Video identifier, part of the ETag.
        width (int): Requested width, part of the ETag.
        height (int): Requested height, part of the ETag.

    Returns:
        HttpResponse: 304 without body, 206 for a satisfiable range, or 200
        with the whole file.

    Raises:
        LocalFileMissing: If the file disappeared.
        RangeUnsatisfiable: If the Range header cannot be served.
    """
    try:
        stat = path.stat()
    except OSError as exc:
        raise LocalFileMissing("Video file not found", path=str(path.name)) from exc
    size = stat.st_size
    etag = local_etag(video_id, stat.st_mtime_ns, size, width, height)
    caching = {
        "Cache-Control": LOCAL_CACHE_CONTROL,
        "ETag": etag,
        "Last-Modified": http_date(stat.st_mtime),
    }

    if is_not_modified(request, etag, stat.st_mtime):
        resp = HttpResponseNotModified()
        for header, value in caching.items():
            resp[header] = value
        return apply_cors(resp)

    content_type = content_type_for(path)
    range_header = request.headers.get("Range")
    if range_header:
        start, end = parse_range(range_header, size)
        length = end - start + 1
        status = 206
    else:
        start, length, status = 0, size, 200

    read_length = 0 if request.method == "HEAD" else length
    try:
        body = FileRange(path, start, read_length, settings.STREAM_CHUNK_SIZE)
    except OSError as exc:
        raise LocalFileMissing("Video file not readable", path=str(path.name)) from exc
    resp = StreamingHttpResponse(body, status=status, content_type=content_type)
    if status == 206:
        resp["Content-Range"] = f"bytes {start}-{start + length - 1}/{size}"
    resp["Content-Length"] = str(length)
    resp["Accept-Ranges"] = "bytes"
    for header, value in caching.items():
        resp[header] = value
    resp["Expires"] = http_date(time.time() + LOCAL_MAX_AGE)
    resp["Vary"] = "Accept-Encoding, Range" if status == 206 else "Accept-Encoding"
    resp["X-Content-Type-Options"] = "nosniff"
    return apply_cors(resp)


def error_response(exc: StreamError) -> JsonResponse:
    """Render a StreamError as a JSON body with its HTTP status."""
    resp = JsonResponse(exc.as_payload(), status=exc.status)
    if isinstance(exc, RangeUnsatisfiable) and exc.size is not None:
        resp["Content-Range"] = f"bytes */{exc.size}"
    return apply_cors(resp)
