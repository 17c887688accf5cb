"""
Views for the videos app.

This module provides the single streaming endpoint of the platform and the
JSON source lookup used by players:
- stream_video: resolve a video's backend and redirect to, or proxy, its bytes.
- source_info: describe the resolved source so a client can preload it.

Helpers:
- _dimensions: Read the w/h/q quality query parameters.
- _local_copy: Serve the local file of a video, used when its upstream fails.
- _stream_private_cloud: Proxy a private cloud-transform asset.
- _stream_file_share: Probe and proxy a file-share asset.
"""

import logging

from django.conf import settings
from django.http import JsonResponse
from django.urls import reverse
from django.views.decorators.http import require_GET, require_http_methods

from .exceptions import (
    ConfigurationMissing, LocalFileMissing, SourceNotAvailable, StreamError, UpstreamUnreachable,
)
from .models import BackendKind, Video
from .probing import FallbackProber, ProbeFailure, file_share_candidates
from .services import resolve_source, signed_cloud_url
from .streaming import (
    DEFAULT_CONTENT_TYPE, error_response, local_file_response, options_response,
    redirect_response, resolve_local_path, upstream_response,
)

logger = logging.getLogger(__name__)

PRIVATE_CACHE_CONTROL = "private, max-age=3600"
SHARE_CACHE_CONTROL = "public, max-age=3600"


def _dimensions(request):
    """
    Read the requested rendition from the query string.

    Args:
        request (HttpRequest): Incoming request with optional w, h and q.

    Returns:
        tuple: ``(width, height, quality)``, falling back to the configured
        defaults for missing or invalid values.
    """
    def _positive_int(name, default):
        try:
            value = int(request.GET.get(name, default))
        except (TypeError, ValueError):
            return default
        return value if value > 0 else default

    width = _positive_int("w", settings.STREAM_DEFAULT_WIDTH)
    height = _positive_int("h", settings.STREAM_DEFAULT_HEIGHT)
    quality = request.GET.get("q") or settings.STREAM_DEFAULT_QUALITY
    return width, height, quality


def _resolve(video_id, width, height, quality):
    video = Video.objects.filter(pk=video_id).first()
    if video is None:
        raise SourceNotAvailable("Video not found", video_id=video_id)
    source = resolve_source(video.descriptor(), width, height, quality,
                            pull_zone=settings.STREAM_CDN_PULL_ZONE)
    if not source.available:
        raise SourceNotAvailable("Video source not available", video_id=video_id)
    return video, source


def _local_copy(request, video, width, height):
    """Serve the local file of ``video`` when it has one on disk, else None."""
    ref = video.descriptor().get(BackendKind.LOCAL_FILE)
    if ref is None:
        return None
    try:
        path = resolve_local_path(ref.locator)
    except LocalFileMissing as exc:
        logger.warning("Local copy of %s unavailable: %s", video.pk, exc)
        return None
    logger.info("Serving local copy of %s", video.pk)
    return local_file_response(request, path, video.pk, width, height)


def _stream_private_cloud(request, video, source, width, height, quality):
    """
    Proxy a private cloud-transform asset.

    The signed URL is fetched first; on failure the stored unsigned URL is
    tried STREAM_PRIVATE_FALLBACKS more times, then the local copy, if any,
    is served. The signed URL itself never reaches the client.
    """
    candidates = []
    config_error = None
    if source.locator:
        try:
            candidates.append(signed_cloud_url(source.locator, width, height, quality))
        except ConfigurationMissing as exc:
            logger.warning("Cannot sign private video URL: %s (missing %s)", exc, exc.missing)
            config_error = exc
    if source.fallback_url:
        candidates.extend([source.fallback_url] * settings.STREAM_PRIVATE_FALLBACKS)

    result = FallbackProber().probe(candidates, request.headers.get("Range"))
    if isinstance(result, ProbeFailure):
        local = _local_copy(request, video, width, height)
        if local is not None:
            return local
        if config_error is not None:
            raise config_error
        raise UpstreamUnreachable("Private video could not be fetched",
                                  attempts=result.attempts, last_error=result.last_error)
    if result.attempts > 1:
        logger.info("Private video served from fallback URL after %d attempts", result.attempts)
    return upstream_response(request, result.response, PRIVATE_CACHE_CONTROL)


def _stream_file_share(request, source):
    """Probe the file-share candidates in order and proxy the first playable one."""
    candidates = file_share_candidates(source.locator, source.primary_url or "")
    logger.info("File share %s: trying %d URL formats", source.locator, len(candidates))
    result = FallbackProber().probe(candidates, request.headers.get("Range"))
    if isinstance(result, ProbeFailure):
        raise UpstreamUnreachable("Failed to stream video from file share",
                                  attempts=result.attempts, last_error=result.last_error)
    content_type = result.response.headers.get("Content-Type", "")
    if "video" not in content_type:
        content_type = DEFAULT_CONTENT_TYPE
    return upstream_response(request, result.response, SHARE_CACHE_CONTROL,
                             content_type=content_type)


@require_http_methods(["GET", "HEAD", "OPTIONS"])
def stream_video(request, video_id):
    """
    Serve the bytes of a video, whatever backend holds them.

    Redirects to CDN-direct URLs for public backends; proxies private cloud,
    file-share and local-file sources with Range support.

    Args:
        request (HttpRequest): Incoming request; Range, If-None-Match and
            If-Modified-Since headers and w/h/q query parameters are honored.
        video_id (str): Primary key of the Video.

    Returns:
        HttpResponse: 302 redirect, 200/206 stream, 304 not modified, or a
        JSON error (404, 416, 502, 503).
    """
    if request.method == "OPTIONS":
        return options_response()
    width, height, quality = _dimensions(request)
    try:
        video, source = _resolve(video_id, width, height, quality)
        logger.info("Stream %s: %s via %s", video_id, source.storage_kind, source.content_kind)
        if source.is_redirect:
            return redirect_response(source.primary_url, source.storage_kind, video_id,
                                     width, height, quality)
        if source.storage_kind == BackendKind.CLOUD_TRANSFORM:
            return _stream_private_cloud(request, video, source, width, height, quality)
        if source.storage_kind == BackendKind.FILE_SHARE:
            return _stream_file_share(request, source)
        path = resolve_local_path(source.primary_url)
        return local_file_response(request, path, video_id, width, height)
    except StreamError as exc:
        logger.warning("Stream %s failed with %s: %s", video_id, exc.code, exc)
        return error_response(exc)


@require_GET
def source_info(request, video_id):
    """
    Describe the resolved source of a video for client-side preloading.

    Redirect kinds expose their CDN-direct URL; proxied kinds point at the
    stream endpoint so signed or probed URLs stay server-side.

    Args:
        request (HttpRequest): Incoming request with optional w/h/q.
        video_id (str): Primary key of the Video.

    Returns:
        JsonResponse: Source description, or a JSON error.
    """
    width, height, quality = _dimensions(request)
    try:
        video, source = _resolve(video_id, width, height, quality)
    except StreamError as exc:
        return error_response(exc)
    stream_url = request.build_absolute_uri(reverse("stream_video", args=[video.pk]))
    return JsonResponse({
        "video_id": video.pk,
        "storage_kind": source.storage_kind.value,
        "content_kind": source.content_kind,
        "url": source.primary_url if source.is_redirect else stream_url,
        "fallback_url": source.fallback_url if source.is_redirect else None,
        "thumbnail_url": source.thumbnail_url or video.thumbnail,
        "duration": video.duration,
    })
