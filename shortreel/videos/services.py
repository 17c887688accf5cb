"""
Source resolution for the videos app.

This module turns the backend references stored on a Video into a single
ResolvedSource describing where the bytes live and how they must be
delivered (redirect to a CDN-direct URL, or proxied through this server).

Key functionality:
- BackendRef / BackendDescriptor: explicit per-kind backend references.
- resolve_source: strict priority resolution of a descriptor.
- transform_cloud_url: inject sizing/quality tokens into a cloud-transform URL.
- extract_public_id: recover a cloud-transform public id from a stored URL.
- signed_cloud_url: build a short-lived signed URL for a private asset.

Functions:
- resolve_source(descriptor, width, height, quality, pull_zone)
- is_usable(ref, pull_zone)
- managed_cdn_urls(ref, pull_zone)
- transform_cloud_url(url, width, height, quality)
- extract_public_id(url)
- signed_cloud_url(public_id, width, height, quality)
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple

import cloudinary.utils
from django.conf import settings

from .exceptions import ConfigurationMissing
from .models import BackendKind

logger = logging.getLogger(__name__)

KIND_PRIORITY = (
    BackendKind.MANAGED_CDN,
    BackendKind.CLOUD_TRANSFORM,
    BackendKind.FILE_SHARE,
    BackendKind.LOCAL_FILE,
)

CONTENT_MP4 = "mp4"
CONTENT_HLS = "hls"
CONTENT_REDIRECT = "redirect"
CONTENT_PROXY = "proxy"

CDN_PLAYLIST_SUFFIX = "/playlist.m3u8"
CDN_MP4_SUFFIX = "/play_720p.mp4"

_SIGNATURE_RE = re.compile(r"^s--[^/]+--/")
_VERSION_RE = re.compile(r"^v\d+/")
_EXTENSION_RE = re.compile(r"\.[^./]+$")


@dataclass(frozen=True)
class BackendRef:
    """Addressing data of one storage backend holding a copy of a video."""
    kind: BackendKind
    locator: str = ""
    playback_url: str = ""
    thumbnail_url: str = ""
    private: bool = False


@dataclass(frozen=True)
class BackendDescriptor:
    """All backend references known for a video, in any order."""
    refs: Tuple[BackendRef, ...] = ()

    def get(self, kind: BackendKind) -> Optional[BackendRef]:
        for ref in self.refs:
            if ref.kind == kind:
                return ref
        return None

    @property
    def primary(self) -> Optional[BackendRef]:
        """The highest-priority populated reference, or None."""
        for kind in KIND_PRIORITY:
            ref = self.get(kind)
            if ref is not None:
                return ref
        return None

    def usable(self, pull_zone: str = "") -> Optional[BackendRef]:
        """The highest-priority reference that can actually be delivered, or None."""
        for kind in KIND_PRIORITY:
            ref = self.get(kind)
            if ref is not None and is_usable(ref, pull_zone):
                return ref
        return None


def is_usable(ref: BackendRef, pull_zone: str = "") -> bool:
    """
    Tell whether a reference carries enough data to be delivered on its own.

    A managed-cdn asset id needs a pull zone, a public cloud-transform asset
    needs its delivery URL and a private one at least its public id.
    """
    if ref.kind == BackendKind.MANAGED_CDN:
        return bool(ref.playback_url or (ref.locator and pull_zone))
    if ref.kind == BackendKind.CLOUD_TRANSFORM:
        return bool(ref.playback_url or (ref.private and ref.locator))
    return bool(ref.playback_url or ref.locator)


@dataclass(frozen=True)
class ResolvedSource:
    """Where a video's bytes live and how they are delivered for one request."""
    storage_kind: Optional[BackendKind]
    primary_url: Optional[str]
    content_kind: Optional[str]
    fallback_url: Optional[str] = None
    locator: str = ""
    thumbnail_url: str = ""

    @property
    def available(self) -> bool:
        return self.storage_kind is not None

    @property
    def is_redirect(self) -> bool:
        return self.available and self.content_kind != CONTENT_PROXY


NOT_AVAILABLE = ResolvedSource(storage_kind=None, primary_url=None, content_kind=None)


def _quality_token(quality: str) -> str:
    return "auto:good" if quality in (None, "", "auto") else quality


def transform_cloud_url(url: str, width: int, height: int, quality: str = "auto") -> str:
    """
    Inject fixed transformation parameters into a cloud-transform delivery URL.

    Args:
        url (str): Stored delivery URL containing an ``/upload/`` segment.
        width (int): Target width in pixels.
        height (int): Target height in pixels.
        quality (str): Quality token, ``auto`` maps to ``auto:good``.

    Returns:
        str: URL with ``w_,h_,c_fill,q_,f_auto`` tokens after ``/upload/``.
        URLs without an ``/upload/`` segment are returned unchanged.
    """
    tokens = f"w_{width},h_{height},c_fill,q_{_quality_token(quality)},f_auto"
    return url.replace("/upload/", f"/upload/{tokens}/", 1)


def extract_public_id(url: str) -> Optional[str]:
    """
    Recover the public id from a cloud-transform URL.

    Strips the signature (``s--xxx--``) and version (``v123``) path segments
    and the file extension from whatever follows ``/upload/``.

    Args:
        url (str): Stored cloud-transform URL.

    Returns:
        str or None: The public id, or None when the URL has no single
        ``/upload/`` segment.
    """
    parts = (url or "").split("/upload/")
    if len(parts) != 2:
        logger.warning("Cannot extract public id from %s", url)
        return None
    path = _SIGNATURE_RE.sub("", parts[1])
    path = _VERSION_RE.sub("", path)
    path = _EXTENSION_RE.sub("", path)
    return path or None


def managed_cdn_urls(ref: BackendRef, pull_zone: str = "") -> Tuple[str, Optional[str], str]:
    """
    Return ``(primary_url, fallback_url, content_kind)`` for a managed-cdn ref.

    An HLS playlist is swapped for its progressive MP4 rendition, keeping the
    playlist as fallback. An asset id without a playback URL is addressed
    through the configured pull zone.
    """
    playback = ref.playback_url
    if not playback:
        if not pull_zone:
            raise ConfigurationMissing(
                "Managed CDN pull zone is not configured", missing=["STREAM_CDN_PULL_ZONE"])
        playback = f"https://{pull_zone}/{ref.locator}{CDN_PLAYLIST_SUFFIX}"
    if ".m3u8" in playback:
        if playback.endswith(CDN_PLAYLIST_SUFFIX):
            return playback[:-len(CDN_PLAYLIST_SUFFIX)] + CDN_MP4_SUFFIX, playback, CONTENT_MP4
        return playback, None, CONTENT_HLS
    return playback, None, CONTENT_MP4


def resolve_source(descriptor: BackendDescriptor, width: int = 720, height: int = 1280,
                   quality: str = "auto", pull_zone: str = "") -> ResolvedSource:
    """
    Resolve a descriptor to the single source used for this request.

    The highest-priority usable reference wins: managed-cdn, then
    cloud-transform (public before private), then file-share, then
    local-file. A stale reference that cannot be delivered on its own is
    skipped. Fields of two references are never combined.

    Args:
        descriptor (BackendDescriptor): Backend references of the video.
        width (int): Requested width, used by cloud-transform URLs.
        height (int): Requested height, used by cloud-transform URLs.
        quality (str): Requested quality token.
        pull_zone (str): Managed CDN host used when only an asset id is known.

    Returns:
        ResolvedSource: The resolved source, or NOT_AVAILABLE when the
        descriptor holds no usable reference.

    Raises:
        ConfigurationMissing: If the chosen backend needs settings that are absent.
    """
    ref = descriptor.usable(pull_zone)
    if ref is None:
        cdn = descriptor.get(BackendKind.MANAGED_CDN)
        if cdn is not None and cdn.locator:
            # only an asset id and no pull zone to address it
            managed_cdn_urls(cdn, pull_zone)
        return NOT_AVAILABLE

    if ref.kind == BackendKind.MANAGED_CDN:
        primary, fallback, content_kind = managed_cdn_urls(ref, pull_zone)
        return ResolvedSource(ref.kind, primary, content_kind, fallback_url=fallback,
                              locator=ref.locator, thumbnail_url=ref.thumbnail_url)

    if ref.kind == BackendKind.CLOUD_TRANSFORM:
        if ref.private:
            # Signed at request time by the proxy, never handed to the client.
            public_id = ref.locator.strip() or extract_public_id(ref.playback_url) or ""
            return ResolvedSource(ref.kind, ref.playback_url or None, CONTENT_PROXY,
                                  fallback_url=ref.playback_url or None, locator=public_id,
                                  thumbnail_url=ref.thumbnail_url)
        return ResolvedSource(ref.kind, transform_cloud_url(ref.playback_url, width, height, quality),
                              CONTENT_REDIRECT, locator=ref.locator, thumbnail_url=ref.thumbnail_url)

    if ref.kind == BackendKind.FILE_SHARE:
        return ResolvedSource(ref.kind, ref.playback_url or None, CONTENT_PROXY,
                              locator=ref.locator, thumbnail_url=ref.thumbnail_url)

    return ResolvedSource(ref.kind, ref.locator, CONTENT_PROXY,
                          locator=ref.locator, thumbnail_url=ref.thumbnail_url)


def signed_cloud_url(public_id: str, width: int, height: int, quality: str = "auto") -> str:
    """
    Build a signed, transformed delivery URL for a private cloud-transform asset.

    Raises:
        ConfigurationMissing: If any of the cloud credentials is not configured.
    """
    required = ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET")
    missing = [name for name in required if not getattr(settings, name, "")]
    if missing:
        raise ConfigurationMissing("Cloud transform credentials are not configured", missing=missing)
    url, _options = cloudinary.utils.cloudinary_url(
        public_id,
        resource_type="video",
        type="authenticated",
        sign_url=True,
        secure=True,
        cloud_name=settings.CLOUDINARY_CLOUD_NAME,
        api_key=settings.CLOUDINARY_API_KEY,
        api_secret=settings.CLOUDINARY_API_SECRET,
        transformation=[
            {"width": width, "height": height, "crop": "fill"},
            {"quality": _quality_token(quality)},
            {"fetch_format": "auto"},
        ],
    )
    return url
