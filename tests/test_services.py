import pytest

from videos.exceptions import ConfigurationMissing
from videos.models import BackendKind
from videos.services import (
    CONTENT_HLS, CONTENT_MP4, CONTENT_PROXY, CONTENT_REDIRECT, NOT_AVAILABLE,
    BackendDescriptor, BackendRef, extract_public_id, resolve_source,
    signed_cloud_url, transform_cloud_url,
)

CLOUD_URL = "https://res.cloudinary.com/demo/video/upload/v1700000000/clips/beach.mp4"


def _descriptor(*refs):
    return BackendDescriptor(refs=tuple(refs))


def test_empty_descriptor_is_not_available() -> None:
    source = resolve_source(_descriptor())
    assert source is NOT_AVAILABLE
    assert not source.available
    assert not source.is_redirect


def test_managed_cdn_playlist_is_swapped_for_mp4() -> None:
    ref = BackendRef(BackendKind.MANAGED_CDN, locator="abc",
                     playback_url="https://vz-1.b-cdn.net/abc/playlist.m3u8")
    source = resolve_source(_descriptor(ref))
    assert source.storage_kind == BackendKind.MANAGED_CDN
    assert source.primary_url == "https://vz-1.b-cdn.net/abc/play_720p.mp4"
    assert source.fallback_url == "https://vz-1.b-cdn.net/abc/playlist.m3u8"
    assert source.content_kind == CONTENT_MP4
    assert source.is_redirect


def test_managed_cdn_other_playlist_stays_hls() -> None:
    ref = BackendRef(BackendKind.MANAGED_CDN, playback_url="https://cdn.example/abc/master.m3u8")
    source = resolve_source(_descriptor(ref))
    assert source.content_kind == CONTENT_HLS
    assert source.primary_url == "https://cdn.example/abc/master.m3u8"


def test_managed_cdn_asset_id_uses_pull_zone() -> None:
    ref = BackendRef(BackendKind.MANAGED_CDN, locator="abc")
    source = resolve_source(_descriptor(ref), pull_zone="vz-1.b-cdn.net")
    assert source.primary_url == "https://vz-1.b-cdn.net/abc/play_720p.mp4"


def test_managed_cdn_asset_id_without_pull_zone_is_a_config_error() -> None:
    ref = BackendRef(BackendKind.MANAGED_CDN, locator="abc")
    with pytest.raises(ConfigurationMissing) as excinfo:
        resolve_source(_descriptor(ref))
    assert excinfo.value.missing == ["STREAM_CDN_PULL_ZONE"]
    assert excinfo.value.status == 503


def test_public_cloud_url_gets_transform_tokens() -> None:
    ref = BackendRef(BackendKind.CLOUD_TRANSFORM, playback_url=CLOUD_URL)
    source = resolve_source(_descriptor(ref), width=480, height=854, quality="auto")
    assert source.content_kind == CONTENT_REDIRECT
    assert source.primary_url == (
        "https://res.cloudinary.com/demo/video/upload/"
        "w_480,h_854,c_fill,q_auto:good,f_auto/v1700000000/clips/beach.mp4"
    )


def test_transform_keeps_explicit_quality_and_ignores_foreign_urls() -> None:
    assert "q_80" in transform_cloud_url(CLOUD_URL, 720, 1280, "80")
    assert transform_cloud_url("https://other.example/a.mp4", 720, 1280) == "https://other.example/a.mp4"


def test_private_cloud_is_proxied_never_redirected() -> None:
    url = "https://res.cloudinary.com/demo/video/upload/s--Ab12Cd--/v17/private/clip.mp4"
    ref = BackendRef(BackendKind.CLOUD_TRANSFORM, playback_url=url, private=True)
    source = resolve_source(_descriptor(ref))
    assert source.content_kind == CONTENT_PROXY
    assert not source.is_redirect
    assert source.locator == "private/clip"
    assert source.fallback_url == url


def test_public_cloud_without_url_is_not_available() -> None:
    ref = BackendRef(BackendKind.CLOUD_TRANSFORM, locator="clips/beach")
    assert resolve_source(_descriptor(ref)) is NOT_AVAILABLE


def test_file_share_and_local_file_are_proxied() -> None:
    share = resolve_source(_descriptor(
        BackendRef(BackendKind.FILE_SHARE, locator="FILE123", playback_url="https://share.example/x")))
    assert share.storage_kind == BackendKind.FILE_SHARE
    assert share.content_kind == CONTENT_PROXY
    assert share.locator == "FILE123"
    assert share.primary_url == "https://share.example/x"

    local = resolve_source(_descriptor(BackendRef(BackendKind.LOCAL_FILE, locator="clips/a.mp4")))
    assert local.storage_kind == BackendKind.LOCAL_FILE
    assert local.primary_url == "clips/a.mp4"


def test_highest_priority_ref_wins_and_fields_are_not_blended() -> None:
    descriptor = _descriptor(
        BackendRef(BackendKind.LOCAL_FILE, locator="clips/old.mp4"),
        BackendRef(BackendKind.FILE_SHARE, locator="FILE123", thumbnail_url="https://share.example/t.jpg"),
        BackendRef(BackendKind.MANAGED_CDN, locator="abc",
                   playback_url="https://vz-1.b-cdn.net/abc/play_720p.mp4"),
    )
    source = resolve_source(descriptor)
    assert source.storage_kind == BackendKind.MANAGED_CDN
    assert source.locator == "abc"
    assert source.thumbnail_url == ""


@pytest.mark.parametrize("url, expected", [
    ("https://res.cloudinary.com/demo/video/upload/v1699/folder/clip.mp4", "folder/clip"),
    ("https://res.cloudinary.com/demo/video/upload/s--xyz--/v1/clip.webm", "clip"),
    ("https://res.cloudinary.com/demo/video/upload/clip", "clip"),
    ("https://example.com/videos/clip.mp4", None),
    ("", None),
])
def test_extract_public_id(url, expected) -> None:
    assert extract_public_id(url) == expected


def test_signed_url_requires_credentials(settings) -> None:
    settings.CLOUDINARY_CLOUD_NAME = "demo"
    settings.CLOUDINARY_API_KEY = ""
    settings.CLOUDINARY_API_SECRET = ""
    with pytest.raises(ConfigurationMissing) as excinfo:
        signed_cloud_url("private/clip", 720, 1280)
    assert excinfo.value.missing == ["CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET"]


def test_signed_url_is_authenticated_and_signed(settings) -> None:
    settings.CLOUDINARY_CLOUD_NAME = "demo"
    settings.CLOUDINARY_API_KEY = "key"
    settings.CLOUDINARY_API_SECRET = "secret"
    url = signed_cloud_url("private/clip", 720, 1280)
    assert url.startswith("https://res.cloudinary.com/demo/video/authenticated/")
    assert "/s--" in url
    assert "private/clip" in url


def test_stale_public_id_does_not_hide_a_local_file() -> None:
    descriptor = _descriptor(
        BackendRef(BackendKind.CLOUD_TRANSFORM, locator="clips/old"),
        BackendRef(BackendKind.LOCAL_FILE, locator="clips/a.mp4"),
    )
    source = resolve_source(descriptor)
    assert source.storage_kind == BackendKind.LOCAL_FILE
    assert source.primary_url == "clips/a.mp4"


def test_cdn_asset_without_pull_zone_yields_to_lower_backends() -> None:
    descriptor = _descriptor(
        BackendRef(BackendKind.MANAGED_CDN, locator="abc"),
        BackendRef(BackendKind.FILE_SHARE, locator="FILE123"),
    )
    source = resolve_source(descriptor)
    assert source.storage_kind == BackendKind.FILE_SHARE
    assert source.locator == "FILE123"

    with_zone = resolve_source(descriptor, pull_zone="vz-1.b-cdn.net")
    assert with_zone.storage_kind == BackendKind.MANAGED_CDN


def test_private_cloud_with_only_a_public_id_is_usable() -> None:
    descriptor = _descriptor(
        BackendRef(BackendKind.CLOUD_TRANSFORM, locator="private/clip", private=True),
        BackendRef(BackendKind.LOCAL_FILE, locator="clips/a.mp4"),
    )
    assert descriptor.usable().kind == BackendKind.CLOUD_TRANSFORM
    source = resolve_source(descriptor)
    assert source.content_kind == CONTENT_PROXY
    assert source.locator == "private/clip"
    assert source.fallback_url is None
