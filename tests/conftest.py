import pytest
import requests
from requests.structures import CaseInsensitiveDict


class FakeUpstream:
    """Stand-in for a streamed ``requests.Response``."""

    def __init__(self, status=200, headers=None, body=b"", reason="OK"):
        self.status_code = status
        self.reason = reason
        self.headers = CaseInsensitiveDict(headers or {})
        self.body = body
        self.closed = False

    @property
    def ok(self):
        return self.status_code < 400

    def iter_content(self, chunk_size=1):
        for offset in range(0, len(self.body), chunk_size):
            yield self.body[offset:offset + chunk_size]

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeFetch:
    """Records calls and answers from a url -> response/exception table."""

    def __init__(self, table=None, default=None):
        self.table = dict(table or {})
        self.default = default
        self.calls = []

    def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        result = self.table.get(url)
        if result is None:
            for key, value in self.table.items():
                if callable(key) and key(url):
                    result = value
                    break
        if result is None:
            result = self.default or FakeUpstream(status=404, reason="Not Found")
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def urls(self):
        return [url for url, _ in self.calls]


@pytest.fixture
def upstream():
    return FakeUpstream


@pytest.fixture
def fake_fetch():
    return FakeFetch


@pytest.fixture
def patch_requests(monkeypatch):
    """Route every ``requests.get`` through a FakeFetch."""
    def _install(table=None, default=None):
        fetch = FakeFetch(table, default)
        monkeypatch.setattr(requests, "get", fetch)
        return fetch
    return _install


@pytest.fixture
def media_root(tmp_path, settings):
    root = tmp_path / "media"
    root.mkdir()
    settings.MEDIA_ROOT = str(root)
    return root


@pytest.fixture
def make_video(db):
    from videos.models import Video

    def _make(**fields):
        fields.setdefault("title", "clip")
        return Video.objects.create(**fields)
    return _make


@pytest.fixture
def local_clip(media_root):
    """A 1000-byte file at clips/a.mp4 under MEDIA_ROOT."""
    data = bytes(i % 256 for i in range(1000))
    (media_root / "clips").mkdir()
    path = media_root / "clips" / "a.mp4"
    path.write_bytes(data)
    return path, data
