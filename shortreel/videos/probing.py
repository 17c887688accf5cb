"""
Sequential probing of candidate upstream URLs.

Some backends answer with interstitial HTML pages ("virus scan warning",
quota pages) under a 200 status, so a URL is only accepted once a real
media response comes back. Candidates are tried strictly one after another:
these backends rate-limit per file, so two candidates for the same asset are
never in flight at once.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

PROBE_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "video/mp4,video/*,*/*;q=0.8",
    "Accept-Encoding": "identity",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


def file_share_candidates(file_id: str, saved_url: str = "") -> list:
    """
    Build the ordered candidate URLs for a file-share asset.

    Args:
        file_id (str): Opaque file id on the file-share service.
        saved_url (str): URL saved when the video was registered, if any.

    Returns:
        list[str]: Direct download, alternate host, legacy download, saved
        URL and preview variants, with unusable entries removed.
    """
    candidates = []
    if file_id:
        candidates += [
            f"https://drive.google.com/uc?export=download&id={file_id}&confirm=t",
            f"https://drive.usercontent.google.com/download?id={file_id}&export=download&confirm=t",
            f"https://drive.google.com/uc?id={file_id}&export=download",
        ]
    if saved_url:
        candidates.append(saved_url)
    if file_id:
        candidates.append(f"https://drive.google.com/file/d/{file_id}/preview")
    return candidates


@dataclass
class PlayableUrl:
    """An accepted candidate; ``response`` is still open and ready to stream."""
    url: str
    response: requests.Response
    attempts: int


@dataclass
class ProbeFailure:
    """Every candidate was tried and none returned playable media."""
    attempts: int
    last_error: Optional[str]


class FallbackProber:
    """
    Try candidate URLs in order and keep the first genuinely playable one.

    Args:
        fetch (callable): ``requests.get``-compatible callable, injectable for tests.
        timeout (float): Per-attempt timeout, defaults to STREAM_UPSTREAM_TIMEOUT.
    """

    def __init__(self, fetch=None, timeout=None):
        self._fetch = fetch or requests.get
        self._timeout = timeout if timeout is not None else settings.STREAM_UPSTREAM_TIMEOUT

    def _attempt(self, url: str, range_header: Optional[str]):
        """Fetch one candidate, returning ``(response, None)`` or ``(None, error)``."""
        headers = dict(PROBE_HEADERS)
        if range_header:
            headers["Range"] = range_header
        try:
            response = self._fetch(url, headers=headers, stream=True, timeout=self._timeout,
                                   allow_redirects=True)
        except requests.RequestException as exc:
            return None, str(exc)
        if not response.ok:
            error = f"HTTP {response.status_code}: {response.reason}"
            response.close()
            return None, error
        content_type = response.headers.get("Content-Type", "")
        if "text/html" in content_type.lower():
            response.close()
            return None, "Received HTML instead of video content"
        return response, None

    def _attempts(self, candidates: Iterable[str], range_header: Optional[str]) -> Iterator[tuple]:
        for index, url in enumerate(candidates, start=1):
            if not url:
                continue
            logger.info("Probe attempt %d: %s", index, url)
            response, error = self._attempt(url, range_header)
            if error:
                logger.info("Probe attempt %d rejected: %s", index, error)
            yield url, response, error

    def probe(self, candidates: Iterable[str], range_header: Optional[str] = None):
        """
        Probe candidates in order, stopping at the first playable response.

        Args:
            candidates (Iterable[str]): Candidate URLs in priority order; empty
                entries are skipped and not counted.
            range_header (str): Incoming Range header forwarded to each attempt.

        Returns:
            PlayableUrl: The accepted URL with its open response.
            ProbeFailure: When every candidate failed, with the attempt count
            and the last observed error.
        """
        attempts = 0
        last_error = None
        for url, response, error in self._attempts(candidates, range_header):
            attempts += 1
            if response is not None:
                logger.info("Probe accepted %s after %d attempt(s)", url, attempts)
                return PlayableUrl(url=url, response=response, attempts=attempts)
            last_error = error
        logger.error("All %d probe candidates failed, last error: %s", attempts, last_error)
        return ProbeFailure(attempts=attempts, last_error=last_error)
