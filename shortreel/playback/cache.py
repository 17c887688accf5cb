"""
On-disk byte cache of preloaded videos, keyed by URL.
"""

import hashlib
import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

MAX_ENTRY_BYTES = 50 * 1024 * 1024


class VideoByteCache:
    def __init__(self, directory, max_entry_bytes: int = MAX_ENTRY_BYTES):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.max_entry_bytes = max_entry_bytes

    def _path(self, url: str) -> Path:
        digest = hashlib.sha256(url.encode("utf-8")).hexdigest()
        return self.directory / digest[:2] / digest

    def match(self, url: str) -> Optional[Path]:
        path = self._path(url)
        return path if path.is_file() else None

    def contains(self, url: str) -> bool:
        return self.match(url) is not None

    def put(self, url: str, chunks: Iterable[bytes]) -> bool:
        """
        Store the body of ``url``.

        The entry is written to a temporary file and moved into place, so a
        reader never sees a partial body. Bodies over ``max_entry_bytes`` are
        discarded and False is returned.
        """
        path = self._path(url)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".part")
        written = 0
        try:
            with open(tmp, "wb") as fh:
                for chunk in chunks:
                    if not chunk:
                        continue
                    written += len(chunk)
                    if written > self.max_entry_bytes:
                        logger.info("Not caching %s: larger than %d bytes", url, self.max_entry_bytes)
                        break
                    fh.write(chunk)
            if written > self.max_entry_bytes:
                return False
            os.replace(tmp, path)
        finally:
            if tmp.exists():
                tmp.unlink()
        logger.debug("Cached %s (%d bytes)", url, written)
        return True

    def clear(self) -> int:
        """Remove every entry; returns how many were removed."""
        removed = sum(1 for p in self.directory.rglob("*") if p.is_file() and not p.name.endswith(".part"))
        shutil.rmtree(self.directory, ignore_errors=True)
        self.directory.mkdir(parents=True, exist_ok=True)
        return removed
