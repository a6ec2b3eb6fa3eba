"""On-disk cache of raw provider API responses."""

import contextlib
import hashlib
import logging
import os
import re
import shutil
import tempfile
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Optional
from urllib.parse import urlencode

from ..core.errors import CacheMissError

logger = logging.getLogger(__name__)


class CacheMode(Enum):
    """How the response cache treats hits and misses."""
    REFRESH = "refresh"  # always fetch, keep a copy on disk
    LIVE = "live"  # serve hits, fetch and store misses
    CACHED_ONLY = "cached-only"  # serve hits, a miss is an error

    def __str__(self) -> str:
        return self.value


def safe_name(name: str) -> str:
    """
    Turn arbitrary strings into safe file/dir name fragments.
    """
    return re.sub(r"[^A-Za-z0-9._-]", "_", str(name))


class ResponseCache:
    """Stores raw JSON response bodies, one file per request key."""

    def __init__(self, cache_dir: Path, mode: CacheMode = CacheMode.REFRESH):
        """
        Initialize the response cache.

        Args:
            cache_dir: Folder holding cached responses (created on first write)
            mode: Hit/miss policy
        """
        self.cache_dir = Path(cache_dir)
        self.mode = mode

    @staticmethod
    def make_key(provider: str, url: str, params: Optional[Dict[str, object]] = None) -> str:
        """
        Build a deterministic key from the provider and the full request.

        Args:
            provider: Provider name, used as the sub-folder
            url: Request URL without query string
            params: Query parameters (order does not matter)

        Returns:
            Key of the form "<provider>/<readable-tail>-<digest>"
        """
        query = urlencode(sorted((str(k), str(v)) for k, v in (params or {}).items()))
        normalized = f"{url}?{query}" if query else url
        digest = hashlib.sha1(normalized.encode("utf-8")).hexdigest()[:16]
        tail = url.rstrip("/").split("://", 1)[-1].split("/", 1)[-1]
        readable = safe_name(tail.replace("/", "_"))[-80:]
        return f"{safe_name(provider)}/{readable}-{digest}"

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        """
        Retrieve a cached response body.

        Args:
            key: Key from make_key

        Returns:
            The stored body, or None on a miss
        """
        path = self._path(key)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def put(self, key: str, body: str) -> None:
        """
        Store a response body, replacing any previous one atomically.

        Args:
            key: Key from make_key
            body: Raw response text
        """
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(suffix=".tmp", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(body)
            os.replace(temp_name, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(temp_name)
            raise

    def fetch(self, key: str, fetch_fn: Callable[[], str], provider: str = "cache") -> str:
        """
        Return the body for key according to the cache mode.

        Args:
            key: Key from make_key
            fetch_fn: Performs the real request and returns the body
            provider: Name used in CacheMissError

        Raises:
            CacheMissError: on a miss in CACHED_ONLY mode
        """
        if self.mode is not CacheMode.REFRESH:
            cached = self.get(key)
            if cached is not None:
                logger.debug("Cache hit %s", key)
                return cached
            if self.mode is CacheMode.CACHED_ONLY:
                raise CacheMissError(provider, f"no cached response for {key}")

        body = fetch_fn()
        self.put(key, body)
        return body

    def clear(self) -> None:
        """Clear all cached responses."""
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)

    def get_cache_size(self) -> int:
        """
        Get total cache size in bytes.
        """
        if not self.cache_dir.exists():
            return 0
        return sum(p.stat().st_size for p in self.cache_dir.rglob("*.json") if p.is_file())
