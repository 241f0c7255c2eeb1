"""TTL caches for the external enrichment tiers.

One ``TTLCache`` per tier (search results, AI analyses), keyed by the
normalised target name. Each entry carries its own expiry; reading past it is
a miss. Concurrent misses for the same key may both fetch. Writes replace the
whole entry under a lock, so the last write wins and no reader sees a
half-written value.

With ``persist_dir`` set, entries are mirrored to one JSON file per key.
Files are written to a temporary name and moved into place with
``os.replace``. File I/O runs in a worker thread under a timeout; on any
failure the cache logs and carries on from memory.
"""

import asyncio
import json
import os
import re
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable

from client_intel.core.domain import CacheEntry
from client_intel.core.normalizer import normalize
from client_intel.observability import get_logger

logger = get_logger(__name__)

_UNSAFE_FILENAME = re.compile(r"[^a-z0-9_-]")


class TTLCache:
    """In-memory TTL cache with optional on-disk persistence.

    Args:
        name: Tier name, used for logging and the persistence sub-directory.
        ttl_seconds: Default entry lifetime.
        clock: Wall-clock seconds; injectable for tests.
        persist_dir: Directory for JSON mirrors. None keeps the cache in memory only.
        io_timeout_seconds: Upper bound on any single file read or write.
    """

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        clock: Callable[[], float] = time.time,
        persist_dir: str | Path | None = None,
        io_timeout_seconds: float = 2.0,
    ) -> None:
        self.name = name
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._lock = threading.Lock()
        self._dir = Path(persist_dir) / name if persist_dir else None
        self._io_timeout = io_timeout_seconds
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(target_name: str) -> str:
        return normalize(target_name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None on miss or expiry."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(now):
                del self._entries[key]
                entry = None

        if entry is None and self._dir is not None:
            entry = await self._load_file(key)
            if entry is not None and entry.is_expired(now):
                entry = None
            if entry is not None:
                with self._lock:
                    self._entries[key] = entry

        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return entry.value

    async def put(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        """Store ``value`` under ``key``, replacing any previous entry."""
        entry = CacheEntry(value=value, expires_at=self._clock() + (ttl_seconds or self._ttl))
        with self._lock:
            self._entries[key] = entry
        if self._dir is not None:
            await self._write_file(key, entry)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    # ------------------------------------------------------------------
    # File mirror
    # ------------------------------------------------------------------

    def _path_for(self, key: str) -> Path:
        assert self._dir is not None
        return self._dir / f"{_UNSAFE_FILENAME.sub('_', key.lower()) or '_'}.json"

    async def _load_file(self, key: str) -> CacheEntry[Any] | None:
        path = self._path_for(key)

        def _read() -> CacheEntry[Any] | None:
            if not path.exists():
                return None
            document = json.loads(path.read_text(encoding="utf-8"))
            return CacheEntry(value=document["value"], expires_at=float(document["expires_at"]))

        try:
            return await asyncio.wait_for(asyncio.to_thread(_read), timeout=self._io_timeout)
        except (OSError, ValueError, KeyError, TypeError, asyncio.TimeoutError) as exc:
            logger.warning("cache_file_read_failed", cache=self.name, key=key, error=str(exc))
            return None

    async def _write_file(self, key: str, entry: CacheEntry[Any]) -> None:
        path = self._path_for(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            payload = json.dumps({"value": entry.value, "expires_at": entry.expires_at})
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

        try:
            await asyncio.wait_for(asyncio.to_thread(_write), timeout=self._io_timeout)
        except (OSError, TypeError, ValueError, asyncio.TimeoutError) as exc:
            logger.warning("cache_file_write_failed", cache=self.name, key=key, error=str(exc))
