"""Write-through download cache wrapping another transport."""

from __future__ import annotations

import io
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Callable

from .cache import CacheError, CacheStore, DeleteResult
from .copier import ByteCopier
from .keys import encode_file_name
from .offline import OfflineState
from .paths import default_cache_dir
from .transport import Cancellation, DownloadStatus, Transport

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _KeyLock:
    """A lock together with the number of callers holding or awaiting it."""

    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class KeyedLocks:
    """Hand out one lock per key, dropping it once nobody holds or waits for it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, _KeyLock] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = _KeyLock()
                self._locks[key] = entry
            entry.users += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class CachingTransport:
    """Transport decorator that keeps a copy of every successful download.

    Each download is staged in memory before being handed to the caller
    and written to the cache directory. While *offline* reports ``True``,
    URIs with a cache entry are answered from disk without touching the
    delegate. Failures of the cache itself never change the outcome the
    delegate reported.

    Concurrent downloads of the same URI are serialised; different URIs
    proceed in parallel.
    """

    def __init__(
        self,
        delegate: Transport,
        offline: OfflineState,
        *,
        store: CacheStore | None = None,
        cache_dir: Path | None = None,
        copier: ByteCopier | None = None,
        encoder: Callable[[str], str] = encode_file_name,
    ) -> None:
        self.delegate = delegate
        self.offline = offline
        self._copier = copier or ByteCopier()
        if store is None:
            store = CacheStore(cache_dir if cache_dir is not None else default_cache_dir(), copier=self._copier)
        self.store = store
        self._encode = encoder
        self._locks = KeyedLocks()

    def cache_path(self, uri: str) -> Path:
        return self.store.locate(self._encode(str(uri)))

    def download(
        self,
        uri: str,
        target: BinaryIO,
        start_offset: int = 0,
        monitor: Cancellation | None = None,
    ) -> DownloadStatus:
        key = self._encode(str(uri))
        cache_file = self.store.locate(key)
        with self._locks.hold(key):
            if self.offline.is_offline() and self.store.exists(cache_file):
                status = self._serve_cached(uri, cache_file, target)
                if status is not None:
                    return status

            staging = io.BytesIO()
            status = None
            content: bytes | None = None
            try:
                status = self.delegate.download(uri, staging, start_offset, monitor)
                if status.ok:
                    content = staging.getvalue()
                    self._copier.copy_bytes(content, target)
            finally:
                if content is None:
                    self._evict(uri, cache_file)
                else:
                    self._persist(uri, cache_file, content, status.last_modified)

            return status

    def open_stream(self, uri: str, monitor: Cancellation | None = None) -> BinaryIO:
        """Open *uri* on the delegate; streamed responses are never cached."""

        return self.delegate.open_stream(uri, monitor)

    def get_last_modified(self, uri: str, monitor: Cancellation | None = None) -> float | None:
        """Return the modification time of *uri*.

        While offline, a cached entry's stored time is returned. Without an
        entry the delegate is asked even when offline.
        """

        if self.offline.is_offline():
            cache_file = self.cache_path(uri)
            if self.store.exists(cache_file):
                cached = self.store.modified_time(cache_file)
                if cached is not None:
                    return cached
        return self.delegate.get_last_modified(uri, monitor)

    def evict(self, uri: str) -> DeleteResult:
        key = self._encode(str(uri))
        with self._locks.hold(key):
            return self.store.delete_best_effort(self.store.locate(key))

    def _serve_cached(self, uri: str, cache_file: Path, target: BinaryIO) -> DownloadStatus | None:
        try:
            content = self.store.read(cache_file)
        except CacheError as exc:
            logger.debug("Offline cache read for %s failed, falling back to the network: %s", uri, exc)
            return None
        self._copier.copy_bytes(content, target)
        logger.debug("Served %s from cache %s", uri, cache_file)
        return DownloadStatus.success(
            last_modified=self.store.modified_time(cache_file),
            message="Served from cache",
        )

    def _persist(self, uri: str, cache_file: Path, content: bytes, last_modified: float | None) -> None:
        try:
            self.store.write(cache_file, content)
        except CacheError as exc:
            logger.warning("Could not cache %s: %s", uri, exc)
            return
        if last_modified is not None:
            self.store.set_modified_time(cache_file, last_modified)

    def _evict(self, uri: str, cache_file: Path) -> None:
        result = self.store.delete_best_effort(cache_file)
        if result is DeleteResult.FAILED:
            logger.warning("Could not remove stale cache entry for %s at %s", uri, cache_file)


__all__ = ["CachingTransport", "KeyedLocks"]
