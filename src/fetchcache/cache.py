"""File-based storage for cached downloads."""

from __future__ import annotations

import io
import logging
import os
import stat
import tempfile
from enum import Enum
from pathlib import Path

from .copier import ByteCopier

MAX_ENTRY_SIZE = 2**31 - 1

logger = logging.getLogger(__name__)


class CacheError(RuntimeError):
    """Raised when a cache entry cannot be read or written."""


class CacheEntryNotFound(CacheError):
    """Raised when reading an entry that does not exist."""


class CacheEntryTooLarge(CacheError):
    """Raised when an entry is too large to be loaded into memory."""


class CacheIOError(CacheError):
    """Raised for any other I/O failure on an entry."""


class DeleteResult(Enum):
    DELETED = "deleted"
    NOT_FOUND = "not-found"
    FAILED = "failed"

    @property
    def ok(self) -> bool:
        return self is not DeleteResult.FAILED


class CacheStore:
    """Store whole files below a single cache directory."""

    def __init__(self, root: Path, *, copier: ByteCopier | None = None) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._copier = copier or ByteCopier()

    def locate(self, key: str) -> Path:
        return self.root / key

    def exists(self, path: Path) -> bool:
        return path.is_file()

    def read(self, path: Path) -> bytes:
        try:
            size = path.stat().st_size
        except FileNotFoundError as exc:
            raise CacheEntryNotFound(f"No cache entry at {path}") from exc
        except OSError as exc:
            raise CacheIOError(f"Cannot inspect cache entry {path}: {exc}") from exc
        if size > MAX_ENTRY_SIZE:
            raise CacheEntryTooLarge(f"Cache entry {path} is too large: {size} bytes")

        output = io.BytesIO()
        try:
            with path.open("rb") as handle:
                self._copier.copy(handle, output)
        except FileNotFoundError as exc:
            raise CacheEntryNotFound(f"No cache entry at {path}") from exc
        except OSError as exc:
            raise CacheIOError(f"Cannot read cache entry {path}: {exc}") from exc
        return output.getvalue()

    def write(self, path: Path, data: bytes) -> None:
        """Replace the entry at *path* with *data*.

        The bytes are written to a freshly created temporary sibling and moved
        into place once complete, so readers never observe a half-written
        entry. The temporary file is created exclusively and never reuses an
        existing name, so other entries in the directory are left untouched.
        """

        temp_path: Path | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
            temp_path = Path(temp_name)
            with os.fdopen(fd, "wb") as handle:
                self._copier.copy_bytes(data, handle)
            temp_path.replace(path)
        except OSError as exc:
            if temp_path is not None:
                try:
                    temp_path.unlink(missing_ok=True)
                except OSError:
                    pass
            raise CacheIOError(f"Cannot write cache entry {path}: {exc}") from exc

    def modified_time(self, path: Path) -> float | None:
        try:
            return path.stat().st_mtime
        except OSError:
            return None

    def set_modified_time(self, path: Path, timestamp: float) -> bool:
        try:
            os.utime(path, (timestamp, timestamp))
        except (OSError, OverflowError, ValueError) as exc:
            logger.debug("Could not set modification time of %s: %s", path, exc)
            return False
        return True

    def delete_best_effort(self, path: Path) -> DeleteResult:
        """Delete *path* (recursively for directories) without raising.

        Failed deletions are reported but not retried later: the entry may
        legitimately be recreated by a subsequent download.
        """

        try:
            mode = path.lstat().st_mode
        except FileNotFoundError:
            return DeleteResult.NOT_FOUND
        except OSError as exc:
            logger.debug("Could not inspect %s: %s", path, exc)
            return DeleteResult.FAILED

        failed = False
        if stat.S_ISDIR(mode):
            try:
                children = list(path.iterdir())
            except OSError:
                children = []
                failed = True
            for child in children:
                if self.delete_best_effort(child) is DeleteResult.FAILED:
                    failed = True
            try:
                path.rmdir()
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.debug("Could not delete directory %s: %s", path, exc)
                failed = True
        else:
            try:
                path.unlink()
            except FileNotFoundError:
                return DeleteResult.NOT_FOUND
            except OSError as exc:
                logger.debug("Could not delete %s: %s", path, exc)
                failed = True

        return DeleteResult.FAILED if failed else DeleteResult.DELETED


__all__ = [
    "CacheEntryNotFound",
    "CacheEntryTooLarge",
    "CacheError",
    "CacheIOError",
    "CacheStore",
    "DeleteResult",
    "MAX_ENTRY_SIZE",
]
