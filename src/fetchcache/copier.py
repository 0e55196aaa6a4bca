"""Bounded-buffer stream copying shared by the cache and its transports."""

from __future__ import annotations

import io
import queue
from typing import BinaryIO

DEFAULT_BUFFER_SIZE = 8192
DEFAULT_POOL_SIZE = 4


class ByteCopier:
    """Copy streams through a fixed pool of reusable buffers.

    At most ``pool_size`` copies run at the same time; further callers block
    until a buffer is returned. With ``pool_size=1`` every copy is
    serialised through a single buffer.
    """

    def __init__(self, buffer_size: int = DEFAULT_BUFFER_SIZE, pool_size: int = DEFAULT_POOL_SIZE) -> None:
        if buffer_size < 1:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")
        if pool_size < 1:
            raise ValueError(f"pool_size must be positive, got {pool_size}")
        self.buffer_size = buffer_size
        self.pool_size = pool_size
        self._buffers: queue.Queue[bytearray] = queue.Queue(maxsize=pool_size)
        for _ in range(pool_size):
            self._buffers.put(bytearray(buffer_size))

    def copy(self, source: BinaryIO, target: BinaryIO) -> int:
        """Copy *source* into *target* until EOF and return the byte count."""

        buffer = self._buffers.get()
        try:
            readinto = getattr(source, "readinto", None)
            if readinto is not None:
                return self._copy_readinto(readinto, target, buffer)
            return self._copy_read(source, target)
        finally:
            self._buffers.put(buffer)

    def copy_bytes(self, data: bytes, target: BinaryIO) -> int:
        return self.copy(io.BytesIO(data), target)

    def _copy_readinto(self, readinto, target: BinaryIO, buffer: bytearray) -> int:
        view = memoryview(buffer)
        total = 0
        while True:
            count = readinto(view)
            if not count:
                break
            target.write(bytes(view[:count]))
            total += count
        return total

    def _copy_read(self, source: BinaryIO, target: BinaryIO) -> int:
        total = 0
        while True:
            chunk = source.read(self.buffer_size)
            if not chunk:
                break
            target.write(chunk)
            total += len(chunk)
        return total


__all__ = ["ByteCopier", "DEFAULT_BUFFER_SIZE", "DEFAULT_POOL_SIZE"]
