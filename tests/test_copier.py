from __future__ import annotations

import io
import threading
import unittest

from fetchcache.copier import ByteCopier


class _ReadOnlySource:
    """Stream without ``readinto`` to exercise the plain ``read`` path."""

    def __init__(self, payload: bytes) -> None:
        self._buffer = io.BytesIO(payload)

    def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


class _BlockingTarget:
    def __init__(self, entered: threading.Event, release: threading.Event) -> None:
        self.entered = entered
        self.release = release

    def write(self, data: bytes) -> int:
        self.entered.set()
        self.release.wait(timeout=5)
        return len(data)


class ByteCopierTest(unittest.TestCase):
    def test_copies_across_buffer_boundaries(self) -> None:
        copier = ByteCopier(buffer_size=7, pool_size=1)
        payload = bytes(range(256)) * 3
        target = io.BytesIO()

        count = copier.copy(io.BytesIO(payload), target)

        self.assertEqual(count, len(payload))
        self.assertEqual(target.getvalue(), payload)

    def test_sources_without_readinto(self) -> None:
        copier = ByteCopier(buffer_size=4)
        target = io.BytesIO()

        count = copier.copy(_ReadOnlySource(b"hello world"), target)

        self.assertEqual(count, 11)
        self.assertEqual(target.getvalue(), b"hello world")

    def test_empty_source(self) -> None:
        target = io.BytesIO()
        self.assertEqual(ByteCopier().copy_bytes(b"", target), 0)
        self.assertEqual(target.getvalue(), b"")

    def test_rejects_invalid_sizes(self) -> None:
        with self.assertRaises(ValueError):
            ByteCopier(buffer_size=0)
        with self.assertRaises(ValueError):
            ByteCopier(pool_size=0)

    def test_single_buffer_pool_serialises_copies(self) -> None:
        copier = ByteCopier(buffer_size=16, pool_size=1)
        entered = threading.Event()
        release = threading.Event()
        second_done = threading.Event()

        first = threading.Thread(
            target=copier.copy,
            args=(io.BytesIO(b"first"), _BlockingTarget(entered, release)),
        )
        first.start()
        self.assertTrue(entered.wait(timeout=5))

        def run_second() -> None:
            copier.copy_bytes(b"second", io.BytesIO())
            second_done.set()

        second = threading.Thread(target=run_second)
        second.start()
        self.assertFalse(second_done.wait(timeout=0.2))

        release.set()
        first.join(timeout=5)
        second.join(timeout=5)
        self.assertTrue(second_done.is_set())

    def test_buffer_is_returned_after_failure(self) -> None:
        copier = ByteCopier(buffer_size=8, pool_size=1)

        class _Broken:
            def write(self, data: bytes) -> int:
                raise OSError("disk full")

        with self.assertRaises(OSError):
            copier.copy_bytes(b"payload", _Broken())

        target = io.BytesIO()
        copier.copy_bytes(b"again", target)
        self.assertEqual(target.getvalue(), b"again")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
