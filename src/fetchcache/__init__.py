"""Command line entry-point for the fetchcache download cache."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from .caching import CachingTransport
from .offline import EnvironmentOffline, OfflineFlag, OfflineState
from .logs import setup_logging
from .paths import default_cache_dir
from .transport import HttpTransport, TransportError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fetchcache",
        description="Download resources through a local write-through cache.",
    )
    parser.add_argument(
        "--cache-dir",
        type=Path,
        default=None,
        help="Directory holding cached downloads (default: <user state>/cache)",
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Serve cached copies without contacting the network when available.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="Increase log verbosity (-v for info, -vv for debug).",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Also write a rotating log file into this directory.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    get = commands.add_parser("get", help="Download a resource through the cache.")
    get.add_argument("url")
    get.add_argument(
        "--output",
        "-o",
        type=Path,
        default=None,
        help="File to write (default: standard output)",
    )
    get.add_argument(
        "--start",
        type=int,
        default=0,
        help="Byte offset to start downloading from.",
    )

    last_modified = commands.add_parser("last-modified", help="Print the modification time of a resource.")
    last_modified.add_argument("url")

    locate = commands.add_parser("locate", help="Print where a resource is cached.")
    locate.add_argument("url")

    evict = commands.add_parser("evict", help="Remove the cached copy of a resource.")
    evict.add_argument("url")
    return parser


def format_timestamp(value: float | None) -> str:
    if value is None:
        return "unknown"
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


def _log_level(verbosity: int) -> int:
    if verbosity >= 2:
        return logging.DEBUG
    if verbosity == 1:
        return logging.INFO
    return logging.WARNING


def _run_get(cache: CachingTransport, url: str, output: Path | None, start: int) -> int:
    if output is None:
        status = cache.download(url, sys.stdout.buffer, start)
        sys.stdout.flush()
    else:
        output.parent.mkdir(parents=True, exist_ok=True)
        temp_path = output.with_suffix(output.suffix + ".part")
        try:
            with temp_path.open("wb") as handle:
                status = cache.download(url, handle, start)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise
        if status.ok:
            temp_path.replace(output)
        else:
            temp_path.unlink(missing_ok=True)
    if not status.ok:
        print(f"Download failed: {status.message}", file=sys.stderr)
        return 1
    return 0


def main(argv: Sequence[str] | None = None, *, transport_factory=HttpTransport) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    setup_logging(_log_level(args.verbose), args.log_dir)

    offline: OfflineState = OfflineFlag(True) if args.offline else EnvironmentOffline()
    cache_dir = args.cache_dir if args.cache_dir is not None else default_cache_dir()

    with transport_factory() as transport:
        try:
            cache = CachingTransport(transport, offline, cache_dir=cache_dir)
        except OSError as exc:
            print(f"Cannot use cache directory {cache_dir}: {exc}", file=sys.stderr)
            return 2

        if args.command == "get":
            return _run_get(cache, args.url, args.output, args.start)
        if args.command == "last-modified":
            try:
                print(format_timestamp(cache.get_last_modified(args.url)))
            except TransportError as exc:
                print(f"HTTP error: {exc}", file=sys.stderr)
                return 1
            return 0
        if args.command == "locate":
            path = cache.cache_path(args.url)
            state = "cached" if cache.store.exists(path) else "missing"
            print(f"{path}\t{state}")
            return 0
        if args.command == "evict":
            print(cache.evict(args.url).value)
            return 0

    parser.error(f"unknown command {args.command!r}")
    return 2


__all__ = [
    "build_parser",
    "format_timestamp",
    "main",
]
