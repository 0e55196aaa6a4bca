"""Derive file-system safe cache file names from URIs."""

from __future__ import annotations

import hashlib
from typing import Callable

MAX_FILE_NAME_LENGTH = 200
_SEPARATORS = str.maketrans({":": "_", "/": "_", "\\": "_"})
_LINE_BREAKS = str.maketrans("", "", "\r\n")


def substitute_separators(uri: str) -> str:
    return uri.translate(_SEPARATORS)


def java_string_hash(value: str) -> int:
    """Return the 32-bit signed polynomial hash of *value*.

    Unlike :func:`hash`, the result does not depend on the interpreter's
    hash seed, so names derived from it survive process restarts.
    """

    result = 0
    for char in value:
        result = (31 * result + ord(char)) & 0xFFFFFFFF
    if result >= 0x80000000:
        result -= 0x100000000
    return result


def _sha1(value: str) -> bytes:
    # Line breaks do not contribute to the digest.
    return hashlib.sha1(value.translate(_LINE_BREAKS).encode("utf-8")).digest()


def encode_file_name(
    uri: str,
    *,
    max_length: int = MAX_FILE_NAME_LENGTH,
    digest: Callable[[str], bytes] = _sha1,
) -> str:
    """Map *uri* onto a cache file name of at most *max_length* characters.

    Separators are replaced with underscores. Names that are still too long
    keep a prefix and a suffix of the substituted string around a digest of
    the whole string. If the digest cannot be computed a weaker hash-based
    middle segment is used instead.
    """

    result = substitute_separators(uri)
    if len(result) <= max_length:
        return result

    try:
        middle = f"-{digest(result).hex()}-"
    except Exception:
        middle = f"---{java_string_hash(result)}---"

    half = (max_length - len(middle)) // 2 - 1
    if half <= 0:
        return middle[:max_length]
    return result[:half] + middle + result[-half:]


__all__ = [
    "MAX_FILE_NAME_LENGTH",
    "encode_file_name",
    "java_string_hash",
    "substitute_separators",
]
