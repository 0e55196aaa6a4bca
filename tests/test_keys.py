from __future__ import annotations

import hashlib
import unittest

from fetchcache.keys import (
    MAX_FILE_NAME_LENGTH,
    encode_file_name,
    java_string_hash,
    substitute_separators,
)


def _broken_digest(value: str) -> bytes:
    raise RuntimeError("digest unavailable")


class EncodeFileNameTest(unittest.TestCase):
    def test_short_names_only_replace_separators(self) -> None:
        uri = "https://example.com/repo\\content.xml"
        self.assertEqual(encode_file_name(uri), "https___example.com_repo_content.xml")
        self.assertEqual(encode_file_name(uri), substitute_separators(uri))

    def test_exactly_max_length_is_unchanged(self) -> None:
        uri = "a" * MAX_FILE_NAME_LENGTH
        self.assertEqual(encode_file_name(uri), uri)

    def test_overlength_names_keep_prefix_and_suffix_around_digest(self) -> None:
        uri = "https://example.com/" + "segment/" * 40 + "artifacts.jar"
        substituted = substitute_separators(uri)
        digest = hashlib.sha1(substituted.encode("utf-8")).hexdigest()

        encoded = encode_file_name(uri)

        self.assertLessEqual(len(encoded), MAX_FILE_NAME_LENGTH)
        self.assertEqual(len(encoded), 198)
        self.assertEqual(encoded[:78], substituted[:78])
        self.assertEqual(encoded[-78:], substituted[-78:])
        self.assertEqual(encoded[78:-78], f"-{digest}-")

    def test_encoding_is_deterministic(self) -> None:
        uri = "http://example.com/" + "x" * 500
        self.assertEqual(encode_file_name(uri), encode_file_name(uri))

    def test_length_bound_holds_for_many_inputs(self) -> None:
        for size in (0, 1, 199, 200, 201, 250, 1000, 5000):
            with self.subTest(size=size):
                self.assertLessEqual(len(encode_file_name("u:/" * size)), MAX_FILE_NAME_LENGTH)

    def test_long_names_differing_in_the_middle_get_distinct_keys(self) -> None:
        prefix = "p" * 150
        suffix = "s" * 150
        first = encode_file_name(prefix + "one" + suffix)
        second = encode_file_name(prefix + "two" + suffix)
        self.assertNotEqual(first, second)

    def test_line_breaks_are_ignored_by_the_digest(self) -> None:
        uri = "h" * 150 + "\r\n" + "t" * 150
        digest = hashlib.sha1(("h" * 150 + "t" * 150).encode("utf-8")).hexdigest()

        encoded = encode_file_name(uri)

        self.assertEqual(encoded[78:-78], f"-{digest}-")
        self.assertEqual(encoded[:78], uri[:78])
        self.assertEqual(encoded[-78:], uri[-78:])

    def test_digest_failure_falls_back_to_string_hash(self) -> None:
        uri = "z" * 300
        encoded = encode_file_name(uri, digest=_broken_digest)

        middle = f"---{java_string_hash(uri)}---"
        half = (MAX_FILE_NAME_LENGTH - len(middle)) // 2 - 1
        self.assertEqual(encoded, uri[:half] + middle + uri[-half:])
        self.assertLessEqual(len(encoded), MAX_FILE_NAME_LENGTH)


class JavaStringHashTest(unittest.TestCase):
    def test_known_values(self) -> None:
        self.assertEqual(java_string_hash(""), 0)
        self.assertEqual(java_string_hash("a"), 97)
        self.assertEqual(java_string_hash("hello"), 99162322)

    def test_wraps_to_signed_32_bit(self) -> None:
        value = java_string_hash("x" * 100)
        self.assertGreaterEqual(value, -(2**31))
        self.assertLess(value, 2**31)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
