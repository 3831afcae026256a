#!/usr/bin/env python3
"""
testSegmenter.py

Unit and regression tests for line segmentation and reassembly.

Usage:
  python -m unittest testSegmenter.py
"""

import unittest

from segmenter import (
    LINE_LIMIT,
    continuation_indent,
    segment,
    reassemble,
    Reassembler,
)


###############################################################################
#                              segment() TESTS                                #
###############################################################################
class TestSegment(unittest.TestCase):

    def test_short_line_is_unchanged(self):
        for line in ["", "Alice: hi", "x" * LINE_LIMIT, "Bob: " + "y" * (LINE_LIMIT - 5)]:
            self.assertEqual(segment(line), [line])

    def test_alice_200_chars(self):
        """
        A 200 character line labelled "Alice: " is cut into a 90 character
        first line and continuations indented by 10 spaces.
        """
        line = "Alice: " + "a" * 193
        self.assertEqual(len(line), 200)

        parts = segment(line)

        self.assertEqual(parts[0], line[:90])
        self.assertTrue(parts[0].startswith("Alice: "))
        for part in parts:
            self.assertLessEqual(len(part), LINE_LIMIT)
        for part in parts[1:]:
            self.assertTrue(part.startswith(" " * 10))
            self.assertNotEqual(part[10], " ")
        # 90 + 80 + 30
        self.assertEqual(len(parts), 3)
        self.assertEqual(sum(len(p) - 10 for p in parts[1:]) + 90, 200)

    def test_lossless_after_stripping_label_indent(self):
        for name in ["A", "Alice", "somebody_long__"]:
            for length in [91, 150, 179, 180, 181, 500]:
                line = f"{name}: " + "".join(chr(97 + i % 26) for i in range(length - len(name) - 2))
                parts = segment(line)
                p = line.index(":")
                rebuilt = parts[0] + "".join(part[p + 5:] for part in parts[1:])
                self.assertEqual(rebuilt, line)
                self.assertTrue(all(len(part) <= LINE_LIMIT for part in parts))

    def test_line_count(self):
        line = "Alice: " + "z" * 193
        chunk = LINE_LIMIT - (line.index(":") + 5)
        expected = 1 + -(-(len(line) - LINE_LIMIT) // chunk)
        self.assertEqual(len(segment(line)), expected)

    def test_smaller_limit(self):
        parts = segment("Al: abcdefghij", limit=10)
        self.assertEqual(parts, ["Al: abcdef", "       ghi", "       j"])


###############################################################################
#                              EDGE CASE TESTS                                #
###############################################################################
class TestSegmentEdgeCases(unittest.TestCase):

    def test_no_colon_uses_zero_indent(self):
        line = "q" * 200
        self.assertEqual(continuation_indent(line), 0)
        parts = segment(line)
        self.assertEqual(parts, ["q" * 90, "q" * 90, "q" * 20])

    def test_label_too_wide_uses_zero_indent(self):
        line = "n" * 86 + ": " + "m" * 100
        self.assertEqual(continuation_indent(line), 0)
        parts = segment(line)
        self.assertEqual("".join(parts), line)
        self.assertTrue(all(len(part) <= LINE_LIMIT for part in parts))

    def test_widest_usable_label(self):
        # colon at 84 -> indent 89 -> one character per continuation
        line = "n" * 84 + ": " + "m" * 10
        parts = segment(line)
        self.assertEqual(continuation_indent(line), 89)
        self.assertTrue(all(len(part) <= LINE_LIMIT for part in parts))
        self.assertEqual(reassemble(parts), line)

    def test_colon_after_first_line(self):
        line = "w" * 95 + ": tail"
        parts = segment(line)
        self.assertEqual(parts, ["w" * 90, "w" * 5 + ": tail"])
        self.assertEqual(reassemble(parts), line)

    def test_continuation_may_start_with_spaces(self):
        line = "Alice: " + "b" * 83 + "   spaced out"
        parts = segment(line)
        self.assertEqual(parts[1], " " * 10 + "   spaced out")
        self.assertEqual(reassemble(parts), line)


###############################################################################
#                            Reassembler TESTS                                #
###############################################################################
class TestReassembler(unittest.TestCase):

    def test_single_line_block(self):
        r = Reassembler()
        self.assertIsNone(r.feed("LOGIN_SUCCESS"))
        self.assertTrue(r.pending())
        self.assertEqual(r.feed(""), "LOGIN_SUCCESS")
        self.assertFalse(r.pending())

    def test_segmented_block(self):
        line = "Bob: " + "0123456789" * 15
        r = Reassembler()
        results = [r.feed(part) for part in segment(line)]
        self.assertEqual(results, [None] * len(results))
        self.assertEqual(r.feed(""), line)

    def test_consecutive_blocks(self):
        r = Reassembler()
        out = []
        for wire in ["Alice: hi", "", "Bob: hey", ""]:
            message = r.feed(wire)
            if message is not None:
                out.append(message)
        self.assertEqual(out, ["Alice: hi", "Bob: hey"])

    def test_stray_blank_line_yields_nothing(self):
        r = Reassembler()
        self.assertIsNone(r.feed(""))
        self.assertIsNone(r.feed(""))


if __name__ == "__main__":
    unittest.main()
