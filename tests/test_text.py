#!/usr/bin/env python3
"""
Unit tests for the chat text helpers.
"""

import unittest
from datetime import datetime, timezone

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from panel_chat.chat.text import (
    strip_colors, has_chat_prefix, same_player_name, parse_timestamp, format_time
)


class TestStripColors(unittest.TestCase):
    """Test cases for color code removal."""

    def test_removes_digit_and_letter_codes(self):
        self.assertEqual(strip_colors("^1Bob^7"), "Bob")
        self.assertEqual(strip_colors("^aAl^Zice"), "Alice")

    def test_keeps_lone_caret(self):
        self.assertEqual(strip_colors("2^ is a power"), "2^ is a power")
        self.assertEqual(strip_colors("x^"), "x^")

    def test_none_is_empty(self):
        self.assertEqual(strip_colors(None), "")
        self.assertEqual(strip_colors(""), "")

    def test_same_player_name(self):
        self.assertTrue(same_player_name("^1Bob", "^2Bob"))
        self.assertTrue(same_player_name("Bob", "^3Bob"))
        self.assertFalse(same_player_name("^1Bob", "Bobby"))


class TestChatPrefix(unittest.TestCase):
    """Test cases for chat line detection."""

    def test_say_and_sayteam(self):
        self.assertTrue(has_chat_prefix("say: Bob: hello"))
        self.assertTrue(has_chat_prefix("sayteam: Bob: rush B"))

    def test_case_insensitive(self):
        self.assertTrue(has_chat_prefix("SAY: Bob: hello"))
        self.assertTrue(has_chat_prefix("SayTeam: Bob: hi"))

    def test_other_lines(self):
        self.assertFalse(has_chat_prefix("Kill: 0 1 2: Bob killed Ann"))
        self.assertFalse(has_chat_prefix(" say: leading space"))
        self.assertFalse(has_chat_prefix(None))
        self.assertFalse(has_chat_prefix(""))


class TestTimestamps(unittest.TestCase):
    """Test cases for timestamp parsing and formatting."""

    def test_parses_zulu_time(self):
        parsed = parse_timestamp("2024-05-01T12:30:45Z")
        self.assertEqual(parsed, datetime(2024, 5, 1, 12, 30, 45, tzinfo=timezone.utc))

    def test_parses_offset_time(self):
        parsed = parse_timestamp("2024-05-01T12:30:45.123+02:00")
        self.assertEqual(parsed.utcoffset().total_seconds(), 7200)

    def test_datetime_passes_through(self):
        value = datetime(2024, 1, 1, 8, 0, 0)
        self.assertIs(parse_timestamp(value), value)

    def test_invalid_falls_back_to_now(self):
        before = datetime.now(timezone.utc)
        parsed = parse_timestamp("yesterday")
        after = datetime.now(timezone.utc)
        self.assertIsNotNone(parsed.tzinfo)
        self.assertTrue(before <= parsed <= after)
        self.assertIsNotNone(parse_timestamp(None).tzinfo)

    def test_format_time_naive(self):
        self.assertEqual(format_time(datetime(2024, 1, 1, 7, 5, 9)), "07:05:09")


if __name__ == '__main__':
    unittest.main()
