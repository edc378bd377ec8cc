"""Tests for the text display helpers."""

import unittest

from prayerboard.plugins.prayer.display import (
    format_clock,
    format_gregorian,
    format_hijri,
    format_time,
    render_status,
    today_rows,
)
from prayerboard.plugins.prayer.evaluator import evaluate
from prayer_fixtures import TZ, day, london


class TestFormatting(unittest.TestCase):
    def test_format_time(self):
        self.assertEqual(format_time("4.58"), "04:58")
        self.assertEqual(format_time(None), "-")
        self.assertEqual(format_time("tbc"), "-")

    def test_clock_and_dates(self):
        now = london(2024, 3, 1, 9, 5, 7)
        self.assertEqual(format_clock(now, TZ), "09:05:07")
        self.assertEqual(format_gregorian(now, TZ), "Fri 1 Mar 2024")

    def test_hijri(self):
        # 1 March 2024 is 20 Sha'ban 1445
        text = format_hijri(london(2024, 3, 1, 12, 0), TZ)
        self.assertTrue(text.startswith("20 "))
        self.assertTrue(text.endswith("1445 AH"))


class TestTodayRows(unittest.TestCase):
    def test_current_and_next_flags(self):
        today = day("2024-03-01")
        rows = today_rows(today, evaluate(today, london(2024, 3, 1, 13, 40), TZ))
        by_key = {row["key"]: row for row in rows}
        self.assertTrue(by_key["dhuhr"]["current"])
        self.assertTrue(by_key["asr"]["next"])
        self.assertEqual(by_key["isha"]["iqamah"], "21:15")
        self.assertEqual(sum(row["next"] for row in rows), 1)

    def test_next_flag_suppressed_for_tomorrow(self):
        today = day("2024-03-01")
        result = evaluate(today, london(2024, 3, 1, 23, 0), TZ, tomorrow=day("2024-03-02"))
        self.assertFalse(any(row["next"] for row in today_rows(today, result)))

    def test_render_status(self):
        today = day("2024-03-01")
        text = render_status(today, evaluate(today, london(2024, 3, 1, 13, 40), TZ), london(2024, 3, 1, 13, 40), TZ)
        self.assertIn("Next prayer: Asr at 15:00 in 01:20:00", text)
        self.assertIn("Jummah   13:00", text)

    def test_render_without_schedule(self):
        now = london(2024, 4, 1, 12, 0)
        self.assertIn("No schedule for today.", render_status(None, evaluate(None, now, TZ), now, TZ))


if __name__ == "__main__":
    unittest.main()
