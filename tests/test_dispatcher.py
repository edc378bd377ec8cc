"""Tests for the minute matcher and dispatcher."""

import os
import tempfile
import unittest
from datetime import datetime
from unittest.mock import MagicMock

import pytz

from prayerboard.core.errors import TimetableError, UnauthorizedError
from prayerboard.plugins.prayer.timetable import TimetableSource
from prayerboard.plugins.push.dispatcher import (
    authorize,
    broadcast,
    build_payload,
    chunk,
    dispatch,
    match_minute,
    run_minute_job,
)
from prayerboard.plugins.push.registry import InMemorySubscriptionRegistry
from prayerboard.plugins.push.sender import DeliveryOutcome
from prayer_fixtures import TZ, day, london, subscription, write_timetable


class FakeSender:
    """Records sends; endpoints listed in `statuses` fail with that status."""

    def __init__(self, statuses=None):
        self.statuses = statuses or {}
        self.sent = []

    def send(self, sub, payload):
        self.sent.append((sub["endpoint"], payload))
        status = self.statuses.get(sub["endpoint"])
        if status is None:
            return DeliveryOutcome(endpoint=sub["endpoint"], ok=True, status=201)
        return DeliveryOutcome(endpoint=sub["endpoint"], ok=False, status=status, error=f"HTTP {status}")


class TestAuthorize(unittest.TestCase):
    def test_valid(self):
        authorize("Bearer s3cret", "s3cret")

    def test_rejects(self):
        for header, secret in (
            (None, "s3cret"),
            ("Bearer wrong", "s3cret"),
            ("s3cret", "s3cret"),
            ("Bearer ", ""),
            ("Bearer None", None),
        ):
            with self.subTest(header=header, secret=secret):
                with self.assertRaises(UnauthorizedError):
                    authorize(header, secret)


class TestMatching(unittest.TestCase):
    def test_matches_current_minute(self):
        today = day("2024-03-01")
        self.assertEqual(match_minute(today, london(2024, 3, 1, 12, 15, 0), TZ), ["dhuhr"])
        self.assertEqual(match_minute(today, london(2024, 3, 1, 12, 15, 59), TZ), ["dhuhr"])
        self.assertEqual(match_minute(today, london(2024, 3, 1, 12, 16), TZ), [])

    def test_lenient_formats(self):
        saturday = day("2024-03-02")
        self.assertEqual(match_minute(saturday, london(2024, 3, 2, 4, 58), TZ), ["fajr"])
        self.assertEqual(match_minute(saturday, london(2024, 3, 2, 15, 1), TZ), ["asr"])

    def test_payload(self):
        self.assertEqual(build_payload(["dhuhr"]), {
            "title": "Adhan — Dhuhr",
            "body": "It's time for Dhuhr.",
            "data": {"url": "/"},
        })
        # Only the first match names the payload
        self.assertEqual(build_payload(["maghrib", "isha"])["title"], "Adhan — Maghrib")

    def test_chunk(self):
        self.assertEqual([list(c) for c in chunk(list(range(5)), 2)], [[0, 1], [2, 3], [4]])
        with self.assertRaises(ValueError):
            list(chunk([1], 0))


class TestDispatch(unittest.TestCase):
    def setUp(self):
        self.registry = InMemorySubscriptionRegistry()
        for n in range(1, 6):
            self.registry.add(subscription(n))

    def test_failures_are_isolated(self):
        gone = subscription(2)["endpoint"]
        flaky = subscription(4)["endpoint"]
        sender = FakeSender({gone: 410, flaky: 500})
        counts = dispatch(self.registry, sender, {"title": "t"}, batch_size=2, max_workers=4)
        self.assertEqual((counts.sent, counts.removed, counts.failed), (3, 1, 1))
        self.assertEqual(len(sender.sent), 5)
        self.assertNotIn(gone, self.registry.endpoints())
        self.assertIn(flaky, self.registry.endpoints())

    def test_sender_exception_is_contained(self):
        sender = MagicMock()
        sender.send.side_effect = RuntimeError("boom")
        counts = dispatch(self.registry, sender, {"title": "t"})
        self.assertEqual((counts.sent, counts.failed), (0, 5))
        self.assertEqual(len(self.registry), 5)

    def test_broadcast(self):
        sender = FakeSender()
        counts = broadcast(self.registry, sender, "Notice", "Eid prayer at 08:00", {"url": "/eid"})
        self.assertEqual(counts.sent, 5)
        self.assertEqual(sender.sent[0][1], {"title": "Notice", "body": "Eid prayer at 08:00", "data": {"url": "/eid"}})


class TestRunMinuteJob(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmp.name, "timetable.json")
        write_timetable(self.path)
        self.source = TimetableSource(self.path)
        self.registry = InMemorySubscriptionRegistry()
        self.registry.add(subscription(1))
        self.registry.add(subscription(2))

    def tearDown(self):
        self.tmp.cleanup()

    def test_prayer_minute_sends_to_all(self):
        sender = FakeSender()
        report = run_minute_job(self.source, self.registry, sender, tz=TZ, now=london(2024, 3, 1, 12, 15, 30))
        self.assertEqual(report.to_dict(), {
            "ok": True, "sent": 2, "removed": 0, "matched": ["dhuhr"],
            "at": "12:15", "todayISO": "2024-03-01",
        })
        self.assertEqual(sender.sent[0][1]["title"], "Adhan — Dhuhr")

    def test_gone_subscription_is_removed(self):
        sender = FakeSender({subscription(2)["endpoint"]: 410})
        report = run_minute_job(self.source, self.registry, sender, tz=TZ, now=london(2024, 3, 1, 12, 15))
        self.assertEqual((report.sent, report.removed), (1, 1))
        self.assertEqual(self.registry.endpoints(), [subscription(1)["endpoint"]])

    def test_repeated_calls_match_the_same_prayer(self):
        sender = FakeSender()
        first = run_minute_job(self.source, self.registry, sender, tz=TZ, now=london(2024, 3, 1, 12, 15, 1))
        second = run_minute_job(self.source, self.registry, sender, tz=TZ, now=london(2024, 3, 1, 12, 15, 40))
        self.assertEqual(first.matched, second.matched)

    def test_no_match(self):
        sender = FakeSender()
        report = run_minute_job(self.source, self.registry, sender, tz=TZ, now=london(2024, 3, 1, 12, 16))
        self.assertTrue(report.ok)
        self.assertEqual(report.matched, [])
        self.assertEqual(sender.sent, [])

    def test_no_subscriptions(self):
        report = run_minute_job(self.source, InMemorySubscriptionRegistry(), FakeSender(), tz=TZ,
                                now=london(2024, 3, 1, 12, 15))
        self.assertEqual(report.note, "no-subs")
        self.assertEqual(report.matched, ["dhuhr"])

    def test_no_entry_for_today(self):
        report = run_minute_job(self.source, self.registry, FakeSender(), tz=TZ, now=london(2024, 4, 1, 12, 15))
        self.assertFalse(report.ok)
        self.assertEqual(report.to_dict()["error"], "no-timetable-for-today")
        self.assertEqual(report.today_iso, "2024-04-01")

    def test_unreadable_timetable(self):
        os.remove(self.path)
        with self.assertRaises(TimetableError):
            run_minute_job(self.source, self.registry, FakeSender(), tz=TZ, now=london(2024, 3, 1, 12, 15))

    def test_unconfigured_sender(self):
        report = run_minute_job(self.source, self.registry, None, tz=TZ, now=london(2024, 3, 1, 12, 15))
        self.assertEqual(report.error, "push-not-configured")

    def test_zone_decides_the_date(self):
        # 00:30 UTC on 1 July is still 30 June in New York
        now = pytz.utc.localize(datetime(2024, 7, 1, 0, 30))
        report = run_minute_job(self.source, self.registry, FakeSender(), tz="America/New_York", now=now)
        self.assertEqual(report.today_iso, "2024-06-30")
        self.assertEqual(report.at, "20:30")


if __name__ == "__main__":
    unittest.main()
