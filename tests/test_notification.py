"""Tests for how received push messages are displayed and clicked."""

import unittest
from types import SimpleNamespace

from prayerboard.plugins.push.notification import build_payload, notification_from_payload, resolve_click


class TestNotificationFromPayload(unittest.TestCase):
    def test_fields(self):
        shown = notification_from_payload(
            {"title": "Adhan — Isha", "body": "It's time for Isha.", "data": {"url": "/today"}},
            app_name="MWHS", icon="/icon.png",
        )
        self.assertEqual(shown, {"title": "Adhan — Isha", "body": "It's time for Isha.",
                                 "icon": "/icon.png", "url": "/today"})

    def test_prayer_payload_display(self):
        shown = notification_from_payload(build_payload(["asr"], url="/today"))
        self.assertEqual(shown["title"], "Adhan — Asr")
        self.assertEqual(shown["body"], "It's time for Asr.")
        self.assertEqual(shown["url"], "/today")

    def test_defaults(self):
        shown = notification_from_payload(None, app_name="MWHS")
        self.assertEqual(shown["title"], "MWHS")
        self.assertEqual(shown["body"], "")
        self.assertEqual(shown["url"], "/")


class TestResolveClick(unittest.TestCase):
    def test_focuses_existing_window(self):
        other = SimpleNamespace(url="https://example.com/")
        ours = SimpleNamespace(url="https://mwhs.example.org/settings")
        action, target = resolve_click([other, ours], "https://mwhs.example.org", {"data": {"url": "/"}})
        self.assertEqual(action, "focus")
        self.assertIs(target, ours)

    def test_opens_payload_route(self):
        action, target = resolve_click([], "https://mwhs.example.org", {"data": {"url": "/today"}})
        self.assertEqual((action, target), ("open", "https://mwhs.example.org/today"))

    def test_opens_root_by_default(self):
        self.assertEqual(resolve_click([], "https://mwhs.example.org", {}), ("open", "https://mwhs.example.org/"))


if __name__ == "__main__":
    unittest.main()
