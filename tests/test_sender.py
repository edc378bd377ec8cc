"""Tests for the Web Push sender."""

import json
import unittest
from unittest.mock import MagicMock, patch

from pywebpush import WebPushException

from prayerboard.core.errors import PushConfigError
from prayerboard.plugins.push.sender import DeliveryOutcome, PushSender, VapidConfig, create_sender
from prayer_fixtures import subscription

CONFIG = {
    "push": {
        "vapid_subject": "mailto:admin@example.org",
        "vapid_public_key": "BPublicKey",
        "vapid_private_key": "PrivateKey",
        "ttl": 120,
    }
}


def push_error(status):
    response = MagicMock()
    response.status_code = status
    return WebPushException(f"Push failed: {status}", response=response)


class TestVapidConfig(unittest.TestCase):
    def test_from_config(self):
        vapid = VapidConfig.from_config(CONFIG)
        self.assertEqual(vapid.subject, "mailto:admin@example.org")
        self.assertEqual(vapid.ttl, 120)

    def test_missing_keys(self):
        with self.assertRaises(PushConfigError) as ctx:
            VapidConfig.from_config({"push": {"vapid_subject": "mailto:a@b.c", "vapid_private_key": None}})
        self.assertIn("vapid_public_key", str(ctx.exception))
        self.assertIn("vapid_private_key", str(ctx.exception))

    def test_no_push_section(self):
        with self.assertRaises(PushConfigError):
            create_sender({})


class TestPushSender(unittest.TestCase):
    def setUp(self):
        self.sender = create_sender(CONFIG)
        self.payload = {"title": "Adhan — Asr", "body": "It's time for Asr.", "data": {"url": "/"}}

    @patch("prayerboard.plugins.push.sender.webpush")
    def test_success(self, mock_webpush):
        outcome = self.sender.send(subscription(1), self.payload)
        self.assertTrue(outcome.ok)
        self.assertFalse(outcome.gone)
        kwargs = mock_webpush.call_args.kwargs
        self.assertEqual(json.loads(kwargs["data"]), self.payload)
        self.assertEqual(kwargs["vapid_claims"], {"sub": "mailto:admin@example.org"})
        self.assertEqual(kwargs["vapid_private_key"], "PrivateKey")
        self.assertEqual(kwargs["ttl"], 120)

    @patch("prayerboard.plugins.push.sender.webpush")
    def test_gone_endpoints(self, mock_webpush):
        for status in (404, 410):
            with self.subTest(status=status):
                mock_webpush.side_effect = push_error(status)
                outcome = self.sender.send(subscription(1), self.payload)
                self.assertFalse(outcome.ok)
                self.assertEqual(outcome.status, status)
                self.assertTrue(outcome.gone)

    @patch("prayerboard.plugins.push.sender.webpush")
    def test_transient_failure_is_not_gone(self, mock_webpush):
        mock_webpush.side_effect = push_error(503)
        outcome = self.sender.send(subscription(1), self.payload)
        self.assertFalse(outcome.ok)
        self.assertFalse(outcome.gone)

    @patch("prayerboard.plugins.push.sender.webpush")
    def test_other_errors_become_outcomes(self, mock_webpush):
        mock_webpush.side_effect = ValueError("bad key")
        outcome = self.sender.send(subscription(1), self.payload)
        self.assertEqual(outcome, DeliveryOutcome(endpoint=subscription(1)["endpoint"], ok=False, error="bad key"))

    def test_instance(self):
        self.assertIsInstance(self.sender, PushSender)


if __name__ == "__main__":
    unittest.main()
