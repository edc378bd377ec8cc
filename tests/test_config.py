"""Tests for the YAML configuration layer."""

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import yaml

from prayerboard.core.config import Config, _mask


class ConfigTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)
        self.path = self.dir / "config.yaml"

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, data):
        self.path.write_text(yaml.safe_dump(data))


class TestConfig(ConfigTestCase):
    def test_creates_default_file(self):
        config = Config(config_path=str(self.path))
        self.assertTrue(self.path.exists())
        self.assertEqual(config.get("timezone"), "Europe/London")
        self.assertEqual(config.get("push.batch_size"), 1000)
        self.assertEqual(config.get("registry.backend"), "sql")

    def test_dotted_get_defaults(self):
        self.write({"api": {"port": 9000}, "cron": {"secret": None}})
        config = Config(config_path=str(self.path))
        self.assertEqual(config.get("api.port"), 9000)
        self.assertEqual(config.get("api.host", "127.0.0.1"), "127.0.0.1")
        self.assertEqual(config.get("cron.secret", "fallback"), "fallback")
        self.assertIsNone(config.get("api.port.deeper"))

    @patch.dict(os.environ, {"PB_TEST_SECRET": "from-env"})
    def test_env_substitution(self):
        self.write({"cron": {"secret": "${PB_TEST_SECRET}"}, "push": {"vapid_subject": "$PB_TEST_SECRET"},
                    "list": ["${PB_TEST_SECRET}", "plain"]})
        config = Config(config_path=str(self.path))
        self.assertEqual(config.get("cron.secret"), "from-env")
        self.assertEqual(config.get("push.vapid_subject"), "from-env")
        self.assertEqual(config.data["list"], ["from-env", "plain"])

    def test_unset_env_var_is_none(self):
        os.environ.pop("PB_TEST_UNSET", None)
        self.write({"push": {"vapid_private_key": "${PB_TEST_UNSET}"}})
        config = Config(config_path=str(self.path))
        self.assertIsNone(config.get("push.vapid_private_key"))

    def test_dotenv_does_not_override_environment(self):
        (self.dir / ".env").write_text("PB_DOTENV_NEW=one\nPB_DOTENV_SET='two'\n# comment\n")
        with patch.dict(os.environ, {"PB_DOTENV_SET": "existing"}):
            os.environ.pop("PB_DOTENV_NEW", None)
            Config(config_path=str(self.path))
            self.assertEqual(os.environ["PB_DOTENV_NEW"], "one")
            self.assertEqual(os.environ["PB_DOTENV_SET"], "existing")
            os.environ.pop("PB_DOTENV_NEW", None)

    def test_invalid_root_falls_back_to_defaults(self):
        self.path.write_text("- just\n- a list\n")
        config = Config(config_path=str(self.path))
        self.assertEqual(config.get("app_name"), "MWHS")

    def test_reload_keeps_previous_on_error_and_notifies(self):
        self.write({"timezone": "Asia/Karachi"})
        config = Config(config_path=str(self.path))
        callback = MagicMock()
        failing = MagicMock(side_effect=RuntimeError("listener broke"))
        config.register_change_callback(failing)
        config.register_change_callback(callback)

        self.write({"timezone": "Europe/Paris"})
        config.reload()
        self.assertEqual(config.get("timezone"), "Europe/Paris")
        callback.assert_called_once()

        self.path.write_text("key: [unclosed")
        config.reload()
        self.assertEqual(config.get("timezone"), "Europe/Paris")

    def test_mask(self):
        self.assertEqual(_mask("push.vapid_private_key", "abc"), "***")
        self.assertEqual(_mask("cron.secret", "abc"), "***")
        self.assertEqual(_mask("api.port", 8765), 8765)


if __name__ == "__main__":
    unittest.main()
