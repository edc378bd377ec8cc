import yaml
from pathlib import Path
import os
from typing import Any, Dict, Optional, List, Callable
import logging
import time
import re
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler, FileModifiedEvent

_MISSING = object()


class ConfigChangeHandler(FileSystemEventHandler):
    def __init__(self, config):
        self.config = config
        self.last_modified = 0
        self.cooldown = 1.0  # seconds

    def on_modified(self, event):
        if not isinstance(event, FileModifiedEvent):
            return

        current_time = time.time()
        if current_time - self.last_modified < self.cooldown:
            return

        if Path(event.src_path).resolve() == self.config.config_file:
            try:
                self.last_modified = current_time
                self.config.reload()
            except Exception as e:
                logging.error(f"Error handling config change: {e}")


class Config:
    def __init__(self, config_path: Optional[str] = None, watch: bool = False):
        logging.debug("Initializing Config class")

        self.change_callbacks: List[Callable] = []
        self._loading = False  # Lock to prevent recursive reloading
        self.observer = None

        if config_path:
            self.config_file = Path(config_path).resolve()
            self.config_dir = self.config_file.parent
        else:
            self.config_dir = Path.cwd()
            self.config_file = self.config_dir / "config.yaml"

        logging.debug(f"Using config file: {self.config_file}")

        self._load_env_file()

        self._ensure_config_exists()
        self._load_config()

        if watch:
            self.observer = Observer()
            handler = ConfigChangeHandler(self)
            logging.info(f"Path monitored for reloading: {self.config_dir}")
            self.observer.schedule(handler, str(self.config_dir), recursive=False)
            self.observer.start()

    def register_change_callback(self, callback: Callable) -> None:
        """Register a callback to be called when config changes"""
        self.change_callbacks.append(callback)

    def get(self, path: str, default: Any = None) -> Any:
        """Dotted-path lookup, e.g. config.get("push.batch_size", 1000)."""
        node: Any = self.data
        for part in path.split("."):
            if not isinstance(node, dict):
                return default
            node = node.get(part, _MISSING)
            if node is _MISSING:
                return default
        return default if node is None else node

    def reload(self) -> None:
        """Reload config and notify listeners"""
        if self._loading:
            return

        self._loading = True
        try:
            logging.info("Config file change detected - reloading configuration")

            # Wait briefly for file to be fully written
            time.sleep(0.1)

            old_config = self.data.copy() if hasattr(self, 'data') else {}
            self._load_config()

            self._log_config_changes(old_config, self.data)

            for callback in self.change_callbacks:
                try:
                    callback(self.data)
                except Exception as e:
                    logging.error(f"Error in config change callback: {e}")

        except Exception as e:
            logging.error(f"Error reloading config: {e}")
            logging.exception(e)
        finally:
            self._loading = False

    def _log_config_changes(self, old_config: Dict, new_config: Dict) -> None:
        """Log the differences between old and new configs"""
        def compare_dict(path: str, dict1: Dict, dict2: Dict) -> None:
            all_keys = set(dict1.keys()) | set(dict2.keys())
            for key in all_keys:
                current_path = f"{path}.{key}" if path else key

                if key in dict1 and key in dict2:
                    if isinstance(dict1[key], dict) and isinstance(dict2[key], dict):
                        compare_dict(current_path, dict1[key], dict2[key])
                    elif dict1[key] != dict2[key]:
                        logging.info(f"Config changed: {current_path}: {_mask(current_path, dict1[key])} -> {_mask(current_path, dict2[key])}")

                elif key in dict1:
                    logging.info(f"Config removed: {current_path}")

                else:
                    logging.info(f"Config added: {current_path}: {_mask(current_path, dict2[key])}")

        logging.info("=== Configuration Changes Detected ===")
        compare_dict("", old_config, new_config)
        logging.info("=== End of Configuration Changes ===")

    def cleanup(self) -> None:
        """Stop the file observer"""
        if self.observer is not None:
            self.observer.stop()
            self.observer.join()
            self.observer = None

    def _ensure_config_exists(self) -> None:
        """Create default config if it doesn't exist"""
        if not self.config_dir.exists():
            logging.info(f"Creating config directory: {self.config_dir}")
            self.config_dir.mkdir(parents=True)

        if not self.config_file.exists():
            logging.info(f"Creating default config file: {self.config_file}")
            self.config_file.write_text(yaml.dump(self._get_default_config(), sort_keys=False))

    def _get_default_config(self) -> Dict[str, Any]:
        return {
            "app_name": "MWHS",
            "timezone": "Europe/London",
            "timetable": {
                "path": str(self.config_dir / "timetable.json"),
            },
            "database": {
                "path": "~/.prayerboard/prayerboard.db",
            },
            "registry": {
                "backend": "sql",
            },
            "push": {
                "vapid_subject": "${VAPID_SUBJECT}",
                "vapid_public_key": "${VAPID_PUBLIC_KEY}",
                "vapid_private_key": "${VAPID_PRIVATE_KEY}",
                "ttl": 300,
                "batch_size": 1000,
                "max_workers": 32,
            },
            "cron": {
                "secret": "${CRON_SECRET}",
            },
            "scheduler": {
                "enabled": False,
            },
            "api": {
                "host": "127.0.0.1",
                "port": 8765,
            },
            "alerts": {
                "mode_file": "~/.prayerboard/alert_mode.json",
                "audio_delay": 0.8,
                "clips": {
                    "fajr": "audio/adhan_1.mp3",
                    "others": ["audio/adhan_1.mp3", "audio/adhan_2.mp3"],
                },
            },
            "notifications": {
                "enabled": True,
            },
            "client": {
                "server_url": "http://127.0.0.1:8765",
                "subscription": None,
            },
            "logging": {
                "level": "INFO",
                "file": str(self.config_dir / "prayerboard.log"),
            },
        }

    def _load_env_file(self) -> None:
        """Load environment variables from .env file"""
        env_files = [
            self.config_dir / ".env",
            self.config_dir.parent / ".env",
            Path.cwd() / ".env"
        ]

        env_file = None
        for path in env_files:
            if path.exists():
                env_file = path
                break

        if not env_file:
            logging.debug("No .env file found, skipping environment variable loading")
            return

        logging.info(f"Loading environment variables from: {env_file}")
        try:
            with open(env_file, 'r') as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith('#'):
                        continue

                    match = re.match(r'^([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.*)$', line)
                    if match:
                        key, value = match.groups()
                        value = value.strip('"').strip("'")
                        # Existing environment wins
                        if key not in os.environ:
                            os.environ[key] = value
                            logging.debug(f"Loaded env var: {key}")
        except Exception as e:
            logging.warning(f"Error loading .env file: {e}")

    def _substitute_env_vars(self, data: Any) -> Any:
        """Recursively substitute environment variables in config data"""
        if isinstance(data, dict):
            return {key: self._substitute_env_vars(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [self._substitute_env_vars(item) for item in data]
        elif isinstance(data, str):
            # Format: ${VAR_NAME} or $VAR_NAME; unset variables resolve to None
            if data.startswith('${') and data.endswith('}'):
                return os.environ.get(data[2:-1])
            elif data.startswith('$') and len(data) > 1:
                return os.environ.get(data[1:])
            return data
        else:
            return data

    def _load_config(self) -> None:
        """Load configuration from file"""
        try:
            logging.debug(f"Loading config from: {self.config_file}")
            with open(self.config_file) as f:
                new_data = yaml.safe_load(f)

            if not isinstance(new_data, dict):
                raise ValueError("Invalid config format: root must be a dictionary")

            self.data = self._substitute_env_vars(new_data)

            if "logging" in self.data and self.data["logging"].get("file"):
                self.data["logging"]["file"] = os.path.expanduser(self.data["logging"]["file"])

        except Exception as e:
            logging.error(f"Error loading config: {e}")
            if hasattr(self, 'data'):
                logging.info("Keeping previous configuration")
            else:
                logging.info("Using default configuration")
                self.data = self._substitute_env_vars(self._get_default_config())


_SECRET_PARTS = ("secret", "private", "password", "token")


def _mask(path: str, value: Any) -> Any:
    """Hide secret values in change logs."""
    if any(part in path.lower() for part in _SECRET_PARTS):
        return "***"
    return value
