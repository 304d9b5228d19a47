from __future__ import annotations
from pathlib import Path
import fcntl
import os
from typing import Any, Dict
import yaml

from modguard.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path(os.getenv("MODGUARD_CONFIG", "./config/app_config.yml")).resolve()

DEFAULT_COMMAND_PREFIX = "!"
DEFAULT_DATABASE_PATH = "./data/modguard.db"
DEFAULT_EXPIRY_REASON = "Timed action expired."
DEFAULT_RESPONSE_MESSAGE = "Your message was removed because it contained a banned word."


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml`` and exposes
    dictionary-like access helpers plus typed shortcuts for the settings the
    bot reads at startup. Uses fcntl file locks for safe concurrent access
    across processes.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            logger.warning("[APP CONFIGURATION] Config file %s not found, using defaults.", self.config_path)
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    def _section(self, name: str) -> Dict[str, Any]:
        value = self._data.get(name, {})
        return value if isinstance(value, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping.

        The returned dict is the internal cache (shallow reference). Callers
        should not mutate it.
        """
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def command_prefix(self) -> str:
        """Prefix that marks a message as a command, besides mentioning the bot."""
        value = self._section("bot").get("command_prefix", DEFAULT_COMMAND_PREFIX)
        return str(value or DEFAULT_COMMAND_PREFIX)

    @property
    def database_path(self) -> Path:
        """Location of the SQLite database file."""
        value = self._section("database").get("path") or DEFAULT_DATABASE_PATH
        return Path(str(value)).resolve()

    @property
    def expiry_reason(self) -> str:
        """Reason recorded on the unmute/unban logged when a timed action expires."""
        value = self._section("moderation").get("expiry_reason") or DEFAULT_EXPIRY_REASON
        return str(value)

    @property
    def default_response_message(self) -> str:
        """DM sent to a user whose message matched the blacklist, unless the guild set its own."""
        value = self._section("message_checker").get("default_response_message") or DEFAULT_RESPONSE_MESSAGE
        return str(value)


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
