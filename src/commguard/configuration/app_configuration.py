from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict
import yaml

from commguard.configuration.oracle_settings import OracleSettings
from commguard.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of ``./config/app_config.yml``, exposes
    dictionary-like access helpers and typed shortcuts for every section
    the moderation core reads. Uses fcntl file locks for safe concurrent
    access across processes.
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
                data = yaml.safe_load(f)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
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

        The returned dict is the internal cache. Callers should not mutate it.
        """
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def database_path(self) -> Path:
        """Location of the SQLite database file. Default ``./data/commguard.db``."""
        return Path(self._section("database").get("path") or "./data/commguard.db").resolve()

    @property
    def oracle_settings(self) -> OracleSettings:
        """Return the scoring oracle settings wrapped in an OracleSettings helper."""
        return OracleSettings(self._section("oracle"))

    @property
    def health_recompute_interval(self) -> float:
        """Seconds between periodic health score recomputations. Default 900."""
        return float(self._section("health").get("recompute_interval_seconds", 900.0))

    @property
    def active_window_days(self) -> int:
        """Members active within this many days count as active. Default 7."""
        return int(self._section("health").get("active_window_days", 7))

    @property
    def default_page_size(self) -> int:
        return int(self._section("queue").get("default_page_size", 50))

    @property
    def max_page_size(self) -> int:
        return int(self._section("queue").get("max_page_size", 200))

    @property
    def rules_cache_ttl(self) -> int:
        """Seconds an organization's active rule set stays cached. Default 60."""
        return int(self._section("rules").get("cache_ttl_seconds", 60))


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
