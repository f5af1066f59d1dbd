from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict
import yaml

from mutekeeper.datatypes.discord_datatypes import RoleID
from mutekeeper.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

DEFAULT_DATABASE_PATH = "./data/app.db"
DEFAULT_MUTE_SECONDS = 3600
DEFAULT_RESTORE_REASON = "Mute expired."
DEFAULT_REJOIN_REASON = "Muted member rejoined."


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    Caches the contents of ``./config/app_config.yml`` and exposes typed
    shortcuts for the sanction engine. A missing or unreadable file is logged
    and treated as empty so every property falls back to its default.
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
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            if data is not None:
                logger.error("[APP CONFIGURATION] Config %s is not a mapping; ignoring it.", self.config_path)
            return {}
        return data

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Re-read the YAML file, replace the cache and return the loaded mapping."""
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def database_path(self) -> Path:
        """Location of the SQLite file holding active mutes."""
        raw = self._section("database").get("path") or DEFAULT_DATABASE_PATH
        return Path(str(raw)).resolve()

    @property
    def mute_role_id(self) -> RoleID | None:
        """The guild's mute role, or None when not configured."""
        raw = self._section("mute").get("role_id")
        if not raw:
            return None
        try:
            return RoleID(raw)
        except ValueError:
            logger.error("[APP CONFIGURATION] Invalid mute.role_id %r", raw)
            return None

    @property
    def default_mute_seconds(self) -> int:
        """Mute length used when a moderator does not give one."""
        raw = self._section("mute").get("default_duration_seconds", DEFAULT_MUTE_SECONDS)
        try:
            return max(1, int(raw))
        except (TypeError, ValueError):
            return DEFAULT_MUTE_SECONDS

    @property
    def restore_reason(self) -> str:
        return str(self._section("mute").get("restore_reason") or DEFAULT_RESTORE_REASON)

    @property
    def rejoin_reason(self) -> str:
        return str(self._section("mute").get("rejoin_reason") or DEFAULT_REJOIN_REASON)


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
