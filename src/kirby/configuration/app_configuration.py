from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict, Optional
import yaml

from kirby.datatypes.welcome_datatypes import (
    DEFAULT_IMAGE_KEY,
    DEFAULT_MESSAGE_TEMPLATE,
    WelcomeDefaults,
)
from kirby.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

DEFAULT_DATABASE_PATH = Path("./data/kirby.db")
DEFAULT_POOL_SIZE = 4
DEFAULT_ACQUIRE_TIMEOUT = 5.0
DEFAULT_ASSETS_DIR = Path("./assets")
DEFAULT_RESET_PROMPT_SECONDS = 5.0


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of ``./config/app_config.yml`` and exposes
    typed properties for the database, asset and welcome sections. Missing
    keys, or a missing file, fall back to built-in defaults.
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
                logger.error("[APP CONFIGURATION] Config %s is not a mapping, ignoring it", self.config_path)
            return {}
        return data

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Re-read the YAML file, replace the cache and return the new mapping."""
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """The cached configuration mapping. Callers should not mutate it."""
        return self._data

    # --------------------------
    # Database
    # --------------------------
    @property
    def database_path(self) -> Path:
        return Path(self._section("database").get("path") or DEFAULT_DATABASE_PATH)

    @property
    def pool_size(self) -> int:
        """Number of pooled SQLite connections, at least one."""
        return max(1, int(self._section("database").get("pool_size", DEFAULT_POOL_SIZE)))

    @property
    def acquire_timeout(self) -> float:
        """Seconds to wait for a free pooled connection before giving up."""
        return float(self._section("database").get("acquire_timeout_seconds", DEFAULT_ACQUIRE_TIMEOUT))

    # --------------------------
    # Assets
    # --------------------------
    @property
    def assets_dir(self) -> Path:
        return Path(self._section("assets").get("directory") or DEFAULT_ASSETS_DIR)

    # --------------------------
    # Welcome
    # --------------------------
    @property
    def welcome_defaults(self) -> WelcomeDefaults:
        """Defaults applied when a guild record is created or reset."""
        welcome = self._section("welcome")
        return WelcomeDefaults(
            message_template=str(welcome.get("default_template") or DEFAULT_MESSAGE_TEMPLATE),
            image_key=str(welcome.get("default_image") or DEFAULT_IMAGE_KEY),
        )

    @property
    def font_family(self) -> Optional[str]:
        """Font family drawn on welcome images; None picks the first loaded."""
        value = self._section("welcome").get("font_family")
        return str(value) if value else None

    @property
    def reset_prompt_seconds(self) -> float:
        """How long the reset confirmation prompt stays up."""
        return float(self._section("welcome").get("reset_prompt_seconds", DEFAULT_RESET_PROMPT_SECONDS))


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
