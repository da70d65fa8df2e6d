"""Configuration management for synap using a YAML file."""

import copy
import os
from pathlib import Path
from typing import Any

import structlog
import yaml

from synap.errors import InvalidConfigKey, InvalidConfigValue
from synap.models import VALID_TYPES

logger = structlog.get_logger()

CONFIG_FILE_NAME = "config.yaml"
DATE_FORMATS = ("relative", "absolute", "locale")
# Keys where "null" or an empty string clears the value
NULLABLE_KEYS = ("editor", "dataDir")


def default_config_dir() -> Path:
    """Configuration directory: ``$SYNAP_DIR`` or ``~/.config/synap``."""
    override = os.environ.get("SYNAP_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "synap"


def default_config() -> dict[str, Any]:
    return {
        "defaultType": "idea",
        "defaultTags": [],
        "editor": os.environ.get("EDITOR") or "vi",
        "dateFormat": "relative",
        "dataDir": None,
    }


def validate_value(key: str, value: Any) -> str | None:
    """Return an error message if ``value`` is not acceptable for ``key``."""
    if key == "defaultType" and value not in VALID_TYPES:
        return f"Invalid defaultType: {value}. Valid types: {', '.join(VALID_TYPES)}"
    if key == "dateFormat" and value not in DATE_FORMATS:
        return f"Invalid dateFormat: {value}. Valid formats: {', '.join(DATE_FORMATS)}"
    if key == "defaultTags" and not (isinstance(value, list) and all(isinstance(t, str) for t in value)):
        return "defaultTags must be a list of strings"
    if key in NULLABLE_KEYS and value is not None and not isinstance(value, str):
        return f"{key} must be a string"
    return None


class Config:
    """Configuration manager using YAML file storage.

    Values missing from ``config.yaml`` take their defaults. Invalid stored
    values are replaced by defaults on load and reported in ``warnings``
    rather than raised, so a bad file never blocks the tool.
    """

    def __init__(self, config_dir: Path | str) -> None:
        """Initialize configuration manager.

        Args:
            config_dir: Directory holding ``config.yaml``
        """
        self.config_dir = Path(config_dir)
        self.config_file = self.config_dir / CONFIG_FILE_NAME
        self.warnings: list[str] = []
        self._config: dict[str, Any] = self._load()
        logger.debug("Config initialized", config_file=str(self.config_file))

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        logger.warning("Config problem", message=message)

    def _load(self) -> dict[str, Any]:
        """Load configuration from YAML file.

        Returns:
            Configuration dictionary with defaults filled in
        """
        config = default_config()
        if not self.config_file.exists():
            logger.debug("Config file does not exist, using defaults")
            return config

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                stored = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            self._warn(f"Could not read {self.config_file}: {e}. Using defaults")
            return config

        if not isinstance(stored, dict):
            self._warn(f"{self.config_file} is not a mapping. Using defaults")
            return config

        for key, value in stored.items():
            if key not in config:
                # Unknown keys are kept so newer files survive a round trip
                config[key] = value
                continue
            error = validate_value(key, value)
            if error:
                self._warn(f"{error}. Using default {config[key]!r}")
                continue
            config[key] = value

        logger.debug("Config loaded successfully", keys=list(stored.keys()))
        return config

    def _save(self) -> None:
        """Save configuration to YAML file."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        tmp = self.config_file.with_name(self.config_file.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            yaml.safe_dump(self._config, f, default_flow_style=False, sort_keys=False)
        os.replace(tmp, self.config_file)
        logger.debug("Config saved successfully")

    @staticmethod
    def _check_key(key: str) -> None:
        valid = list(default_config())
        if key not in valid:
            raise InvalidConfigKey(key, valid)

    @staticmethod
    def parse_value(key: str, value: Any) -> Any:
        """Convert a command-line string into the stored representation."""
        if not isinstance(value, str):
            return value
        if key == "defaultTags":
            return [t.strip() for t in value.split(",") if t.strip()]
        if key in NULLABLE_KEYS and value in ("null", ""):
            return None
        return value

    def get(self, key: str) -> Any:
        """Get a configuration value.

        Raises:
            InvalidConfigKey: If ``key`` is not a known setting
        """
        self._check_key(key)
        logger.debug("Getting config value", key=key)
        return copy.deepcopy(self._config[key])

    def set(self, key: str, value: Any) -> Any:
        """Validate, parse and store a configuration value.

        Returns:
            The stored value

        Raises:
            InvalidConfigKey: If ``key`` is not a known setting
            InvalidConfigValue: If the value is not valid for ``key``
        """
        self._check_key(key)
        parsed = self.parse_value(key, value)
        error = validate_value(key, parsed)
        if error:
            raise InvalidConfigValue(error)

        if key == "dataDir" and parsed is not None:
            Path(parsed).expanduser().mkdir(parents=True, exist_ok=True)

        logger.info("Setting config value", key=key)
        self._config[key] = parsed
        self._save()
        return parsed

    def unset(self, key: str) -> None:
        """Restore a single key to its default."""
        self._check_key(key)
        logger.info("Unsetting config value", key=key)
        self._config[key] = default_config()[key]
        self._save()

    def reset(self) -> dict[str, Any]:
        """Replace the whole file with defaults."""
        self._config = default_config()
        self._save()
        logger.info("Config reset to defaults")
        return self.list()

    @property
    def data_dir(self) -> Path:
        """Directory for entry data: ``dataDir`` (``~`` expanded) or the config directory."""
        value = self._config.get("dataDir")
        if value:
            return Path(value).expanduser()
        return self.config_dir

    @property
    def default_type(self) -> str:
        return self._config["defaultType"]

    @property
    def default_tags(self) -> list[str]:
        return list(self._config["defaultTags"])

    # Defined last: the method name shadows the builtin in the class body
    def list(self) -> dict[str, Any]:
        """All configuration settings, defaults included."""
        return copy.deepcopy(self._config)


def get_config(config_dir: Path | str | None = None) -> Config:
    """Get a configuration instance.

    Args:
        config_dir: Explicit directory, defaults to :func:`default_config_dir`

    Returns:
        Config instance
    """
    return Config(config_dir if config_dir is not None else default_config_dir())
