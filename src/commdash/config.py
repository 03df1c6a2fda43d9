"""
commdash Configuration.

YAML-based configuration:
- Database location and refresh timeout
- Per-source settings (endpoint, token, command, ...)
- Enable/disable state

Example YAML::

    database: ~/.config/commdash/db/commdash.db
    fetch_timeout: 30
    log_level: INFO
    sources:
      slack:
        token: "xoxb-..."
      linear:
        enabled: false
      calendar:
        command: "python3 scripts/fetch_calendar.py"
        working_directory: ~/calendar
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from commdash.errors import ConfigError

logger = logging.getLogger(__name__)

SOURCE_NAMES = ("slack", "gmail", "linear", "github", "calendar")


def config_home() -> Path:
    """Return ``$XDG_CONFIG_HOME/commdash`` (``~/.config/commdash`` by default)."""
    base = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    return Path(base) / "commdash"


@dataclass(frozen=True)
class ConfigPaths:
    """Directory layout under the config home."""

    root: Path

    @classmethod
    def default(cls) -> "ConfigPaths":
        return cls(config_home())

    @property
    def config_file(self) -> Path:
        return self.root / "config.yaml"

    @property
    def db_dir(self) -> Path:
        return self.root / "db"

    @property
    def models_dir(self) -> Path:
        return self.root / "models"

    @property
    def cache_dir(self) -> Path:
        return self.root / "cache"

    @property
    def logs_dir(self) -> Path:
        return self.root / "logs"

    @property
    def database(self) -> Path:
        return self.db_dir / "commdash.db"

    def ensure(self) -> "ConfigPaths":
        """Create every directory of the layout."""
        for directory in (self.root, self.db_dir, self.models_dir, self.cache_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)
        return self


@dataclass
class SourceConfig:
    """Configuration for a single source."""

    enabled: bool = True
    url: Optional[str] = None
    token: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    command: Optional[str] = None
    working_directory: Optional[str] = None
    environment: Dict[str, str] = field(default_factory=dict)
    query: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"enabled": self.enabled}
        for key in ("url", "token", "command", "working_directory", "query"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.headers:
            data["headers"] = dict(self.headers)
        if self.environment:
            data["environment"] = dict(self.environment)
        return data

    @classmethod
    def from_dict(cls, name: str, data: Any) -> "SourceConfig":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"sources.{name} must be a mapping")
        unknown = set(data) - {
            "enabled", "url", "token", "headers", "command",
            "working_directory", "environment", "query",
        }
        if unknown:
            raise ConfigError(f"sources.{name}: unknown keys {sorted(unknown)}")

        enabled = data.get("enabled", True)
        if not isinstance(enabled, bool):
            raise ConfigError(f"sources.{name}.enabled must be true or false")

        def text(key: str) -> Optional[str]:
            value = data.get(key)
            if value is None:
                return None
            if not isinstance(value, str):
                raise ConfigError(f"sources.{name}.{key} must be a string")
            return value

        def mapping(key: str) -> Dict[str, str]:
            value = data.get(key) or {}
            if not isinstance(value, dict):
                raise ConfigError(f"sources.{name}.{key} must be a mapping")
            return {str(k): str(v) for k, v in value.items()}

        working_directory = text("working_directory")
        return cls(
            enabled=enabled,
            url=text("url"),
            token=text("token"),
            headers=mapping("headers"),
            command=text("command"),
            working_directory=os.path.expanduser(working_directory) if working_directory else None,
            environment=mapping("environment"),
            query=text("query"),
        )


@dataclass
class CommdashConfig:
    """Top-level configuration."""

    database: str = ""
    fetch_timeout: float = 30.0
    log_level: str = "INFO"
    sources: Dict[str, SourceConfig] = field(default_factory=dict)

    @classmethod
    def get_default_path(cls) -> Path:
        return ConfigPaths.default().config_file

    @property
    def database_path(self) -> str:
        """Configured database, or the default file under the config home."""
        if not self.database:
            return str(ConfigPaths.default().database)
        if self.database == ":memory:":
            return self.database
        return os.path.expanduser(self.database)

    def source(self, name: str) -> SourceConfig:
        """Settings for *name*; unconfigured sources get defaults."""
        return self.sources.get(name) or SourceConfig()

    def is_enabled(self, name: str) -> bool:
        return self.source(name).enabled

    def enabled_sources(self) -> List[str]:
        return [name for name in SOURCE_NAMES if self.is_enabled(name)]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "fetch_timeout": self.fetch_timeout,
            "log_level": self.log_level,
            "sources": {name: cfg.to_dict() for name, cfg in self.sources.items()},
        }
        if self.database:
            data["database"] = self.database
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "CommdashConfig":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError("Config root must be a mapping")

        database = data.get("database") or ""
        if not isinstance(database, str):
            raise ConfigError("database must be a string")

        timeout = data.get("fetch_timeout", 30.0)
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigError("fetch_timeout must be a positive number")

        log_level = data.get("log_level", "INFO")
        if not isinstance(log_level, str):
            raise ConfigError("log_level must be a string")

        raw_sources = data.get("sources") or {}
        if not isinstance(raw_sources, dict):
            raise ConfigError("sources must be a mapping")
        unknown = set(raw_sources) - set(SOURCE_NAMES)
        if unknown:
            raise ConfigError(f"Unknown sources: {sorted(unknown)}")

        return cls(
            database=database,
            fetch_timeout=float(timeout),
            log_level=log_level.upper(),
            sources={name: SourceConfig.from_dict(name, cfg) for name, cfg in raw_sources.items()},
        )

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "CommdashConfig":
        """
        Load configuration from a YAML file.

        A missing file yields the defaults.

        Raises:
            ConfigError: unreadable file, invalid YAML or invalid values.
        """
        path = Path(path) if path is not None else cls.get_default_path()

        if not path.exists():
            logger.debug("Config file not found: %s", path)
            return cls()

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as exc:
            raise ConfigError(f"Cannot read {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

        config = cls.from_dict(data)
        logger.debug("Loaded config from %s", path)
        return config

    def save(self, path: Optional[Path] = None) -> Path:
        """Write the configuration as YAML and return the path written."""
        path = Path(path) if path is not None else self.get_default_path()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
        except OSError as exc:
            raise ConfigError(f"Cannot write {path}: {exc}") from exc
        logger.info("Saved config to %s", path)
        return path
