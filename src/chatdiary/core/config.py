"""
Layered configuration for chatdiary.

Sources, highest precedence first:
    1. Environment variables (CHATDIARY_SECTION__KEY)
    2. Config file (YAML or JSON)
    3. Built-in defaults

Storage paths that aren't set explicitly are derived from ``paths.data_dir``
after all sources are merged, so moving the data directory in a config file
or env var moves the database, flat store and backups with it.

Usage:
    config = Config(config_file="~/.chatdiary/config.yaml")

    config.get("paths.db_path")
    config.get("sync.interval_minutes")
    config.validated().sync.timeout
"""

from __future__ import annotations

import json
import os
from typing import TYPE_CHECKING, Any

import yaml

if TYPE_CHECKING:
    from .config_schema import ChatDiaryConfig

ENV_PREFIX = "CHATDIARY_"
DEFAULT_DATA_DIR = os.path.join("~", ".chatdiary-data")

# paths.<name> -> location relative to paths.data_dir
DERIVED_PATHS = {
    "db_path": "chatdiary.db",
    "flat_store_dir": "local",
    "backup_dir": "backups",
    "log_dir": "logs",
}

DEFAULTS: dict[str, Any] = {
    "storage": {"quota_bytes": None},
    "sync": {"interval_minutes": 30, "min_age_minutes": 60, "timeout": 30},
    "gist": {"api_base": "https://api.github.com"},
    "logging": {"level": "WARNING", "file": None},
}


def _merge(target: dict, source: dict) -> None:
    """Recursively merge source into target."""
    for key, value in source.items():
        if isinstance(target.get(key), dict) and isinstance(value, dict):
            _merge(target[key], value)
        else:
            target[key] = value


def _read_file(path: str) -> dict[str, Any]:
    ext = os.path.splitext(path)[1].lower()
    with open(path) as f:
        if ext in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        elif ext == ".json":
            data = json.load(f)
        else:
            return {}
    return data if isinstance(data, dict) else {}


class Config:
    """
    Merged configuration with dot-notation access.

    Env vars use double-underscore to denote nesting:
    CHATDIARY_SYNC__INTERVAL_MINUTES=15 -> config["sync"]["interval_minutes"] = "15"
    (values stay strings; :meth:`validated` coerces them).
    """

    def __init__(
        self,
        config_file: str | None = None,
        data_dir: str | None = None,
        env_prefix: str = ENV_PREFIX,
    ):
        """
        Args:
            config_file: Path to a YAML or JSON config file. A missing file is ignored.
            data_dir: Data directory; overrides the built-in default but not the file or env.
            env_prefix: Prefix for environment overrides; empty disables them.
        """
        self.config_file = os.path.expanduser(config_file) if config_file else None
        self.env_prefix = env_prefix or ""

        self.config_data: dict[str, Any] = json.loads(json.dumps(DEFAULTS))
        self.config_data["paths"] = {"data_dir": data_dir or DEFAULT_DATA_DIR}

        if self.config_file and os.path.exists(self.config_file):
            _merge(self.config_data, _read_file(self.config_file))
        self._apply_env()
        self._derive_paths()

    def _apply_env(self) -> None:
        if not self.env_prefix:
            return
        for env_key, env_value in os.environ.items():
            if not env_key.startswith(self.env_prefix):
                continue
            parts = env_key[len(self.env_prefix) :].lower().split("__")
            current = self.config_data
            for part in parts[:-1]:
                if not isinstance(current.get(part), dict):
                    current[part] = {}
                current = current[part]
            current[parts[-1]] = env_value

    def _derive_paths(self) -> None:
        paths = self.config_data.setdefault("paths", {})
        data_dir = os.path.expanduser(paths.get("data_dir") or DEFAULT_DATA_DIR)
        paths["data_dir"] = data_dir
        for name, relative in DERIVED_PATHS.items():
            if not paths.get(name):
                paths[name] = os.path.join(data_dir, relative)

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a value by dot-notation path, e.g. ``"sync.timeout"``.

        Returns ``default`` when any segment is missing.
        """
        current: Any = self.config_data
        for part in key_path.split("."):
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
        return current

    def validated(self) -> ChatDiaryConfig:
        """Return the configuration as a validated pydantic model.

        Raises:
            ConfigurationError: if any section fails validation.
        """
        from pydantic import ValidationError

        from .config_schema import ChatDiaryConfig
        from .exceptions import ConfigurationError

        try:
            return ChatDiaryConfig.model_validate(self.config_data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def ensure_directories(self) -> None:
        """Create the data directories (and the database's parent directory)."""
        for name, path_value in self.get("paths", {}).items():
            if not isinstance(path_value, str):
                continue
            directory = os.path.expanduser(path_value)
            if name.endswith("_path"):
                directory = os.path.dirname(directory)
            if directory:
                os.makedirs(directory, exist_ok=True)
