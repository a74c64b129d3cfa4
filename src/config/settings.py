"""
YAML configuration for the backup uploader.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import yaml

DEFAULT_CONFIG_PATH = Path("config.yaml")
ENV_CONFIG_PATH = "BACKUP_UPLOADER_CONFIG"

_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off"}


class ConfigError(ValueError):
    """Raised when a configuration value has the wrong shape or type."""


def _locate_config(path: Optional[Path]) -> tuple[Path, bool]:
    """Return the config path to read and whether the caller asked for it explicitly."""
    env_value = os.environ.get(ENV_CONFIG_PATH)
    if path is not None:
        candidate, explicit = path, True
    elif env_value:
        candidate, explicit = Path(env_value), True
    else:
        candidate, explicit = DEFAULT_CONFIG_PATH, False
    candidate = candidate.expanduser()
    if not candidate.is_absolute():
        candidate = (Path.cwd() / candidate).resolve()
    return candidate, explicit


@dataclass(frozen=True)
class AppConfig:
    """Parsed configuration plus the directory relative paths resolve against."""

    root_dir: Path
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "AppConfig":
        """Read YAML from ``path``, ``$BACKUP_UPLOADER_CONFIG`` or ``./config.yaml``.

        An explicitly requested file must exist. A missing default file yields
        an empty configuration rooted at the working directory, so every
        lookup falls back to its built-in default.
        """
        config_path, explicit = _locate_config(path)
        if not config_path.exists():
            if explicit:
                raise FileNotFoundError(f"Config file not found: {config_path}")
            return cls(root_dir=config_path.parent)
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Top level of {config_path} must be a mapping")
        return cls(root_dir=config_path.parent, raw=data)

    def get(self, *keys: str, default: Any = None) -> Any:
        """Walk nested mappings along ``keys``; ``default`` when any step is missing."""
        node: Any = self.raw
        for key in keys:
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node

    def get_int(self, *keys: str, default: int) -> int:
        value = self.get(*keys, default=default)
        if isinstance(value, bool):
            raise ConfigError(f"{'.'.join(keys)} must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{'.'.join(keys)} must be an integer, got {value!r}") from exc

    def get_float(self, *keys: str, default: float) -> float:
        value = self.get(*keys, default=default)
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{'.'.join(keys)} must be a number, got {value!r}") from exc

    def get_bool(self, *keys: str, default: bool) -> bool:
        value = self.get(*keys, default=default)
        if isinstance(value, bool):
            return value
        lowered = str(value).strip().lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
        raise ConfigError(f"{'.'.join(keys)} must be true or false, got {value!r}")

    def resolve_path(self, *keys: str, default: Optional[str] = None) -> Path:
        """Resolve a configured path; relative values are anchored at ``root_dir``."""
        value = self.get(*keys, default=default)
        if value is None:
            raise KeyError(f"Missing config path for {'.'.join(keys)}")
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = (self.root_dir / path).resolve()
        return path


def ensure_directories(paths: Iterable[Path]) -> None:
    for path in paths:
        path.mkdir(parents=True, exist_ok=True)
