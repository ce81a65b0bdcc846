"""Configuration loader for sweep."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import asyncssh
import yaml

from .errors import ConfigError


@dataclass
class Config:
    """Settings for a run. ``script``, ``user`` and ``ssh_key`` are required."""

    script: Path | None = None
    user: str = ""
    ssh_key: Path | None = None
    hosts_file: Path = field(default_factory=lambda: Path("hosts.txt"))
    status_log: Path = field(default_factory=lambda: Path("status.log"))
    done_log: Path = field(default_factory=lambda: Path("done.log"))
    port: int = 22
    probe_timeout: float = 5
    connect_timeout: float = 30
    round_delay: float = 5
    remote_dir: str | None = None
    source_path: Path | None = None  # Path to the YAML file, if any


_PATH_KEYS = {"script", "ssh_key", "hosts_file", "status_log", "done_log"}
_NUMBER_KEYS = {"port", "probe_timeout", "connect_timeout", "round_delay"}


def load_config(config_path: str | Path) -> Config:
    """Load configuration from a YAML file. Does not validate it."""
    config_path = Path(config_path).resolve()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path}: expected a mapping at top level")

    config = _parse_config(raw)
    config.source_path = config_path
    return config


def _parse_config(raw: dict[str, Any]) -> Config:
    """Parse raw YAML data into a Config object."""
    known = {f.name for f in fields(Config)} - {"source_path"}
    unknown = set(raw) - known
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    config = Config()
    return apply_overrides(config, raw)


def apply_overrides(config: Config, overrides: dict[str, Any]) -> Config:
    """Set every non-None value in ``overrides`` on ``config``."""
    for key, value in overrides.items():
        if value is None:
            continue
        if key in _PATH_KEYS:
            # Empty means unset.
            text = str(value).strip()
            value = Path(text).expanduser() if text else None
        elif key in _NUMBER_KEYS:
            try:
                value = int(value) if key == "port" else float(value)
            except (TypeError, ValueError):
                raise ConfigError(f"'{key}' must be a number, got {value!r}") from None
        elif key == "user":
            value = str(value)
        setattr(config, key, value)
    return config


def validate_config(config: Config) -> None:
    """Check required settings before any work starts."""
    if not config.user:
        raise ConfigError("user cannot be empty")
    if not config.ssh_key:
        raise ConfigError("ssh key file cannot be empty")
    if not config.script:
        raise ConfigError("script cannot be empty")
    for name in ("hosts_file", "status_log", "done_log"):
        if not getattr(config, name):
            raise ConfigError(f"'{name}' cannot be empty")
    if not config.ssh_key.is_file():
        raise ConfigError(f"SSH key not found: {config.ssh_key}")
    _check_private_key(config.ssh_key)
    if not config.script.is_file():
        raise ConfigError(f"Script not found: {config.script}")
    if config.port <= 0:
        raise ConfigError(f"Invalid port: {config.port}")
    for name in ("probe_timeout", "connect_timeout", "round_delay"):
        if getattr(config, name) < 0:
            raise ConfigError(f"'{name}' cannot be negative")


def _check_private_key(path: Path) -> None:
    """Reject keys asyncssh cannot load without a passphrase."""
    try:
        asyncssh.read_private_key(str(path))
    except asyncssh.KeyImportError as e:
        raise ConfigError(f"Unusable SSH key {path}: {e}") from None
    except OSError as e:
        raise ConfigError(f"Unable to read SSH key {path}: {e}") from None
