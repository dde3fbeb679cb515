"""Configuration loading utilities for the directory mirror."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml  # type: ignore


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class ConfigError(Exception):
    """Raised when the arguments or the settings file are missing or invalid."""


@dataclass
class MirrorConfig:
    """Options describing what is mirrored where, and how often."""

    source_root: Path
    replica_root: Path
    interval: int
    exclude_patterns: List[str] = field(default_factory=list)
    dry_run: bool = False


@dataclass
class LoggingConfig:
    """Options for the console and file log sinks."""

    log_file: Path
    debug: bool = False
    show_source: bool = False
    colored: bool = False


@dataclass
class AppConfig:
    """Top-level configuration structure."""

    mirror: MirrorConfig
    logging: LoggingConfig


def build_config(
    source: PathLike,
    replica: PathLike,
    interval: Any,
    log_file: PathLike,
    *,
    settings_path: Optional[PathLike] = None,
    debug: Optional[bool] = None,
    dry_run: Optional[bool] = None,
) -> AppConfig:
    """Validate the command-line values and merge the optional YAML settings file.

    Explicit ``debug``/``dry_run`` values override whatever the settings file says.
    """

    settings: Dict[str, Any] = {}
    if settings_path is not None:
        settings = _load_settings(Path(settings_path))

    mirror_raw = _section(settings, "mirror")
    logging_raw = _section(settings, "logging")

    source_root = Path(source).expanduser().resolve()
    replica_root = Path(replica).expanduser().resolve()
    if source_root == replica_root:
        raise ConfigError("source and replica must be different directories")
    if source_root in replica_root.parents:
        raise ConfigError("replica must not be located inside source")

    log_path = Path(log_file).expanduser()
    if not log_path.parent.resolve().is_dir():
        raise ConfigError(f"log file directory does not exist: {log_path.parent}")

    mirror_cfg = MirrorConfig(
        source_root=source_root,
        replica_root=replica_root,
        interval=_parse_interval(interval),
        exclude_patterns=_ensure_str_list(mirror_raw.get("exclude_patterns", []), "mirror.exclude_patterns"),
        dry_run=_pick_flag(dry_run, mirror_raw.get("dry_run", False), "mirror.dry_run"),
    )
    logging_cfg = LoggingConfig(
        log_file=log_path,
        debug=_pick_flag(debug, logging_raw.get("debug", False), "logging.debug"),
        show_source=_ensure_bool(logging_raw.get("show_source", False), "logging.show_source"),
        colored=_ensure_bool(logging_raw.get("colored", False), "logging.colored"),
    )
    return AppConfig(mirror=mirror_cfg, logging=logging_cfg)


def _load_settings(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Settings file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML settings: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Settings root must be a mapping")

    unknown = sorted(set(data) - {"mirror", "logging"})
    if unknown:
        logger.warning("Ignoring unknown settings sections: %s", ", ".join(map(str, unknown)))
    return data


def _section(settings: Dict[str, Any], name: str) -> Dict[str, Any]:
    raw = settings.get(name)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"'{name}' section must be a mapping")
    return raw


def _parse_interval(value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError("interval must be a whole number of seconds")
    try:
        interval = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError("interval must be a whole number of seconds") from exc
    if isinstance(value, float) and not value.is_integer():
        raise ConfigError("interval must be a whole number of seconds")
    if interval <= 0:
        raise ConfigError("interval must be positive")
    return interval


def _pick_flag(override: Optional[bool], value: Any, field_name: str) -> bool:
    if override is not None:
        return bool(override)
    return _ensure_bool(value, field_name)


def _ensure_bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{field_name} must be a boolean")
    return value


def _ensure_str_list(value: Any, field_name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigError(f"{field_name} must be a list of strings")
    items: List[str] = []
    for elem in value:
        if not isinstance(elem, str):
            raise ConfigError(f"{field_name} must contain only strings")
        items.append(elem)
    return items
