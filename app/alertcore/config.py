from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError
from .utils.time import parse_duration


@dataclass
class DatabaseConfig:
    engine: str
    name: str
    path: Path
    url: Optional[str] = None
    busy_timeout: float = 5.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any], *, base_dir: Optional[Path] = None) -> "DatabaseConfig":
        path = Path(str(data.get("path", "data"))).expanduser()
        if base_dir is not None and not path.is_absolute():
            path = base_dir / path
        return cls(
            engine=str(data.get("type") or data.get("engine") or "sqlite"),
            name=str(data.get("name", "alerts.db")),
            path=path,
            url=data.get("url") or None,
            busy_timeout=float(data.get("busy_timeout", 5.0)),
        )


@dataclass
class PollConfig:
    interval_seconds: float = 5.0
    max_workers: int = 8
    batch_limit: Optional[int] = 100
    storage_timeout_seconds: float = 10.0
    send_timeout_seconds: float = 45.0
    stale_after_seconds: float = 300.0
    stale_check_seconds: float = 60.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PollConfig":
        interval = float(data.get("interval_seconds", 5.0))
        if interval <= 0:
            raise ConfigError("poll.interval_seconds must be positive")
        batch_limit = data.get("batch_limit", 100)
        return cls(
            interval_seconds=interval,
            max_workers=max(1, int(data.get("max_workers", 8))),
            batch_limit=int(batch_limit) if batch_limit else None,
            storage_timeout_seconds=float(data.get("storage_timeout_seconds", 10.0)),
            send_timeout_seconds=float(data.get("send_timeout_seconds", 45.0)),
            stale_after_seconds=float(data.get("stale_after_seconds", 300.0)),
            stale_check_seconds=float(data.get("stale_check_seconds", 60.0)),
        )


@dataclass
class RendererConfig:
    timezone: str = "UTC"
    brand: str = "SaveHub"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RendererConfig":
        return cls(
            timezone=str(data.get("timezone", "UTC")),
            brand=str(data.get("brand", "SaveHub")),
        )


@dataclass
class AlertCoreConfig:
    database: DatabaseConfig
    poll: PollConfig = field(default_factory=PollConfig)
    renderer: RendererConfig = field(default_factory=RendererConfig)
    channels: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    offsets: Dict[str, timedelta] = field(default_factory=dict)
    rules: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], *, base_dir: Optional[Path] = None) -> "AlertCoreConfig":
        channels_raw = data.get("channels") or {}
        if not isinstance(channels_raw, dict):
            raise ConfigError("'channels' must be a mapping")
        offsets_raw = data.get("offsets") or {}
        if not isinstance(offsets_raw, dict):
            raise ConfigError("'offsets' must be a mapping of tier to duration")
        try:
            offsets = {str(tier): parse_duration(value) for tier, value in offsets_raw.items()}
        except ValueError as exc:
            raise ConfigError(f"Invalid offset: {exc}") from exc
        return cls(
            database=DatabaseConfig.from_dict(data.get("database") or {}, base_dir=base_dir),
            poll=PollConfig.from_dict(data.get("poll") or {}),
            renderer=RendererConfig.from_dict(data.get("renderer") or {}),
            channels={str(name): dict(conf or {}) for name, conf in channels_raw.items()},
            offsets=offsets,
            rules=dict(data.get("rules") or {}),
        )

    def channel_enabled(self, name: str) -> bool:
        conf = self.channels.get(name)
        if conf is None:
            return False
        return bool(conf.get("enabled", True))

    def enabled_channels(self) -> Dict[str, bool]:
        return {name: self.channel_enabled(name) for name in self.channels}

    def rules_config(self) -> Dict[str, Any]:
        """The mapping handed to the rule registry."""
        return {
            "rules": self.rules,
            "offsets": self.offsets,
            "channels": self.enabled_channels() if self.channels else None,
        }


@dataclass
class AppConfig:
    alertcore: AlertCoreConfig

    @classmethod
    def from_dict(cls, data: Dict[str, Any], *, base_dir: Optional[Path] = None) -> "AppConfig":
        if not isinstance(data, dict) or not isinstance(data.get("alertcore"), dict):
            raise ConfigError("config missing 'alertcore' section")
        return cls(alertcore=AlertCoreConfig.from_dict(data["alertcore"], base_dir=base_dir))


def resolve_config_path(default: Path) -> Path:
    override = os.getenv("ALERTCORE_CONFIG")
    return Path(override) if override else default


def app_config(file_path: str | Path) -> AppConfig:
    path = Path(file_path)
    if not path.exists():
        raise ConfigError(f"Missing config file at {path}")
    with open(path, "r", encoding="utf-8") as file:
        config_dict = yaml.safe_load(file)
    return AppConfig.from_dict(config_dict, base_dir=path.resolve().parent)


load_config = app_config
