from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


@dataclass(slots=True)
class AnomalyThresholds:
    overfill_level: float = 90.0
    overfill_recency_minutes: int = 60
    offline_after_hours: float = 2.0
    low_confidence: float = 60.0
    classification_window_hours: int = 24
    dashboard_full_level: float = 80.0


@dataclass(slots=True)
class CommandPolicy:
    max_retries: int = 3
    pending_batch_size: int = 10


@dataclass(slots=True)
class SweepConfig:
    interval_seconds: int = 900
    auto_start: bool = False


@dataclass(slots=True)
class IotConfig:
    api_key: str | None = None


@dataclass(slots=True)
class DatabaseConfig:
    path: Path


@dataclass(slots=True)
class AppConfig:
    thresholds: AnomalyThresholds
    commands: CommandPolicy
    sweep: SweepConfig
    iot: IotConfig
    database: DatabaseConfig


class ConfigError(RuntimeError):
    pass


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected mapping in {path}")
    return data


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key, {}) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"`{key}` must be a dictionary")
    return value


def _resolve_config_dir() -> Path:
    env_dir = os.getenv("BINWATCH_CONFIG_DIR")
    if env_dir:
        return Path(env_dir).expanduser().resolve()
    return (Path(__file__).resolve().parents[1] / "config").resolve()


def _parse_thresholds(raw: dict[str, Any]) -> AnomalyThresholds:
    try:
        thresholds = AnomalyThresholds(
            overfill_level=float(raw.get("overfill_level", 90)),
            overfill_recency_minutes=int(raw.get("overfill_recency_minutes", 60)),
            offline_after_hours=float(raw.get("offline_after_hours", 2)),
            low_confidence=float(raw.get("low_confidence", 60)),
            classification_window_hours=int(raw.get("classification_window_hours", 24)),
            dashboard_full_level=float(raw.get("dashboard_full_level", 80)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid thresholds.yaml value: {exc}") from exc

    for name in ("overfill_level", "low_confidence", "dashboard_full_level"):
        value = getattr(thresholds, name)
        if not (0.0 <= value <= 100.0):
            raise ConfigError(f"`{name}` must be in [0, 100], got {value}")
    if thresholds.overfill_recency_minutes <= 0:
        raise ConfigError("`overfill_recency_minutes` must be > 0")
    if thresholds.offline_after_hours <= 0:
        raise ConfigError("`offline_after_hours` must be > 0")
    if thresholds.classification_window_hours <= 0:
        raise ConfigError("`classification_window_hours` must be > 0")
    return thresholds


def _parse_commands(raw: dict[str, Any]) -> CommandPolicy:
    try:
        policy = CommandPolicy(
            max_retries=int(raw.get("max_retries", 3)),
            pending_batch_size=int(raw.get("pending_batch_size", 10)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid commands section: {exc}") from exc

    if policy.max_retries <= 0:
        raise ConfigError("`commands.max_retries` must be > 0")
    if policy.pending_batch_size <= 0:
        raise ConfigError("`commands.pending_batch_size` must be > 0")
    return policy


def _parse_sweep(raw: dict[str, Any]) -> SweepConfig:
    try:
        interval_seconds = int(raw.get("interval_seconds", 900))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid sweep section: {exc}") from exc

    auto_start = raw.get("auto_start", False)
    if not isinstance(auto_start, bool):
        raise ConfigError(f"`sweep.auto_start` must be true or false, got {auto_start!r}")
    if interval_seconds <= 0:
        raise ConfigError("`sweep.interval_seconds` must be > 0")
    return SweepConfig(interval_seconds=interval_seconds, auto_start=auto_start)


def load_config(config_dir: Path | None = None) -> AppConfig:
    directory = config_dir or _resolve_config_dir()
    if not directory.exists():
        raise ConfigError(f"Config directory not found: {directory}")

    thresholds_cfg = _read_yaml(directory / "thresholds.yaml")
    server_cfg = _read_yaml(directory / "server.yaml")

    thresholds = _parse_thresholds(thresholds_cfg)
    commands = _parse_commands(_section(server_cfg, "commands"))

    sweep = _parse_sweep(_section(server_cfg, "sweep"))

    iot_raw = _section(server_cfg, "iot")
    api_key = os.getenv("BINWATCH_IOT_API_KEY") or iot_raw.get("api_key")
    iot = IotConfig(api_key=str(api_key) if api_key else None)

    db_path_raw = _section(server_cfg, "database").get("path", "./data/binwatch.db")
    db_path = Path(db_path_raw)
    if not db_path.is_absolute():
        db_path = (Path(__file__).resolve().parents[1] / db_path).resolve()

    return AppConfig(
        thresholds=thresholds,
        commands=commands,
        sweep=sweep,
        iot=iot,
        database=DatabaseConfig(path=db_path),
    )
