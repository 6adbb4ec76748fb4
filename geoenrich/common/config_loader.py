"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from geoenrich.common.constants import USER_AGENT
from geoenrich.common.errors import ConfigError
from geoenrich.common.fs import read_yaml
from geoenrich.common.schema import validate_settings_config


@dataclass(frozen=True)
class GeocoderSettings:
    endpoint: str = "https://nominatim.openstreetmap.org/reverse"
    user_agent: str = USER_AGENT
    language: str = "en"
    timeout_seconds: float = 15.0
    max_attempts: int = 3
    backoff_base_seconds: float = 2.0
    rate_limit_penalty_seconds: float = 10.0


@dataclass(frozen=True)
class PoolSettings:
    concurrency: int = 10
    request_delay_seconds: float = 1.5


@dataclass(frozen=True)
class BatchSettings:
    threshold: int = 100_000
    size: int = 1_000
    pause_seconds: float = 0.5


@dataclass(frozen=True)
class OutputSettings:
    output_suffix: str = "_with_addresses"
    checkpoint_suffix: str = "_temp"
    report_dir: str = "reports"


@dataclass(frozen=True)
class Settings:
    geocoder: GeocoderSettings = field(default_factory=GeocoderSettings)
    pool: PoolSettings = field(default_factory=PoolSettings)
    batching: BatchSettings = field(default_factory=BatchSettings)
    output: OutputSettings = field(default_factory=OutputSettings)


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Settings file not found: {path}")
    base = read_yaml(path)
    if overlay_path is None:
        return base
    if not overlay_path.exists():
        raise ConfigError(f"Overlay settings file not found: {overlay_path}")
    overlay = read_yaml(overlay_path) or {}
    return _deep_merge(base, overlay)


def load_settings(
    path: Path,
    *,
    allow_unknown: bool = False,
    overlay_path: Path | None = None,
) -> Settings:
    cfg = validate_settings_config(_load_yaml_with_overlay(path, overlay_path), allow_unknown=allow_unknown)
    geocoder = cfg["geocoder"]
    pool = cfg["pool"]
    batching = cfg["batching"]
    output = cfg["output"]
    return Settings(
        geocoder=GeocoderSettings(
            endpoint=geocoder["endpoint"],
            user_agent=geocoder["user_agent"],
            language=geocoder["language"],
            timeout_seconds=float(geocoder["timeout_seconds"]),
            max_attempts=geocoder["max_attempts"],
            backoff_base_seconds=float(geocoder["backoff_base_seconds"]),
            rate_limit_penalty_seconds=float(geocoder["rate_limit_penalty_seconds"]),
        ),
        pool=PoolSettings(
            concurrency=pool["concurrency"],
            request_delay_seconds=float(pool["request_delay_seconds"]),
        ),
        batching=BatchSettings(
            threshold=batching["threshold"],
            size=batching["size"],
            pause_seconds=float(batching["pause_seconds"]),
        ),
        output=OutputSettings(
            output_suffix=str(output["output_suffix"]),
            checkpoint_suffix=str(output["checkpoint_suffix"]),
            report_dir=str(output["report_dir"]),
        ),
    )
