"""Minimal strict schema for the YAML settings file."""

from __future__ import annotations

from geoenrich.common.errors import ConfigError

SECTION_KEYS = {
    "geocoder": {
        "endpoint",
        "user_agent",
        "language",
        "timeout_seconds",
        "max_attempts",
        "backoff_base_seconds",
        "rate_limit_penalty_seconds",
    },
    "pool": {"concurrency", "request_delay_seconds"},
    "batching": {"threshold", "size", "pause_seconds"},
    "output": {"output_suffix", "checkpoint_suffix", "report_dir"},
}
POSITIVE_INTS = {
    ("geocoder", "max_attempts"),
    ("pool", "concurrency"),
    ("batching", "threshold"),
    ("batching", "size"),
}
NON_NEGATIVE_NUMBERS = {
    ("geocoder", "timeout_seconds"),
    ("geocoder", "backoff_base_seconds"),
    ("geocoder", "rate_limit_penalty_seconds"),
    ("pool", "request_delay_seconds"),
    ("batching", "pause_seconds"),
}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_settings_config(cfg, *, allow_unknown: bool = False) -> dict:
    if not isinstance(cfg, dict):
        raise ConfigError("Settings file must contain a mapping")

    _assert_required_keys(cfg, set(SECTION_KEYS), "settings")
    _assert_no_unknown_keys(cfg, set(SECTION_KEYS), "settings", allow_unknown)

    for section, keys in SECTION_KEYS.items():
        if not isinstance(cfg[section], dict):
            raise ConfigError(f"Section {section} must be a mapping")
        _assert_required_keys(cfg[section], keys, section)
        _assert_no_unknown_keys(cfg[section], keys, section, allow_unknown)

    for section, key in sorted(POSITIVE_INTS):
        value = cfg[section][key]
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise ConfigError(f"{section}.{key} must be a positive integer")

    for section, key in sorted(NON_NEGATIVE_NUMBERS):
        value = cfg[section][key]
        if not _is_number(value) or value < 0:
            raise ConfigError(f"{section}.{key} must be a non-negative number")

    for key in ("endpoint", "user_agent", "language"):
        if not isinstance(cfg["geocoder"][key], str) or not cfg["geocoder"][key].strip():
            raise ConfigError(f"geocoder.{key} must be a non-empty string")

    output = cfg["output"]
    if output["output_suffix"] == output["checkpoint_suffix"]:
        raise ConfigError("output.output_suffix and output.checkpoint_suffix must differ")

    return cfg
