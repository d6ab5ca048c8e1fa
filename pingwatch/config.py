"""Settings file loading for PingWatch.

The settings file is JSON. Top-level ping settings apply to every
target and can be overridden per target::

    {
        "ping_count": 5,
        "ping_period": 30,
        "ping_targets": [
            {"target_type": "ipv4", "target_dest": "1.1.1.1", "loss_limit": 10},
            {"target_type": "gateway", "sensor_alert_mask": 3}
        ]
    }
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from pingwatch.errors import ConfigError, ConfigTypeError
from pingwatch.models import TargetConfig

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PINGWATCH_CONFIG"

COMMON_KEYS = ("ping_count", "packet_size", "ping_period", "ping_interval")
TARGET_KEYS = (
    "target_type",
    "target_dest",
    "loss_limit",
    "expected_latency",
    "expected_jitter",
    "peak_expiration",
    "data_filter_time_window",
    "alert_mask",
    *COMMON_KEYS,
)
# Settings file names that differ from the TargetConfig field names.
KEY_ALIASES = {"sensor_alert_mask": "alert_mask"}


@dataclass
class Settings:
    """Parsed settings file."""

    targets: list[TargetConfig] = field(default_factory=list)


def _target_entry(common: Mapping[str, Any], item: Mapping[str, Any]) -> dict[str, Any]:
    entry = dict(common)
    for key, value in item.items():
        key = KEY_ALIASES.get(key, key)
        if key in TARGET_KEYS:
            entry[key] = value
    return entry


def parse_settings(data: Any) -> Settings:
    """Turn decoded settings data into target configurations.

    Raises:
        ConfigError: The data is not shaped like a settings file or a
            target entry is invalid. Target errors name the entry index.
    """
    if not isinstance(data, Mapping):
        raise ConfigTypeError("Settings must be a JSON object")

    common = {key: data[key] for key in COMMON_KEYS if key in data}
    items = data.get("ping_targets", [])
    if not isinstance(items, list):
        raise ConfigTypeError("ping_targets must be a list", "ping_targets")

    settings = Settings()
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            raise ConfigTypeError(f"ping_targets[{index}] must be an object", "ping_targets")
        try:
            settings.targets.append(TargetConfig.from_mapping(_target_entry(common, item)))
        except ConfigError as e:
            raise type(e)(f"ping_targets[{index}]: {e}", e.field) from e

    logger.debug("Settings parsed: %d targets", len(settings.targets))
    return settings


def load_settings(path: str | os.PathLike) -> Settings:
    """Read and parse a JSON settings file.

    Raises:
        ConfigError: The file cannot be read, is not valid JSON, or holds
            invalid settings.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read settings file {path}: {e}") from e
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Settings file {path} is not valid JSON: {e}") from e

    logger.info("Settings loaded: %s", path)
    return parse_settings(data)


def settings_path_from_env() -> str | None:
    """Settings path from the PINGWATCH_CONFIG environment variable."""
    return os.environ.get(CONFIG_ENV_VAR) or None
