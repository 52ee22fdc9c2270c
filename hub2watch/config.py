"""Configuration loading from YAML."""

import logging
from pathlib import Path
from typing import Any

import yaml

from .models import AppConfig, ScanConfig, SensorConfig

logger = logging.getLogger(__name__)


def _positive_float(value: Any, default: float, key: str) -> float:
    try:
        result = float(value)
    except (ValueError, TypeError):
        logger.warning("Invalid %s value: %s", key, value)
        return default
    if result <= 0:
        logger.warning("Invalid %s value: %s (must be positive)", key, value)
        return default
    return result


def load_config(config_path: Path) -> AppConfig:
    """Load configuration from a YAML file."""
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not data:
        data = {}

    scan_data = data.get("scan") or {}
    defaults = ScanConfig()
    scan = ScanConfig(
        interval=_positive_float(scan_data.get("interval", defaults.interval), defaults.interval, "scan.interval"),
        scan_duration=_positive_float(
            scan_data.get("duration", defaults.scan_duration), defaults.scan_duration, "scan.duration"
        ),
        adapter=scan_data.get("adapter"),
    )
    logger.debug(
        "Loaded scan configuration: every %.1fs for %.1fs",
        scan.interval,
        scan.scan_duration,
    )

    sensors = []
    for sensor_data in data.get("sensors", []) or []:
        try:
            sensor = SensorConfig(
                mac=sensor_data["mac"],
                name=sensor_data["name"],
            )
            sensors.append(sensor)
            logger.debug("Loaded sensor: %s (%s)", sensor.name, sensor.mac)
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning("Invalid sensor configuration: %s - %s", sensor_data, e)

    config = AppConfig(scan=scan, sensors=sensors)
    logger.info("Loaded configuration with %d sensors", len(sensors))
    return config
