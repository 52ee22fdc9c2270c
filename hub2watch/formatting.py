"""Formatting helpers for console output."""

from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import AppConfig, Hub2Reading


def format_reading(
    reading: Hub2Reading,
    config: Optional[AppConfig] = None,
    now: Optional[datetime] = None,
) -> str:
    """Format a reading as a single console line."""
    now = now or datetime.now()
    if config:
        name = config.get_display_name(reading.mac_address)
    else:
        name = reading.mac_address or "?"

    return (
        f"{now:%H:%M:%S} {name}: "
        f"{reading.temperature_c:.1f}°C ({reading.temperature_f:.1f}°F) "
        f"{reading.humidity_percent}% light {reading.light_level}"
    )


def format_reading_json(
    reading: Hub2Reading,
    config: Optional[AppConfig] = None,
    now: Optional[datetime] = None,
) -> str:
    """Format a reading as one JSON object per line."""
    payload = reading.to_dict()
    payload["timestamp"] = (now or datetime.now()).isoformat(timespec="seconds")
    if config:
        sensor = config.get_sensor_by_mac(reading.mac_address) if reading.mac_address else None
        payload["name"] = sensor.name if sensor else None
    return json.dumps(payload, ensure_ascii=False)
