"""Data models for Hub2Watch."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

DEFAULT_INTERVAL_SECONDS = 15.0
DEFAULT_SCAN_DURATION_SECONDS = 3.0


@dataclass(frozen=True)
class Hub2Reading:
    """A single decoded Hub2 advertisement."""

    temperature_c: float
    temperature_f: float
    humidity_percent: int
    light_level: int
    mac_address: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Return the reading as a plain dict (for JSON output)."""
        return asdict(self)


@dataclass
class SensorConfig:
    """Friendly name for a known sensor."""

    mac: str
    name: str

    def __post_init__(self) -> None:
        self.mac = self.mac.lower()


@dataclass
class ScanConfig:
    """Scan scheduling configuration, in seconds."""

    interval: float = DEFAULT_INTERVAL_SECONDS
    scan_duration: float = DEFAULT_SCAN_DURATION_SECONDS
    adapter: Optional[str] = None


@dataclass
class AppConfig:
    """Application configuration."""

    scan: ScanConfig = field(default_factory=ScanConfig)
    sensors: list[SensorConfig] = field(default_factory=list)

    def get_sensor_by_mac(self, mac: str) -> Optional[SensorConfig]:
        """Get sensor config by MAC address."""
        mac = mac.lower()
        for sensor in self.sensors:
            if sensor.mac == mac:
                return sensor
        return None

    def get_display_name(self, mac: Optional[str]) -> str:
        """Get the name to display for a MAC.

        Priority: configured name > MAC address > "?"
        """
        if not mac:
            return "?"
        sensor = self.get_sensor_by_mac(mac)
        if sensor:
            return sensor.name
        return mac
