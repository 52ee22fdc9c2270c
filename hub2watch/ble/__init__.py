"""BLE scanning and parsing module."""

from .adapter import BleakAdapter
from .sampler import Hub2Sampler, start_sampling

__all__ = ["BleakAdapter", "Hub2Sampler", "start_sampling"]
