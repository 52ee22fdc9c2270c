"""BLE advertisement parsers."""

from .hub2 import decode, extract_mac, is_hub2_payload

__all__ = ["decode", "extract_mac", "is_hub2_payload"]
