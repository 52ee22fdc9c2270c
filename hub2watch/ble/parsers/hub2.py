"""SwitchBot Hub2 BLE advertisement decoder."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from ...models import Hub2Reading

logger = logging.getLogger(__name__)

# Manufacturer ID as it appears on air (little-endian 0x0969)
MANUFACTURER_ID = "6909"
COMPANY_ID = 0x0969

MIN_PAYLOAD_LENGTH = 18
MIN_MAC_LENGTH = 8

# Offsets after the 2-byte manufacturer ID has been stripped
STATUS_OFFSET = 12
TEMP_OFFSET = 13

Buffer = Union[bytes, bytearray, memoryview]


def round_tenths(value: float) -> float:
    """Round to one decimal place, ties away from zero.

    Rounds the shortest decimal representation of the float, so 0.25 becomes
    0.3 (where round() would give 0.2). Negative zero comes back as 0.0.
    """
    rounded = Decimal(repr(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return float(rounded) + 0.0


def is_hub2_payload(buffer: Buffer) -> bool:
    """Check whether a manufacturer-data buffer starts with the Hub2 ID."""
    return bytes(buffer[:2]).hex() == MANUFACTURER_ID


def extract_mac(buffer: Buffer) -> Optional[str]:
    """Return the MAC carried in bytes 2-7 as lowercase colon-separated hex."""
    if len(buffer) < MIN_MAC_LENGTH:
        return None
    return ":".join(f"{b:02x}" for b in bytes(buffer[2:8]))


def decode(buffer: Buffer) -> Optional[Hub2Reading]:
    """
    Decode a Hub2 manufacturer-data buffer.

    Format (offsets relative to the buffer as received):
    - Bytes 0-1: Manufacturer ID (69 09)
    - Bytes 2-7: MAC address
    - Byte 14: Status, low 5 bits = light level
    - Byte 15: Low nibble = temperature tenths
    - Byte 16: Bit 7 = sign (set means positive), low 7 bits = whole degrees
    - Byte 17: Low 7 bits = humidity (%)

    Returns None for short buffers or a foreign manufacturer ID.
    """
    raw = bytes(buffer)
    if len(raw) < MIN_PAYLOAD_LENGTH or not is_hub2_payload(raw):
        logger.debug("Not a Hub2 payload: %s", raw.hex())
        return None

    data = raw[2:]
    status = data[STATUS_OFFSET]
    temp_bytes = data[TEMP_OFFSET:TEMP_OFFSET + 3]
    if len(temp_bytes) < 3:
        return None

    temp_sign = 1 if temp_bytes[1] & 0x80 else -1
    temp_c = temp_sign * ((temp_bytes[1] & 0x7F) + (temp_bytes[0] & 0x0F) / 10)
    temp_f = temp_c * 9 / 5 + 32

    return Hub2Reading(
        temperature_c=round_tenths(temp_c),
        temperature_f=round_tenths(temp_f),
        humidity_percent=temp_bytes[2] & 0x7F,
        light_level=status & 0x1F,
        mac_address=extract_mac(raw),
    )
