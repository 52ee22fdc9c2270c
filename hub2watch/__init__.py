"""Hub2Watch: SwitchBot Hub2 BLE advertisement decoder and sampler."""

__version__ = "0.1.0"

from .ble.parsers.hub2 import decode, extract_mac
from .ble.sampler import Hub2Sampler, start_sampling
from .models import Hub2Reading

__all__ = [
    "Hub2Reading",
    "Hub2Sampler",
    "__version__",
    "decode",
    "extract_mac",
    "start_sampling",
]
