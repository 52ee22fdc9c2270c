"""Bluetooth adapter wrapper around Bleak with power-state tracking."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Optional

from bleak import BleakScanner as BleakScannerLib
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from .parsers.hub2 import COMPANY_ID

logger = logging.getLogger(__name__)

POWERED_ON = "powered_on"
POWERED_OFF = "powered_off"
UNKNOWN = "unknown"


@dataclass(frozen=True)
class Advertisement:
    """A single advertisement report as seen by discovery listeners."""

    address: str
    name: Optional[str]
    rssi: Optional[int]
    manufacturer_data: Optional[bytes]


StateListener = Callable[[str], None]
DiscoverListener = Callable[[Advertisement], None]


def manufacturer_buffer(manufacturer_data: dict[int, bytes]) -> Optional[bytes]:
    """Rebuild the on-air manufacturer-data field from Bleak's mapping.

    Bleak strips the little-endian company ID; it is put back in front so
    the buffer matches what the device broadcasts. Hub2 data wins when an
    advertisement carries several entries.
    """
    if not manufacturer_data:
        return None

    if COMPANY_ID in manufacturer_data:
        company_id = COMPANY_ID
    else:
        company_id = next(iter(manufacturer_data))

    return company_id.to_bytes(2, "little") + bytes(manufacturer_data[company_id])


class BleakAdapter:
    """Receive-only BLE adapter with listener registration.

    Commands (start_scanning/stop_scanning) are fire-and-forget and must be
    issued from inside a running event loop. They run one at a time.

    Scan requests are counted per requester: the scan keeps running until
    every requester has released it, so several samplers can share one
    adapter.
    """

    # Retry interval while the adapter is unusable
    RETRY_INTERVAL_SECONDS = 10

    # Timeout for stop() operation - don't let it hang forever
    STOP_TIMEOUT_SECONDS = 10

    def __init__(self, adapter: Optional[str] = None) -> None:
        self._adapter_name = adapter
        self._scanner: Optional[BleakScannerLib] = None
        self._state = UNKNOWN
        self._state_listeners: list[StateListener] = []
        self._discover_listeners: list[DiscoverListener] = []
        self._lock: Optional[asyncio.Lock] = None
        self._tasks: set[asyncio.Task] = set()
        self._retry_task: Optional[asyncio.Task] = None
        self._scan_requests: set[object] = set()
        self._closed = False

    @property
    def state(self) -> str:
        """Current power state."""
        return self._state

    @property
    def is_scanning(self) -> bool:
        """Check if a scan is in progress."""
        return self._scanner is not None

    # ── Listener registry ────────────────────────────────────────────

    def on_state_change(self, listener: StateListener) -> None:
        if listener not in self._state_listeners:
            self._state_listeners.append(listener)

    def remove_state_listener(self, listener: StateListener) -> None:
        if listener in self._state_listeners:
            self._state_listeners.remove(listener)

    def on_discover(self, listener: DiscoverListener) -> None:
        if listener not in self._discover_listeners:
            self._discover_listeners.append(listener)

    def remove_discover_listener(self, listener: DiscoverListener) -> None:
        if listener in self._discover_listeners:
            self._discover_listeners.remove(listener)

    def remove_all_discover_listeners(self) -> None:
        self._discover_listeners.clear()

    def _set_state(self, state: str) -> None:
        if state == self._state:
            return

        logger.info("Bluetooth adapter state: %s -> %s", self._state, state)
        self._state = state
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception as e:
                logger.warning("State listener failed: %s", e)

    def _detection_callback(
        self,
        device: BLEDevice,
        advertisement_data: AdvertisementData,
    ) -> None:
        """Forward a Bleak advertisement report to discovery listeners."""
        advertisement = Advertisement(
            address=device.address,
            name=advertisement_data.local_name or device.name,
            rssi=advertisement_data.rssi,
            manufacturer_data=manufacturer_buffer(advertisement_data.manufacturer_data),
        )

        for listener in list(self._discover_listeners):
            try:
                listener(advertisement)
            except Exception as e:
                logger.warning("Discovery listener failed for %s: %s", device.address, e)

    # ── Commands ─────────────────────────────────────────────────────

    def start_scanning(self, requester: Optional[object] = None) -> None:
        """Begin an unfiltered scan that reports every advertisement."""
        self._scan_requests.add(requester)
        self._spawn(self._start(), "ble_start_scanning")

    def stop_scanning(self, requester: Optional[object] = None) -> None:
        """Release a scan request; the scan stops once no requester is left.

        Without a requester every outstanding request is dropped.
        """
        if requester is None:
            self._scan_requests.clear()
        else:
            self._scan_requests.discard(requester)

        if self._scan_requests:
            logger.debug("Scan still requested by %d others", len(self._scan_requests))
            return

        self._spawn(self._stop(), "ble_stop_scanning")

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def _create_scanner(self, forward: bool = True) -> BleakScannerLib:
        """Create a fresh scanner instance."""
        kwargs: dict[str, Any] = {}
        if forward:
            kwargs["detection_callback"] = self._detection_callback
        if self._adapter_name:
            kwargs["adapter"] = self._adapter_name
        return BleakScannerLib(**kwargs)

    async def _start(self) -> None:
        async with self._get_lock():
            if self._closed or self._scanner is not None or not self._scan_requests:
                return

            scanner = self._create_scanner()
            try:
                await scanner.start()
            except (BleakError, OSError) as e:
                logger.warning("Failed to start BLE scan: %s", e)
                self._set_state(POWERED_OFF)
                self._start_retry()
                return

            self._scanner = scanner
            logger.debug("BLE scan started")
            self._set_state(POWERED_ON)

    async def _stop(self) -> None:
        async with self._get_lock():
            await self._stop_scanner_safe()

    async def _stop_scanner_safe(self) -> None:
        """Stop scanner with timeout protection."""
        if self._scanner is None:
            return

        try:
            await asyncio.wait_for(
                self._scanner.stop(),
                timeout=self.STOP_TIMEOUT_SECONDS,
            )
            logger.debug("BLE scan stopped")
        except asyncio.TimeoutError:
            logger.warning("Scanner stop() timed out after %ds", self.STOP_TIMEOUT_SECONDS)
        except Exception as e:
            logger.debug("Error stopping scanner: %s", e)
        finally:
            self._scanner = None

    # ── Power state ──────────────────────────────────────────────────

    async def _check_power(self) -> bool:
        """Check that the adapter can scan by starting and stopping a scanner."""
        async with self._get_lock():
            if self._scanner is not None:
                return True

            scanner = self._create_scanner(forward=False)
            try:
                await scanner.start()
                await scanner.stop()
            except (BleakError, OSError) as e:
                logger.debug("Adapter power check failed: %s", e)
                return False
            return True

    def _start_retry(self) -> None:
        if self._closed:
            return
        if self._retry_task is not None and not self._retry_task.done():
            return
        self._retry_task = asyncio.get_running_loop().create_task(
            self._retry_loop(), name="ble_adapter_retry"
        )

    async def _retry_loop(self) -> None:
        """Retry until the adapter is usable again, then report powered on."""
        while True:
            await asyncio.sleep(self.RETRY_INTERVAL_SECONDS)
            if await self._check_power():
                logger.info("Bluetooth adapter available again")
                self._set_state(POWERED_ON)
                return

    async def open(self) -> None:
        """Detect the initial power state."""
        self._closed = False
        if await self._check_power():
            self._set_state(POWERED_ON)
        else:
            logger.warning("Bluetooth adapter not available, retrying every %ds", self.RETRY_INTERVAL_SECONDS)
            self._set_state(POWERED_OFF)
            self._start_retry()

    async def close(self) -> None:
        """Stop scanning and drop all listeners.

        No retry loop is started once close() has begun, even if a start
        still holding the lock fails afterwards.
        """
        self._closed = True
        self._scan_requests.clear()
        await self._stop()

        if self._retry_task:
            self._retry_task.cancel()
            try:
                await self._retry_task
            except asyncio.CancelledError:
                pass
            self._retry_task = None

        self.remove_all_discover_listeners()
        self._state_listeners.clear()
