"""Periodic Hub2 sampling: short scan windows on a fixed interval."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from ..models import DEFAULT_INTERVAL_SECONDS, DEFAULT_SCAN_DURATION_SECONDS, Hub2Reading
from .adapter import POWERED_ON, Advertisement, BleakAdapter
from .parsers.hub2 import decode, extract_mac, is_hub2_payload

logger = logging.getLogger(__name__)

ReadingCallback = Callable[[Hub2Reading], None]


class Hub2Sampler:
    """Runs a scan window every `interval` seconds and reports Hub2 readings.

    Each device is reported at most once per window. All state lives on the
    instance, so several samplers can run side by side. Must be started and
    stopped from inside the event loop that drives the adapter.
    """

    def __init__(
        self,
        adapter: BleakAdapter,
        callback: ReadingCallback,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        scan_duration: float = DEFAULT_SCAN_DURATION_SECONDS,
    ) -> None:
        if interval <= 0 or scan_duration <= 0:
            raise ValueError(
                f"interval and scan duration must be positive (got {interval}, {scan_duration})"
            )
        if scan_duration > interval:
            logger.warning(
                "Scan duration %.1fs exceeds interval %.1fs, clamping to interval",
                scan_duration,
                interval,
            )
            scan_duration = interval

        self._adapter = adapter
        self._callback = callback
        self._interval = interval
        self._scan_duration = scan_duration
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._periodic_handle: Optional[asyncio.TimerHandle] = None
        self._window_handle: Optional[asyncio.TimerHandle] = None
        self._seen_macs: set[str] = set()
        self._window_open = False
        self._running = False
        self._was_powered_on = False
        self._windows = 0

    @property
    def is_running(self) -> bool:
        """Check if sampling is active."""
        return self._running

    @property
    def windows(self) -> int:
        """Number of scan windows opened so far."""
        return self._windows

    @property
    def scan_duration(self) -> float:
        return self._scan_duration

    def start(self) -> None:
        """Start sampling once the adapter is powered on."""
        if self._running:
            logger.warning("Sampler already running")
            return

        self._loop = asyncio.get_running_loop()
        self._running = True
        self._adapter.on_state_change(self._on_state_change)
        logger.info(
            "BLE sampling started (every %.1fs, %.1fs windows)",
            self._interval,
            self._scan_duration,
        )

        if self._adapter.state == POWERED_ON:
            self._on_state_change(POWERED_ON)

    def stop(self) -> None:
        """Stop sampling. Safe to call more than once."""
        if not self._running:
            return

        self._running = False
        if self._periodic_handle:
            self._periodic_handle.cancel()
            self._periodic_handle = None

        self._close_window()
        self._adapter.stop_scanning(self)
        self._adapter.remove_state_listener(self._on_state_change)
        logger.info("BLE sampling stopped after %d windows", self._windows)

    def _on_state_change(self, state: str) -> None:
        if not self._running:
            return

        if state == POWERED_ON:
            self._was_powered_on = True
            self._sample_once()
            if self._periodic_handle is None:
                self._arm_periodic()
        elif self._was_powered_on:
            logger.info("Bluetooth adapter %s, stopping scan", state)
            self._close_window()
            self._adapter.stop_scanning(self)

    def _arm_periodic(self) -> None:
        assert self._loop is not None
        self._periodic_handle = self._loop.call_later(self._interval, self._on_periodic)

    def _on_periodic(self) -> None:
        if not self._running:
            return

        self._arm_periodic()
        if self._adapter.state != POWERED_ON:
            logger.debug("Adapter not powered on, skipping scan window")
            return

        self._sample_once()

    def _sample_once(self) -> None:
        """Open a scan window."""
        assert self._loop is not None
        if self._window_open:
            logger.debug("Previous scan window still open, closing it first")
            self._close_window()

        self._seen_macs.clear()
        self._windows += 1
        self._window_open = True
        self._adapter.on_discover(self._on_discover)
        self._adapter.start_scanning(self)
        self._window_handle = self._loop.call_later(self._scan_duration, self._finish_window)
        logger.debug("Scan window %d opened", self._windows)

    def _finish_window(self) -> None:
        self._window_handle = None
        self._adapter.stop_scanning(self)
        self._close_window()
        logger.debug(
            "Scan window %d closed, %d devices seen",
            self._windows,
            len(self._seen_macs),
        )

    def _close_window(self) -> None:
        if self._window_handle:
            self._window_handle.cancel()
            self._window_handle = None

        self._window_open = False
        self._adapter.remove_discover_listener(self._on_discover)

    def _on_discover(self, advertisement: Advertisement) -> None:
        """Handle one advertisement report during a window."""
        if not self._running or not self._window_open:
            return

        data = advertisement.manufacturer_data
        if not data or not is_hub2_payload(data):
            return

        mac = extract_mac(data)
        if not mac or mac in self._seen_macs:
            return

        self._seen_macs.add(mac)

        reading = decode(data)
        if reading is None:
            logger.debug("Undecodable Hub2 payload from %s: %s", mac, data.hex())
            return

        logger.debug("Received reading from %s: %.1f°C", mac, reading.temperature_c)
        try:
            self._callback(reading)
        except Exception as e:
            logger.warning("Reading callback failed for %s: %s", mac, e)


def start_sampling(
    callback: ReadingCallback,
    interval_ms: int = 15000,
    scan_duration_ms: int = 3000,
    adapter: Optional[BleakAdapter] = None,
) -> Callable[[], None]:
    """Start sampling Hub2 advertisements and return a function that stops it.

    Must be called from a running event loop. Without an explicit adapter a
    BleakAdapter is created, opened in the background and closed by the
    returned stop function. A caller-supplied adapter is expected to be
    opened (or to be opened later) by the caller.
    """
    loop = asyncio.get_running_loop()
    owns_adapter = adapter is None
    if adapter is None:
        adapter = BleakAdapter()

    sampler = Hub2Sampler(
        adapter,
        callback,
        interval=interval_ms / 1000,
        scan_duration=scan_duration_ms / 1000,
    )
    sampler.start()

    pending: set[asyncio.Task] = set()

    def _track(task: asyncio.Task) -> None:
        pending.add(task)
        task.add_done_callback(pending.discard)

    if owns_adapter:
        _track(loop.create_task(adapter.open(), name="ble_adapter_open"))

    def stop() -> None:
        if not sampler.is_running:
            return
        sampler.stop()
        if owns_adapter:
            for task in list(pending):
                task.cancel()
            _track(loop.create_task(adapter.close(), name="ble_adapter_close"))

    return stop
