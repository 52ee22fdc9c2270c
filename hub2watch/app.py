"""Main application coordinator."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Optional, TextIO

from .ble.adapter import BleakAdapter
from .ble.sampler import Hub2Sampler
from .formatting import format_reading, format_reading_json
from .models import AppConfig, Hub2Reading

logger = logging.getLogger(__name__)


class Hub2WatchApp:
    """Scans for Hub2 sensors and prints their readings until shut down."""

    def __init__(
        self,
        config: AppConfig,
        json_output: bool = False,
        run_for: Optional[float] = None,
        output: Optional[TextIO] = None,
    ) -> None:
        self._config = config
        self._json_output = json_output
        self._run_for = run_for
        self._output = output or sys.stdout
        self._adapter: Optional[BleakAdapter] = None
        self._sampler: Optional[Hub2Sampler] = None
        self._running = False
        self._shutdown_event: Optional[asyncio.Event] = None
        self._readings = 0

    @property
    def readings(self) -> int:
        """Number of readings printed."""
        return self._readings

    def _on_reading(self, reading: Hub2Reading) -> None:
        if self._json_output:
            line = format_reading_json(reading, self._config)
        else:
            line = format_reading(reading, self._config)
        print(line, file=self._output, flush=True)
        self._readings += 1

    async def start(self) -> None:
        """Start all components."""
        logger.info("Starting Hub2Watch...")
        self._running = True

        scan = self._config.scan
        self._adapter = BleakAdapter(adapter=scan.adapter)
        self._sampler = Hub2Sampler(
            self._adapter,
            self._on_reading,
            interval=scan.interval,
            scan_duration=scan.scan_duration,
        )
        self._sampler.start()
        await self._adapter.open()

        logger.info("Hub2Watch started successfully")

    async def stop(self) -> None:
        """Stop all components."""
        if not self._running:
            return

        logger.info("Stopping Hub2Watch...")
        self._running = False

        if self._sampler:
            self._sampler.stop()

        if self._adapter:
            await self._adapter.close()

        logger.info("Hub2Watch stopped (%d readings)", self._readings)

    async def run(self) -> None:
        """Run the application until shutdown signal or --run-for elapses."""
        # Create shutdown event in async context
        self._shutdown_event = asyncio.Event()

        # Setup signal handlers
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
            except NotImplementedError:
                # Windows event loops have no signal handler support
                pass

        try:
            await self.start()

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self._run_for)
            except asyncio.TimeoutError:
                logger.info("Stopping sampling after %.0f seconds", self._run_for)

        finally:
            await self.stop()

    def _handle_shutdown(self) -> None:
        """Handle shutdown signal."""
        logger.info("Shutdown signal received")
        if self._shutdown_event:
            self._shutdown_event.set()
