"""Pytest configuration and fixtures for Hub2Watch tests."""

from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from hub2watch.ble.adapter import POWERED_ON, UNKNOWN, Advertisement

# Captured from real Hub2 devices: 14.4°C / 43% / light 10 and 17.8°C / 45% / light 2
HUB2_HEX = "6909c9165c5551a600ff67ee84b98a048eab00"
HUB2_HEX_OTHER = "6909e4de3a66c7a600ff67ef0bb0820891ad00"


class FakeAdapter:
    """In-memory stand-in for BleakAdapter that records commands."""

    def __init__(self, state: str = POWERED_ON) -> None:
        self.state = state
        self.state_listeners: list = []
        self.discover_listeners: list = []
        self.start_calls = 0
        self.stop_calls = 0
        self.opened = False
        self.closed = False
        self.open_error: Optional[Exception] = None

    def on_state_change(self, listener) -> None:
        if listener not in self.state_listeners:
            self.state_listeners.append(listener)

    def remove_state_listener(self, listener) -> None:
        if listener in self.state_listeners:
            self.state_listeners.remove(listener)

    def on_discover(self, listener) -> None:
        if listener not in self.discover_listeners:
            self.discover_listeners.append(listener)

    def remove_discover_listener(self, listener) -> None:
        if listener in self.discover_listeners:
            self.discover_listeners.remove(listener)

    def remove_all_discover_listeners(self) -> None:
        self.discover_listeners.clear()

    def start_scanning(self, requester=None) -> None:
        self.start_calls += 1

    def stop_scanning(self, requester=None) -> None:
        self.stop_calls += 1

    async def open(self) -> None:
        self.opened = True
        if self.open_error:
            raise self.open_error
        self.set_state(POWERED_ON)

    async def close(self) -> None:
        self.closed = True
        self.remove_all_discover_listeners()
        self.state_listeners.clear()

    def set_state(self, state: str) -> None:
        self.state = state
        for listener in list(self.state_listeners):
            listener(state)

    def emit(self, data: Optional[bytes], address: str = "AA:BB:CC:DD:EE:FF") -> None:
        advertisement = Advertisement(address=address, name=None, rssi=-60, manufacturer_data=data)
        for listener in list(self.discover_listeners):
            listener(advertisement)


async def drain(rounds: int = 10) -> None:
    """Let pending tasks run a few steps."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def hub2_payload() -> bytes:
    return bytes.fromhex(HUB2_HEX)


@pytest.fixture
def hub2_payload_other() -> bytes:
    return bytes.fromhex(HUB2_HEX_OTHER)


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def unpowered_adapter() -> FakeAdapter:
    return FakeAdapter(state=UNKNOWN)
