"""Tests for the periodic Hub2 sampler."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from hub2watch.ble.adapter import POWERED_OFF, POWERED_ON, UNKNOWN
from hub2watch.ble.sampler import Hub2Sampler, start_sampling

from conftest import drain


@pytest.mark.asyncio
async def test_deduplicates_within_window(fake_adapter, hub2_payload, hub2_payload_other):
    """Repeated advertisements from one device are reported once per window."""
    readings = []
    sampler = Hub2Sampler(fake_adapter, readings.append, interval=10, scan_duration=5)
    sampler.start()

    fake_adapter.emit(hub2_payload)
    fake_adapter.emit(hub2_payload)
    assert len(readings) == 1

    fake_adapter.emit(hub2_payload_other)
    assert len(readings) == 2
    assert readings[0].mac_address == "c9:16:5c:55:51:a6"
    assert readings[1].mac_address == "e4:de:3a:66:c7:a6"

    sampler.stop()


@pytest.mark.asyncio
async def test_initial_window_when_already_powered_on(fake_adapter):
    sampler = Hub2Sampler(fake_adapter, MagicMock(), interval=10, scan_duration=5)
    sampler.start()

    assert sampler.windows == 1
    assert fake_adapter.start_calls == 1
    assert len(fake_adapter.discover_listeners) == 1

    sampler.stop()


@pytest.mark.asyncio
async def test_window_closes_and_seen_set_resets(fake_adapter, hub2_payload):
    """The same device is reported again in the next window."""
    readings = []
    sampler = Hub2Sampler(fake_adapter, readings.append, interval=0.4, scan_duration=0.2)
    sampler.start()

    fake_adapter.emit(hub2_payload)
    assert len(readings) == 1

    # Between windows: scan stopped, nobody listening
    await asyncio.sleep(0.3)
    assert fake_adapter.stop_calls == 1
    assert fake_adapter.discover_listeners == []
    fake_adapter.emit(hub2_payload)
    assert len(readings) == 1

    # Second window
    await asyncio.sleep(0.2)
    assert sampler.windows == 2
    assert fake_adapter.start_calls == 2
    fake_adapter.emit(hub2_payload)
    assert len(readings) == 2

    sampler.stop()


@pytest.mark.asyncio
async def test_ignores_foreign_and_malformed_data(fake_adapter):
    callback = MagicMock()
    sampler = Hub2Sampler(fake_adapter, callback, interval=10, scan_duration=5)
    sampler.start()

    fake_adapter.emit(None)
    fake_adapter.emit(b"")
    fake_adapter.emit(bytes.fromhex("4c000215"))
    # Hub2 prefix but too short for a MAC
    fake_adapter.emit(bytes.fromhex("6909c9165c"))
    # Hub2 prefix and MAC, but too short to decode
    fake_adapter.emit(bytes.fromhex("6909c9165c5551a600ff"))

    callback.assert_not_called()
    sampler.stop()


@pytest.mark.asyncio
async def test_undecodable_payload_still_marks_mac_seen(fake_adapter, hub2_payload):
    callback = MagicMock()
    sampler = Hub2Sampler(fake_adapter, callback, interval=10, scan_duration=5)
    sampler.start()

    fake_adapter.emit(hub2_payload[:10])
    fake_adapter.emit(hub2_payload)

    callback.assert_not_called()
    sampler.stop()


@pytest.mark.asyncio
async def test_no_callbacks_after_stop(fake_adapter, hub2_payload):
    callback = MagicMock()
    sampler = Hub2Sampler(fake_adapter, callback, interval=0.1, scan_duration=0.05)
    sampler.start()
    listener = fake_adapter.discover_listeners[0]

    sampler.stop()

    assert not sampler.is_running
    assert fake_adapter.stop_calls == 1
    assert fake_adapter.discover_listeners == []
    assert fake_adapter.state_listeners == []

    # Late delivery straight to the old listener is dropped too
    fake_adapter.emit(hub2_payload)
    listener(MagicMock(manufacturer_data=hub2_payload))
    callback.assert_not_called()

    # Periodic trigger is cancelled
    await asyncio.sleep(0.25)
    assert sampler.windows == 1
    assert fake_adapter.start_calls == 1


@pytest.mark.asyncio
async def test_stop_is_idempotent(fake_adapter):
    sampler = Hub2Sampler(fake_adapter, MagicMock(), interval=10, scan_duration=5)
    sampler.start()

    sampler.stop()
    sampler.stop()

    assert fake_adapter.stop_calls == 1


@pytest.mark.asyncio
async def test_waits_for_power_on(unpowered_adapter, hub2_payload):
    callback = MagicMock()
    sampler = Hub2Sampler(unpowered_adapter, callback, interval=10, scan_duration=5)
    sampler.start()

    assert sampler.windows == 0
    assert unpowered_adapter.start_calls == 0
    unpowered_adapter.emit(hub2_payload)
    callback.assert_not_called()

    unpowered_adapter.set_state(POWERED_ON)

    assert sampler.windows == 1
    assert unpowered_adapter.start_calls == 1
    unpowered_adapter.emit(hub2_payload)
    callback.assert_called_once()

    sampler.stop()


@pytest.mark.asyncio
async def test_state_before_first_power_on_is_ignored(unpowered_adapter):
    sampler = Hub2Sampler(unpowered_adapter, MagicMock(), interval=10, scan_duration=5)
    sampler.start()

    unpowered_adapter.set_state(POWERED_OFF)

    assert unpowered_adapter.stop_calls == 0
    sampler.stop()


@pytest.mark.asyncio
async def test_power_loss_stops_scanning(fake_adapter, hub2_payload):
    callback = MagicMock()
    sampler = Hub2Sampler(fake_adapter, callback, interval=10, scan_duration=5)
    sampler.start()

    fake_adapter.set_state(POWERED_OFF)

    assert fake_adapter.stop_calls == 1
    assert fake_adapter.discover_listeners == []
    fake_adapter.emit(hub2_payload)
    callback.assert_not_called()

    # Power comes back: a fresh window starts right away
    fake_adapter.set_state(POWERED_ON)
    assert sampler.windows == 2
    fake_adapter.emit(hub2_payload)
    callback.assert_called_once()

    sampler.stop()


@pytest.mark.asyncio
async def test_periodic_window_skipped_while_powered_off(fake_adapter):
    sampler = Hub2Sampler(fake_adapter, MagicMock(), interval=0.1, scan_duration=0.05)
    sampler.start()
    fake_adapter.set_state(POWERED_OFF)

    await asyncio.sleep(0.25)

    assert sampler.windows == 1
    assert fake_adapter.start_calls == 1
    sampler.stop()


@pytest.mark.asyncio
async def test_periodic_trigger_opens_windows(fake_adapter):
    sampler = Hub2Sampler(fake_adapter, MagicMock(), interval=0.1, scan_duration=0.05)
    sampler.start()

    await asyncio.sleep(0.35)

    assert sampler.windows >= 3
    sampler.stop()


def test_scan_duration_clamped_to_interval(fake_adapter):
    sampler = Hub2Sampler(fake_adapter, MagicMock(), interval=1, scan_duration=5)
    assert sampler.scan_duration == 1


@pytest.mark.asyncio
async def test_callback_errors_are_contained(fake_adapter, hub2_payload, hub2_payload_other):
    callback = MagicMock(side_effect=[RuntimeError("boom"), None])
    sampler = Hub2Sampler(fake_adapter, callback, interval=10, scan_duration=5)
    sampler.start()

    fake_adapter.emit(hub2_payload)
    fake_adapter.emit(hub2_payload_other)

    assert callback.call_count == 2
    sampler.stop()


@pytest.mark.asyncio
async def test_samplers_are_independent(fake_adapter, hub2_payload):
    """Two samplers on one adapter keep separate seen sets and listeners."""
    first = MagicMock()
    second = MagicMock()
    sampler_a = Hub2Sampler(fake_adapter, first, interval=10, scan_duration=5)
    sampler_b = Hub2Sampler(fake_adapter, second, interval=10, scan_duration=5)
    sampler_a.start()
    sampler_b.start()

    fake_adapter.emit(hub2_payload)
    first.assert_called_once()
    second.assert_called_once()

    sampler_a.stop()
    fake_adapter.set_state(POWERED_OFF)
    fake_adapter.set_state(POWERED_ON)
    fake_adapter.emit(hub2_payload)

    first.assert_called_once()
    assert second.call_count == 2
    sampler_b.stop()


@pytest.mark.asyncio
async def test_start_sampling_with_adapter(fake_adapter, hub2_payload):
    callback = MagicMock()
    stop = start_sampling(callback, interval_ms=10000, scan_duration_ms=3000, adapter=fake_adapter)

    assert callable(stop)
    fake_adapter.emit(hub2_payload)
    callback.assert_called_once()

    stop()
    stop()
    fake_adapter.emit(hub2_payload)
    callback.assert_called_once()
    assert fake_adapter.stop_calls == 1
    # Caller owns the adapter
    assert not fake_adapter.closed


@pytest.mark.asyncio
async def test_start_sampling_creates_and_closes_adapter():
    adapter = MagicMock()
    adapter.state = UNKNOWN
    adapter.open = AsyncMock()
    adapter.close = AsyncMock()

    with patch("hub2watch.ble.sampler.BleakAdapter", return_value=adapter) as adapter_cls:
        stop = start_sampling(MagicMock())
        await drain()

        adapter_cls.assert_called_once_with()
        adapter.open.assert_awaited_once()
        adapter.on_state_change.assert_called_once()

        stop()
        await drain()

    adapter.stop_scanning.assert_called_once()
    adapter.close.assert_awaited_once()


@pytest.mark.parametrize("interval, scan_duration", [(0, 0), (-1, 1), (10, 0), (10, -3)])
def test_rejects_non_positive_timings(fake_adapter, interval, scan_duration):
    with pytest.raises(ValueError):
        Hub2Sampler(fake_adapter, MagicMock(), interval=interval, scan_duration=scan_duration)
