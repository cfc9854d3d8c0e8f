"""Tests for the per-entry history and recovery stores."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from homeassistant.util import dt as dt_util

from custom_components.euc_range.const import RECOVERY_SAVE_DELAY_SECONDS
from custom_components.euc_range.storage import RangeStorage
from pytest_homeassistant_custom_component.common import async_fire_time_changed

RECOVERY_KEY = "euc_range_entry-1_recovery"
HISTORY_KEY = "euc_range_entry-1_history"


def _storage_with_mock_stores(hass):
    history_store = MagicMock()
    recovery_store = MagicMock()
    recovery_store.async_save = AsyncMock()
    history_store.async_save = AsyncMock()
    storage = RangeStorage(hass, "entry-1", history_store, recovery_store, [], None)
    return storage, history_store, recovery_store


class TestLoad:
    """Tests for loading persisted data."""

    @pytest.mark.asyncio
    async def test_empty_stores(self, hass):
        """Test a fresh entry starts with no history and no snapshot."""
        storage = await RangeStorage.async_create(hass, "entry-1")
        assert storage.history == []
        assert storage.recovery is None

    @pytest.mark.asyncio
    async def test_malformed_history_is_ignored(self, hass, hass_storage):
        """Test a history payload without a segment list starts empty."""
        hass_storage[HISTORY_KEY] = {
            "version": 1,
            "minor_version": 1,
            "key": HISTORY_KEY,
            "data": {"segments": "nope"},
        }
        storage = await RangeStorage.async_create(hass, "entry-1")
        assert storage.history == []


class TestRecoverySave:
    """Tests for recovery snapshot scheduling."""

    @pytest.mark.asyncio
    async def test_continuous_stream_does_not_postpone_write(self, hass):
        """Test repeated scheduling keeps the first pending write instead of restarting it."""
        storage, _, recovery_store = _storage_with_mock_stores(hass)
        snapshot = {"connected": True, "disconnected_since": None}

        # 12 s of telemetry at 2 Hz
        for _ in range(24):
            storage.schedule_recovery_save(lambda: snapshot)

        recovery_store.async_delay_save.assert_called_once()
        data_func, delay = recovery_store.async_delay_save.call_args[0]
        assert delay == RECOVERY_SAVE_DELAY_SECONDS

        # Running the write re-arms scheduling for the next snapshot
        assert data_func() == snapshot
        storage.schedule_recovery_save(lambda: snapshot)
        assert recovery_store.async_delay_save.call_count == 2

    @pytest.mark.asyncio
    async def test_snapshot_is_taken_when_write_runs(self, hass):
        """Test the pending write persists the newest snapshot, not the first."""
        storage, _, recovery_store = _storage_with_mock_stores(hass)
        state = {"last": 1.0}
        storage.schedule_recovery_save(lambda: {"timestamp": state["last"]})
        state["last"] = 9.5
        storage.schedule_recovery_save(lambda: {"timestamp": state["last"]})

        data_func = recovery_store.async_delay_save.call_args[0][0]
        assert data_func() == {"timestamp": 9.5}

    @pytest.mark.asyncio
    async def test_missing_snapshot_writes_empty_dict(self, hass):
        """Test a reset trip persists an empty snapshot."""
        storage, _, recovery_store = _storage_with_mock_stores(hass)
        storage.schedule_recovery_save(lambda: None)
        data_func = recovery_store.async_delay_save.call_args[0][0]
        assert data_func() == {}

    @pytest.mark.asyncio
    async def test_written_while_samples_keep_arriving(self, hass, hass_storage):
        """Test the snapshot reaches disk during a stream without a pause."""
        storage = await RangeStorage.async_create(hass, "entry-1")
        start = dt_util.utcnow()
        written_at = None
        for half_seconds in range(1, 25):
            storage.schedule_recovery_save(lambda: {"timestamp": half_seconds / 2})
            async_fire_time_changed(hass, start + timedelta(seconds=half_seconds / 2))
            await hass.async_block_till_done()
            if RECOVERY_KEY in hass_storage and written_at is None:
                written_at = half_seconds / 2

        assert written_at is not None
        assert written_at <= RECOVERY_SAVE_DELAY_SECONDS + 1.0
        assert isinstance(hass_storage[RECOVERY_KEY]["data"]["timestamp"], float)

    @pytest.mark.asyncio
    async def test_flush_rearms_scheduling(self, hass):
        """Test an immediate flush replaces the pending delayed write."""
        storage, history_store, recovery_store = _storage_with_mock_stores(hass)
        storage.schedule_recovery_save(lambda: {"a": 1})
        await storage.async_flush([], {"a": 2})

        history_store.async_save.assert_awaited_once_with({"segments": []})
        recovery_store.async_save.assert_awaited_once_with({"a": 2})
        storage.schedule_recovery_save(lambda: {"a": 3})
        assert recovery_store.async_delay_save.call_count == 2
