"""
Tests for the live monitor service.

The service is wired by hand (config and store injected) so no signal
handlers, database or scheduler loops are involved.
"""

import random
from datetime import timedelta

import pytest

from farmwatch.config.loader import load_config
from farmwatch.ingestion.simulator import ReadingSimulator
from farmwatch.models.thresholds import ThresholdMethod
from farmwatch.storage.bootstrap import seed_from_config
from services.monitor.main import MonitorService
from tests.conftest import FARM_ID, REPO_CONFIG, T0, make_reading


@pytest.fixture
async def service(store, monkeypatch):
    monkeypatch.delenv("SIMULATOR_ENABLED", raising=False)
    svc = MonitorService(config_path=str(REPO_CONFIG))
    svc.config = load_config(REPO_CONFIG)
    svc.store = store
    await seed_from_config(store, svc.config)
    await svc._initialize()
    svc.simulator = None
    return svc


class TestMonitorService:
    async def test_initialize(self, service):
        assert service.service_name == "monitor"
        assert FARM_ID in service._farm_ids
        assert service.engine.required_for("temp_f") == 2

    async def test_first_tick_starts_after_stored_history(self, service, store):
        await store.insert_reading(make_reading(0, temp_f=30.0))
        await store.insert_reading(make_reading(1, temp_f=30.0))

        assert await service.reading_tick(now=T0 + timedelta(hours=1)) == 0
        assert await store.get_recent_alerts(FARM_ID) == []

    async def test_new_readings_are_decided(self, service, store):
        await store.insert_reading(make_reading(0))
        await service.reading_tick(now=T0 + timedelta(hours=1))

        await store.insert_reading(make_reading(1, temp_f=40.0))
        await store.insert_reading(make_reading(2, temp_f=40.0))
        fired = await service.reading_tick(now=T0 + timedelta(hours=1))

        assert fired == 1
        alerts = await store.get_recent_alerts(FARM_ID)
        assert [a.rule_type for a in alerts] == [ThresholdMethod.STATIC]
        assert alerts[0].experiment_id is None
        assert alerts[0].timestamp == T0 + timedelta(minutes=10)

        assert await service.reading_tick(now=T0 + timedelta(hours=1)) == 0

    async def test_dynamic_band_used_when_present(self, service, store):
        for i in range(30):
            await store.insert_reading(make_reading(i))
        await service.recomputer.recompute_farm(FARM_ID, as_of=T0 + timedelta(minutes=150))
        await service.reading_tick(now=T0 + timedelta(hours=3))

        await store.insert_reading(make_reading(31, temp_f=60.0))
        await store.insert_reading(make_reading(32, temp_f=60.0))
        await service.reading_tick(now=T0 + timedelta(hours=3))

        alerts = await store.get_recent_alerts(FARM_ID)
        assert [a.rule_type for a in alerts] == [ThresholdMethod.DYNAMIC]

    async def test_simulator_tick(self, service, store):
        service.simulator = ReadingSimulator(rng=random.Random(11), stress_probability=0.0)
        now = T0 + timedelta(hours=6)

        await service.reading_tick(now=now)

        for farm_id in service._farm_ids:
            assert await store.get_latest_reading_time(farm_id) == now
