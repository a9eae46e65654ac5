"""
Tests for the HTTP API.

Requests go through httpx's ASGI transport against an app built around an
in-memory store.
"""

from datetime import timedelta

import httpx
import pytest

from farmwatch.ingestion.open_meteo import OpenMeteoError
from farmwatch.models.events import GroundTruthEvent
from farmwatch.models.experiments import MetricsRecord, WindowLabel
from farmwatch.models.readings import Metric
from farmwatch.models.thresholds import ThresholdMethod
from services.api.app import create_app
from tests.conftest import FARM_ID, T0, make_band, make_reading
from tests.test_scorer import _alert


@pytest.fixture
async def client(store):
    app = create_app(store)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestHealth:
    async def test_ok(self, client):
        response = await client.get("/api/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["store"] == "InMemoryStore"
        assert body["store_healthy"] is True


class TestFarms:
    async def test_list(self, client):
        response = await client.get("/api/farms")
        assert response.status_code == 200
        assert [f["farm_id"] for f in response.json()["farms"]] == [FARM_ID]

    async def test_thresholds(self, client, store):
        await store.insert_static_band(make_band(Metric.RH_PCT, 30.0, 75.0))
        await store.insert_static_band(make_band(Metric.TEMP_F, 45.0, 92.0))
        await store.insert_dynamic_band(make_band(low=60.0, high=80.0, method=ThresholdMethod.DYNAMIC))

        response = await client.get("/api/thresholds/latest", params={"farm_id": FARM_ID})

        body = response.json()
        assert [b["metric"] for b in body["static"]] == ["rh_pct", "temp_f"]
        assert body["dynamic"][0]["low"] == 60.0

    async def test_thresholds_require_farm_id(self, client):
        response = await client.get("/api/thresholds/latest")
        assert response.status_code == 400

    async def test_events(self, client, store):
        await store.replace_events(
            FARM_ID,
            [
                GroundTruthEvent(
                    farm_id=FARM_ID,
                    start=T0,
                    end=T0 + timedelta(minutes=20),
                    event_type="cold_shock",
                )
            ],
        )
        response = await client.get("/api/events", params={"farm_id": FARM_ID})
        assert [e["event_type"] for e in response.json()["events"]] == ["cold_shock"]


class TestReadings:
    async def test_newest_first_with_limit(self, client, store):
        for i in range(5):
            await store.insert_reading(make_reading(i))

        response = await client.get("/api/readings", params={"farm_id": FARM_ID, "limit": 2})

        assert response.status_code == 200
        body = response.json()
        assert body["farm_id"] == FARM_ID
        timestamps = [r["timestamp"] for r in body["readings"]]
        assert timestamps == sorted(timestamps, reverse=True)
        assert len(timestamps) == 2
        assert body["readings"][0]["temp_f"] == 70.0

    async def test_require_farm_id(self, client):
        response = await client.get("/api/readings")
        assert response.status_code == 400

    async def test_unknown_farm_is_empty(self, client):
        response = await client.get("/api/readings", params={"farm_id": "farm_missing"})
        assert response.json()["readings"] == []


class TestAlerts:
    async def test_recent_with_counts(self, client, store):
        await store.insert_alert(_alert(10))
        await store.insert_alert(_alert(20))

        response = await client.get("/api/alerts", params={"farm_id": FARM_ID, "limit": 1})

        body = response.json()
        assert len(body["alerts"]) == 1
        assert body["counts"] == {"static": 1, "dynamic": 0, "total": 1}

    async def test_limit_validated(self, client):
        response = await client.get("/api/alerts", params={"limit": 0})
        assert response.status_code == 422


class TestMetrics:
    async def test_latest(self, client, store):
        await store.insert_metrics(
            MetricsRecord(
                experiment_id="exp_static_v1",
                farm_id=FARM_ID,
                window_start=T0,
                window_end=T0 + timedelta(hours=24),
                tp=1,
                fp=0,
                fn=0,
                precision=1.0,
                recall=1.0,
                window_label=WindowLabel.EVENT_WINDOW,
            )
        )
        response = await client.get("/api/metrics/latest", params={"farm_id": FARM_ID})

        metrics = response.json()["metrics"]
        assert metrics[0]["experiment_id"] == "exp_static_v1"
        assert metrics[0]["window_label"] == "event_window"

    async def test_require_farm_id(self, client):
        response = await client.get("/api/metrics/latest")
        assert response.status_code == 400


class TestNoStore:
    async def test_unavailable(self):
        app = create_app()
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            assert (await c.get("/api/farms")).status_code == 503
            assert (await c.get("/api/health")).json()["status"] == "degraded"


class TestImport:
    async def test_csv(self, client, store, tmp_path):
        path = tmp_path / "farm.csv"
        rows = [make_reading(i) for i in range(3)]
        path.write_text(
            "timestamp,temp,rh,soil_moisture,tank\n"
            + "".join(
                f"{r.timestamp.isoformat()},{r.temp_f},{r.rh_pct},{r.soil_moisture_pct},{r.tank_pct}\n"
                for r in rows
            )
            + "not-a-time,70,60,40,70\n"
        )

        response = await client.post(
            "/api/import/csv", json={"file_path": str(path), "farm_id": FARM_ID}
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "inserted": 3, "skipped": 1, "errors": 0}
        assert len(await store.get_recent_readings(FARM_ID)) == 3

    async def test_csv_missing_file(self, client, tmp_path):
        response = await client.post(
            "/api/import/csv",
            json={"file_path": str(tmp_path / "missing.csv"), "farm_id": FARM_ID},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["ok"] is False
        assert "File not found" in body["error"]

    async def test_csv_unknown_farm(self, client, tmp_path):
        path = tmp_path / "farm.csv"
        path.write_text("timestamp,temp,rh,soil_moisture\n")
        response = await client.post(
            "/api/import/csv", json={"file_path": str(path), "farm_id": "farm_missing"}
        )
        assert response.status_code == 400

    async def test_open_meteo(self, client, monkeypatch):
        calls = {}

        async def fake_import(farm_id, reading_store, farm_store, start_date, end_date, **kwargs):
            calls.update(farm_id=farm_id, start_date=start_date, end_date=end_date, **kwargs)
            return {"inserted": 24, "skipped": 0, "errors": 0}

        monkeypatch.setattr("services.api.imports.import_open_meteo_archive", fake_import)

        response = await client.post(
            "/api/import/open-meteo",
            json={"farm_id": FARM_ID, "start_date": "2025-06-01", "end_date": "2025-06-01"},
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "inserted": 24, "skipped": 0, "errors": 0}
        assert calls["farm_id"] == FARM_ID
        assert calls["timezone"] == "UTC"
        assert calls["latitude"] is None

    async def test_open_meteo_request_failure(self, client, monkeypatch):
        async def failing_import(*args, **kwargs):
            raise OpenMeteoError("open-meteo request failed: 500")

        monkeypatch.setattr("services.api.imports.import_open_meteo_archive", failing_import)

        response = await client.post(
            "/api/import/open-meteo",
            json={"farm_id": FARM_ID, "start_date": "2025-06-01", "end_date": "2025-06-01"},
        )

        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "open-meteo request failed: 500"}

    async def test_open_meteo_missing_dates(self, client):
        response = await client.post("/api/import/open-meteo", json={"farm_id": FARM_ID})
        assert response.status_code == 400
        assert response.json()["ok"] is False
