"""
In-process DataStore.

Keeps every table in plain dicts and lists. Used by the test suite, by
backtests over imported CSV files and by the API when no database is
configured. Ordering and filtering semantics match PostgresClient.
"""

import bisect
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set, Tuple

import structlog

from farmwatch.interfaces.stores import DataStore
from farmwatch.models.alerts import Alert
from farmwatch.models.events import GroundTruthEvent
from farmwatch.models.experiments import Experiment, MetricsRecord
from farmwatch.models.readings import Farm, Metric, Reading
from farmwatch.models.thresholds import ThresholdBand

logger = structlog.get_logger(__name__)


class InMemoryStore(DataStore):
    """
    DataStore backed by process memory.

    Example:
        >>> store = InMemoryStore()
        >>> await store.upsert_farm(Farm(farm_id="farm_global_1", name="North"))
        >>> await store.insert_reading(reading)
    """

    def __init__(self) -> None:
        self._farms: Dict[str, Farm] = {}
        self._readings: Dict[str, List[Reading]] = defaultdict(list)
        self._static: Dict[Tuple[str, Metric, datetime], ThresholdBand] = {}
        self._dynamic: Dict[str, List[ThresholdBand]] = defaultdict(list)
        self._events: Dict[str, List[GroundTruthEvent]] = defaultdict(list)
        self._alerts: List[Alert] = []
        self._alert_ids: Set[str] = set()
        self._experiments: Dict[str, Experiment] = {}
        self._metrics: List[MetricsRecord] = []

    # Farms

    async def upsert_farm(self, farm: Farm) -> None:
        self._farms[farm.farm_id] = farm

    async def get_farm(self, farm_id: str) -> Optional[Farm]:
        return self._farms.get(farm_id)

    async def list_farms(self) -> List[Farm]:
        return [self._farms[k] for k in sorted(self._farms)]

    # Readings

    async def insert_reading(self, reading: Reading) -> None:
        bisect.insort(self._readings[reading.farm_id], reading, key=lambda r: r.timestamp)

    async def get_readings(self, farm_id: str, start: datetime, end: datetime) -> List[Reading]:
        series = self._readings.get(farm_id, [])
        lo = bisect.bisect_left(series, start, key=lambda r: r.timestamp)
        hi = bisect.bisect_right(series, end, key=lambda r: r.timestamp)
        return series[lo:hi]

    async def get_latest_reading_time(self, farm_id: str) -> Optional[datetime]:
        series = self._readings.get(farm_id)
        if not series:
            return None
        return series[-1].timestamp

    async def get_recent_readings(self, farm_id: str, limit: int = 120) -> List[Reading]:
        series = self._readings.get(farm_id, [])
        return list(reversed(series[-limit:])) if limit > 0 else []

    # Thresholds

    async def insert_static_band(self, band: ThresholdBand) -> None:
        key = (band.farm_id, band.metric, band.as_of)
        if key not in self._static:
            self._static[key] = band

    async def get_static_bands(
        self,
        farm_id: str,
        as_of: Optional[datetime] = None,
    ) -> Dict[Metric, ThresholdBand]:
        effective: Dict[Metric, ThresholdBand] = {}
        for (band_farm, metric, effective_from), band in self._static.items():
            if band_farm != farm_id:
                continue
            if as_of is not None and effective_from > as_of:
                continue
            current = effective.get(metric)
            if current is None or effective_from > current.as_of:
                effective[metric] = band
        return effective

    async def insert_dynamic_band(self, band: ThresholdBand) -> None:
        self._dynamic[band.farm_id].append(band)

    async def get_latest_dynamic_bands(self, farm_id: str) -> Dict[Metric, ThresholdBand]:
        latest: Dict[Metric, ThresholdBand] = {}
        # Later inserts win ties on as_of.
        for band in self._dynamic.get(farm_id, []):
            current = latest.get(band.metric)
            if current is None or band.as_of >= current.as_of:
                latest[band.metric] = band
        return latest

    # Ground truth

    async def replace_events(self, farm_id: str, events: Sequence[GroundTruthEvent]) -> int:
        self._events[farm_id] = sorted(events, key=lambda e: e.start)
        return len(events)

    async def delete_events(self, farm_id: str) -> int:
        return len(self._events.pop(farm_id, []))

    async def get_events(self, farm_id: str, start: datetime, end: datetime) -> List[GroundTruthEvent]:
        return [e for e in self._events.get(farm_id, []) if e.start <= end and e.end >= start]

    # Alerts

    async def insert_alert(self, alert: Alert) -> None:
        if alert.alert_id in self._alert_ids:
            return
        self._alert_ids.add(alert.alert_id)
        self._alerts.append(alert)

    async def get_alerts(
        self,
        farm_id: str,
        start: datetime,
        end: datetime,
        experiment_id: Optional[str] = None,
    ) -> List[Alert]:
        selected = [
            a
            for a in self._alerts
            if a.farm_id == farm_id
            and start <= a.timestamp <= end
            and a.experiment_id == experiment_id
        ]
        return sorted(selected, key=lambda a: a.timestamp)

    async def get_recent_alerts(self, farm_id: Optional[str] = None, limit: int = 50) -> List[Alert]:
        selected = [a for a in self._alerts if farm_id is None or a.farm_id == farm_id]
        selected.sort(key=lambda a: a.timestamp, reverse=True)
        return selected[:limit]

    # Experiments

    async def ensure_experiment(self, experiment: Experiment) -> bool:
        if experiment.experiment_id in self._experiments:
            return False
        self._experiments[experiment.experiment_id] = experiment
        logger.info("experiment_registered", experiment_id=experiment.experiment_id)
        return True

    async def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        return self._experiments.get(experiment_id)

    # Metrics

    async def insert_metrics(self, record: MetricsRecord) -> None:
        self._metrics.append(record)

    async def get_latest_metrics(self, farm_id: str) -> List[MetricsRecord]:
        latest: Dict[Optional[str], MetricsRecord] = {}
        for record in self._metrics:
            if record.farm_id != farm_id:
                continue
            current = latest.get(record.experiment_id)
            if current is None or record.created_at >= current.created_at:
                latest[record.experiment_id] = record
        return sorted(latest.values(), key=lambda r: r.experiment_id or "")
