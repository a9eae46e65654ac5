"""
Abstract store interfaces consumed by the threshold lab.

The core never talks to a database directly. The estimator, decision engine,
synthesizer, scorer and harness read and write through these narrow async
interfaces, which are implemented by PostgresClient (asyncpg) and by
InMemoryStore (offline runs and tests).

Write semantics:
    - Readings, alerts, dynamic bands and metrics records are append-only.
    - Ground-truth events are replaced per farm (delete-then-insert).
    - Experiments are inserted once and never updated.

Example:
    >>> class MyStore(DataStore):
    ...     async def get_readings(self, farm_id, start, end):
    ...         ...
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from farmwatch.models.alerts import Alert
from farmwatch.models.events import GroundTruthEvent
from farmwatch.models.experiments import Experiment, MetricsRecord
from farmwatch.models.readings import Farm, Metric, Reading
from farmwatch.models.thresholds import ThresholdBand


class FarmStore(ABC):
    """Farm registry."""

    @abstractmethod
    async def upsert_farm(self, farm: Farm) -> None:
        """Insert a farm or update its name and coordinates."""
        pass

    @abstractmethod
    async def get_farm(self, farm_id: str) -> Optional[Farm]:
        """Get a farm by id, None if unknown."""
        pass

    @abstractmethod
    async def list_farms(self) -> List[Farm]:
        """List all farms ordered by id."""
        pass


class ReadingStore(ABC):
    """Append-only telemetry readings."""

    @abstractmethod
    async def insert_reading(self, reading: Reading) -> None:
        """
        Append one reading.

        Raises:
            Exception: Implementation-specific on write failure. Bulk
                ingestion counts these per row and keeps going.
        """
        pass

    @abstractmethod
    async def get_readings(
        self,
        farm_id: str,
        start: datetime,
        end: datetime,
    ) -> List[Reading]:
        """
        Get readings with start <= timestamp <= end.

        Returns:
            Readings in ascending timestamp order.
        """
        pass

    @abstractmethod
    async def get_latest_reading_time(self, farm_id: str) -> Optional[datetime]:
        """Get the timestamp of the newest reading for a farm, None if empty."""
        pass

    @abstractmethod
    async def get_recent_readings(self, farm_id: str, limit: int = 120) -> List[Reading]:
        """Get up to limit of the newest readings for a farm, newest first."""
        pass


class ThresholdStore(ABC):
    """Static (effective-dated) and dynamic (snapshot) threshold bands."""

    @abstractmethod
    async def insert_static_band(self, band: ThresholdBand) -> None:
        """
        Insert a static band version.

        Inserting the same (farm, metric, effective_from) twice is a no-op.
        """
        pass

    @abstractmethod
    async def get_static_bands(
        self,
        farm_id: str,
        as_of: Optional[datetime] = None,
    ) -> Dict[Metric, ThresholdBand]:
        """
        Get the effective static band per metric.

        For each metric the version with the latest effective_from wins;
        when as_of is given, versions effective after it are ignored.
        """
        pass

    @abstractmethod
    async def insert_dynamic_band(self, band: ThresholdBand) -> None:
        """Append a dynamic band snapshot."""
        pass

    @abstractmethod
    async def get_latest_dynamic_bands(self, farm_id: str) -> Dict[Metric, ThresholdBand]:
        """Get the most recent dynamic snapshot per metric."""
        pass


class EventStore(ABC):
    """Ground-truth events, replaced wholesale per farm."""

    @abstractmethod
    async def replace_events(self, farm_id: str, events: Sequence[GroundTruthEvent]) -> int:
        """
        Delete all events for a farm, then insert the given ones.

        Returns:
            Number of events inserted.
        """
        pass

    @abstractmethod
    async def delete_events(self, farm_id: str) -> int:
        """
        Delete all events for a farm.

        Returns:
            Number of events deleted.
        """
        pass

    @abstractmethod
    async def get_events(
        self,
        farm_id: str,
        start: datetime,
        end: datetime,
    ) -> List[GroundTruthEvent]:
        """
        Get events overlapping [start, end].

        An event overlaps when event.start <= end and event.end >= start.
        Results are ordered by event start.
        """
        pass


class AlertStore(ABC):
    """Append-only alerts, live and backtest."""

    @abstractmethod
    async def insert_alert(self, alert: Alert) -> None:
        """Append an alert."""
        pass

    @abstractmethod
    async def get_alerts(
        self,
        farm_id: str,
        start: datetime,
        end: datetime,
        experiment_id: Optional[str] = None,
    ) -> List[Alert]:
        """
        Get alerts with start <= timestamp <= end in ascending order.

        Args:
            farm_id: Farm identifier.
            start: Window start (inclusive).
            end: Window end (inclusive).
            experiment_id: Restrict to one backtest. None selects live
                alerts only.
        """
        pass

    @abstractmethod
    async def get_recent_alerts(self, farm_id: Optional[str] = None, limit: int = 50) -> List[Alert]:
        """Get the newest alerts first, optionally for one farm."""
        pass


class ExperimentStore(ABC):
    """Experiment registry; records are immutable once created."""

    @abstractmethod
    async def ensure_experiment(self, experiment: Experiment) -> bool:
        """
        Insert the experiment unless its id already exists.

        Returns:
            True if inserted, False if it already existed.
        """
        pass

    @abstractmethod
    async def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        """Get an experiment by id."""
        pass


class MetricsStore(ABC):
    """Append-only scoring results."""

    @abstractmethod
    async def insert_metrics(self, record: MetricsRecord) -> None:
        """Append a metrics record."""
        pass

    @abstractmethod
    async def get_latest_metrics(self, farm_id: str) -> List[MetricsRecord]:
        """Get the newest record per experiment for a farm."""
        pass


class DataStore(
    FarmStore,
    ReadingStore,
    ThresholdStore,
    EventStore,
    AlertStore,
    ExperimentStore,
    MetricsStore,
):
    """
    Every store capability behind one object.

    Services and the CLI hold a single DataStore; core components only
    depend on the narrow interface they use.
    """

    async def connect(self) -> None:
        """Open underlying resources. No-op by default."""
        return None

    async def close(self) -> None:
        """Release underlying resources. No-op by default."""
        return None

    async def ping(self) -> bool:
        """Check backend health. Always healthy by default."""
        return True
