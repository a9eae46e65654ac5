"""
Abstract interfaces for the threshold lab.

This module defines the abstract store interfaces the core components
consume. Persistence engines implement them; core logic never imports a
concrete store.

Example:
    >>> from farmwatch.interfaces import ReadingStore
    >>> class CsvReadingStore(ReadingStore):
    ...     async def get_readings(self, farm_id, start, end):
    ...         ...

Modules:
    stores: Store ABCs (farms, readings, thresholds, events, alerts,
        experiments, metrics) and the combined DataStore
"""

from farmwatch.interfaces.stores import (
    AlertStore,
    DataStore,
    EventStore,
    ExperimentStore,
    FarmStore,
    MetricsStore,
    ReadingStore,
    ThresholdStore,
)

__all__: list[str] = [
    "FarmStore",
    "ReadingStore",
    "ThresholdStore",
    "EventStore",
    "AlertStore",
    "ExperimentStore",
    "MetricsStore",
    "DataStore",
]
