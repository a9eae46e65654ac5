"""
Periodic dynamic threshold snapshot.

On every recompute tick each farm's last window of readings is turned into a
new dynamic band per monitored metric, smoothed with a bounded step against
the previously persisted band, and appended to the threshold store.

Farms are independent and are recomputed concurrently. A failure on one farm
is logged and does not affect the others.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence

import structlog

from farmwatch.config.models import SnapshotConfig
from farmwatch.interfaces.stores import ReadingStore, ThresholdStore
from farmwatch.models.readings import DEFAULT_MONITORED_METRICS, Metric
from farmwatch.models.thresholds import SafetyBounds, ThresholdBand
from farmwatch.thresholds.estimator import DynamicThresholdEstimator

logger = structlog.get_logger(__name__)


class ThresholdRecomputer:
    """
    Produces and persists dynamic band snapshots.

    Holds no state between ticks: the previous band is always read back from
    the threshold store, so the reading tick and the recompute tick share
    nothing but the store.

    Example:
        >>> recomputer = ThresholdRecomputer(store, store, config.thresholds.snapshot)
        >>> bands = await recomputer.recompute_farm("farm_global_2")
    """

    def __init__(
        self,
        readings: ReadingStore,
        thresholds: ThresholdStore,
        snapshot: Optional[SnapshotConfig] = None,
        safety_bounds: Optional[Mapping[Metric, SafetyBounds]] = None,
        metrics: Sequence[Metric] = DEFAULT_MONITORED_METRICS,
    ) -> None:
        self.readings = readings
        self.thresholds = thresholds
        self.snapshot = snapshot or SnapshotConfig()
        self.safety_bounds = safety_bounds
        self.metrics = [Metric(m) for m in metrics]

    async def recompute_farm(
        self,
        farm_id: str,
        as_of: Optional[datetime] = None,
    ) -> List[ThresholdBand]:
        """
        Recompute and persist dynamic bands for one farm.

        Args:
            farm_id: Farm identifier.
            as_of: Snapshot time (default: now, UTC).

        Returns:
            List[ThresholdBand]: Bands persisted; empty when the window holds
                too few readings.
        """
        if as_of is None:
            as_of = datetime.now(timezone.utc)

        estimator = DynamicThresholdEstimator.for_snapshot(self.snapshot, self.safety_bounds)
        history = await self.readings.get_readings(farm_id, as_of - estimator.window, as_of)

        previous = await self.thresholds.get_latest_dynamic_bands(farm_id)
        for band in previous.values():
            estimator.prime(band)

        persisted: List[ThresholdBand] = []
        for metric in self.metrics:
            band = estimator.estimate(farm_id, metric, history, as_of)
            if band is None:
                continue
            await self.thresholds.insert_dynamic_band(band)
            persisted.append(band)

        if persisted:
            logger.info(
                "dynamic_thresholds_recomputed",
                farm_id=farm_id,
                bands=len(persisted),
                samples=len(history),
            )
        else:
            logger.debug(
                "dynamic_thresholds_skipped",
                farm_id=farm_id,
                samples=len(history),
                required=self.snapshot.min_history_points,
            )

        return persisted

    async def recompute_all(
        self,
        farm_ids: Sequence[str],
        as_of: Optional[datetime] = None,
    ) -> Dict[str, List[ThresholdBand]]:
        """
        Recompute every farm concurrently.

        Returns:
            Dict[str, List[ThresholdBand]]: Persisted bands per farm that
                succeeded. Failed farms are logged and omitted.
        """
        if as_of is None:
            as_of = datetime.now(timezone.utc)

        results = await asyncio.gather(
            *(self.recompute_farm(farm_id, as_of) for farm_id in farm_ids),
            return_exceptions=True,
        )

        succeeded: Dict[str, List[ThresholdBand]] = {}
        for farm_id, result in zip(farm_ids, results):
            if isinstance(result, BaseException):
                logger.error(
                    "threshold_recompute_failed",
                    farm_id=farm_id,
                    error=str(result),
                )
                continue
            succeeded[farm_id] = result

        return succeeded
