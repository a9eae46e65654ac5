"""
Monitor Service entry point.

This service is responsible for:
- Producing a reading per enabled farm every tick (simulator), or picking up
  readings written by importers when the simulator is disabled
- Deciding static and dynamic alerts for every reading
- Recomputing dynamic threshold snapshots for every farm on its own cadence

The two loops share only the store. A failed tick is logged and the loop
carries on with the next one.

Usage:
    python -m services.monitor.main

Environment Variables:
    DATABASE_URL: PostgreSQL connection URL
    FARMWATCH_STORE: "memory" to run without a database
    LOG_LEVEL: Logging level (default: INFO)
    CONFIG_PATH: Path to config directory (default: config)
    SIMULATOR_ENABLED: Override the simulator flag from features.yaml
"""

from __future__ import annotations

import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import structlog

from farmwatch.detection.engine import AlertDecisionEngine, create_alert_engine
from farmwatch.ingestion.simulator import ReadingSimulator
from farmwatch.models.alerts import Alert
from farmwatch.models.readings import Reading
from farmwatch.models.thresholds import ThresholdMethod
from farmwatch.services import ServiceRunner, setup_logging
from farmwatch.thresholds.recompute import ThresholdRecomputer

logger = structlog.get_logger(__name__)


class MonitorService(ServiceRunner):
    """
    Live alerting service.

    Attributes:
        engine: Alert decision engine holding the live debounce state.
        recomputer: Dynamic snapshot writer.
        simulator: Reading generator (None when disabled).
    """

    def __init__(self, config_path: str = "config") -> None:
        super().__init__(config_path)
        self.engine: Optional[AlertDecisionEngine] = None
        self.recomputer: Optional[ThresholdRecomputer] = None
        self.simulator: Optional[ReadingSimulator] = None
        self._farm_ids: List[str] = []
        self._last_processed: Dict[str, datetime] = {}
        self._recompute_task: Optional[asyncio.Task] = None

    @property
    def service_name(self) -> str:
        return "monitor"

    async def _initialize(self) -> None:
        if self.config is None or self.store is None:
            raise RuntimeError("Service not properly initialized")

        self._farm_ids = [farm.id for farm in self.config.get_enabled_farms()]
        self.engine = create_alert_engine(self.config.alerts, alert_store=self.store)
        self.recomputer = ThresholdRecomputer(
            readings=self.store,
            thresholds=self.store,
            snapshot=self.config.thresholds.snapshot,
            safety_bounds=self.config.thresholds.safety_bounds,
            metrics=self.config.alerts.monitored_metrics,
        )

        scheduler = self.config.features.scheduler
        if scheduler.simulator_enabled:
            self.simulator = ReadingSimulator()

        self.logger.info(
            "monitor_components_initialized",
            farms=self._farm_ids,
            simulator_enabled=scheduler.simulator_enabled,
            reading_tick_seconds=scheduler.reading_tick_seconds,
            recompute_tick_seconds=scheduler.recompute_tick_seconds,
        )

    async def _run(self) -> None:
        if self.config is None:
            raise RuntimeError("Service not properly initialized")

        self._recompute_task = asyncio.create_task(self._recompute_loop())
        interval = self.config.features.scheduler.reading_tick_seconds

        try:
            while not self.shutdown_event.is_set():
                try:
                    await self.reading_tick()
                except Exception as e:
                    self.logger.error("reading_tick_error", error=str(e))

                try:
                    await asyncio.wait_for(self.shutdown_event.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._recompute_task.cancel()
            try:
                await self._recompute_task
            except asyncio.CancelledError:
                pass

    async def reading_tick(self, now: Optional[datetime] = None) -> int:
        """
        Run one reading tick for every enabled farm.

        Returns:
            int: Alerts fired during the tick.
        """
        now = now or datetime.now(timezone.utc)
        fired = 0
        for farm_id in self._farm_ids:
            try:
                for reading in await self._collect_readings(farm_id, now):
                    fired += len(await self._decide(reading))
            except Exception as e:
                self.logger.error("farm_tick_error", farm_id=farm_id, error=str(e))
        return fired

    async def _collect_readings(self, farm_id: str, now: datetime) -> List[Reading]:
        if self.store is None:
            return []

        if self.simulator is not None:
            reading = self.simulator.generate(farm_id, now)
            await self.store.insert_reading(reading)
            return [reading]

        since = self._last_processed.get(farm_id)
        if since is None:
            # Start from the newest stored reading; history is not replayed.
            latest = await self.store.get_latest_reading_time(farm_id)
            self._last_processed[farm_id] = latest or now
            return []

        readings = await self.store.get_readings(farm_id, since + timedelta(microseconds=1), now)
        return readings

    async def _decide(self, reading: Reading) -> List[Alert]:
        if self.store is None or self.engine is None:
            return []

        static_bands = await self.store.get_static_bands(reading.farm_id, as_of=reading.timestamp)
        dynamic_bands = await self.store.get_latest_dynamic_bands(reading.farm_id)
        alerts = await self.engine.process_reading(
            reading,
            {
                ThresholdMethod.STATIC: static_bands,
                ThresholdMethod.DYNAMIC: dynamic_bands,
            },
        )
        self._last_processed[reading.farm_id] = reading.timestamp
        return alerts

    async def _recompute_loop(self) -> None:
        """Periodically recompute dynamic snapshots for every farm."""
        if self.config is None or self.recomputer is None:
            return

        interval = self.config.features.scheduler.recompute_tick_seconds
        try:
            while not self.shutdown_event.is_set():
                try:
                    await self.recomputer.recompute_all(self._farm_ids)
                except Exception as e:
                    self.logger.error("recompute_tick_error", error=str(e))
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            self.logger.debug("recompute_loop_cancelled")
            raise

    async def _cleanup(self) -> None:
        if self.engine is not None:
            self.logger.info("cleanup_state", debounce_keys=len(self.engine.state))


async def main() -> None:
    """Main entry point."""
    setup_logging()

    config_path = os.getenv("CONFIG_PATH", "config")
    logger.info("monitor_service_starting", version="0.1.0", config_path=config_path)

    service = MonitorService(config_path=config_path)

    try:
        await service.run()
    except Exception as e:
        logger.error("service_failed", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
