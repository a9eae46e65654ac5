"""
Async PostgreSQL client for the threshold lab.

This module provides a PostgreSQL implementation of every store interface:
farms, readings, static and dynamic threshold bands, ground-truth events,
alerts, experiments and metrics records.

Key Tables:
    - farms: Monitored farm sites
    - readings: Append-only telemetry
    - static_thresholds: Effective-dated static bands
    - dynamic_thresholds: Append-only dynamic snapshots
    - events_ground_truth: Ground-truth events (replaced per farm)
    - alerts: Append-only live and backtest alerts
    - experiments: Experiment registry
    - metrics: Append-only scoring results

Example:
    >>> from farmwatch.config.models import PostgresConnectionConfig
    >>> from farmwatch.storage.postgres_client import PostgresClient
    >>>
    >>> client = PostgresClient(PostgresConnectionConfig(url="postgresql://..."))
    >>> await client.connect()
    >>> await client.init_schema()
    >>> readings = await client.get_readings("farm_global_2", start, end)
"""

from __future__ import annotations

import asyncio
import json
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import structlog

try:
    import asyncpg
    from asyncpg import Connection, Pool, Record
    from asyncpg.exceptions import (
        PostgresError,
        InterfaceError,
        ConnectionDoesNotExistError,
        TooManyConnectionsError,
    )
except ImportError as e:
    raise ImportError(
        "asyncpg is required for PostgresClient. Install with: pip install asyncpg"
    ) from e

from farmwatch.config.models import PostgresConnectionConfig
from farmwatch.interfaces.stores import DataStore
from farmwatch.models.alerts import Alert, Severity
from farmwatch.models.events import GroundTruthEvent
from farmwatch.models.experiments import Experiment, MetricsRecord, WindowLabel
from farmwatch.models.readings import Farm, Metric, Reading
from farmwatch.models.thresholds import ThresholdBand, ThresholdMethod

logger = structlog.get_logger(__name__)


class PostgresClientError(Exception):
    """Base exception for PostgreSQL client errors."""

    pass


class PostgresConnectionException(PostgresClientError):
    """Raised when PostgreSQL connection fails."""

    pass


class PostgresOperationError(PostgresClientError):
    """Raised when a PostgreSQL operation fails."""

    pass


SCHEMA_STATEMENTS: Sequence[str] = (
    """
    CREATE TABLE IF NOT EXISTS farms (
        farm_id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        latitude DOUBLE PRECISION,
        longitude DOUBLE PRECISION
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS readings (
        id BIGSERIAL PRIMARY KEY,
        farm_id TEXT NOT NULL REFERENCES farms(farm_id),
        ts TIMESTAMPTZ NOT NULL,
        temp_f DOUBLE PRECISION NOT NULL,
        rh_pct DOUBLE PRECISION NOT NULL,
        soil_moisture_pct DOUBLE PRECISION NOT NULL,
        tank_pct DOUBLE PRECISION,
        sensor_health INTEGER NOT NULL DEFAULT 1
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_readings_farm_ts ON readings (farm_id, ts)",
    """
    CREATE TABLE IF NOT EXISTS static_thresholds (
        farm_id TEXT NOT NULL REFERENCES farms(farm_id),
        metric TEXT NOT NULL,
        low DOUBLE PRECISION NOT NULL,
        high DOUBLE PRECISION NOT NULL,
        effective_from TIMESTAMPTZ NOT NULL,
        PRIMARY KEY (farm_id, metric, effective_from),
        CHECK (low <= high)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS dynamic_thresholds (
        id BIGSERIAL PRIMARY KEY,
        farm_id TEXT NOT NULL REFERENCES farms(farm_id),
        metric TEXT NOT NULL,
        low DOUBLE PRECISION NOT NULL,
        high DOUBLE PRECISION NOT NULL,
        method TEXT NOT NULL DEFAULT 'dynamic',
        window_hours DOUBLE PRECISION,
        updated_at TIMESTAMPTZ NOT NULL,
        CHECK (low <= high)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_dynamic_thresholds_farm_metric
        ON dynamic_thresholds (farm_id, metric, updated_at DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS events_ground_truth (
        event_id TEXT PRIMARY KEY,
        farm_id TEXT NOT NULL REFERENCES farms(farm_id),
        start_ts TIMESTAMPTZ NOT NULL,
        end_ts TIMESTAMPTZ NOT NULL,
        event_type TEXT NOT NULL,
        severity TEXT NOT NULL,
        CHECK (end_ts >= start_ts)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_events_farm_start ON events_ground_truth (farm_id, start_ts)",
    """
    CREATE TABLE IF NOT EXISTS alerts (
        alert_id TEXT PRIMARY KEY,
        farm_id TEXT NOT NULL REFERENCES farms(farm_id),
        ts TIMESTAMPTZ NOT NULL,
        metric TEXT NOT NULL,
        severity TEXT NOT NULL,
        rule_type TEXT NOT NULL,
        message TEXT NOT NULL,
        value DOUBLE PRECISION NOT NULL,
        low DOUBLE PRECISION,
        high DOUBLE PRECISION,
        experiment_id TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_alerts_farm_ts ON alerts (farm_id, ts)",
    """
    CREATE TABLE IF NOT EXISTS experiments (
        experiment_id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        method TEXT NOT NULL,
        params_json JSONB NOT NULL DEFAULT '{}'::jsonb,
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS metrics (
        id BIGSERIAL PRIMARY KEY,
        experiment_id TEXT,
        farm_id TEXT NOT NULL REFERENCES farms(farm_id),
        window_start TIMESTAMPTZ NOT NULL,
        window_end TIMESTAMPTZ NOT NULL,
        tp_count INTEGER NOT NULL DEFAULT 0,
        fp_count INTEGER NOT NULL DEFAULT 0,
        fn_count INTEGER NOT NULL DEFAULT 0,
        precision DOUBLE PRECISION,
        recall DOUBLE PRECISION,
        false_alert_rate DOUBLE PRECISION NOT NULL DEFAULT 0,
        miss_rate DOUBLE PRECISION NOT NULL DEFAULT 0,
        lead_time_min DOUBLE PRECISION,
        alerts_per_day DOUBLE PRECISION NOT NULL DEFAULT 0,
        window_label TEXT NOT NULL,
        mapped_event_count INTEGER NOT NULL DEFAULT 0,
        ignored_event_count INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_metrics_farm_created ON metrics (farm_id, created_at DESC)",
)


def _row_to_reading(row: Record) -> Reading:
    return Reading(
        farm_id=row["farm_id"],
        timestamp=row["ts"],
        temp_f=row["temp_f"],
        rh_pct=row["rh_pct"],
        soil_moisture_pct=row["soil_moisture_pct"],
        tank_pct=row["tank_pct"],
        sensor_health=row["sensor_health"],
    )


def _row_to_band(row: Record, method: ThresholdMethod, as_of_column: str) -> ThresholdBand:
    return ThresholdBand(
        farm_id=row["farm_id"],
        metric=Metric(row["metric"]),
        low=row["low"],
        high=row["high"],
        method=method,
        as_of=row[as_of_column],
        window_hours=row.get("window_hours"),
    )


def _row_to_event(row: Record) -> GroundTruthEvent:
    return GroundTruthEvent(
        event_id=row["event_id"],
        farm_id=row["farm_id"],
        start=row["start_ts"],
        end=row["end_ts"],
        event_type=row["event_type"],
        severity=Severity(row["severity"]),
    )


def _row_to_alert(row: Record) -> Alert:
    return Alert(
        alert_id=row["alert_id"],
        farm_id=row["farm_id"],
        timestamp=row["ts"],
        metric=Metric(row["metric"]),
        severity=Severity(row["severity"]),
        rule_type=ThresholdMethod(row["rule_type"]),
        message=row["message"],
        value=row["value"],
        low=row["low"],
        high=row["high"],
        experiment_id=row["experiment_id"],
    )


def _row_to_metrics(row: Record) -> MetricsRecord:
    return MetricsRecord(
        experiment_id=row["experiment_id"],
        farm_id=row["farm_id"],
        window_start=row["window_start"],
        window_end=row["window_end"],
        tp=row["tp_count"],
        fp=row["fp_count"],
        fn=row["fn_count"],
        precision=row["precision"],
        recall=row["recall"],
        false_alert_rate=row["false_alert_rate"],
        miss_rate=row["miss_rate"],
        lead_time_min=row["lead_time_min"],
        alerts_per_day=row["alerts_per_day"],
        window_label=WindowLabel(row["window_label"]),
        mapped_event_count=row["mapped_event_count"],
        ignored_event_count=row["ignored_event_count"],
        created_at=row["created_at"],
    )


class PostgresClient(DataStore):
    """
    Async PostgreSQL client implementing every store interface.

    Attributes:
        config: PostgreSQL connection configuration.
        _pool: Connection pool for efficient connection reuse.
        _connected: Whether the client is connected.

    Example:
        >>> client = PostgresClient(PostgresConnectionConfig(url="postgresql://..."))
        >>> await client.connect()
        >>> try:
        ...     await client.insert_reading(reading)
        ... finally:
        ...     await client.close()
    """

    # Maximum retries for transient errors
    MAX_RETRIES = 3

    # Retry delay in seconds
    RETRY_DELAY = 0.5

    def __init__(self, config: PostgresConnectionConfig) -> None:
        """
        Initialize the PostgreSQL client.

        Args:
            config: PostgreSQL connection configuration containing URL and pool settings.
        """
        self.config = config
        self._pool: Optional[Pool] = None
        self._connected: bool = False

        logger.info(
            "postgres_client_initialized",
            url=self._sanitize_url(config.url),
            pool_size=config.pool_size,
        )

    def _sanitize_url(self, url: str) -> str:
        """Sanitize URL for logging (remove password)."""
        if "@" in url:
            parts = url.split("@")
            if ":" in parts[0]:
                user_part = parts[0].rsplit(":", 1)[0]
                return f"{user_part}:***@{parts[1]}"
        return url

    @property
    def is_connected(self) -> bool:
        """Check if the client is connected to PostgreSQL."""
        return self._connected and self._pool is not None

    async def connect(self) -> None:
        """
        Establish connection pool to PostgreSQL.

        Raises:
            PostgresConnectionException: If connection fails.
        """
        if self._connected:
            logger.warning("postgres_already_connected")
            return

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.config.url,
                min_size=1,
                max_size=self.config.pool_size + self.config.max_overflow,
                command_timeout=self.config.pool_timeout,
                init=self._init_connection,
            )

            async with self._pool.acquire() as conn:
                await conn.fetchval("SELECT 1")

            self._connected = True
            logger.info("postgres_connected", url=self._sanitize_url(self.config.url))

        except (PostgresError, OSError, asyncio.TimeoutError) as e:
            self._connected = False
            logger.error(
                "postgres_connection_failed",
                url=self._sanitize_url(self.config.url),
                error=str(e),
            )
            raise PostgresConnectionException(f"Failed to connect to PostgreSQL: {e}") from e

    async def _init_connection(self, conn: Connection) -> None:
        """Initialize connection: timestamps are handled in UTC."""
        await conn.execute("SET timezone = 'UTC'")

    async def close(self) -> None:
        """
        Close PostgreSQL connection pool and release resources.

        Safe to call multiple times.
        """
        if self._pool is not None:
            try:
                await self._pool.close()
            except Exception as e:
                logger.warning("postgres_close_error", error=str(e))
            finally:
                self._pool = None

        self._connected = False
        logger.info("postgres_disconnected")

    async def ping(self) -> bool:
        """Check PostgreSQL connection health."""
        if not self._pool:
            return False

        try:
            async with self._pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception as e:
            logger.warning("postgres_ping_failed", error=str(e))
            return False

    @asynccontextmanager
    async def _acquire_connection(self) -> AsyncIterator[Connection]:
        """
        Acquire a connection from the pool with error handling.

        Raises:
            PostgresConnectionException: If not connected or pool exhausted.
        """
        if not self._connected or self._pool is None:
            raise PostgresConnectionException("PostgreSQL client is not connected")

        try:
            async with self._pool.acquire() as conn:
                yield conn
        except TooManyConnectionsError as e:
            logger.error("postgres_pool_exhausted", error=str(e))
            raise PostgresConnectionException(f"Connection pool exhausted: {e}") from e
        except (ConnectionDoesNotExistError, InterfaceError) as e:
            logger.error("postgres_connection_lost", error=str(e))
            self._connected = False
            raise PostgresConnectionException(f"Connection lost: {e}") from e

    async def _execute_with_retry(
        self,
        operation: str,
        func: Any,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """
        Execute a database operation with retry logic for transient errors.

        Args:
            operation: Name of the operation for logging.
            func: Async function to execute.

        Returns:
            Any: Result of the function call.

        Raises:
            PostgresOperationError: If all retries fail.
        """
        last_error: Optional[Exception] = None

        for attempt in range(self.MAX_RETRIES):
            try:
                return await func(*args, **kwargs)
            except (PostgresError, ConnectionDoesNotExistError, InterfaceError) as e:
                last_error = e
                if attempt < self.MAX_RETRIES - 1:
                    logger.warning(
                        "postgres_operation_retry",
                        operation=operation,
                        attempt=attempt + 1,
                        max_retries=self.MAX_RETRIES,
                        error=str(e),
                    )
                    await asyncio.sleep(self.RETRY_DELAY * (attempt + 1))
                else:
                    logger.error(
                        "postgres_operation_failed",
                        operation=operation,
                        error=str(e),
                    )

        raise PostgresOperationError(
            f"Operation '{operation}' failed after {self.MAX_RETRIES} attempts: {last_error}"
        )

    async def init_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        start_time = time.monotonic()

        async def _create() -> None:
            async with self._acquire_connection() as conn:
                async with conn.transaction():
                    for statement in SCHEMA_STATEMENTS:
                        await conn.execute(statement)

        await self._execute_with_retry("init_schema", _create)
        logger.info(
            "postgres_schema_initialized",
            statements=len(SCHEMA_STATEMENTS),
            elapsed_ms=round((time.monotonic() - start_time) * 1000, 2),
        )

    # =========================================================================
    # FARMS
    # =========================================================================

    async def upsert_farm(self, farm: Farm) -> None:
        async def _upsert() -> None:
            async with self._acquire_connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO farms (farm_id, name, latitude, longitude)
                    VALUES ($1, $2, $3, $4)
                    ON CONFLICT (farm_id) DO UPDATE SET
                        name = EXCLUDED.name,
                        latitude = EXCLUDED.latitude,
                        longitude = EXCLUDED.longitude
                    """,
                    farm.farm_id,
                    farm.name,
                    farm.latitude,
                    farm.longitude,
                )

        await self._execute_with_retry("upsert_farm", _upsert)

    async def get_farm(self, farm_id: str) -> Optional[Farm]:
        async def _query() -> Optional[Record]:
            async with self._acquire_connection() as conn:
                return await conn.fetchrow(
                    "SELECT farm_id, name, latitude, longitude FROM farms WHERE farm_id = $1",
                    farm_id,
                )

        row = await self._execute_with_retry("get_farm", _query)
        if row is None:
            return None
        return Farm(**dict(row))

    async def list_farms(self) -> List[Farm]:
        async def _query() -> List[Record]:
            async with self._acquire_connection() as conn:
                return await conn.fetch(
                    "SELECT farm_id, name, latitude, longitude FROM farms ORDER BY farm_id"
                )

        rows = await self._execute_with_retry("list_farms", _query)
        return [Farm(**dict(row)) for row in rows]

    # =========================================================================
    # READINGS
    # =========================================================================

    async def insert_reading(self, reading: Reading) -> None:
        async def _insert() -> None:
            async with self._acquire_connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO readings (
                        farm_id, ts, temp_f, rh_pct, soil_moisture_pct, tank_pct, sensor_health
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                    """,
                    reading.farm_id,
                    reading.timestamp,
                    reading.temp_f,
                    reading.rh_pct,
                    reading.soil_moisture_pct,
                    reading.tank_pct,
                    reading.sensor_health,
                )

        await self._execute_with_retry("insert_reading", _insert)

    async def get_readings(self, farm_id: str, start: datetime, end: datetime) -> List[Reading]:
        start_query_time = time.monotonic()

        async def _query() -> List[Record]:
            async with self._acquire_connection() as conn:
                return await conn.fetch(
                    """
                    SELECT farm_id, ts, temp_f, rh_pct, soil_moisture_pct, tank_pct, sensor_health
                    FROM readings
                    WHERE farm_id = $1 AND ts >= $2 AND ts <= $3
                    ORDER BY ts ASC
                    """,
                    farm_id,
                    start,
                    end,
                )

        rows = await self._execute_with_retry("get_readings", _query)
        logger.debug(
            "readings_queried",
            farm_id=farm_id,
            count=len(rows),
            elapsed_ms=round((time.monotonic() - start_query_time) * 1000, 2),
        )
        return [_row_to_reading(row) for row in rows]

    async def get_latest_reading_time(self, farm_id: str) -> Optional[datetime]:
        async def _query() -> Optional[datetime]:
            async with self._acquire_connection() as conn:
                return await conn.fetchval(
                    "SELECT MAX(ts) FROM readings WHERE farm_id = $1",
                    farm_id,
                )

        return await self._execute_with_retry("get_latest_reading_time", _query)

    async def get_recent_readings(self, farm_id: str, limit: int = 120) -> List[Reading]:
        async def _query() -> List[Record]:
            async with self._acquire_connection() as conn:
                return await conn.fetch(
                    """
                    SELECT farm_id, ts, temp_f, rh_pct, soil_moisture_pct, tank_pct, sensor_health
                    FROM readings
                    WHERE farm_id = $1
                    ORDER BY ts DESC
                    LIMIT $2
                    """,
                    farm_id,
                    limit,
                )

        rows = await self._execute_with_retry("get_recent_readings", _query)
        return [_row_to_reading(row) for row in rows]

    # =========================================================================
    # THRESHOLDS
    # =========================================================================

    async def insert_static_band(self, band: ThresholdBand) -> None:
        async def _insert() -> None:
            async with self._acquire_connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO static_thresholds (farm_id, metric, low, high, effective_from)
                    VALUES ($1, $2, $3, $4, $5)
                    ON CONFLICT (farm_id, metric, effective_from) DO NOTHING
                    """,
                    band.farm_id,
                    band.metric.value,
                    band.low,
                    band.high,
                    band.as_of,
                )

        await self._execute_with_retry("insert_static_band", _insert)

    async def get_static_bands(
        self,
        farm_id: str,
        as_of: Optional[datetime] = None,
    ) -> Dict[Metric, ThresholdBand]:
        async def _query() -> List[Record]:
            async with self._acquire_connection() as conn:
                return await conn.fetch(
                    """
                    SELECT DISTINCT ON (metric) farm_id, metric, low, high, effective_from
                    FROM static_thresholds
                    WHERE farm_id = $1
                      AND ($2::timestamptz IS NULL OR effective_from <= $2::timestamptz)
                    ORDER BY metric, effective_from DESC
                    """,
                    farm_id,
                    as_of,
                )

        rows = await self._execute_with_retry("get_static_bands", _query)
        bands = [_row_to_band(row, ThresholdMethod.STATIC, "effective_from") for row in rows]
        return {band.metric: band for band in bands}

    async def insert_dynamic_band(self, band: ThresholdBand) -> None:
        async def _insert() -> None:
            async with self._acquire_connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO dynamic_thresholds (
                        farm_id, metric, low, high, method, window_hours, updated_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                    """,
                    band.farm_id,
                    band.metric.value,
                    band.low,
                    band.high,
                    band.method.value,
                    band.window_hours,
                    band.as_of,
                )

        await self._execute_with_retry("insert_dynamic_band", _insert)

    async def get_latest_dynamic_bands(self, farm_id: str) -> Dict[Metric, ThresholdBand]:
        async def _query() -> List[Record]:
            async with self._acquire_connection() as conn:
                return await conn.fetch(
                    """
                    SELECT DISTINCT ON (metric)
                        farm_id, metric, low, high, window_hours, updated_at
                    FROM dynamic_thresholds
                    WHERE farm_id = $1
                    ORDER BY metric, updated_at DESC, id DESC
                    """,
                    farm_id,
                )

        rows = await self._execute_with_retry("get_latest_dynamic_bands", _query)
        bands = [_row_to_band(row, ThresholdMethod.DYNAMIC, "updated_at") for row in rows]
        return {band.metric: band for band in bands}

    # =========================================================================
    # GROUND-TRUTH EVENTS
    # =========================================================================

    async def replace_events(self, farm_id: str, events: Sequence[GroundTruthEvent]) -> int:
        async def _replace() -> int:
            async with self._acquire_connection() as conn:
                async with conn.transaction():
                    await conn.execute(
                        "DELETE FROM events_ground_truth WHERE farm_id = $1", farm_id
                    )
                    await conn.executemany(
                        """
                        INSERT INTO events_ground_truth (
                            event_id, farm_id, start_ts, end_ts, event_type, severity
                        ) VALUES ($1, $2, $3, $4, $5, $6)
                        """,
                        [
                            (
                                event.event_id,
                                farm_id,
                                event.start,
                                event.end,
                                event.event_type,
                                event.severity.value,
                            )
                            for event in events
                        ],
                    )
            return len(events)

        return await self._execute_with_retry("replace_events", _replace)

    async def delete_events(self, farm_id: str) -> int:
        async def _delete() -> str:
            async with self._acquire_connection() as conn:
                return await conn.execute(
                    "DELETE FROM events_ground_truth WHERE farm_id = $1", farm_id
                )

        status = await self._execute_with_retry("delete_events", _delete)
        # asyncpg returns the command tag, e.g. "DELETE 5"
        return int(status.split()[-1]) if status else 0

    async def get_events(self, farm_id: str, start: datetime, end: datetime) -> List[GroundTruthEvent]:
        async def _query() -> List[Record]:
            async with self._acquire_connection() as conn:
                return await conn.fetch(
                    """
                    SELECT event_id, farm_id, start_ts, end_ts, event_type, severity
                    FROM events_ground_truth
                    WHERE farm_id = $1 AND start_ts <= $3 AND end_ts >= $2
                    ORDER BY start_ts ASC
                    """,
                    farm_id,
                    start,
                    end,
                )

        rows = await self._execute_with_retry("get_events", _query)
        return [_row_to_event(row) for row in rows]

    # =========================================================================
    # ALERTS
    # =========================================================================

    async def insert_alert(self, alert: Alert) -> None:
        async def _insert() -> None:
            async with self._acquire_connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO alerts (
                        alert_id, farm_id, ts, metric, severity, rule_type,
                        message, value, low, high, experiment_id
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                    ON CONFLICT (alert_id) DO NOTHING
                    """,
                    alert.alert_id,
                    alert.farm_id,
                    alert.timestamp,
                    alert.metric.value,
                    alert.severity.value,
                    alert.rule_type.value,
                    alert.message,
                    alert.value,
                    alert.low,
                    alert.high,
                    alert.experiment_id,
                )

        await self._execute_with_retry("insert_alert", _insert)

    async def get_alerts(
        self,
        farm_id: str,
        start: datetime,
        end: datetime,
        experiment_id: Optional[str] = None,
    ) -> List[Alert]:
        async def _query() -> List[Record]:
            async with self._acquire_connection() as conn:
                conditions = ["farm_id = $1", "ts >= $2", "ts <= $3"]
                params: List[Any] = [farm_id, start, end]
                if experiment_id is None:
                    conditions.append("experiment_id IS NULL")
                else:
                    params.append(experiment_id)
                    conditions.append(f"experiment_id = ${len(params)}")

                query = f"""
                    SELECT alert_id, farm_id, ts, metric, severity, rule_type,
                           message, value, low, high, experiment_id
                    FROM alerts
                    WHERE {" AND ".join(conditions)}
                    ORDER BY ts ASC
                """
                return await conn.fetch(query, *params)

        rows = await self._execute_with_retry("get_alerts", _query)
        return [_row_to_alert(row) for row in rows]

    async def get_recent_alerts(self, farm_id: Optional[str] = None, limit: int = 50) -> List[Alert]:
        async def _query() -> List[Record]:
            async with self._acquire_connection() as conn:
                return await conn.fetch(
                    """
                    SELECT alert_id, farm_id, ts, metric, severity, rule_type,
                           message, value, low, high, experiment_id
                    FROM alerts
                    WHERE ($1::text IS NULL OR farm_id = $1::text)
                    ORDER BY ts DESC
                    LIMIT $2
                    """,
                    farm_id,
                    limit,
                )

        rows = await self._execute_with_retry("get_recent_alerts", _query)
        return [_row_to_alert(row) for row in rows]

    # =========================================================================
    # EXPERIMENTS
    # =========================================================================

    async def ensure_experiment(self, experiment: Experiment) -> bool:
        async def _insert() -> str:
            async with self._acquire_connection() as conn:
                return await conn.execute(
                    """
                    INSERT INTO experiments (experiment_id, name, method, params_json, created_at)
                    VALUES ($1, $2, $3, $4::jsonb, $5)
                    ON CONFLICT (experiment_id) DO NOTHING
                    """,
                    experiment.experiment_id,
                    experiment.name,
                    experiment.method,
                    json.dumps(experiment.params),
                    experiment.created_at,
                )

        status = await self._execute_with_retry("ensure_experiment", _insert)
        inserted = bool(status) and status.split()[-1] != "0"
        if inserted:
            logger.info("experiment_registered", experiment_id=experiment.experiment_id)
        return inserted

    async def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        async def _query() -> Optional[Record]:
            async with self._acquire_connection() as conn:
                return await conn.fetchrow(
                    """
                    SELECT experiment_id, name, method, params_json, created_at
                    FROM experiments WHERE experiment_id = $1
                    """,
                    experiment_id,
                )

        row = await self._execute_with_retry("get_experiment", _query)
        if row is None:
            return None
        params = row["params_json"]
        return Experiment(
            experiment_id=row["experiment_id"],
            name=row["name"],
            method=row["method"],
            params=json.loads(params) if isinstance(params, str) else dict(params or {}),
            created_at=row["created_at"],
        )

    # =========================================================================
    # METRICS
    # =========================================================================

    async def insert_metrics(self, record: MetricsRecord) -> None:
        async def _insert() -> None:
            async with self._acquire_connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO metrics (
                        experiment_id, farm_id, window_start, window_end,
                        tp_count, fp_count, fn_count, precision, recall,
                        false_alert_rate, miss_rate, lead_time_min, alerts_per_day,
                        window_label, mapped_event_count, ignored_event_count, created_at
                    ) VALUES (
                        $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17
                    )
                    """,
                    record.experiment_id,
                    record.farm_id,
                    record.window_start,
                    record.window_end,
                    record.tp,
                    record.fp,
                    record.fn,
                    record.precision,
                    record.recall,
                    record.false_alert_rate,
                    record.miss_rate,
                    record.lead_time_min,
                    record.alerts_per_day,
                    record.window_label.value,
                    record.mapped_event_count,
                    record.ignored_event_count,
                    record.created_at,
                )

        await self._execute_with_retry("insert_metrics", _insert)

    async def get_latest_metrics(self, farm_id: str) -> List[MetricsRecord]:
        async def _query() -> List[Record]:
            async with self._acquire_connection() as conn:
                return await conn.fetch(
                    """
                    SELECT DISTINCT ON (experiment_id) *
                    FROM metrics
                    WHERE farm_id = $1
                    ORDER BY experiment_id, created_at DESC, id DESC
                    """,
                    farm_id,
                )

        rows = await self._execute_with_retry("get_latest_metrics", _query)
        return [_row_to_metrics(row) for row in rows]
