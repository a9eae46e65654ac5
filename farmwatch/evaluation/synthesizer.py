"""
Ground-truth event synthesizer.

Derives plausible anomaly windows from a farm's historical reading series so
alerting configurations can be scored against them. One event is produced
per archetype:

    cold_shock          global minimum of temp_f
    heat_stress         global maximum of temp_f
    humidity_anomaly    global maximum of rh_pct
    irrigation_failure  2-4 hour span with the steepest soil-moisture drop
    recovery_event      largest single-step soil-moisture rise within 4 hours
                        after the irrigation failure ends

Only the 30%-95% sub-range of the series is searched so that every event has
warm-up history in front of it. Output is deterministic for a given series
and always replaces the farm's previous events.
"""

import math
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple
from uuid import NAMESPACE_URL, uuid5

import structlog

from farmwatch.exceptions import ConfigurationError, DataInsufficiencyError
from farmwatch.interfaces.stores import EventStore, FarmStore, ReadingStore
from farmwatch.models.alerts import Severity
from farmwatch.models.events import EventType, GroundTruthEvent
from farmwatch.models.readings import Metric, Reading

logger = structlog.get_logger(__name__)


MIN_READINGS = 60
DEFAULT_STEP_MINUTES = 10.0
SAFE_RANGE = (0.30, 0.95)
IRRIGATION_SPAN_MINUTES = (120, 240)
RECOVERY_SEARCH_MINUTES = 240
MIN_EVENT_GAP = timedelta(minutes=5)
MIN_EVENT_DURATION = timedelta(minutes=5)

# Fixed durations and severities per archetype. irrigation_failure uses its
# discovered span instead of a fixed duration.
EVENT_DURATIONS = {
    EventType.COLD_SHOCK: timedelta(minutes=20),
    EventType.HEAT_STRESS: timedelta(minutes=25),
    EventType.HUMIDITY_ANOMALY: timedelta(minutes=20),
    EventType.RECOVERY_EVENT: timedelta(minutes=45),
}
EVENT_SEVERITIES = {
    EventType.COLD_SHOCK: Severity.HIGH,
    EventType.HEAT_STRESS: Severity.HIGH,
    EventType.HUMIDITY_ANOMALY: Severity.MEDIUM,
    EventType.IRRIGATION_FAILURE: Severity.HIGH,
    EventType.RECOVERY_EVENT: Severity.MEDIUM,
}


def _clamp_index(index: int, n: int) -> int:
    if n <= 0:
        return 0
    return max(0, min(n - 1, index))


def median_step_minutes(readings: Sequence[Reading]) -> float:
    """
    Median spacing between consecutive readings, in minutes.

    Uses the upper median of the sorted gaps and never returns less than one
    minute. Series with fewer than two readings default to ten minutes.
    """
    if len(readings) < 2:
        return DEFAULT_STEP_MINUTES

    gaps = sorted(
        (readings[i].timestamp - readings[i - 1].timestamp).total_seconds() / 60.0
        for i in range(1, len(readings))
    )
    median = gaps[len(gaps) // 2] or DEFAULT_STEP_MINUTES
    return max(1.0, median)


def safe_range(n: int) -> Tuple[int, int]:
    """Index range searched for events: floor(n*0.30) .. floor(n*0.95), clamped."""
    return (
        _clamp_index(math.floor(n * SAFE_RANGE[0]), n),
        _clamp_index(math.floor(n * SAFE_RANGE[1]), n),
    )


def find_extreme_index(
    readings: Sequence[Reading],
    metric: Metric,
    start: int,
    end: int,
    largest: bool,
) -> int:
    """
    Index of the minimum (or maximum) value of a metric in [start, end].

    Ties resolve to the earliest index.
    """
    n = len(readings)
    best = _clamp_index(start, n)
    stop = _clamp_index(end, n)
    best_value = readings[best].value(metric)

    for i in range(best + 1, stop + 1):
        value = readings[i].value(metric)
        if value is None:
            continue
        if best_value is None or (value > best_value if largest else value < best_value):
            best = i
            best_value = value

    return best


def find_irrigation_failure_window(
    readings: Sequence[Reading],
    step_minutes: float,
    start: int,
    end: int,
) -> Tuple[int, int]:
    """
    Span of 2 to 4 hours inside [start, end] with the most negative soil delta.

    Span lengths are converted to sample counts with the median spacing and
    every valid placement is scanned. The earliest span wins on ties.

    Returns:
        Tuple[int, int]: (start index, end index) into readings.
    """
    n = len(readings)
    first = _clamp_index(start, n)
    last = _clamp_index(end, n)
    segment = readings[first : last + 1]

    min_points = max(2, round(IRRIGATION_SPAN_MINUTES[0] / step_minutes))
    max_points = max(min_points + 1, round(IRRIGATION_SPAN_MINUTES[1] / step_minutes))

    best_start = 0
    best_end = min(min_points, len(segment) - 1)
    best_drop = math.inf

    for i in range(len(segment) - min_points):
        before = segment[i].soil_moisture_pct
        p = min_points
        while p <= max_points and i + p < len(segment):
            drop = segment[i + p].soil_moisture_pct - before
            if drop < best_drop:
                best_drop = drop
                best_start = i
                best_end = i + p
            p += 1

    return first + best_start, first + best_end


def find_recovery_index(
    readings: Sequence[Reading],
    step_minutes: float,
    irrigation_end: int,
) -> int:
    """Index of the largest single-step soil rise within 4 hours after irrigation_end."""
    n = len(readings)
    best = _clamp_index(irrigation_end + 1, n)
    best_jump = -math.inf
    search_end = min(n - 1, irrigation_end + max(2, round(RECOVERY_SEARCH_MINUTES / step_minutes)))

    for i in range(max(1, irrigation_end + 1), search_end + 1):
        jump = readings[i].soil_moisture_pct - readings[i - 1].soil_moisture_pct
        if jump > best_jump:
            best_jump = jump
            best = i

    return best


def _event(
    farm_id: str,
    event_type: EventType,
    start: datetime,
    end: datetime,
) -> GroundTruthEvent:
    # Deterministic ids keep repeated runs on the same series identical.
    return GroundTruthEvent(
        event_id=str(uuid5(NAMESPACE_URL, f"{farm_id}:{event_type.value}:{start.isoformat()}")),
        farm_id=farm_id,
        start=start,
        end=end,
        event_type=event_type.value,
        severity=EVENT_SEVERITIES[event_type],
    )


def enforce_non_overlap(
    events: Sequence[GroundTruthEvent],
    window_start: datetime,
    window_end: datetime,
) -> List[GroundTruthEvent]:
    """
    Make events pairwise disjoint and keep them inside the window.

    Events are sorted by start. A forward pass moves an event starting at or
    before the previous end to 5 minutes after it, keeping its duration (at
    least 5 minutes). A backward pass from window_end then makes every event
    end at or before the next event's start minus 5 minutes, shortening it
    down to 5 minutes. An event that still cannot fit after window_start is
    dropped.

    Returns:
        List[GroundTruthEvent]: New event objects in start order.
    """
    spans: List[Tuple[GroundTruthEvent, datetime, datetime]] = []
    previous_end: Optional[datetime] = None

    for event in sorted(events, key=lambda e: e.start):
        start = max(window_start, event.start)
        duration = max(MIN_EVENT_DURATION, event.end - event.start)

        if previous_end is not None and start <= previous_end:
            start = previous_end + MIN_EVENT_GAP

        spans.append((event, start, start + duration))
        previous_end = start + duration

    placed: List[GroundTruthEvent] = []
    limit = window_end

    for event, start, end in reversed(spans):
        if end > limit:
            end = limit
            start = min(start, end - MIN_EVENT_DURATION)
        if start < window_start:
            logger.warning(
                "ground_truth_event_dropped",
                farm_id=event.farm_id,
                event_type=event.event_type,
                window_start=window_start.isoformat(),
                window_end=window_end.isoformat(),
            )
            continue

        placed.append(event.model_copy(update={"start": start, "end": end}))
        limit = start - MIN_EVENT_GAP

    placed.reverse()
    return placed


def synthesize_events(
    farm_id: str,
    readings: Sequence[Reading],
    min_readings: int = MIN_READINGS,
) -> List[GroundTruthEvent]:
    """
    Synthesize one ground-truth event per archetype from a reading series.

    Args:
        farm_id: Farm identifier.
        readings: Readings in ascending timestamp order.
        min_readings: Minimum series length.

    Returns:
        List[GroundTruthEvent]: Up to five non-overlapping events in start order.

    Raises:
        DataInsufficiencyError: If the series is shorter than min_readings.
    """
    n = len(readings)
    if n < min_readings:
        raise DataInsufficiencyError(
            f"Not enough readings ({n}) to synthesize ground truth for {farm_id}; "
            f"need >= {min_readings}",
            available=n,
            required=min_readings,
        )

    step = median_step_minutes(readings)
    safe_start, safe_end = safe_range(n)

    cold_idx = find_extreme_index(readings, Metric.TEMP_F, safe_start, safe_end, largest=False)
    heat_idx = find_extreme_index(readings, Metric.TEMP_F, safe_start, safe_end, largest=True)
    humidity_idx = find_extreme_index(readings, Metric.RH_PCT, safe_start, safe_end, largest=True)
    irrigation_start, irrigation_end = find_irrigation_failure_window(
        readings, step, safe_start, safe_end
    )
    recovery_idx = find_recovery_index(readings, step, irrigation_end)

    def at(index: int, event_type: EventType) -> GroundTruthEvent:
        start = readings[index].timestamp
        return _event(farm_id, event_type, start, start + EVENT_DURATIONS[event_type])

    raw_events = [
        at(cold_idx, EventType.COLD_SHOCK),
        at(heat_idx, EventType.HEAT_STRESS),
        at(humidity_idx, EventType.HUMIDITY_ANOMALY),
        _event(
            farm_id,
            EventType.IRRIGATION_FAILURE,
            readings[irrigation_start].timestamp,
            readings[irrigation_end].timestamp,
        ),
        at(recovery_idx, EventType.RECOVERY_EVENT),
    ]

    events = enforce_non_overlap(raw_events, readings[0].timestamp, readings[-1].timestamp)

    logger.debug(
        "ground_truth_synthesized",
        farm_id=farm_id,
        readings=n,
        step_minutes=step,
        safe_start=safe_start,
        safe_end=safe_end,
    )
    return events


async def seed_ground_truth(
    farm_id: str,
    reading_store: ReadingStore,
    event_store: EventStore,
    lookback_hours: float = 24,
    min_readings: int = MIN_READINGS,
    farm_store: Optional[FarmStore] = None,
) -> List[GroundTruthEvent]:
    """
    Synthesize events for a farm and replace its stored ground truth.

    The window ends at the farm's newest reading and spans lookback_hours.
    Nothing is written unless synthesis succeeds.

    Args:
        farm_id: Farm identifier.
        reading_store: Source of readings.
        event_store: Destination for events.
        lookback_hours: Window length.
        min_readings: Minimum readings required in the window.
        farm_store: When given, unknown farms are rejected.

    Returns:
        List[GroundTruthEvent]: The events now stored for the farm.

    Raises:
        ConfigurationError: If farm_store is given and the farm is unknown.
        DataInsufficiencyError: If the farm has no or too few readings.
    """
    if not farm_id:
        raise ConfigurationError("farm_id is required")
    if farm_store is not None and await farm_store.get_farm(farm_id) is None:
        raise ConfigurationError(f"Unknown farm: {farm_id}", farm_id=farm_id)

    latest = await reading_store.get_latest_reading_time(farm_id)
    if latest is None:
        raise DataInsufficiencyError(
            f"No readings found for {farm_id}; import or generate readings first",
            available=0,
            required=min_readings,
        )

    window_start = latest - timedelta(hours=lookback_hours)
    readings = await reading_store.get_readings(farm_id, window_start, latest)
    events = synthesize_events(farm_id, readings, min_readings=min_readings)

    inserted = await event_store.replace_events(farm_id, events)
    logger.info(
        "ground_truth_seeded",
        farm_id=farm_id,
        lookback_hours=lookback_hours,
        readings=len(readings),
        inserted=inserted,
    )
    return events


async def delete_ground_truth(
    farm_id: str,
    event_store: EventStore,
    farm_store: Optional[FarmStore] = None,
) -> int:
    """
    Delete all ground-truth events for a farm.

    Returns:
        int: Number of events deleted.

    Raises:
        ConfigurationError: If farm_store is given and the farm is unknown.
    """
    if not farm_id:
        raise ConfigurationError("farm_id is required")
    if farm_store is not None and await farm_store.get_farm(farm_id) is None:
        raise ConfigurationError(f"Unknown farm: {farm_id}", farm_id=farm_id)

    deleted = await event_store.delete_events(farm_id)
    logger.info("ground_truth_deleted", farm_id=farm_id, deleted=deleted)
    return deleted
