"""
Debounce state for the alert decision engine.

This module provides the DebounceState class which tracks, per
(farm, metric, rule_type) key, how many consecutive readings breached their
band and when the key last fired an alert.

Key Features:
    - Breach increments the streak; a non-breach resets it to zero
    - Firing stamps the cooldown only; the streak keeps counting
    - Owned by exactly one engine instance; never shared across runs
    - Lives in memory and starts empty on every process start

Example:
    >>> state = DebounceState()
    >>> key = build_debounce_key("farm_global_2", Metric.TEMP_F, ThresholdMethod.STATIC)
    >>> state.record(key, breached=True)
    1
    >>> state.record(key, breached=True)
    2
    >>> state.cooldown_elapsed(key, now, timedelta(minutes=5))
    True
"""

from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

import structlog

from farmwatch.models.readings import Metric
from farmwatch.models.thresholds import ThresholdMethod

logger = structlog.get_logger(__name__)

DebounceKey = Tuple[str, Metric, ThresholdMethod]


def build_debounce_key(farm_id: str, metric: Metric, rule_type: ThresholdMethod) -> DebounceKey:
    """
    Build the key debounce state is tracked under.

    Args:
        farm_id: Farm identifier.
        metric: Metric being evaluated.
        rule_type: static or dynamic.

    Returns:
        DebounceKey: (farm_id, metric, rule_type).
    """
    return (farm_id, Metric(metric), ThresholdMethod(rule_type))


class DebounceState:
    """
    Consecutive-breach counters and last-alert timestamps per key.

    Attributes:
        _streaks: Current consecutive-breach count per key.
        _last_alert: Timestamp of the last emitted alert per key.
    """

    def __init__(self) -> None:
        self._streaks: Dict[DebounceKey, int] = {}
        self._last_alert: Dict[DebounceKey, datetime] = {}

    def record(self, key: DebounceKey, breached: bool) -> int:
        """
        Record one evaluation for a key.

        Args:
            key: Debounce key.
            breached: Whether the reading breached its band.

        Returns:
            int: The streak after this evaluation (0 after a non-breach).
        """
        if not breached:
            if self._streaks.pop(key, 0):
                logger.debug("breach_streak_cleared", key=_format_key(key))
            return 0

        streak = self._streaks.get(key, 0) + 1
        self._streaks[key] = streak
        return streak

    def streak(self, key: DebounceKey) -> int:
        """Current consecutive-breach count for a key."""
        return self._streaks.get(key, 0)

    def last_alert(self, key: DebounceKey) -> Optional[datetime]:
        """Timestamp of the last alert for a key, None if it never fired."""
        return self._last_alert.get(key)

    def cooldown_elapsed(self, key: DebounceKey, timestamp: datetime, cooldown: timedelta) -> bool:
        """
        Check whether the key may fire again at timestamp.

        Returns:
            bool: True when the key never fired or timestamp - last >= cooldown.
        """
        last = self.last_alert(key)
        if last is None:
            return True
        return timestamp - last >= cooldown

    def stamp(self, key: DebounceKey, timestamp: datetime) -> None:
        """Record that the key fired at timestamp. The streak is left untouched."""
        self._last_alert[key] = timestamp

    def clear_all(self) -> None:
        """Drop every streak and cooldown."""
        count = len(self._streaks) + len(self._last_alert)
        self._streaks.clear()
        self._last_alert.clear()
        logger.info("debounce_state_cleared", cleared_count=count)

    def __len__(self) -> int:
        """Number of keys with any state."""
        return len(set(self._streaks) | set(self._last_alert))

    def __repr__(self) -> str:
        return f"DebounceState(streaks={len(self._streaks)}, cooldowns={len(self._last_alert)})"


def _format_key(key: DebounceKey) -> str:
    farm_id, metric, rule_type = key
    return f"{farm_id}:{metric.value}:{rule_type.value}"
