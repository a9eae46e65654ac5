"""
Smoothing policies applied to consecutive band estimates.

Classes:
    BandSmoother: Interface for smoothing a band against its predecessor
    BoundedStepSmoother: Moves at most max_step per update (periodic snapshot)
    EmaSmoother: Exponential moving average (continuous backtests)

Both policies are monotone in each argument, so an ordered previous band and
an ordered candidate always produce an ordered result.
"""

from abc import ABC, abstractmethod
from typing import Optional, Tuple


class BandSmoother(ABC):
    """Smooths one bound at a time; bands are smoothed bound by bound."""

    @abstractmethod
    def smooth(self, previous: Optional[float], candidate: float) -> float:
        """
        Smooth a candidate value against the previous one.

        Args:
            previous: Previous smoothed value, None on first use.
            candidate: Newly estimated value.

        Returns:
            float: The smoothed value (the candidate when previous is None).
        """
        pass

    def smooth_band(
        self,
        previous: Optional[Tuple[float, float]],
        candidate: Tuple[float, float],
    ) -> Tuple[float, float]:
        """Smooth a (low, high) pair."""
        if previous is None:
            return candidate
        return (
            self.smooth(previous[0], candidate[0]),
            self.smooth(previous[1], candidate[1]),
        )


class BoundedStepSmoother(BandSmoother):
    """
    Accept the candidate unless it is more than max_step away.

    Example:
        >>> BoundedStepSmoother(max_step=2.0).smooth(50.0, 55.0)
        52.0
        >>> BoundedStepSmoother(max_step=2.0).smooth(50.0, 51.5)
        51.5
    """

    def __init__(self, max_step: float = 2.0) -> None:
        if max_step <= 0:
            raise ValueError(f"max_step must be positive, got {max_step}")
        self.max_step = max_step

    def smooth(self, previous: Optional[float], candidate: float) -> float:
        if previous is None:
            return candidate
        diff = candidate - previous
        if abs(diff) <= self.max_step:
            return candidate
        return previous + (self.max_step if diff > 0 else -self.max_step)

    def __repr__(self) -> str:
        return f"BoundedStepSmoother(max_step={self.max_step})"


class EmaSmoother(BandSmoother):
    """
    Exponential moving average: alpha * candidate + (1 - alpha) * previous.

    alpha is the weight of the newest estimate; alpha=1 disables smoothing.
    """

    def __init__(self, alpha: float = 0.35) -> None:
        if not 0.0 < alpha <= 1.0:
            raise ValueError(f"alpha must be in (0, 1], got {alpha}")
        self.alpha = alpha

    def smooth(self, previous: Optional[float], candidate: float) -> float:
        if previous is None:
            return candidate
        return self.alpha * candidate + (1.0 - self.alpha) * previous

    def __repr__(self) -> str:
        return f"EmaSmoother(alpha={self.alpha})"
