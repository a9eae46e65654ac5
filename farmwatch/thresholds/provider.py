"""
Threshold providers.

A ThresholdProvider supplies the active band for a (farm, metric) at a point
in time. The variant (static or dynamic) is chosen once when a run is
configured, never per reading.

Classes:
    ThresholdProvider: Provider interface
    StaticThresholdProvider: Fixed effective-dated bands
    DynamicThresholdProvider: Estimator bands with static fallback

Functions:
    build_threshold_provider: Resolve the provider for an experiment config
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Mapping, Optional, Sequence

from farmwatch.config.models import ExperimentConfig, ExperimentKind
from farmwatch.models.readings import Metric, Reading
from farmwatch.models.thresholds import SafetyBounds, ThresholdBand, ThresholdMethod
from farmwatch.thresholds.estimator import DynamicThresholdEstimator


class ThresholdProvider(ABC):
    """Supplies the active band for a metric."""

    @property
    @abstractmethod
    def rule_type(self) -> ThresholdMethod:
        """Rule type stamped on alerts decided against this provider."""
        pass

    @abstractmethod
    def band_for(
        self,
        farm_id: str,
        metric: Metric,
        as_of: datetime,
        history: Sequence[Reading],
    ) -> Optional[ThresholdBand]:
        """
        Get the active band.

        Args:
            farm_id: Farm identifier.
            metric: Metric being evaluated.
            as_of: Evaluation time.
            history: Readings in ascending order; only those at or before
                as_of are considered.

        Returns:
            Optional[ThresholdBand]: The band, None when no band applies.
        """
        pass

    def reset(self) -> None:
        """Drop any per-run state."""
        return None


class StaticThresholdProvider(ThresholdProvider):
    """Serves the effective static band per metric."""

    def __init__(self, bands: Mapping[Metric, ThresholdBand]) -> None:
        self.bands: Dict[Metric, ThresholdBand] = dict(bands)

    @property
    def rule_type(self) -> ThresholdMethod:
        return ThresholdMethod.STATIC

    def band_for(
        self,
        farm_id: str,
        metric: Metric,
        as_of: datetime,
        history: Sequence[Reading],
    ) -> Optional[ThresholdBand]:
        return self.bands.get(Metric(metric))


class DynamicThresholdProvider(ThresholdProvider):
    """
    Serves estimator bands, falling back to static bands while the estimator
    reports insufficient history.
    """

    def __init__(
        self,
        estimator: DynamicThresholdEstimator,
        fallback: Mapping[Metric, ThresholdBand],
    ) -> None:
        self.estimator = estimator
        self.fallback: Dict[Metric, ThresholdBand] = dict(fallback)

    @property
    def rule_type(self) -> ThresholdMethod:
        return ThresholdMethod.DYNAMIC

    def band_for(
        self,
        farm_id: str,
        metric: Metric,
        as_of: datetime,
        history: Sequence[Reading],
    ) -> Optional[ThresholdBand]:
        band = self.estimator.estimate(farm_id, metric, history, as_of)
        if band is None:
            return self.fallback.get(Metric(metric))
        return band

    def reset(self) -> None:
        self.estimator.reset()


def build_threshold_provider(
    config: ExperimentConfig,
    static_bands: Mapping[Metric, ThresholdBand],
    safety_bounds: Optional[Mapping[Metric, SafetyBounds]] = None,
) -> ThresholdProvider:
    """
    Resolve the provider variant for an experiment configuration.

    Args:
        config: Experiment configuration.
        static_bands: Effective static bands for the farm.
        safety_bounds: Guardrails for the dynamic estimator.

    Returns:
        ThresholdProvider: A fresh provider with no cached state.
    """
    if config.kind == ExperimentKind.STATIC:
        return StaticThresholdProvider(static_bands)

    estimator = DynamicThresholdEstimator.for_experiment(config, safety_bounds)
    return DynamicThresholdProvider(estimator, fallback=static_bands)
