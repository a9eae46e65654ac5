"""
Offline evaluation for the threshold lab.

Modules:
    synthesizer: Ground-truth event synthesis from a reading series
    scorer: Alert-to-event matching and quality statistics
    harness: Backtest suite runner (static baseline and dynamic variants)

Example:
    >>> from farmwatch.evaluation import ExperimentHarness, seed_ground_truth
    >>> await seed_ground_truth("farm_global_2", store, store)
    >>> outcomes = await ExperimentHarness(store, config.experiments).run("farm_global_2")
"""

from farmwatch.evaluation.harness import (
    ExperimentHarness,
    ExperimentOutcome,
    build_backtest_engine,
    run_configuration,
    simulate_alerts,
)
from farmwatch.evaluation.scorer import (
    ScoreResult,
    alert_matches_event,
    build_metrics_record,
    classify_window,
    evaluate_experiment,
    score,
)
from farmwatch.evaluation.synthesizer import (
    delete_ground_truth,
    enforce_non_overlap,
    median_step_minutes,
    seed_ground_truth,
    synthesize_events,
)

__all__: list[str] = [
    # Synthesizer
    "synthesize_events",
    "seed_ground_truth",
    "delete_ground_truth",
    "enforce_non_overlap",
    "median_step_minutes",
    # Scorer
    "ScoreResult",
    "score",
    "alert_matches_event",
    "classify_window",
    "build_metrics_record",
    "evaluate_experiment",
    # Harness
    "ExperimentHarness",
    "ExperimentOutcome",
    "build_backtest_engine",
    "run_configuration",
    "simulate_alerts",
]
