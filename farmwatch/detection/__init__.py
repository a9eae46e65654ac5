"""
Alert decision logic for the threshold lab.

Modules:
    state: DebounceState keyed by (farm, metric, rule_type)
    evaluator: Stateless breach check and message builder
    engine: AlertDecisionEngine (debounce, cooldown, persistence)

Example:
    >>> from farmwatch.detection import create_alert_engine
    >>> engine = create_alert_engine(config.alerts, alert_store=store)
    >>> alerts = engine.evaluate_reading(reading, bands_by_rule)
"""

from farmwatch.detection.engine import AlertDecisionEngine, create_alert_engine
from farmwatch.detection.evaluator import build_message, is_breach
from farmwatch.detection.state import DebounceKey, DebounceState, build_debounce_key

__all__: list[str] = [
    # State
    "DebounceKey",
    "DebounceState",
    "build_debounce_key",
    # Evaluation
    "is_breach",
    "build_message",
    # Engine
    "AlertDecisionEngine",
    "create_alert_engine",
]
