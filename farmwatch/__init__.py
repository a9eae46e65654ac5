"""
FarmWatch threshold lab.

Alerting on farm sensor telemetry with two competing strategies (fixed
safety bands and adaptive rolling-quantile bands), plus offline evaluation
of alert quality against ground-truth anomaly windows.

This package provides:
- Data models for readings, bands, alerts, events and metrics records
- The adaptive threshold estimator and threshold providers
- The debounce/cooldown alert decision engine
- Ground-truth synthesis, scoring and the experiment harness
- Configuration management and storage clients
"""

__version__ = "0.1.0"
