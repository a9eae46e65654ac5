"""
Configuration management for the threshold lab.

This module handles loading and validating configuration from YAML files.
All configuration values are validated using Pydantic models to ensure
type safety and catch configuration errors early.

The configuration system supports:
- Farm sites and effective-dated static threshold bands
- Safety bounds and the periodic dynamic snapshot policy
- Live debounce and cooldown settings
- Named backtest configurations
- Scheduler cadence, ground truth and logging

Configuration is loaded from YAML files in the config/ directory:
    - farms.yaml: Farm sites and static bands
    - thresholds.yaml: Safety bounds and snapshot policy
    - alerts.yaml: Live alert decision settings
    - experiments.yaml: Backtest suite and scoring settings
    - features.yaml: Scheduler, ground truth and logging

Environment variables can override connection settings:
    - DATABASE_URL: PostgreSQL connection URL
    - LOG_LEVEL: Application log level
    - CONFIG_PATH: Configuration directory
    - SIMULATOR_ENABLED: Toggle the reading simulator

Example:
    >>> from farmwatch.config import load_config, AppConfig
    >>> config = load_config()
    >>> farm = config.get_farm("farm_global_2")

Modules:
    loader: Configuration file loading utilities
    models: Pydantic models for configuration validation
"""

from farmwatch.config.loader import ConfigLoadError, ConfigLoader, load_config
from farmwatch.config.models import (
    # Enums
    ExperimentKind,
    LogFormat,
    LogLevel,
    # Farm config
    FarmConfig,
    StaticThresholdConfig,
    # Threshold config
    SnapshotConfig,
    ThresholdsConfig,
    # Alert config
    AlertsConfig,
    # Experiment config
    ExperimentConfig,
    ExperimentsConfig,
    # Features config
    FeaturesConfig,
    GroundTruthConfig,
    LoggingConfig,
    SchedulerConfig,
    # Connection config
    PostgresConnectionConfig,
    # Root config
    AppConfig,
)

__all__: list[str] = [
    # Loader
    "load_config",
    "ConfigLoader",
    "ConfigLoadError",
    # Enums
    "ExperimentKind",
    "LogFormat",
    "LogLevel",
    # Farm config
    "StaticThresholdConfig",
    "FarmConfig",
    # Threshold config
    "SnapshotConfig",
    "ThresholdsConfig",
    # Alert config
    "AlertsConfig",
    # Experiment config
    "ExperimentConfig",
    "ExperimentsConfig",
    # Features config
    "SchedulerConfig",
    "GroundTruthConfig",
    "LoggingConfig",
    "FeaturesConfig",
    # Connection config
    "PostgresConnectionConfig",
    # Root config
    "AppConfig",
]
