"""Configuration management module."""

from swingbot.config.settings import (
    ExecutionConfig,
    IndicatorConfig,
    PaperTradingConfig,
    RiskConfig,
    Settings,
    StrategyConfig,
    SupertrendConfig,
    load_settings,
)
from swingbot.config.thresholds import ThresholdPreset, get_preset

__all__ = [
    "ExecutionConfig",
    "IndicatorConfig",
    "PaperTradingConfig",
    "RiskConfig",
    "Settings",
    "StrategyConfig",
    "SupertrendConfig",
    "ThresholdPreset",
    "get_preset",
    "load_settings",
]
