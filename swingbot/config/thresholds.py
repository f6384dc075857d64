"""Indicator threshold presets.

Presets trade signal frequency against quality: `loose` for exploratory runs,
`tight` for fewer, stronger signals, `production` for the tuned defaults.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel


class AdxThresholds(BaseModel, frozen=True):
    min_strength: float
    confidence_base: float


class RsiThresholds(BaseModel, frozen=True):
    oversold: float
    overbought: float
    confidence_base: float


class MacdThresholds(BaseModel, frozen=True):
    min_histogram: float
    confidence_base: float


class TrendDurationThresholds(BaseModel, frozen=True):
    trend_length: int
    min_confidence: float


class MultiIndicatorThresholds(BaseModel, frozen=True):
    min_confidence: float
    confirmation_mode: Literal["any", "majority", "all"]


class ThresholdPreset(BaseModel, frozen=True):
    adx: AdxThresholds
    rsi: RsiThresholds
    macd: MacdThresholds
    trend_duration: TrendDurationThresholds
    multi_indicator: MultiIndicatorThresholds


DEFAULT_PRESET = "moderate"

PRESETS: dict[str, ThresholdPreset] = {
    "loose": ThresholdPreset(
        adx=AdxThresholds(min_strength=10, confidence_base=40),
        rsi=RsiThresholds(oversold=40, overbought=60, confidence_base=35),
        macd=MacdThresholds(min_histogram=0.1, confidence_base=40),
        trend_duration=TrendDurationThresholds(trend_length=3, min_confidence=40),
        multi_indicator=MultiIndicatorThresholds(min_confidence=40, confirmation_mode="any"),
    ),
    "moderate": ThresholdPreset(
        adx=AdxThresholds(min_strength=15, confidence_base=50),
        rsi=RsiThresholds(oversold=35, overbought=65, confidence_base=45),
        macd=MacdThresholds(min_histogram=0.5, confidence_base=50),
        trend_duration=TrendDurationThresholds(trend_length=4, min_confidence=50),
        multi_indicator=MultiIndicatorThresholds(min_confidence=50, confirmation_mode="majority"),
    ),
    "tight": ThresholdPreset(
        adx=AdxThresholds(min_strength=25, confidence_base=60),
        rsi=RsiThresholds(oversold=25, overbought=75, confidence_base=55),
        macd=MacdThresholds(min_histogram=1.0, confidence_base=60),
        trend_duration=TrendDurationThresholds(trend_length=6, min_confidence=65),
        multi_indicator=MultiIndicatorThresholds(min_confidence=70, confirmation_mode="all"),
    ),
    "production": ThresholdPreset(
        adx=AdxThresholds(min_strength=20, confidence_base=55),
        rsi=RsiThresholds(oversold=30, overbought=70, confidence_base=50),
        macd=MacdThresholds(min_histogram=0.5, confidence_base=55),
        trend_duration=TrendDurationThresholds(trend_length=5, min_confidence=60),
        multi_indicator=MultiIndicatorThresholds(min_confidence=60, confirmation_mode="all"),
    ),
}


def get_preset(name: str | None = None) -> ThresholdPreset:
    """Return the named preset, falling back to `moderate` for unknown names."""
    if name is None:
        return PRESETS[DEFAULT_PRESET]
    return PRESETS.get(name.lower(), PRESETS[DEFAULT_PRESET])


def merge_with_thresholds(
    indicator: str,
    overrides: dict[str, Any] | None = None,
    preset: str | None = None,
) -> dict[str, Any]:
    """Preset values for one indicator with explicit overrides taking precedence."""
    section = getattr(get_preset(preset), indicator, None)
    merged: dict[str, Any] = section.model_dump() if section is not None else {}
    if overrides:
        merged.update({k: v for k, v in overrides.items() if v is not None})
    return merged
