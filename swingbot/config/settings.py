"""
Configuration management with Pydantic validation.

Loads settings from YAML config file and environment variables.
"""

from __future__ import annotations

import os
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource


PresetName = Literal["loose", "moderate", "tight", "production"]


class SupertrendConfig(BaseModel):
    """Adaptive Supertrend parameters."""

    period: int = Field(default=10, ge=2, le=100)
    multiplier: float = Field(default=3.0, ge=0.5, le=10.0)
    training_period: int = Field(default=50, ge=10, le=500)
    num_clusters: int = Field(default=3, ge=1, le=10)
    performance_alpha: float = Field(default=0.1, ge=0.0, le=1.0)
    multiplier_candidates: list[float] = Field(default_factory=lambda: [1.5, 2.0, 2.5, 3.0, 3.5])

    @field_validator("multiplier_candidates")
    @classmethod
    def validate_candidates(cls, v: list[float]) -> list[float]:
        if not v:
            raise ValueError("multiplier_candidates must not be empty")
        if any(c <= 0 for c in v):
            raise ValueError("multiplier_candidates must be positive")
        return v


class IndicatorConfig(BaseModel):
    """Technical indicator parameters."""

    preset: PresetName = "production"
    rsi_period: int = Field(default=14, ge=2, le=100)
    adx_period: int = Field(default=14, ge=2, le=100)
    atr_period: int = Field(default=14, ge=2, le=100)
    macd_fast: int = Field(default=12, ge=2, le=100)
    macd_slow: int = Field(default=26, ge=5, le=200)
    macd_signal: int = Field(default=9, ge=2, le=100)
    hma_length: int = Field(default=20, ge=4, le=200)
    # None defers to the threshold preset
    trend_length: int | None = Field(default=None, ge=2, le=50)
    duration_samples: int = Field(default=10, ge=1, le=100)
    trading_hours_filter: bool = False
    supertrend: SupertrendConfig = Field(default_factory=SupertrendConfig)

    @model_validator(mode="after")
    def validate_macd_periods(self) -> "IndicatorConfig":
        if self.macd_fast >= self.macd_slow:
            raise ValueError("macd_fast must be lower than macd_slow")
        return self


class MultiTimeframeConfig(BaseModel):
    """Multi-timeframe analysis configuration."""

    enabled: bool = True
    include_intraday: bool = True
    trading_style: Literal["swing", "long_term"] = "swing"


class StrategyConfig(BaseModel):
    """Signal construction parameters."""

    min_candles: int = Field(default=50, ge=20, le=1000)
    min_risk_reward: float = Field(default=1.5, ge=0.5, le=10.0)
    stop_loss_pct: float = Field(default=8.0, ge=0.5, le=50.0)
    profit_target_pct: float = Field(default=15.0, ge=1.0, le=200.0)
    risk_per_trade_pct: float = Field(default=2.0, ge=0.1, le=10.0)
    account_size: float = Field(default=100_000.0, gt=0)
    max_holding_days: int = Field(default=20, ge=1, le=365)
    multi_timeframe: MultiTimeframeConfig = Field(default_factory=MultiTimeframeConfig)


class RiskConfig(BaseModel):
    """Live risk gate limits."""

    current_capital: float = Field(default=100_000.0, gt=0)
    max_position_size_pct: float = Field(default=10.0, ge=0.1, le=100.0)
    max_total_exposure_pct: float = Field(default=50.0, ge=1.0, le=100.0)
    circuit_breaker_threshold_pct: float = Field(default=50.0, ge=1.0, le=100.0)
    circuit_breaker_window_minutes: int = Field(default=60, ge=1, le=1440)
    large_order_pct: float = Field(default=5.0, ge=0.1, le=100.0)


class ExecutionConfig(BaseModel):
    """Execution routing configuration."""

    mode: Literal["paper", "live"] = "paper"
    dry_run: bool = False
    order_type: Literal["MARKET", "LIMIT"] = "MARKET"
    manual_approval_enabled: bool = True
    manual_approval_count: int = Field(default=30, ge=0, le=10_000)
    auto_trading_enabled: bool = False
    place_on_approval: bool = True


class PaperTradingConfig(BaseModel):
    """Paper portfolio limits."""

    portfolio_name: str = "default"
    initial_capital: float = Field(default=100_000.0, gt=0)
    max_position_size_pct: float = Field(default=10.0, ge=0.1, le=100.0)
    max_total_exposure_pct: float = Field(default=50.0, ge=1.0, le=100.0)
    max_open_positions: int = Field(default=5, ge=1, le=100)
    max_daily_loss_pct: float = Field(default=5.0, ge=0.1, le=100.0)
    max_drawdown_pct: float = Field(default=20.0, ge=1.0, le=100.0)
    max_consecutive_losses: int = Field(default=3, ge=1, le=50)
    cooldown_after_loss_hours: int = Field(default=24, ge=0, le=168)
    max_holding_days: int = Field(default=20, ge=1, le=365)


class LLMConfig(BaseModel):
    """Advisory LLM review configuration."""

    enabled: bool = False
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    api_key: str = ""
    temperature: float = Field(default=0.3, ge=0.0, le=1.0)
    max_tokens: int = Field(default=200, ge=50, le=4000)
    request_timeout_sec: int = Field(default=20, ge=5, le=120)
    retry_attempts: int = Field(default=1, ge=0, le=5)
    retry_backoff_sec: float = Field(default=0.5, ge=0.0, le=30.0)


class NotificationConfig(BaseModel):
    """Operator notification channels."""

    enabled: bool = False
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    telegram_api_url: str = "https://api.telegram.org"
    webhook_urls: list[str] = Field(default_factory=list)
    timeout_sec: float = Field(default=10.0, ge=1.0, le=60.0)


class StorageConfig(BaseModel):
    """Storage paths configuration."""

    paper_ledger_path: str = "./data/paper"
    orders_path: str = "./data/orders"
    logs_path: str = "./logs"


class MonitoringConfig(BaseModel):
    """Monitoring configuration."""

    metrics_enabled: bool = False
    metrics_port: int = Field(default=9090, ge=1024, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    error_log_max_bytes: int = Field(default=5_000_000, ge=100_000, le=50_000_000)
    error_log_backup_count: int = Field(default=3, ge=1, le=20)


_yaml_config: ContextVar[dict[str, Any]] = ContextVar("_yaml_config", default={})


class YamlMappingSource(PydanticBaseSettingsSource):
    """Values parsed from config.yaml, ranked below environment variables."""

    def __init__(self, settings_cls: type[BaseSettings], data: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self.data = data

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return self.data.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return {name: value for name, value in self.data.items() if name in self.settings_cls.model_fields}


class Settings(BaseSettings):
    """Main application settings."""

    indicators: IndicatorConfig = Field(default_factory=IndicatorConfig)
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    paper: PaperTradingConfig = Field(default_factory=PaperTradingConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "env_nested_delimiter": "__",
        "populate_by_name": True,
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlMappingSource(settings_cls, _yaml_config.get()),
            file_secret_settings,
        )

    @property
    def paper_mode(self) -> bool:
        return self.execution.mode == "paper"


def load_settings(config_path: str | Path | None = None) -> Settings:
    """
    Load settings from YAML config file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (EXECUTION_MODE, DRY_RUN, SECTION__KEY)
    2. Config file values
    3. Default values
    """
    config_data: dict[str, Any] = {}

    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", "config.yaml")

    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file) as f:
            config_data = yaml.safe_load(f) or {}

    overrides: dict[str, Any] = {}
    env_mode = os.environ.get("EXECUTION_MODE")
    if env_mode:
        overrides.setdefault("execution", {})["mode"] = env_mode
    env_dry_run = os.environ.get("DRY_RUN")
    if env_dry_run is not None:
        overrides.setdefault("execution", {})["dry_run"] = env_dry_run.lower() == "true"

    env_path = config_file.parent / ".env"
    token = _yaml_config.set(config_data)
    try:
        return Settings(**overrides, _env_file=env_path)
    finally:
        _yaml_config.reset(token)


def create_default_config(path: str | Path = "config.yaml") -> None:
    """Create a default configuration file."""
    default_config = Settings().model_dump(
        exclude={
            "llm": {"api_key"},
            "notifications": {"telegram_bot_token", "telegram_chat_id"},
        }
    )
    with open(path, "w") as f:
        yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)
