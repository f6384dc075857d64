
import pytest
import yaml
from pydantic import ValidationError

from swingbot.config.settings import (
    IndicatorConfig,
    RiskConfig,
    Settings,
    create_default_config,
    load_settings,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in ("EXECUTION_MODE", "DRY_RUN", "CONFIG_PATH"):
        monkeypatch.delenv(name, raising=False)


def _write_config(path, data: dict):
    config_file = path / "config.yaml"
    config_file.write_text(yaml.safe_dump(data))
    return config_file


class TestLoadSettings:
    def test_defaults_without_file(self, workspace_tmp_path) -> None:
        settings = load_settings(workspace_tmp_path / "missing.yaml")
        assert settings.paper_mode
        assert settings.risk.max_position_size_pct == 10.0
        assert settings.execution.manual_approval_count == 30
        assert settings.indicators.preset == "production"

    def test_yaml_values_are_applied(self, workspace_tmp_path) -> None:
        config_file = _write_config(
            workspace_tmp_path,
            {
                "execution": {"mode": "live", "manual_approval_count": 10},
                "risk": {"current_capital": 250000, "max_position_size_pct": 5},
                "paper": {"portfolio_name": "swing"},
            },
        )
        settings = load_settings(config_file)
        assert not settings.paper_mode
        assert settings.execution.manual_approval_count == 10
        assert settings.risk.current_capital == 250_000.0
        assert settings.paper.portfolio_name == "swing"

    def test_environment_overrides_file(self, workspace_tmp_path, monkeypatch) -> None:
        config_file = _write_config(workspace_tmp_path, {"execution": {"mode": "paper"}})
        monkeypatch.setenv("EXECUTION_MODE", "live")
        monkeypatch.setenv("DRY_RUN", "true")
        settings = load_settings(config_file)
        assert settings.execution.mode == "live"
        assert settings.execution.dry_run is True

    def test_nested_environment_variable_beats_yaml(self, workspace_tmp_path, monkeypatch) -> None:
        config_file = _write_config(
            workspace_tmp_path,
            {"risk": {"max_position_size_pct": 8, "current_capital": 250000}},
        )
        monkeypatch.setenv("RISK__MAX_POSITION_SIZE_PCT", "5")
        settings = load_settings(config_file)
        assert settings.risk.max_position_size_pct == 5.0
        # sibling keys from the file survive the merge
        assert settings.risk.current_capital == 250_000.0

    def test_execution_mode_override_keeps_file_section(self, workspace_tmp_path, monkeypatch) -> None:
        config_file = _write_config(
            workspace_tmp_path, {"execution": {"mode": "paper", "manual_approval_count": 12}}
        )
        monkeypatch.setenv("EXECUTION_MODE", "live")
        settings = load_settings(config_file)
        assert settings.execution.mode == "live"
        assert settings.execution.manual_approval_count == 12

    def test_config_path_from_environment(self, workspace_tmp_path, monkeypatch) -> None:
        config_file = _write_config(workspace_tmp_path, {"strategy": {"min_risk_reward": 2.0}})
        monkeypatch.setenv("CONFIG_PATH", str(config_file))
        assert load_settings().strategy.min_risk_reward == 2.0

    def test_out_of_range_value_is_rejected(self, workspace_tmp_path) -> None:
        config_file = _write_config(workspace_tmp_path, {"risk": {"max_position_size_pct": 150}})
        with pytest.raises(ValidationError):
            load_settings(config_file)


class TestSectionValidation:
    def test_macd_periods_must_be_ordered(self) -> None:
        with pytest.raises(ValidationError):
            IndicatorConfig(macd_fast=26, macd_slow=12)

    def test_unknown_preset_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            IndicatorConfig(preset="aggressive")

    def test_capital_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            RiskConfig(current_capital=0)

    def test_empty_multiplier_candidates(self) -> None:
        with pytest.raises(ValidationError):
            IndicatorConfig(supertrend={"multiplier_candidates": []})


def test_create_default_config_round_trips_without_secrets(workspace_tmp_path) -> None:
    path = workspace_tmp_path / "config.yaml"
    create_default_config(path)
    data = yaml.safe_load(path.read_text())
    assert "api_key" not in data["llm"]
    assert "telegram_bot_token" not in data["notifications"]
    assert load_settings(path).model_dump() == Settings().model_dump()

