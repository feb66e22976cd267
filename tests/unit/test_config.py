"""Tests for settings defaults, YAML merging and environment overrides."""

import pytest
import yaml
from pydantic import ValidationError

from crowdcast.config import OrchestratorConfig, Settings


def test_defaults(tmp_path) -> None:
    settings = Settings(data_dir=tmp_path)

    assert settings.orchestrator.max_opportunities == 8
    assert settings.orchestrator.research_ttl_minutes == 30
    assert settings.wallet.paper_mode is True
    assert settings.agents_dir == tmp_path.resolve() / "agents"
    assert settings.research_db_path == tmp_path.resolve() / "research.db"


def test_yaml_sections_are_merged(tmp_path) -> None:
    (tmp_path / "config.yaml").write_text(
        "orchestrator:\n"
        "  max_opportunities: 4\n"
        "  cycle_min_minutes: 1\n"
        "  cycle_max_minutes: 2\n"
        "oracle:\n"
        "  decision_model: qwen3-235b\n"
        "unknown_section:\n"
        "  ignored: true\n",
        encoding="utf-8",
    )
    settings = Settings(data_dir=tmp_path)

    settings.load_yaml_config()

    assert settings.orchestrator.max_opportunities == 4
    assert settings.orchestrator.cycle_max_minutes == 2
    assert settings.orchestrator.research_ttl_minutes == 30
    assert settings.oracle.decision_model == "qwen3-235b"
    assert settings.oracle.decision_temperature == 0.85


def test_missing_yaml_keeps_defaults(tmp_path) -> None:
    settings = Settings(data_dir=tmp_path)

    settings.load_yaml_config()

    assert settings.market.chat_limit == 10


def test_invalid_yaml_raises(tmp_path) -> None:
    (tmp_path / "config.yaml").write_text("orchestrator: [unclosed\n", encoding="utf-8")
    settings = Settings(data_dir=tmp_path)

    with pytest.raises(yaml.YAMLError):
        settings.load_yaml_config()


def test_environment_overrides(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("ORACLE_API_KEY", "venice-key")
    monkeypatch.setenv("WALLET__PAPER_MODE", "false")
    monkeypatch.setenv("ORCHESTRATOR__LOW_BALANCE_THRESHOLD", "1.5")

    settings = Settings(data_dir=tmp_path)

    assert settings.oracle_api_key == "venice-key"
    assert settings.wallet.paper_mode is False
    assert settings.orchestrator.low_balance_threshold == 1.5


def test_cycle_bounds_are_validated() -> None:
    with pytest.raises(ValidationError):
        OrchestratorConfig(cycle_min_minutes=30, cycle_max_minutes=20)
    with pytest.raises(ValidationError):
        OrchestratorConfig(action_delay_min_seconds=5, action_delay_max_seconds=1)
