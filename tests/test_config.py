"""Tests for engine configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from segment_consensus.config import (
    DEFAULT_LLM_CONFIG,
    EngineOptions,
    ThresholdConfig,
    default_engine_options,
    load_engine_options,
)
from segment_consensus.consensus.segment import AgentRole


def test_default_engine_options() -> None:
    options = default_engine_options()
    assert options.workflow == "standard"
    assert options.use_judge is True
    assert options.thresholds.no_dispute == 0.40
    assert options.thresholds.arbitrator_upper == 0.75
    assert options.role(AgentRole.JUDGE).model == "gemini-2.5-pro"


def test_engine_options_validation() -> None:
    """Missing roles and unknown workflows fail at construction."""
    partial = {role: cfg for role, cfg in DEFAULT_LLM_CONFIG.items() if role != AgentRole.JUDGE}
    with pytest.raises(ValueError, match="JUDGE"):
        EngineOptions(llm_config=partial)
    with pytest.raises(ValueError):
        default_engine_options(workflow="turbo")


def test_threshold_validation() -> None:
    with pytest.raises(ValueError):
        ThresholdConfig(no_dispute=1.5)
    with pytest.raises(ValueError):
        ThresholdConfig(no_dispute=0.8, arbitrator_upper=0.5)


def test_load_engine_options_from_yaml(tmp_path: Path) -> None:
    prompts_dir = tmp_path / "prompts"
    prompts_dir.mkdir()
    (prompts_dir / "reviewer.yaml").write_text(
        "system: Strict reviewer {{globalContext}}\nuser_template:\n  translation: '{{translation}}'\n",
        encoding="utf-8",
    )
    config_path = tmp_path / "engine.yaml"
    config_path.write_text(
        "\n".join(
            [
                "roles:",
                "  reviewer: {provider: anthropic, model: claude-sonnet-4-5}",
                "thresholds:",
                "  NO_DISPUTE: 0.3",
                "workflow: fast",
                "use_judge: false",
                "prompts_dir: prompts",
                "prompts:",
                "  judge:",
                "    system: Inline judge",
                "    user_template: {history: '{{history}}'}",
            ]
        ),
        encoding="utf-8",
    )

    options = load_engine_options(config_path=config_path)

    assert options.role(AgentRole.REVIEWER).provider == "anthropic"
    assert options.role(AgentRole.TRANSLATOR).model == "gemini-2.5-flash"
    assert options.thresholds.no_dispute == 0.3
    assert options.thresholds.arbitrator_upper == 0.75
    assert options.workflow == "fast"
    assert options.use_judge is False
    assert options.prompts is not None
    assert set(options.prompts) == {"reviewer", "judge"}
    assert options.prompts["judge"].system == "Inline judge"


def test_load_engine_options_rejects_unknown_role() -> None:
    with pytest.raises(ValueError, match="Unknown role"):
        load_engine_options(raw_config={"roles": {"editor": {"provider": "openai", "model": "m"}}})
    with pytest.raises(ValueError):
        load_engine_options(raw_config={"roles": {"judge": {"provider": "openai"}}})


def test_load_engine_options_rejects_non_bool_use_judge() -> None:
    """A quoted "false" must not silently enable the judge."""
    with pytest.raises(ValueError, match="use_judge"):
        load_engine_options(raw_config={"use_judge": "false"})
    assert load_engine_options(raw_config={"use_judge": False}).use_judge is False


def test_shipped_engine_config_loads() -> None:
    options = load_engine_options(config_path=Path("config/engine.yaml"))
    assert options.prompts is None
    assert options.role(AgentRole.ARBITRATOR).provider == "anthropic"
