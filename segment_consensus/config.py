"""Engine configuration: role assignment, thresholds, workflow and prompts.

Configuration is validated when it is built so that a missing role or an
unknown workflow fails before the first model call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .consensus.segment import AgentRole
from .consensus.templates import PromptTemplate, load_prompt_overrides


WORKFLOWS = ("standard", "fast")


@dataclass(slots=True)
class RoleConfig:
    """Provider and model assigned to one role."""

    provider: str
    model: str


@dataclass(slots=True)
class ThresholdConfig:
    """Dispute-score thresholds handed to the Arbitrator."""

    no_dispute: float = 0.40
    arbitrator_upper: float = 0.75

    def __post_init__(self) -> None:
        for name in ("no_dispute", "arbitrator_upper"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"Threshold {name} must be within [0, 1], got {value}")
        if self.no_dispute > self.arbitrator_upper:
            raise ValueError("no_dispute threshold must not exceed arbitrator_upper")


DEFAULT_LLM_CONFIG: dict[AgentRole, RoleConfig] = {
    AgentRole.TRANSLATOR: RoleConfig(provider="google", model="gemini-2.5-flash"),
    AgentRole.REVIEWER: RoleConfig(provider="openai", model="gpt-5-mini"),
    AgentRole.ARBITRATOR: RoleConfig(provider="anthropic", model="claude-haiku-4-5"),
    AgentRole.JUDGE: RoleConfig(provider="google", model="gemini-2.5-pro"),
}


@dataclass(slots=True)
class EngineOptions:
    """Construction-time options for ConsensusEngine."""

    llm_config: dict[AgentRole, RoleConfig]
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    prompts: dict[str, PromptTemplate] | None = None
    workflow: str = "standard"
    use_judge: bool = True

    def __post_init__(self) -> None:
        normalized: dict[AgentRole, RoleConfig] = {}
        for role, cfg in self.llm_config.items():
            if isinstance(cfg, dict):
                cfg = RoleConfig(provider=str(cfg["provider"]), model=str(cfg["model"]))
            normalized[AgentRole(str(role).upper())] = cfg
        missing = [role.value for role in AgentRole if role not in normalized]
        if missing:
            raise ValueError(f"Missing model configuration for roles: {missing}")
        self.llm_config = normalized

        if self.workflow not in WORKFLOWS:
            raise ValueError(f"Unsupported workflow '{self.workflow}'; expected one of {WORKFLOWS}")

    def role(self, role: AgentRole) -> RoleConfig:
        return self.llm_config[role]


def default_engine_options(**overrides: Any) -> EngineOptions:
    """Shipped role assignment and thresholds."""
    options: dict[str, Any] = {"llm_config": dict(DEFAULT_LLM_CONFIG)}
    options.update(overrides)
    return EngineOptions(**options)


def _parse_roles(raw_roles: Any) -> dict[AgentRole, RoleConfig]:
    if not isinstance(raw_roles, dict):
        raise ValueError("'roles' must be a mapping of role name to {provider, model}")

    roles: dict[AgentRole, RoleConfig] = {}
    for name, entry in raw_roles.items():
        try:
            role = AgentRole(str(name).upper())
        except ValueError as exc:
            raise ValueError(f"Unknown role '{name}'") from exc
        if not isinstance(entry, dict) or "provider" not in entry or "model" not in entry:
            raise ValueError(f"Role '{name}' requires 'provider' and 'model'")
        roles[role] = RoleConfig(provider=str(entry["provider"]), model=str(entry["model"]))
    return roles


def _parse_thresholds(raw: Any) -> ThresholdConfig:
    if raw is None:
        return ThresholdConfig()
    if not isinstance(raw, dict):
        raise ValueError("'thresholds' must be a mapping")
    lowered = {str(key).lower(): value for key, value in raw.items()}
    return ThresholdConfig(
        no_dispute=float(lowered.get("no_dispute", 0.40)),
        arbitrator_upper=float(lowered.get("arbitrator_upper", 0.75)),
    )


def load_engine_options(
    *,
    config_path: Path | None = None,
    raw_config: dict[str, Any] | None = None,
    base_dir: Path | None = None,
) -> EngineOptions:
    """Load engine options from YAML, falling back to shipped defaults per key.

    A relative ``prompts_dir`` resolves against the config file directory, or
    ``base_dir`` (default: working directory) for a raw mapping.
    """
    base_dir = base_dir or Path.cwd()
    if raw_config is None:
        if config_path is None:
            raise ValueError("Either config_path or raw_config must be provided")
        raw_config = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        base_dir = config_path.resolve().parent

    if not isinstance(raw_config, dict):
        raise ValueError("Engine config must be a mapping")

    llm_config = dict(DEFAULT_LLM_CONFIG)
    if "roles" in raw_config:
        llm_config.update(_parse_roles(raw_config["roles"]))

    prompts: dict[str, PromptTemplate] = {}
    if raw_config.get("prompts_dir"):
        prompts_dir = Path(raw_config["prompts_dir"])
        if not prompts_dir.is_absolute():
            prompts_dir = base_dir / prompts_dir
        prompts.update(load_prompt_overrides(prompts_dir))
    for name, entry in (raw_config.get("prompts") or {}).items():
        prompts[str(name)] = PromptTemplate.from_mapping(str(name), entry)

    use_judge = raw_config.get("use_judge", True)
    if not isinstance(use_judge, bool):
        raise ValueError(f"'use_judge' must be true or false, got {use_judge!r}")

    return EngineOptions(
        llm_config=llm_config,
        thresholds=_parse_thresholds(raw_config.get("thresholds")),
        prompts=prompts or None,
        workflow=str(raw_config.get("workflow", "standard")),
        use_judge=use_judge,
    )
