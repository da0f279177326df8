"""Prompt templates and recursive placeholder population."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
import re
from typing import Any

import yaml


PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"

PROMPT_NAMES = (
    "translator",
    "reviewer",
    "judge",
    "arbitrator",
    "arbitrator-final",
    "translator-evaluator",
)

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


@dataclass(slots=True)
class PromptTemplate:
    """System message plus a structured user payload template."""

    system: str
    user_template: Any

    @classmethod
    def from_mapping(cls, name: str, raw: Any) -> "PromptTemplate":
        if isinstance(raw, PromptTemplate):
            return raw
        if not isinstance(raw, Mapping):
            raise ValueError(f"Prompt '{name}' must be a mapping with 'system' and 'user_template'")
        if "system" not in raw or "user_template" not in raw:
            raise ValueError(f"Prompt '{name}' requires both 'system' and 'user_template'")
        return cls(system=str(raw["system"]), user_template=raw["user_template"])


def populate_template(template: Any, variables: Mapping[str, Any]) -> Any:
    """Substitute ``{{name}}`` placeholders in every string leaf.

    Sequences come back as lists and mappings keep their keys; any other leaf
    (numbers, booleans, None) is returned as-is. Unknown placeholders are left
    in place, ``None`` values render as an empty string.
    """
    if isinstance(template, str):
        def _sub(match: re.Match[str]) -> str:
            key = match.group(1)
            if key not in variables:
                return match.group(0)
            value = variables[key]
            return "" if value is None else str(value)

        return _PLACEHOLDER.sub(_sub, template)
    if isinstance(template, (list, tuple)):
        return [populate_template(item, variables) for item in template]
    if isinstance(template, Mapping):
        return {key: populate_template(value, variables) for key, value in template.items()}
    return template


def load_prompt_file(path: Path) -> PromptTemplate:
    """Load one YAML or JSON prompt definition."""
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    return PromptTemplate.from_mapping(path.stem, raw)


def load_prompt_overrides(prompts_dir: Path) -> dict[str, PromptTemplate]:
    """Load every prompt file in a directory, keyed by file stem."""
    if not prompts_dir.is_dir():
        raise ValueError(f"Prompt directory not found: {prompts_dir}")

    overrides: dict[str, PromptTemplate] = {}
    for path in sorted(prompts_dir.iterdir()):
        if path.suffix.lower() in {".yaml", ".yml", ".json"}:
            overrides[path.stem] = load_prompt_file(path)
    return overrides


class PromptStore:
    """Resolves role prompts from caller overrides, then built-in defaults."""

    def __init__(self, overrides: Mapping[str, Any] | None = None) -> None:
        self._overrides = {
            name: PromptTemplate.from_mapping(name, raw) for name, raw in (overrides or {}).items()
        }
        self._defaults: dict[str, PromptTemplate] = {}

    def get(self, name: str) -> PromptTemplate:
        if name in self._overrides:
            return self._overrides[name]
        if name not in PROMPT_NAMES:
            raise KeyError(f"Unknown prompt '{name}'")
        if name not in self._defaults:
            self._defaults[name] = load_prompt_file(PROMPTS_DIR / f"{name}.yaml")
        return self._defaults[name]
