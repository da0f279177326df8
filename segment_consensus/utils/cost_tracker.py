"""Token and cost accounting for consensus turns."""

from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
from threading import Lock
from typing import Any

from ..consensus.segment import ConsensusLog


@dataclass(slots=True)
class PriceConfig:
    """Per-model token pricing in USD per 1M tokens."""

    input_per_million: float
    output_per_million: float


def load_pricing(raw: dict[str, Any] | None) -> dict[str, PriceConfig]:
    """Read a ``{model: {input, output}}`` mapping into price configs."""
    pricing: dict[str, PriceConfig] = {}
    for model_name, entry in (raw or {}).items():
        pricing[str(model_name)] = PriceConfig(
            input_per_million=float(entry["input"]),
            output_per_million=float(entry["output"]),
        )
    return pricing


class CostTracker:
    """Tracks cumulative cost by model and role; logs every recorded call."""

    def __init__(self, pricing: dict[str, PriceConfig], log_path: Path) -> None:
        self.pricing = pricing
        self._lock = Lock()

        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.total_cost_usd = 0.0
        self.calls = 0

        self.by_model: dict[str, dict[str, float]] = {}
        self.by_role: dict[str, dict[str, float]] = {}

        self.log_path = log_path
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def _compute_call_cost(self, model_name: str, input_tokens: int, output_tokens: int) -> float:
        price = self.pricing.get(model_name)
        if price is None:
            return 0.0
        in_cost = (input_tokens / 1_000_000) * price.input_per_million
        out_cost = (output_tokens / 1_000_000) * price.output_per_million
        return in_cost + out_cost

    def record_call(
        self,
        *,
        job_id: str,
        segment_id: str,
        role: str,
        model_name: str,
        input_tokens: int,
        output_tokens: int,
        entry: ConsensusLog | None = None,
    ) -> float:
        """Record one model call and append a JSONL cost line.

        ``entry`` is the audit-log entry the call produced, if any; calls that
        leave no history entry are still billed.
        """
        with self._lock:
            call_cost = self._compute_call_cost(model_name, input_tokens, output_tokens)
            self.calls += 1
            self.total_input_tokens += input_tokens
            self.total_output_tokens += output_tokens
            self.total_cost_usd += call_cost

            model_bucket = self.by_model.setdefault(
                model_name, {"cost_usd": 0.0, "input_tokens": 0.0, "output_tokens": 0.0}
            )
            model_bucket["cost_usd"] += call_cost
            model_bucket["input_tokens"] += input_tokens
            model_bucket["output_tokens"] += output_tokens

            role_bucket = self.by_role.setdefault(role, {"cost_usd": 0.0, "calls": 0.0})
            role_bucket["cost_usd"] += call_cost
            role_bucket["calls"] += 1

            line = {
                "job_id": job_id,
                "segment_id": segment_id,
                "step": entry.step if entry else None,
                "role": role,
                "action": str(entry.action) if entry else None,
                "model_name": model_name,
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "cost_usd": round(call_cost, 8),
                "total_cost_usd": round(self.total_cost_usd, 8),
            }
            with self.log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(line) + "\n")

            return call_cost

    def snapshot(self) -> dict[str, Any]:
        """Return cumulative cost snapshot."""
        with self._lock:
            return {
                "calls": self.calls,
                "total_input_tokens": self.total_input_tokens,
                "total_output_tokens": self.total_output_tokens,
                "total_cost_usd": round(self.total_cost_usd, 6),
                "by_model": self.by_model,
                "by_role": self.by_role,
            }
