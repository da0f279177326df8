"""Role-specific interpretation of model responses.

Every parser first strips markdown code fences and attempts a strict JSON
parse. Reviewer and Judge responses then fall back to deterministic
heuristics over the raw text, so callers always receive the same typed result.
Translator self-evaluation and Arbitrator responses return ``None`` on
failure; the engine decides how each of those roles degrades.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import re
from typing import Any


REVIEW_APPROVED = "APPROVED"
REVIEW_CHANGES_REQUESTED = "CHANGES_REQUESTED"
RAW_OUTPUT_REASON = "Parsed from raw output (JSON failed)."
JUDGE_PARSE_FAILURE_REASON = "Failed to parse reasoning."

_FENCE = re.compile(r"```(?:json)?")


@dataclass(slots=True)
class ReviewResult:
    status: str
    correction: str | None = None
    reason: str | None = None

    @property
    def approved(self) -> bool:
        return self.status == REVIEW_APPROVED


@dataclass(slots=True)
class EvaluationResult:
    decision: str
    final_text: str | None = None
    reasoning: str | None = None

    @property
    def accepted(self) -> bool:
        return self.decision == "ACCEPT"


@dataclass(slots=True)
class ArbitrationResult:
    verdict: str | None = None
    score: float | None = None
    confidence: Any = None
    reasoning: str | None = None
    recommendation: str | None = None
    final_text: str | None = None

    def decision(self, no_dispute: float) -> str:
        """Explicit verdict, else derived from the dispute score."""
        if self.verdict:
            return self.verdict
        if self.score is not None and self.score < no_dispute:
            return "KEEP_ORIGINAL"
        return "ESCALATE"


@dataclass(slots=True)
class JudgeRuling:
    final_translation: str
    reasoning: str | None = None


def strip_code_fences(text: str) -> str:
    """Remove every markdown fence marker that models wrap around JSON."""
    return _FENCE.sub("", text).strip()


def parse_json_object(text: str) -> dict[str, Any] | None:
    """Strict parse of fence-stripped text; only JSON objects count."""
    try:
        payload = json.loads(strip_code_fences(text))
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def _text_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text or None


def _label(value: Any) -> str:
    return str(value or "").strip().upper()


def _score(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def infer_review(text: str) -> ReviewResult:
    """Classify free-form reviewer output by approval phrases."""
    lowered = text.lower()
    approved = "approved" in lowered or "looks good" in lowered
    return ReviewResult(
        status=REVIEW_APPROVED if approved else REVIEW_CHANGES_REQUESTED,
        correction=text,
        reason=RAW_OUTPUT_REASON,
    )


def parse_review(text: str) -> ReviewResult:
    payload = parse_json_object(text)
    if payload is None:
        return infer_review(text)
    return ReviewResult(
        status=_label(payload.get("status")),
        correction=_text_or_none(payload.get("correction")),
        reason=_text_or_none(payload.get("reason")),
    )


def parse_evaluation(text: str) -> EvaluationResult | None:
    payload = parse_json_object(text)
    if payload is None:
        return None
    return EvaluationResult(
        decision=_label(payload.get("decision")),
        final_text=_text_or_none(payload.get("final_text")),
        reasoning=_text_or_none(payload.get("reasoning")),
    )


def parse_arbitration(text: str) -> ArbitrationResult | None:
    payload = parse_json_object(text)
    if payload is None:
        return None
    return ArbitrationResult(
        verdict=_label(payload.get("verdict")) or None,
        score=_score(payload.get("score")),
        confidence=payload.get("confidence"),
        reasoning=_text_or_none(payload.get("reasoning")),
        recommendation=_text_or_none(payload.get("recommendation")),
        final_text=_text_or_none(payload.get("final_text")),
    )


def parse_ruling(text: str) -> JudgeRuling:
    payload = parse_json_object(text)
    final_translation = _text_or_none(payload.get("final_translation")) if payload else None
    if payload is None or final_translation is None or not final_translation.strip():
        return JudgeRuling(final_translation=text, reasoning=JUDGE_PARSE_FAILURE_REASON)
    return JudgeRuling(final_translation=final_translation, reasoning=_text_or_none(payload.get("reasoning")))
