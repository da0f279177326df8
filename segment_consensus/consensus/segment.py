"""Segment and audit-log records moved through the consensus workflow."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import StrEnum
import re
import time
from typing import Any


class SegmentStatus(StrEnum):
    """Position of a segment in the consensus state machine."""

    PENDING = "PENDING"
    TRANSLATED = "TRANSLATED"
    APPROVED = "APPROVED"
    EVALUATION = "EVALUATION"
    DISPUTED = "DISPUTED"
    ESCALATED = "ESCALATED"
    RESOLVED = "RESOLVED"


TERMINAL_STATUSES = frozenset({SegmentStatus.APPROVED, SegmentStatus.RESOLVED})

_SEGMENT_ID = re.compile(r"[\w.-]+")


class AgentRole(StrEnum):
    """AI persona acting on a segment."""

    TRANSLATOR = "TRANSLATOR"
    REVIEWER = "REVIEWER"
    ARBITRATOR = "ARBITRATOR"
    JUDGE = "JUDGE"


class LogAction(StrEnum):
    """Verb recorded for one role turn."""

    PROPOSE = "PROPOSE"
    CRITIQUE = "CRITIQUE"
    ACCEPT_CRITIQUE = "ACCEPT_CRITIQUE"
    REJECT_CRITIQUE = "REJECT_CRITIQUE"
    RULING = "RULING"
    ERROR = "ERROR"


def check_segment_id(segment_id: str) -> str:
    """Return ``segment_id`` if it is safe to use as a checkpoint file name."""
    if not _SEGMENT_ID.fullmatch(segment_id) or segment_id in {".", ".."}:
        raise ValueError(f"Invalid segment id {segment_id!r}; use letters, digits, '_', '.' or '-'")
    return segment_id


def now_ms() -> int:
    """Wall-clock time in milliseconds."""
    return time.time_ns() // 1_000_000


@dataclass(slots=True)
class ConsensusLog:
    """One audit entry per role turn."""

    step: int
    role: AgentRole
    model_used: str
    action: LogAction
    content: str
    reasoning: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))
    input_tokens: int | None = None
    output_tokens: int | None = None
    request_content: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "step": self.step,
            "role": str(self.role),
            "model_used": self.model_used,
            "action": str(self.action),
            "content": self.content,
            "reasoning": self.reasoning,
            "timestamp": self.timestamp.isoformat(),
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "request_content": self.request_content,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ConsensusLog":
        raw_ts = payload.get("timestamp")
        timestamp = datetime.fromisoformat(raw_ts) if raw_ts else datetime.now(tz=timezone.utc)
        return cls(
            step=int(payload["step"]),
            role=AgentRole(payload["role"]),
            model_used=str(payload.get("model_used", "")),
            action=LogAction(payload["action"]),
            content=str(payload.get("content", "")),
            reasoning=payload.get("reasoning"),
            timestamp=timestamp,
            input_tokens=payload.get("input_tokens"),
            output_tokens=payload.get("output_tokens"),
            request_content=payload.get("request_content"),
        )


@dataclass(slots=True)
class JobSegment:
    """Unit of translatable text and its negotiation history."""

    id: str
    index: int
    source: str
    current_translation: str = ""
    status: SegmentStatus = SegmentStatus.PENDING
    history: list[ConsensusLog] = field(default_factory=list)
    target_language: str | None = None
    prev_context: str | None = None
    next_context: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def clone(self) -> "JobSegment":
        """Copy with an independent history list; log entries are shared."""
        return replace(self, history=list(self.history))

    def next_step(self) -> int:
        """Wall-clock step marker, strictly after the last logged step."""
        step = now_ms()
        if self.history and step <= self.history[-1].step:
            step = self.history[-1].step + 1
        return step

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "id": self.id,
            "index": self.index,
            "source": self.source,
            "target_language": self.target_language,
            "current_translation": self.current_translation,
            "status": str(self.status),
            "history": [entry.to_dict() for entry in self.history],
            "prev_context": self.prev_context,
            "next_context": self.next_context,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "JobSegment":
        return cls(
            id=str(payload["id"]),
            index=int(payload["index"]),
            source=str(payload["source"]),
            current_translation=str(payload.get("current_translation") or ""),
            status=SegmentStatus(payload.get("status", SegmentStatus.PENDING)),
            history=[ConsensusLog.from_dict(item) for item in payload.get("history", [])],
            target_language=payload.get("target_language"),
            prev_context=payload.get("prev_context"),
            next_context=payload.get("next_context"),
        )
