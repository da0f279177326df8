"""Consensus state machine, response interpretation and prompt templates."""

from .engine import DEFAULT_GLOBAL_CONTEXT, ConsensusEngine, ModelCall, TurnResult, render_history
from .segment import TERMINAL_STATUSES, AgentRole, ConsensusLog, JobSegment, LogAction, SegmentStatus
from .templates import PromptStore, PromptTemplate, load_prompt_overrides, populate_template

__all__ = [
    "DEFAULT_GLOBAL_CONTEXT",
    "ConsensusEngine",
    "ModelCall",
    "TurnResult",
    "render_history",
    "TERMINAL_STATUSES",
    "AgentRole",
    "ConsensusLog",
    "JobSegment",
    "LogAction",
    "SegmentStatus",
    "PromptStore",
    "PromptTemplate",
    "load_prompt_overrides",
    "populate_template",
]
