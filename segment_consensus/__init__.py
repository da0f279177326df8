"""Multi-agent translation consensus package."""

from .config import EngineOptions, RoleConfig, ThresholdConfig, default_engine_options, load_engine_options
from .consensus import AgentRole, ConsensusEngine, ConsensusLog, JobSegment, LogAction, SegmentStatus
from .jobs import TranslationJob, build_segments, load_job
from .models import GenerationResult, ModelService, ModelServiceConfig, TokenUsage, UnsupportedProviderError
from .runner import JobRunner, RunnerConfig

__all__ = [
    "EngineOptions",
    "RoleConfig",
    "ThresholdConfig",
    "default_engine_options",
    "load_engine_options",
    "AgentRole",
    "ConsensusEngine",
    "ConsensusLog",
    "JobSegment",
    "LogAction",
    "SegmentStatus",
    "TranslationJob",
    "build_segments",
    "load_job",
    "GenerationResult",
    "ModelService",
    "ModelServiceConfig",
    "TokenUsage",
    "UnsupportedProviderError",
    "JobRunner",
    "RunnerConfig",
]
