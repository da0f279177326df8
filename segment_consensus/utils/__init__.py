"""Utility modules for resilient job execution."""

from .checkpoint import CheckpointManager, ProgressSnapshot, utc_now_iso
from .cost_tracker import CostTracker, PriceConfig, load_pricing
from .logging_config import setup_logging
from .rate_limiter import AsyncRateLimiter, retry_with_backoff

__all__ = [
    "CheckpointManager",
    "ProgressSnapshot",
    "utc_now_iso",
    "CostTracker",
    "PriceConfig",
    "load_pricing",
    "setup_logging",
    "AsyncRateLimiter",
    "retry_with_backoff",
]
