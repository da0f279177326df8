"""Tests for crash-safe checkpoint behavior and cost accounting."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from segment_consensus.consensus.segment import AgentRole, ConsensusLog, JobSegment, LogAction, SegmentStatus
from segment_consensus.utils.checkpoint import CheckpointManager, ProgressSnapshot
from segment_consensus.utils.cost_tracker import CostTracker, load_pricing
from segment_consensus.utils.rate_limiter import retry_with_backoff


def _segment(segment_id: str, index: int) -> JobSegment:
    segment = JobSegment(id=segment_id, index=index, source="Hola", target_language="English")
    segment.current_translation = "Hello"
    segment.status = SegmentStatus.APPROVED
    segment.history.append(
        ConsensusLog(
            step=1,
            role=AgentRole.TRANSLATOR,
            model_used="m",
            action=LogAction.PROPOSE,
            content="Hello",
            input_tokens=3,
            output_tokens=2,
        )
    )
    return segment


def test_checkpoint_save_and_resume(tmp_path: Path) -> None:
    """Saved segments should be discovered by resume scan."""
    manager = CheckpointManager(tmp_path)

    manager.save_segment("job", _segment("seg_0000", 0))
    manager.save_segment("job", _segment("seg_0001", 1))

    loaded = manager.load_segments("job")
    assert set(loaded) == {"seg_0000", "seg_0001"}
    assert loaded["seg_0001"].status == SegmentStatus.APPROVED
    assert loaded["seg_0001"].history[0].role == AgentRole.TRANSLATOR
    assert loaded["seg_0001"].history[0].input_tokens == 3
    assert manager.load_segments("other") == {}


def test_checkpoint_overwrite_leaves_no_temp_files(tmp_path: Path) -> None:
    """Repeated saves replace the segment file atomically."""
    manager = CheckpointManager(tmp_path)
    segment = _segment("seg_0000", 0)
    manager.save_segment("job", segment)
    segment.current_translation = "Hi"
    path = manager.save_segment("job", segment)

    assert json.loads(path.read_text(encoding="utf-8"))["current_translation"] == "Hi"
    assert list(path.parent.glob("*.tmp")) == []


def test_progress_atomic_write(tmp_path: Path) -> None:
    """Progress file should be written and readable."""
    manager = CheckpointManager(tmp_path)
    snapshot = ProgressSnapshot(
        timestamp_utc="2026-01-01T00:00:00Z",
        settled_segments=10,
        pending_segments=5,
        failed_segments=1,
        status_counts={"APPROVED": 6, "RESOLVED": 4},
        eta_seconds=12.5,
        estimated_total_cost_usd=1.23,
    )
    path = manager.update_progress("job", snapshot)
    loaded = json.loads(path.read_text(encoding="utf-8"))
    assert loaded["settled_segments"] == 10
    assert loaded["status_counts"]["APPROVED"] == 6
    assert loaded["estimated_total_cost_usd"] == 1.23


def test_cost_tracker_records_calls(tmp_path: Path) -> None:
    """Costs accumulate per model and role, one JSONL line per model call."""
    pricing = load_pricing({"m": {"input": 1.0, "output": 2.0}})
    log_path = tmp_path / "cost_log.jsonl"
    tracker = CostTracker(pricing, log_path)

    entry = ConsensusLog(step=5, role=AgentRole.REVIEWER, model_used="m", action=LogAction.CRITIQUE, content="fix")
    cost = tracker.record_call(
        job_id="job",
        segment_id="seg_0000",
        role="REVIEWER",
        model_name="m",
        input_tokens=1_000_000,
        output_tokens=500_000,
        entry=entry,
    )
    tracker.record_call(
        job_id="job",
        segment_id="seg_0000",
        role="TRANSLATOR",
        model_name="unpriced",
        input_tokens=10,
        output_tokens=4,
    )

    assert cost == pytest.approx(2.0)
    snapshot = tracker.snapshot()
    assert snapshot["calls"] == 2
    assert snapshot["total_input_tokens"] == 1_000_010
    assert snapshot["total_cost_usd"] == pytest.approx(2.0)
    assert snapshot["by_role"]["REVIEWER"]["calls"] == 1
    assert snapshot["by_model"]["unpriced"]["cost_usd"] == 0.0

    lines = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert [(line["step"], line["action"]) for line in lines] == [(5, "CRITIQUE"), (None, None)]
    assert lines[1]["role"] == "TRANSLATOR"


def test_segment_path_rejects_traversal(tmp_path: Path) -> None:
    """Checkpoints never escape the job's segments directory."""
    manager = CheckpointManager(tmp_path)
    with pytest.raises(ValueError, match="Invalid segment id"):
        manager.save_segment("job", JobSegment(id="../../escaped", index=0, source="Hola"))
    assert list(tmp_path.rglob("*.json")) == []


def test_retry_with_backoff_recovers_then_gives_up() -> None:
    """Transient failures retry; persistent ones re-raise after the budget."""

    async def _run() -> None:
        attempts = {"count": 0}

        async def _flaky() -> str:
            attempts["count"] += 1
            if attempts["count"] < 3:
                raise ConnectionError("transient")
            return "ok"

        assert await retry_with_backoff(_flaky, max_retries=3, base_delay=0.0) == "ok"
        assert attempts["count"] == 3

        async def _broken() -> str:
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            await retry_with_backoff(_broken, max_retries=1, base_delay=0.0)

    asyncio.run(_run())


def test_retry_with_backoff_skips_fatal_exceptions() -> None:
    """Fatal errors re-raise on the first attempt."""

    async def _run() -> None:
        attempts = {"count": 0}

        async def _misconfigured() -> str:
            attempts["count"] += 1
            raise ValueError("Missing API key")

        with pytest.raises(ValueError):
            await retry_with_backoff(_misconfigured, max_retries=3, base_delay=0.0, fatal_exceptions=(ValueError,))
        assert attempts["count"] == 1

    asyncio.run(_run())
