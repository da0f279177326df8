"""Crash-safe segment checkpointing based on atomic filesystem writes."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
import json
import os
from pathlib import Path
import tempfile
from threading import Lock
from typing import Any

from ..consensus.segment import JobSegment, check_segment_id


@dataclass(slots=True)
class ProgressSnapshot:
    """Progress metadata persisted to progress.json."""

    timestamp_utc: str
    settled_segments: int
    pending_segments: int
    failed_segments: int
    status_counts: dict[str, int]
    eta_seconds: float | None
    estimated_total_cost_usd: float


class CheckpointManager:
    """Stores one JSON file per segment so an interrupted job can resume."""

    def __init__(self, results_dir: Path) -> None:
        self.results_dir = results_dir
        self.results_dir.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()

    def job_dir(self, job_id: str) -> Path:
        return self.results_dir / job_id

    def segment_path(self, job_id: str, segment_id: str) -> Path:
        """Return canonical path for a segment checkpoint."""
        return self.job_dir(job_id) / "segments" / f"{check_segment_id(segment_id)}.json"

    def save_segment(self, job_id: str, segment: JobSegment) -> Path:
        """Persist the segment state atomically."""
        path = self.segment_path(job_id, segment.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        self._atomic_write(path, json.dumps(segment.to_dict(), indent=2, ensure_ascii=False))
        return path

    def load_segments(self, job_id: str) -> dict[str, JobSegment]:
        """Load every checkpointed segment of a job, keyed by segment id."""
        segments_dir = self.job_dir(job_id) / "segments"
        if not segments_dir.exists():
            return {}

        loaded: dict[str, JobSegment] = {}
        for path in sorted(segments_dir.glob("*.json")):
            segment = JobSegment.from_dict(json.loads(path.read_text(encoding="utf-8")))
            loaded[segment.id] = segment
        return loaded

    def update_progress(self, job_id: str, snapshot: ProgressSnapshot) -> Path:
        """Atomically update progress.json."""
        path = self.job_dir(job_id) / "progress.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        self._atomic_write(path, json.dumps(asdict(snapshot), indent=2))
        return path

    def save_text(self, job_id: str, name: str, text: str) -> Path:
        path = self.job_dir(job_id) / name
        path.parent.mkdir(parents=True, exist_ok=True)
        self._atomic_write(path, text)
        return path

    def save_json(self, job_id: str, name: str, payload: dict[str, Any]) -> Path:
        return self.save_text(job_id, name, json.dumps(payload, indent=2, ensure_ascii=False))

    def _atomic_write(self, target_path: Path, serialized: str) -> None:
        with self._lock:
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                delete=False,
                dir=str(target_path.parent),
                suffix=".tmp",
            ) as handle:
                handle.write(serialized)
                handle.flush()
                os.fsync(handle.fileno())
                temp_path = Path(handle.name)
            os.replace(temp_path, target_path)


def utc_now_iso() -> str:
    """Current UTC timestamp in ISO-8601 format."""
    return datetime.now(tz=timezone.utc).isoformat()
