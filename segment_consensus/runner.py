"""Asynchronous, resumable job runner driving segments to a terminal status."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
import logging
from pathlib import Path
import time
from typing import Any

import yaml

from .config import EngineOptions, load_engine_options
from .consensus import ConsensusEngine, JobSegment, TurnResult
from .jobs import TranslationJob, assemble_translation
from .models import SUPPORTED_PROVIDERS, ModelService, ModelServiceConfig, UnsupportedProviderError
from .utils.checkpoint import CheckpointManager, ProgressSnapshot, utc_now_iso
from .utils.cost_tracker import CostTracker, load_pricing
from .utils.rate_limiter import retry_with_backoff


# Configuration errors such as a missing API key fail identically on every attempt.
NON_RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (ValueError, RuntimeError)


@dataclass(slots=True)
class RunnerConfig:
    """Runtime configuration for JobRunner."""

    results_dir: Path
    engine_config_path: Path | None = None
    max_concurrent: int = 4
    max_retries: int = 3
    max_turns: int = 6
    progress_every: int = 10
    dry_run: bool = False
    resume: bool = True
    workflow: str | None = None
    use_judge: bool | None = None


def _service_config(raw: dict[str, Any], dry_run: bool) -> ModelServiceConfig:
    temperature = raw.get("temperature")
    return ModelServiceConfig(
        temperature=float(temperature) if temperature is not None else None,
        max_tokens=int(raw.get("max_tokens", 4096)),
        rpm_limits={str(model): int(rpm) for model, rpm in (raw.get("rpm") or {}).items()},
        default_rpm=int(raw.get("default_rpm", 60)),
        dry_run=dry_run,
    )


class JobRunner:
    """Runs every segment of a job through the consensus engine.

    Segments are independent, so up to ``max_concurrent`` of them are in
    flight at once; turns of a single segment are strictly sequential.
    """

    def __init__(
        self,
        config: RunnerConfig,
        logger: logging.Logger,
        *,
        engine: ConsensusEngine | None = None,
        model_service: ModelService | None = None,
    ) -> None:
        self.config = config
        self.logger = logger

        raw: dict[str, Any] = {}
        base_dir = Path.cwd()
        if config.engine_config_path is not None:
            raw = yaml.safe_load(config.engine_config_path.read_text(encoding="utf-8")) or {}
            base_dir = config.engine_config_path.resolve().parent
        self.pricing = load_pricing(raw.get("pricing"))

        if engine is None:
            options = self._engine_options(raw, base_dir)
            model_service = model_service or ModelService(
                _service_config(raw.get("service") or {}, config.dry_run),
                logger=logger,
            )
            engine = ConsensusEngine(options, model_service, logger=logger)

        self.engine = engine
        self.model_service = engine.model_service
        self.checkpoint = CheckpointManager(config.results_dir)
        self._state_lock = asyncio.Lock()

    def _engine_options(self, raw: dict[str, Any], base_dir: Path) -> EngineOptions:
        options = load_engine_options(raw_config=raw, base_dir=base_dir)
        if self.config.workflow is not None:
            options = replace(options, workflow=self.config.workflow)
        if self.config.use_judge is not None:
            options = replace(options, use_judge=self.config.use_judge)

        for role, role_cfg in options.llm_config.items():
            if role_cfg.provider not in SUPPORTED_PROVIDERS:
                self.logger.error("Role %s is configured with provider '%s'", role, role_cfg.provider)
                raise UnsupportedProviderError(role_cfg.provider)
        return options

    async def run_job(self, job: TranslationJob) -> dict[str, Any]:
        """Drive all non-terminal segments and return a summary."""
        if not job.target_language and any(not s.target_language for s in job.segments):
            raise ValueError(f"Job {job.id} has no target language")

        started = time.perf_counter()
        cost_tracker = CostTracker(self.pricing, self.checkpoint.job_dir(job.id) / "cost_log.jsonl")

        segments: dict[str, JobSegment] = {segment.id: segment for segment in job.segments}
        if self.config.resume:
            saved = self.checkpoint.load_segments(job.id)
            for segment_id in segments:
                if segment_id in saved:
                    segments[segment_id] = saved[segment_id]

        pending = [segment for segment in segments.values() if not segment.is_terminal]
        self.logger.info(
            "Job %s segments total=%d pending=%d settled=%d",
            job.id,
            len(segments),
            len(pending),
            len(segments) - len(pending),
        )

        state = {"settled": len(segments) - len(pending), "failed": 0}
        if pending:
            semaphore = asyncio.Semaphore(self.config.max_concurrent)

            async def _run_with_semaphore(segment: JobSegment) -> None:
                async with semaphore:
                    await self._drive_segment(
                        job,
                        segment,
                        cost_tracker=cost_tracker,
                        state=state,
                        total=len(segments),
                        start_time=started,
                        segments=segments,
                    )

            await asyncio.gather(*[_run_with_semaphore(segment) for segment in pending])

        ordered = sorted(segments.values(), key=lambda segment: segment.index)
        translation_path = self.checkpoint.save_text(job.id, "translation.txt", assemble_translation(ordered))

        elapsed = time.perf_counter() - started
        summary = {
            "job_id": job.id,
            "status": "done" if pending else "nothing_to_do",
            "timestamp_utc": utc_now_iso(),
            "total_segments": len(ordered),
            "settled_segments": sum(1 for segment in ordered if segment.is_terminal),
            "failed_segments": state["failed"],
            "status_counts": self._status_counts(ordered),
            "elapsed_seconds": elapsed,
            "translation_path": str(translation_path),
            "cost": cost_tracker.snapshot(),
        }
        self.checkpoint.save_json(job.id, "summary.json", summary)
        self.logger.info("Finished job %s in %.1fs (failed=%d)", job.id, elapsed, state["failed"])
        return summary

    async def _drive_segment(
        self,
        job: TranslationJob,
        segment: JobSegment,
        *,
        cost_tracker: CostTracker,
        state: dict[str, int],
        total: int,
        start_time: float,
        segments: dict[str, JobSegment],
    ) -> JobSegment:
        """Run turns until the segment settles; failures leave it checkpointed."""
        target_language = segment.target_language or job.target_language or ""
        turns = 0
        success = True

        try:
            while not segment.is_terminal:
                if turns >= self.config.max_turns:
                    raise RuntimeError(f"Segment {segment.id} did not settle within {self.config.max_turns} turns")

                current = segment

                async def _turn() -> TurnResult:
                    return await self.engine.advance_segment(current, target_language, job.global_context)

                turn = await retry_with_backoff(
                    _turn,
                    max_retries=self.config.max_retries,
                    fatal_exceptions=NON_RETRYABLE_EXCEPTIONS,
                    logger=self.logger,
                    description=f"Segment {segment.id} ({segment.status})",
                )
                updated = turn.segment
                # each role turn makes at most one call and logs at most one entry
                new_entries = updated.history[len(segment.history):]
                for index, call in enumerate(turn.calls):
                    cost_tracker.record_call(
                        job_id=job.id,
                        segment_id=updated.id,
                        role=str(call.role),
                        model_name=call.model,
                        input_tokens=call.usage.input_tokens,
                        output_tokens=call.usage.output_tokens,
                        entry=new_entries[index] if index < len(new_entries) else None,
                    )
                self.checkpoint.save_segment(job.id, updated)

                segment = updated
                turns += 1
        except Exception:
            self.logger.exception("Segment failed: %s", segment.id)
            success = False

        async with self._state_lock:
            segments[segment.id] = segment
            if success:
                state["settled"] += 1
            else:
                state["failed"] += 1

            done = state["settled"] + state["failed"]
            if done % self.config.progress_every == 0 or done == total:
                self._report_progress(job.id, segments, state, total, start_time, cost_tracker)

        return segment

    def _report_progress(
        self,
        job_id: str,
        segments: dict[str, JobSegment],
        state: dict[str, int],
        total: int,
        start_time: float,
        cost_tracker: CostTracker,
    ) -> None:
        done = state["settled"] + state["failed"]
        elapsed = max(0.001, time.perf_counter() - start_time)
        remaining = max(0, total - done)
        eta = remaining / max(done / elapsed, 1e-6)
        cost_snapshot = cost_tracker.snapshot()

        self.checkpoint.update_progress(
            job_id,
            ProgressSnapshot(
                timestamp_utc=utc_now_iso(),
                settled_segments=state["settled"],
                pending_segments=remaining,
                failed_segments=state["failed"],
                status_counts=self._status_counts(segments.values()),
                eta_seconds=eta,
                estimated_total_cost_usd=float(cost_snapshot["total_cost_usd"]),
            ),
        )
        self.logger.info(
            "Progress: %d/%d segments | failed=%d | eta=%.1fs | cost=$%.4f",
            done,
            total,
            state["failed"],
            eta,
            cost_snapshot["total_cost_usd"],
        )

    @staticmethod
    def _status_counts(segments: Any) -> dict[str, int]:
        counts: dict[str, int] = {}
        for segment in segments:
            counts[str(segment.status)] = counts.get(str(segment.status), 0) + 1
        return counts

    async def close(self) -> None:
        """Close all model clients."""
        await self.model_service.close()
