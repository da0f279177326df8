"""End-to-end runner tests with scripted and dry-run model clients."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

from segment_consensus.config import default_engine_options
from segment_consensus.consensus import ConsensusEngine, SegmentStatus
from segment_consensus.jobs import TranslationJob, build_segments
from segment_consensus.models.service import GenerationResult, ModelService, ModelServiceConfig, TokenUsage
from segment_consensus.runner import JobRunner, RunnerConfig
from segment_consensus.utils.logging_config import setup_logging


class KeyedModelService(ModelService):
    """Answers by role model and source text so concurrent segments stay deterministic."""

    def __init__(self, fail_on: str | None = None) -> None:
        super().__init__(ModelServiceConfig(dry_run=True))
        self.fail_on = fail_on
        self.calls = 0

    async def generate(self, provider: str, model: str, prompt: str, system: str | None = None) -> GenerationResult:
        self.calls += 1
        if self.fail_on and self.fail_on in prompt:
            raise ConnectionError("provider unavailable")
        if model == "gemini-2.5-flash":
            text = "Hello" if '"source": "Hola"' in prompt else "Goodbye"
        else:
            text = '{"status": "APPROVED"}'
        return GenerationResult(text=text, usage=TokenUsage(input_tokens=100, output_tokens=20, total_tokens=120))


class ScriptedModelService(ModelService):
    """Returns canned responses in order and counts calls."""

    def __init__(self, responses: list[str]) -> None:
        super().__init__(ModelServiceConfig(dry_run=True))
        self.responses = list(responses)
        self.calls = 0

    async def generate(self, provider: str, model: str, prompt: str, system: str | None = None) -> GenerationResult:
        self.calls += 1
        return GenerationResult(
            text=self.responses.pop(0),
            usage=TokenUsage(input_tokens=10, output_tokens=5, total_tokens=15),
        )


class MisconfiguredModelService(ModelService):
    """Fails like a provider client built without an API key."""

    def __init__(self) -> None:
        super().__init__(ModelServiceConfig(dry_run=True))
        self.calls = 0

    async def generate(self, provider: str, model: str, prompt: str, system: str | None = None) -> GenerationResult:
        self.calls += 1
        raise ValueError(f"Missing API key for {provider} client")


def _job() -> TranslationJob:
    return TranslationJob(id="greetings", target_language="English", segments=build_segments(["Hola", "Adiós"]))


def _runner(tmp_path: Path, service: ModelService, **overrides) -> JobRunner:
    logger, _ = setup_logging(log_dir=tmp_path / "logs", name="test_runner")
    config = RunnerConfig(results_dir=tmp_path / "results", max_retries=0, progress_every=1, **overrides)
    engine = ConsensusEngine(default_engine_options(), service, logger=logger)
    return JobRunner(config, logger, engine=engine)


def test_run_job_persists_outputs(tmp_path: Path) -> None:
    """Runner drives every segment to a terminal status and writes artifacts."""

    async def _run() -> None:
        service = KeyedModelService()
        runner = _runner(tmp_path, service)
        summary = await runner.run_job(_job())
        await runner.close()

        assert summary["status"] == "done"
        assert summary["settled_segments"] == 2
        assert summary["failed_segments"] == 0
        assert summary["status_counts"] == {"APPROVED": 2}
        assert summary["cost"]["calls"] == 4
        assert service.calls == 4

        job_dir = tmp_path / "results" / "greetings"
        assert (job_dir / "translation.txt").read_text(encoding="utf-8") == "Hello\n\nGoodbye"
        assert sorted(path.name for path in (job_dir / "segments").glob("*.json")) == ["seg_0000.json", "seg_0001.json"]
        assert len((job_dir / "cost_log.jsonl").read_text(encoding="utf-8").splitlines()) == 4
        assert json.loads((job_dir / "progress.json").read_text(encoding="utf-8"))["settled_segments"] == 2
        assert json.loads((job_dir / "summary.json").read_text(encoding="utf-8"))["job_id"] == "greetings"

    asyncio.run(_run())


def test_resume_skips_settled_segments(tmp_path: Path) -> None:
    async def _run() -> None:
        first = _runner(tmp_path, KeyedModelService())
        await first.run_job(_job())

        service = KeyedModelService()
        second = _runner(tmp_path, service)
        summary = await second.run_job(_job())

        assert summary["status"] == "nothing_to_do"
        assert summary["settled_segments"] == 2
        assert service.calls == 0

    asyncio.run(_run())


def test_failed_segment_is_retried_on_resume(tmp_path: Path) -> None:
    """A transport failure fails only its segment; resume picks it up again."""

    async def _run() -> None:
        failing = _runner(tmp_path, KeyedModelService(fail_on='"source": "Adiós"'))
        summary = await failing.run_job(_job())

        assert summary["failed_segments"] == 1
        assert summary["settled_segments"] == 1
        assert summary["status_counts"] == {"APPROVED": 1, "PENDING": 1}

        recovered = _runner(tmp_path, KeyedModelService())
        summary = await recovered.run_job(_job())
        assert summary["status"] == "done"
        assert summary["failed_segments"] == 0
        assert summary["settled_segments"] == 2

    asyncio.run(_run())


def test_end_to_end_dry_run(tmp_path: Path) -> None:
    """Dry-run mock responses still walk segments to a terminal status."""

    async def _run() -> None:
        logger, _ = setup_logging(log_dir=tmp_path / "logs", name="test_dry_run")
        config = RunnerConfig(
            results_dir=tmp_path / "results",
            engine_config_path=Path("config/engine.yaml"),
            max_concurrent=2,
            max_retries=0,
            dry_run=True,
            resume=False,
        )
        runner = JobRunner(config, logger)
        summary = await runner.run_job(_job())
        await runner.close()

        assert summary["failed_segments"] == 0
        assert summary["status_counts"] == {str(SegmentStatus.RESOLVED): 2}
        # five calls per segment, one of them (self-evaluation) leaves no history entry
        assert summary["cost"]["calls"] == 10
        assert summary["cost"]["total_cost_usd"] > 0

    asyncio.run(_run())


def test_cost_counts_calls_without_history_entries(tmp_path: Path) -> None:
    """An unparseable self-evaluation is billed even though it is not logged."""

    async def _run() -> None:
        service = ScriptedModelService(
            ["Hello", "needs work", "garbled self-eval", '{"verdict": "KEEP_ORIGINAL"}']
        )
        runner = _runner(tmp_path, service)
        job = TranslationJob(id="single", target_language="English", segments=build_segments(["Hola"]))
        summary = await runner.run_job(job)

        assert summary["status_counts"] == {"RESOLVED": 1}
        assert service.calls == 4
        assert summary["cost"]["calls"] == 4
        assert summary["cost"]["total_input_tokens"] == 40
        assert summary["cost"]["by_role"]["TRANSLATOR"]["calls"] == 2

        job_dir = tmp_path / "results" / "single"
        lines = [json.loads(line) for line in (job_dir / "cost_log.jsonl").read_text(encoding="utf-8").splitlines()]
        assert [line["action"] for line in lines] == ["PROPOSE", "CRITIQUE", None, "RULING"]
        saved = json.loads((job_dir / "segments" / "seg_0000.json").read_text(encoding="utf-8"))
        assert len(saved["history"]) == 3

    asyncio.run(_run())


def test_configuration_errors_are_not_retried(tmp_path: Path) -> None:
    """Deterministic failures fail the segment on the first attempt."""

    async def _run() -> None:
        service = MisconfiguredModelService()
        logger, _ = setup_logging(log_dir=tmp_path / "logs", name="test_runner")
        config = RunnerConfig(results_dir=tmp_path / "results", max_retries=3)
        engine = ConsensusEngine(default_engine_options(), service, logger=logger)
        runner = JobRunner(config, logger, engine=engine)

        summary = await runner.run_job(_job())
        assert summary["failed_segments"] == 2
        assert service.calls == 2

    asyncio.run(_run())
