"""Run one translation job through the consensus workflow."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import argparse
import asyncio
import json
import logging
from typing import Any

from dotenv import load_dotenv

from segment_consensus.jobs import load_job
from segment_consensus.runner import JobRunner, RunnerConfig
from segment_consensus.utils.logging_config import setup_logging


def parse_args() -> argparse.Namespace:
    """Parse CLI args."""
    parser = argparse.ArgumentParser(description="Translate a job with multi-agent consensus")
    parser.add_argument("--job", type=Path, required=True, help="Job YAML/JSON or plain-text file")
    parser.add_argument("--config", type=Path, default=Path("config/engine.yaml"))
    parser.add_argument("--target-language", default=None, help="Overrides the job's target language")
    parser.add_argument("--global-context", default=None, help="Overrides the job's global context")
    parser.add_argument("--results-dir", type=Path, default=Path("results"))
    parser.add_argument("--max-concurrent", type=int, default=4)
    parser.add_argument("--max-retries", type=int, default=3)
    parser.add_argument("--workflow", choices=["standard", "fast"], default=None)
    parser.add_argument("--no-judge", action="store_true", help="Arbitrator rules with final authority")
    parser.add_argument("--resume", action="store_true")
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args()


async def async_main(args: argparse.Namespace) -> dict[str, Any]:
    """Load the job, drive it to completion and return the summary."""
    args.results_dir.mkdir(parents=True, exist_ok=True)
    logger, _ = setup_logging(
        log_dir=args.results_dir,
        level=logging.DEBUG if args.verbose else logging.INFO,
    )

    job = load_job(args.job, target_language=args.target_language)
    if args.global_context:
        job.global_context = args.global_context
    logger.info("Loaded job %s with %d segments -> %s", job.id, len(job.segments), job.target_language)

    config = RunnerConfig(
        results_dir=args.results_dir,
        engine_config_path=args.config if args.config.exists() else None,
        max_concurrent=args.max_concurrent,
        max_retries=args.max_retries,
        dry_run=args.dry_run,
        resume=args.resume,
        workflow=args.workflow,
        use_judge=False if args.no_judge else None,
    )
    runner = JobRunner(config=config, logger=logger)
    try:
        summary = await runner.run_job(job)
    finally:
        await runner.close()

    logger.info("Run summary: %s", json.dumps(summary, ensure_ascii=False))
    return summary


def main() -> None:
    """Program entry point."""
    load_dotenv()
    args = parse_args()
    summary = asyncio.run(async_main(args))
    if summary["failed_segments"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
