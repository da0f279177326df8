"""Pre-flight validation for environment, config, prompts and provider wiring."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import argparse
import asyncio
import platform
from typing import Any

from dotenv import load_dotenv

from segment_consensus.config import load_engine_options
from segment_consensus.consensus import PromptStore
from segment_consensus.consensus.templates import PROMPT_NAMES
from segment_consensus.jobs import TranslationJob, build_segments
from segment_consensus.models.service import resolve_api_key
from segment_consensus.runner import JobRunner, RunnerConfig
from segment_consensus.utils.logging_config import setup_logging


def parse_args() -> argparse.Namespace:
    """Parse CLI options."""
    parser = argparse.ArgumentParser(description="Validate setup and optional dry run")
    parser.add_argument("--config", type=Path, default=Path("config/engine.yaml"))
    parser.add_argument("--dry-run", action="store_true", help="Drive one mocked segment end to end")
    parser.add_argument("--results-dir", type=Path, default=Path("results/validate"))
    return parser.parse_args()


def check_python() -> str:
    """Return Python-version status message."""
    if sys.version_info < (3, 11):
        return "Error: Python 3.11+ is required."
    return "Python version is compatible (3.11+)."


def check_env(providers: set[str], dry_run: bool) -> dict[str, bool]:
    """Check API key presence for every provider the config uses."""
    env_status = {f"{provider}_key_present": bool(resolve_api_key(provider)) for provider in sorted(providers)}
    if not dry_run and not all(env_status.values()):
        missing = [name for name, ok in env_status.items() if not ok]
        raise RuntimeError(f"Missing API keys: {missing}")
    return env_status


def check_prompts(store: PromptStore) -> dict[str, bool]:
    """Make sure every role prompt resolves."""
    return {name: bool(store.get(name).system) for name in PROMPT_NAMES}


async def run_smoke(config_path: Path | None, results_dir: Path) -> dict[str, Any]:
    """Drive a single mocked segment through the whole chain."""
    logger, _ = setup_logging(log_dir=results_dir, name="validate_setup")
    job = TranslationJob(
        id="smoke",
        target_language="English",
        segments=build_segments(["Hola, mundo."]),
    )
    runner = JobRunner(
        config=RunnerConfig(
            results_dir=results_dir,
            engine_config_path=config_path,
            dry_run=True,
            resume=False,
            max_retries=0,
        ),
        logger=logger,
    )
    try:
        return await runner.run_job(job)
    finally:
        await runner.close()


def main() -> None:
    """CLI entry point."""
    load_dotenv()
    args = parse_args()
    python_status = check_python()

    config_path = args.config if args.config.exists() else None
    options = load_engine_options(config_path=config_path) if config_path else load_engine_options(raw_config={})
    providers = {cfg.provider for cfg in options.llm_config.values()}

    env_status = check_env(providers, dry_run=args.dry_run)
    prompt_status = check_prompts(PromptStore(options.prompts))

    smoke_summary: dict[str, Any] = {}
    if args.dry_run:
        args.results_dir.mkdir(parents=True, exist_ok=True)
        smoke_summary = asyncio.run(run_smoke(config_path, args.results_dir))

    print("Validation complete")
    print(f"Platform: {platform.platform()}")
    print(python_status)
    print(f"Workflow: {options.workflow} | judge: {options.use_judge}")
    print(f"Roles: { {str(role): f'{cfg.provider}/{cfg.model}' for role, cfg in options.llm_config.items()} }")
    print(f"Environment: {env_status}")
    print(f"Prompts: {prompt_status}")
    if smoke_summary:
        print(f"Dry-run summary: {smoke_summary['status_counts']} | cost={smoke_summary['cost']['total_cost_usd']}")


if __name__ == "__main__":
    main()
