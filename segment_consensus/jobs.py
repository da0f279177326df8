"""Translation job loading and segment construction."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import re
from typing import Any, Iterable

import yaml

from .consensus.segment import JobSegment, check_segment_id


_BLANK_LINES = re.compile(r"\n\s*\n")


@dataclass(slots=True)
class TranslationJob:
    """A document split into segments sharing one target language."""

    id: str
    target_language: str | None
    global_context: str | None = None
    segments: list[JobSegment] = field(default_factory=list)


def split_paragraphs(text: str) -> list[str]:
    """Split plain text on blank lines, dropping empty paragraphs."""
    normalized = text.replace("\r\n", "\n")
    return [part.strip() for part in _BLANK_LINES.split(normalized) if part.strip()]


def build_segments(
    items: Iterable[str | dict[str, Any]],
    *,
    id_prefix: str = "seg",
) -> list[JobSegment]:
    """Create PENDING segments with neighbouring source text as context.

    Items may be plain strings or mappings with ``source`` and optional
    ``id`` / ``target_language``.
    """
    entries: list[dict[str, Any]] = []
    for item in items:
        if isinstance(item, str):
            entries.append({"source": item})
        elif isinstance(item, dict) and "source" in item:
            entries.append(item)
        else:
            raise ValueError(f"Segment entries must be strings or mappings with 'source', got {item!r}")

    segments: list[JobSegment] = []
    for index, entry in enumerate(entries):
        segments.append(
            JobSegment(
                id=check_segment_id(str(entry.get("id") or f"{id_prefix}_{index:04d}")),
                index=index,
                source=str(entry["source"]),
                target_language=entry.get("target_language"),
                prev_context=str(entries[index - 1]["source"]) if index > 0 else None,
                next_context=str(entries[index + 1]["source"]) if index + 1 < len(entries) else None,
            )
        )

    ids = [segment.id for segment in segments]
    if len(ids) != len(set(ids)):
        raise ValueError("Segment ids must be unique within a job")
    return segments


def load_job(path: Path, *, target_language: str | None = None) -> TranslationJob:
    """Load a job from YAML/JSON, or from plain text split into paragraphs.

    ``target_language`` overrides the value in the file.
    """
    if path.suffix.lower() in {".yaml", ".yml", ".json"}:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError(f"Job file {path} must contain a mapping")

        if "segments" in raw:
            items = raw["segments"] or []
        elif "text" in raw:
            items = split_paragraphs(str(raw["text"]))
        else:
            raise ValueError(f"Job file {path} needs either 'segments' or 'text'")

        job = TranslationJob(
            id=str(raw.get("id") or path.stem),
            target_language=target_language or raw.get("target_language"),
            global_context=raw.get("global_context"),
            segments=build_segments(items),
        )
    else:
        job = TranslationJob(
            id=path.stem,
            target_language=target_language,
            segments=build_segments(split_paragraphs(path.read_text(encoding="utf-8"))),
        )

    if not job.segments:
        raise ValueError(f"Job {job.id} has no segments")
    if not job.target_language and any(not s.target_language for s in job.segments):
        raise ValueError(f"Job {job.id} has no target language")
    return job


def assemble_translation(segments: Iterable[JobSegment], separator: str = "\n\n") -> str:
    """Join current translations in segment order."""
    ordered = sorted(segments, key=lambda segment: segment.index)
    return separator.join(segment.current_translation for segment in ordered)
