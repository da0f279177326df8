"""Tests for model response interpretation."""

from __future__ import annotations

from segment_consensus.consensus.interpret import (
    JUDGE_PARSE_FAILURE_REASON,
    RAW_OUTPUT_REASON,
    parse_arbitration,
    parse_evaluation,
    parse_json_object,
    parse_review,
    parse_ruling,
    strip_code_fences,
)


def test_strip_code_fences_removes_all_markers() -> None:
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}```') == '{"a": 1}'
    assert strip_code_fences("plain") == "plain"


def test_parse_json_object_rejects_non_objects() -> None:
    """Arrays, scalars and broken JSON all count as parse failures."""
    assert parse_json_object('{"status": "APPROVED"}') == {"status": "APPROVED"}
    assert parse_json_object("[1, 2]") is None
    assert parse_json_object('"APPROVED"') is None
    assert parse_json_object("{status: APPROVED}") is None


def test_parse_review_json_and_label_normalization() -> None:
    review = parse_review('{"status": " approved ", "reason": "fine"}')
    assert review.approved
    assert review.reason == "fine"

    review = parse_review('{"status": "CHANGES_REQUESTED", "correction": "Hi", "reason": "tone"}')
    assert not review.approved
    assert review.correction == "Hi"


def test_parse_review_heuristic_fallback() -> None:
    """Free text is classified by approval phrases."""
    assert parse_review("Everything LOOKS GOOD to me").approved
    assert parse_review("Approved.").approved

    review = parse_review("The second clause is mistranslated.")
    assert not review.approved
    assert review.correction == "The second clause is mistranslated."
    assert review.reason == RAW_OUTPUT_REASON


def test_parse_evaluation() -> None:
    evaluation = parse_evaluation('```json\n{"decision": "accept", "final_text": "Hi"}\n```')
    assert evaluation is not None
    assert evaluation.accepted
    assert evaluation.final_text == "Hi"
    assert evaluation.reasoning is None

    rejected = parse_evaluation('{"decision": "REJECT"}')
    assert rejected is not None and not rejected.accepted
    assert parse_evaluation("I accept") is None


def test_parse_arbitration_decision_derivation() -> None:
    """Verdict wins; otherwise the score is compared against the threshold."""
    explicit = parse_arbitration('{"verdict": "accept_reviewer", "score": 0.9}')
    assert explicit is not None
    assert explicit.decision(0.4) == "ACCEPT_REVIEWER"

    low = parse_arbitration('{"score": "0.1"}')
    assert low is not None
    assert low.score == 0.1
    assert low.decision(0.4) == "KEEP_ORIGINAL"

    at_threshold = parse_arbitration('{"score": 0.4}')
    assert at_threshold is not None
    assert at_threshold.decision(0.4) == "ESCALATE"

    missing = parse_arbitration('{"reasoning": "unclear"}')
    assert missing is not None
    assert missing.score is None
    assert missing.decision(0.4) == "ESCALATE"

    assert parse_arbitration('{"score": true}').score is None
    assert parse_arbitration("KEEP_ORIGINAL") is None


def test_parse_ruling_fallbacks() -> None:
    ruling = parse_ruling('{"final_translation": "Hello", "reasoning": "ok"}')
    assert ruling.final_translation == "Hello"
    assert ruling.reasoning == "ok"

    for text in ("Hello there", '{"reasoning": "no text"}', '{"final_translation": "   "}'):
        fallback = parse_ruling(text)
        assert fallback.final_translation == text
        assert fallback.reasoning == JUDGE_PARSE_FAILURE_REASON
