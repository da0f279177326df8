"""Consensus state machine driving one segment through the reviewer chain.

Each ``process_segment`` call performs exactly one role turn:

    PENDING     -> Translator               -> TRANSLATED
    TRANSLATED  -> Reviewer                 -> APPROVED | EVALUATION | DISPUTED
    EVALUATION  -> Translator (self-review) -> RESOLVED | DISPUTED
    DISPUTED    -> Arbitrator               -> RESOLVED | ESCALATED
    ESCALATED   -> Judge                    -> RESOLVED

APPROVED and RESOLVED are terminal. There is no transition back to an earlier
status, so a segment settles in at most five turns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from ..models.service import GenerationResult, ModelService, TokenUsage
from .interpret import parse_arbitration, parse_evaluation, parse_review, parse_ruling
from .segment import AgentRole, ConsensusLog, JobSegment, LogAction, SegmentStatus
from .templates import PromptStore, populate_template

if TYPE_CHECKING:
    from ..config import EngineOptions


DEFAULT_GLOBAL_CONTEXT = "No global context provided."
DEFAULT_TONE = "neutral"

TRANSLATOR_PREAMBLE = (
    "Please EXECUTE the following translation task.\n"
    'Refer to the "instruction" field within the JSON for specific rules.\n\n'
    "INPUT TASK:\n"
)

RoleHandler = Callable[[JobSegment, str, str, list["ModelCall"]], Awaitable[JobSegment]]


def _compact_json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def render_history(history: list[ConsensusLog]) -> str:
    """One ``role: action -> content`` line per log entry."""
    return "\n".join(f"{entry.role}: {entry.action} -> {entry.content}" for entry in history)


@dataclass(slots=True)
class ModelCall:
    """Token usage of one model invocation made during a turn."""

    role: AgentRole
    provider: str
    model: str
    usage: TokenUsage


@dataclass(slots=True)
class TurnResult:
    """Updated segment plus every model call the turn made.

    Some turns call a model without logging (an unparseable self-evaluation),
    so usage accounting reads ``calls`` rather than the history.
    """

    segment: JobSegment
    calls: list[ModelCall] = field(default_factory=list)


class ConsensusEngine:
    """Stateless role dispatcher; all state lives on the segment."""

    def __init__(
        self,
        options: EngineOptions,
        model_service: ModelService | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.options = options
        self.model_service = model_service or ModelService()
        self.prompts = PromptStore(options.prompts)
        self.logger = logger or logging.getLogger("segment_consensus")

        self._handlers: dict[SegmentStatus, RoleHandler] = {
            SegmentStatus.PENDING: self._run_translator,
            SegmentStatus.TRANSLATED: self._run_reviewer,
            SegmentStatus.EVALUATION: self._run_translator_evaluation,
            SegmentStatus.DISPUTED: self._run_arbitrator,
            SegmentStatus.ESCALATED: self._run_judge,
        }

    async def process_segment(
        self,
        segment: JobSegment,
        target_language: str,
        global_context: str | None = None,
    ) -> JobSegment:
        """Advance ``segment`` by one role turn and return the updated copy.

        The input segment is never modified. Terminal segments come back as an
        unchanged clone. Model transport errors propagate to the caller.
        """
        turn = await self.advance_segment(segment, target_language, global_context)
        return turn.segment

    async def advance_segment(
        self,
        segment: JobSegment,
        target_language: str,
        global_context: str | None = None,
    ) -> TurnResult:
        """Same as ``process_segment`` but also reports the model calls made."""
        updated = segment.clone()
        calls: list[ModelCall] = []
        handler = self._handlers.get(updated.status)
        if handler is None:
            return TurnResult(segment=updated, calls=calls)

        before = updated.status
        updated = await handler(updated, target_language, global_context or DEFAULT_GLOBAL_CONTEXT, calls)
        self.logger.debug("Segment %s: %s -> %s", updated.id, before, updated.status)
        return TurnResult(segment=updated, calls=calls)

    async def _call(self, role: AgentRole, prompt: str, system: str, calls: list[ModelCall]) -> GenerationResult:
        cfg = self.options.role(role)
        result = await self.model_service.generate(cfg.provider, cfg.model, prompt, system)
        calls.append(ModelCall(role=role, provider=cfg.provider, model=cfg.model, usage=result.usage))
        return result

    def _log(
        self,
        segment: JobSegment,
        role: AgentRole,
        action: LogAction,
        content: str,
        *,
        reasoning: str | None = None,
        result: GenerationResult | None = None,
        request: str | None = None,
    ) -> None:
        segment.history.append(
            ConsensusLog(
                step=segment.next_step(),
                role=role,
                model_used=self.options.role(role).model,
                action=action,
                content=content,
                reasoning=reasoning or None,
                input_tokens=result.usage.input_tokens if result else None,
                output_tokens=result.usage.output_tokens if result else None,
                request_content=request,
            )
        )

    async def _run_translator(
        self, segment: JobSegment, target_language: str, global_context: str, calls: list[ModelCall]
    ) -> JobSegment:
        template = self.prompts.get("translator")
        system = populate_template(template.system, {"globalContext": global_context})
        payload = populate_template(
            template.user_template,
            {
                "targetLanguage": target_language,
                "tone": DEFAULT_TONE,
                "prevContext": segment.prev_context,
                "nextContext": segment.next_context,
                "source": segment.source,
            },
        )
        prompt = TRANSLATOR_PREAMBLE + json.dumps(payload, ensure_ascii=False, indent=2)

        result = await self._call(AgentRole.TRANSLATOR, prompt, system, calls)

        segment.current_translation = result.text.strip()
        segment.status = SegmentStatus.TRANSLATED
        self._log(segment, AgentRole.TRANSLATOR, LogAction.PROPOSE, result.text, result=result, request=prompt)
        return segment

    async def _run_reviewer(
        self, segment: JobSegment, target_language: str, global_context: str, calls: list[ModelCall]
    ) -> JobSegment:
        template = self.prompts.get("reviewer")
        system = populate_template(template.system, {"globalContext": global_context})
        payload = populate_template(
            template.user_template,
            {
                "source": segment.source,
                "translation": segment.current_translation,
                "targetLanguage": target_language,
                "prevContext": segment.prev_context,
                "nextContext": segment.next_context,
            },
        )
        prompt = _compact_json(payload)

        result = await self._call(AgentRole.REVIEWER, prompt, system, calls)
        review = parse_review(result.text)

        if review.approved:
            segment.status = SegmentStatus.APPROVED
            self._log(
                segment,
                AgentRole.REVIEWER,
                LogAction.ACCEPT_CRITIQUE,
                "Translation verified.",
                reasoning=review.reason,
                result=result,
                request=prompt,
            )
            return segment

        # fast workflow skips translator self-evaluation
        if self.options.workflow == "fast":
            segment.status = SegmentStatus.DISPUTED
        else:
            segment.status = SegmentStatus.EVALUATION

        self._log(
            segment,
            AgentRole.REVIEWER,
            LogAction.CRITIQUE,
            review.correction or "No correction provided",
            reasoning=review.reason or "No reason provided",
            result=result,
            request=prompt,
        )
        return segment

    async def _run_translator_evaluation(
        self, segment: JobSegment, target_language: str, global_context: str, calls: list[ModelCall]
    ) -> JobSegment:
        critique = next(
            (
                entry
                for entry in reversed(segment.history)
                if entry.role == AgentRole.REVIEWER and entry.action == LogAction.CRITIQUE
            ),
            None,
        )
        if critique is None:
            segment.status = SegmentStatus.DISPUTED
            return segment

        template = self.prompts.get("translator-evaluator")
        system = populate_template(template.system, {"globalContext": global_context})
        payload = populate_template(
            template.user_template,
            {
                "source": segment.source,
                "originalTranslation": segment.current_translation,
                "reviewerSuggestion": critique.content,
            },
        )
        prompt = _compact_json(payload)

        result = await self._call(AgentRole.TRANSLATOR, prompt, system, calls)
        evaluation = parse_evaluation(result.text)

        if evaluation is None:
            self.logger.warning("Segment %s: unparseable self-evaluation, sending to arbitration", segment.id)
            segment.status = SegmentStatus.DISPUTED
            return segment

        reasoning = evaluation.reasoning or "No reasoning provided."
        if evaluation.final_text:
            segment.current_translation = evaluation.final_text

        if evaluation.accepted:
            segment.status = SegmentStatus.RESOLVED
            action = LogAction.ACCEPT_CRITIQUE
            content = f"Agreed. {reasoning}"
        else:
            segment.status = SegmentStatus.DISPUTED
            action = LogAction.REJECT_CRITIQUE
            content = f"Rejected. {reasoning}"

        self._log(segment, AgentRole.TRANSLATOR, action, content, result=result, request=prompt)
        return segment

    async def _run_arbitrator(
        self, segment: JobSegment, target_language: str, global_context: str, calls: list[ModelCall]
    ) -> JobSegment:
        use_judge = self.options.use_judge
        thresholds = self.options.thresholds
        template = self.prompts.get("arbitrator" if use_judge else "arbitrator-final")
        system = populate_template(
            template.system,
            {
                "threshold_low": thresholds.no_dispute,
                "threshold_high": thresholds.arbitrator_upper,
                "globalContext": global_context,
            },
        )

        original = segment.current_translation
        # last entry overall, not necessarily the reviewer's critique
        suggestion = segment.history[-1].content if segment.history else ""

        payload = populate_template(
            template.user_template,
            {
                "source": segment.source,
                "originalTranslation": original,
                "reviewerSuggestion": suggestion,
            },
        )
        prompt = _compact_json(payload)

        result = await self._call(AgentRole.ARBITRATOR, prompt, system, calls)
        arbitration = parse_arbitration(result.text)

        if arbitration is None:
            if use_judge:
                self.logger.error("Segment %s: unparseable arbitration, escalating to judge", segment.id)
                segment.status = SegmentStatus.ESCALATED
                self._log(
                    segment,
                    AgentRole.ARBITRATOR,
                    LogAction.ERROR,
                    "Failed to parse arbitration result. Escalated to judge.",
                    result=result,
                    request=prompt,
                )
            else:
                self.logger.error("Segment %s: unparseable arbitration, keeping original", segment.id)
                segment.status = SegmentStatus.RESOLVED
                self._log(
                    segment,
                    AgentRole.ARBITRATOR,
                    LogAction.ERROR,
                    "Failed to parse arbitration result. Kept original.",
                    result=result,
                    request=prompt,
                )
            return segment

        decision = arbitration.decision(thresholds.no_dispute)
        score = "N/A" if arbitration.score is None else arbitration.score
        confidence = "N/A" if arbitration.confidence is None else arbitration.confidence
        content = (
            f"Score: {score}. Confidence: {confidence}. Decision: {decision}. "
            f"Reasoning: {arbitration.reasoning or 'No reasoning parsed.'}"
        )

        if not use_judge:
            segment.status = SegmentStatus.RESOLVED
            if decision == "KEEP_ORIGINAL":
                segment.current_translation = arbitration.final_text or original
            elif decision == "ACCEPT_REVIEWER":
                segment.current_translation = arbitration.final_text or suggestion
            elif decision == "REWRITE":
                segment.current_translation = arbitration.final_text or segment.current_translation
            content += " [FINAL AUTHORITY]"
        elif decision == "KEEP_ORIGINAL":
            segment.status = SegmentStatus.RESOLVED
        elif decision == "ACCEPT_REVIEWER":
            segment.status = SegmentStatus.RESOLVED
            segment.current_translation = suggestion
        else:
            segment.status = SegmentStatus.ESCALATED
            content += f". Recommendation: {arbitration.recommendation or 'No recommendation provided.'}"

        self._log(segment, AgentRole.ARBITRATOR, LogAction.RULING, content, result=result, request=prompt)
        return segment

    async def _run_judge(
        self, segment: JobSegment, target_language: str, global_context: str, calls: list[ModelCall]
    ) -> JobSegment:
        template = self.prompts.get("judge")
        system = populate_template(template.system, {"globalContext": global_context})
        payload = populate_template(
            template.user_template,
            {
                "source": segment.source,
                "targetLanguage": target_language,
                "history": render_history(segment.history),
            },
        )
        prompt = _compact_json(payload)

        result = await self._call(AgentRole.JUDGE, prompt, system, calls)
        ruling = parse_ruling(result.text)

        segment.current_translation = ruling.final_translation.strip()
        segment.status = SegmentStatus.RESOLVED
        self._log(
            segment,
            AgentRole.JUDGE,
            LogAction.RULING,
            ruling.final_translation,
            reasoning=ruling.reasoning,
            result=result,
            request=prompt,
        )
        return segment
