"""Statement generation node and response parsing."""

import asyncio
import logging
import re
from typing import Optional

from langchain_core.prompts import PromptTemplate
from langchain_core.runnables import RunnableConfig

from common.interfaces import TextGenerator
from soql_agent.config import CLARIFICATION_SENTINEL, IMPOSSIBLE_SENTINEL, HealingSettings
from soql_agent.models import CandidateStatement, ErrorCategory, GenerationContext, HealingPhase
from soql_agent.nodes.deps import cancelled_update, get_deps
from soql_agent.prompts import DEFAULT_PROMPT, render_prompt
from soql_agent.state.agent import HealingState
from soql_agent.taxonomy import generate_correction_strategy
from soql_agent.telemetry import telemetry
from soql_agent.telemetry_schema import SpanKind, TelemetryKeys
from soql_agent.utils.cancellation import HealingCancelled, run_cancellable

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_REASON = "The text generator returned an empty response."
UNRESOLVED_REFERENCE_REASON = (
    "The statement references a record id the service rejected, and no valid "
    "record ids are available from the question or the previous results."
)

# A known language tag may share the line with the statement; any other tag
# needs its own line.
_FENCE_TAG = r"(?:(?:soql|sql)\b[ \t]*\n?|(?!select\b)[A-Za-z]+[ \t]*\n)?"
_FENCED_BLOCK = re.compile(rf"```{_FENCE_TAG}\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_STRAY_FENCE = re.compile(
    r"```(?:(?:soql|sql)\b[ \t]*|(?!select\b)[A-Za-z]+[ \t]*(?=\n))?", re.IGNORECASE
)


def strip_code_fences(text: str) -> str:
    """Return the content of the first fenced block, or the text without fences."""
    text = (text or "").strip()
    block = _FENCED_BLOCK.search(text)
    if block:
        return block.group(1).strip()
    return _STRAY_FENCE.sub("", text).strip()


def _strip_prefix(text: str, sentinel: str) -> Optional[str]:
    if text[: len(sentinel)].upper() == sentinel.upper():
        return text[len(sentinel) :].strip()
    return None


def parse_candidate(
    raw: Optional[str],
    clarification_sentinel: str = CLARIFICATION_SENTINEL,
    impossible_sentinel: str = IMPOSSIBLE_SENTINEL,
) -> CandidateStatement:
    """
    Parse a raw generation into a tagged candidate.

    Sentinels are matched case-insensitively at the start of the cleaned
    response; whatever follows becomes the clarification question or the
    impossibility reason.
    """
    text = strip_code_fences(raw or "")
    if not text:
        return CandidateStatement.impossible(EMPTY_RESPONSE_REASON)

    clarification = _strip_prefix(text, clarification_sentinel)
    if clarification is not None:
        return CandidateStatement.ambiguous(
            clarification or "Could you clarify which records you are asking about?"
        )

    reason = _strip_prefix(text, impossible_sentinel)
    if reason is not None:
        return CandidateStatement.impossible(reason or "The question cannot be answered.")

    return CandidateStatement.statement(text)


class StatementGenerator:
    """Renders the prompt, calls the text generator and parses the response."""

    def __init__(
        self,
        text_generator: TextGenerator,
        prompt: PromptTemplate = DEFAULT_PROMPT,
        settings: Optional[HealingSettings] = None,
    ):
        """Initialize with a text generator and an optional prompt override."""
        self.text_generator = text_generator
        self.prompt = prompt
        self.settings = settings or HealingSettings()

    async def generate(
        self,
        context: GenerationContext,
        cancel_event: Optional[asyncio.Event] = None,
        deadline_ts: Optional[float] = None,
    ) -> CandidateStatement:
        """Produce the next candidate for ``context``.

        A referential failure with no identifier to fall back on is reported as
        IMPOSSIBLE without calling the text generator.

        Raises:
            HealingCancelled: If the caller cancelled or the deadline passed.
        """
        if (
            context.error_category == ErrorCategory.REFERENTIAL.value
            and not context.available_identifiers
        ):
            logger.info("Referential failure without identifiers; not regenerating")
            return CandidateStatement.impossible(UNRESOLVED_REFERENCE_REASON)

        correction_strategy = None
        if context.prior_attempts:
            last = context.prior_attempts[-1]
            correction_strategy = generate_correction_strategy(
                error_message=last.outcome.error_message or "",
                failed_statement=last.statement,
                schema_context=context.schema_excerpt.render(),
            )

        prompt_text = render_prompt(
            context,
            prompt=self.prompt,
            correction_strategy=correction_strategy,
            clarification_sentinel=self.settings.clarification_sentinel,
            impossible_sentinel=self.settings.impossible_sentinel,
        )
        raw = await run_cancellable(
            self.text_generator.complete(prompt_text), cancel_event, deadline_ts
        )
        return parse_candidate(
            raw,
            clarification_sentinel=self.settings.clarification_sentinel,
            impossible_sentinel=self.settings.impossible_sentinel,
        )


async def generate_statement_node(state: HealingState, config: RunnableConfig) -> dict:
    """
    Node: GenerateStatement.

    Ambiguous and impossible candidates end the run without an execution
    attempt.

    Returns:
        dict: candidate and phase
    """
    deps = get_deps(config)
    with telemetry.start_span(name="generate_statement", span_type=SpanKind.AGENT_NODE) as span:
        attempt = len(state.get("attempts") or []) + 1
        span.set_attribute(TelemetryKeys.ATTEMPT.value, attempt)
        try:
            candidate = await deps.generator.generate(
                state["generation_context"],
                cancel_event=deps.cancel_event,
                deadline_ts=state.get("deadline_ts"),
            )
        except HealingCancelled as exc:
            return cancelled_update(exc, span)

        span.set_attribute("candidate.kind", candidate.kind.value)
        if candidate.is_ambiguous:
            phase = HealingPhase.AMBIGUOUS
        elif candidate.is_impossible:
            phase = HealingPhase.IMPOSSIBLE
        else:
            phase = HealingPhase.GENERATING
        span.set_attribute(TelemetryKeys.PHASE.value, phase.value)
        return {"candidate": candidate, "phase": phase}
