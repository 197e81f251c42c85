"""Session-aware facade over ``generate_and_heal``."""

import asyncio
import logging
from typing import Optional, Tuple

from langchain_core.prompts import PromptTemplate

from common.interfaces import QueryExecutor, SchemaProvider, TextGenerator
from soql_agent.config import HealingSettings
from soql_agent.graph import HistoryInput, generate_and_heal
from soql_agent.models import HealingResult
from soql_agent.state.domain import ConversationTurn
from soql_agent.state.sessions import SessionRegistry

logger = logging.getLogger(__name__)


class HealingEngine:
    """Binds the collaborators once and keeps per-session conversation history."""

    def __init__(
        self,
        text_generator: TextGenerator,
        executor: QueryExecutor,
        schema_provider: SchemaProvider,
        settings: Optional[HealingSettings] = None,
        sessions: Optional[SessionRegistry] = None,
        prompt: Optional[PromptTemplate] = None,
    ):
        """Initialize the engine; settings are read from the environment when omitted."""
        self.text_generator = text_generator
        self.executor = executor
        self.schema_provider = schema_provider
        self.settings = settings or HealingSettings.from_env()
        self.sessions = sessions or SessionRegistry(max_turns=self.settings.history_max_turns)
        self.prompt = prompt

    async def generate_and_heal(
        self,
        question: str,
        conversation_history: HistoryInput = (),
        *,
        entity_hint: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        timeout_seconds: Optional[float] = None,
    ) -> HealingResult:
        """Run one request against caller-managed history."""
        return await generate_and_heal(
            question,
            conversation_history,
            text_generator=self.text_generator,
            executor=self.executor,
            schema_provider=self.schema_provider,
            settings=self.settings,
            entity_hint=entity_hint,
            cancel_event=cancel_event,
            timeout_seconds=timeout_seconds,
            prompt=self.prompt,
        )

    async def ask(
        self,
        session_id: str,
        question: str,
        *,
        entity_hint: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        timeout_seconds: Optional[float] = None,
    ) -> HealingResult:
        """Run one request against a session's history.

        The session lock is held for the whole request, so requests for the
        same session run one after another and each sees the previous turn.
        Only successful requests append a turn.
        """
        async with self.sessions.lock(session_id):
            store = self.sessions.store(session_id)
            result = await self.generate_and_heal(
                question,
                store.turns,
                entity_hint=entity_hint,
                cancel_event=cancel_event,
                timeout_seconds=timeout_seconds,
            )
            if result.turn is not None:
                store.append(result.turn)
                logger.debug(
                    "Turn recorded",
                    extra={"session_id": session_id, "turns": len(store)},
                )
        return result

    def history(self, session_id: str) -> Tuple[ConversationTurn, ...]:
        """Turns of a session, oldest first."""
        return self.sessions.snapshot(session_id)

    def reset(self, session_id: str) -> None:
        """Forget a session's history."""
        self.sessions.reset(session_id)
