"""Tests for the session-aware HealingEngine facade."""

import asyncio

import pytest

from common.errors import ExecutionError
from soql_agent.config import HealingSettings
from soql_agent.engine import HealingEngine
from soql_agent.models import HealingOutcome
from tests._support.fakes import (
    ACCOUNT_ID_1,
    ACCOUNT_ID_2,
    FakeExecutor,
    FakeSchemaProvider,
    FakeTextGenerator,
    rows,
)


def _engine(responses, results, **settings):
    return HealingEngine(
        text_generator=FakeTextGenerator(responses),
        executor=FakeExecutor(results),
        schema_provider=FakeSchemaProvider(),
        settings=HealingSettings(**settings),
    )


class TestAsk:
    """Session history handling."""

    @pytest.mark.asyncio
    async def test_success_appends_turn(self):
        """A successful request is remembered for the session."""
        engine = _engine(["SELECT Id, Name FROM Account"], [rows(ACCOUNT_ID_1, ACCOUNT_ID_2)])

        result = await engine.ask("s1", "List accounts")

        history = engine.history("s1")
        assert result.succeeded
        assert len(history) == 1
        assert history[0].statement == "SELECT Id, Name FROM Account"
        assert history[0].result_identifiers == (ACCOUNT_ID_1, ACCOUNT_ID_2)
        assert history[0].result_count == 2

    @pytest.mark.asyncio
    async def test_failure_does_not_append(self):
        """Failed requests leave the history untouched."""
        engine = _engine(
            ["SELECT Id FROM Account"], [ExecutionError("INSUFFICIENT_ACCESS: no access")]
        )

        result = await engine.ask("s1", "List accounts")

        assert result.outcome is HealingOutcome.FATAL
        assert engine.history("s1") == ()

    @pytest.mark.asyncio
    async def test_follow_up_sees_previous_turn(self):
        """The second question of a session is resolved against the first."""
        engine = _engine(
            ["SELECT Id, Name FROM Account LIMIT 5", "SELECT Id, Name, Industry FROM Account"],
            [rows(ACCOUNT_ID_1)],
        )

        await engine.ask("s1", "List 5 accounts")
        result = await engine.ask("s1", "Also show their industry")

        assert result.metadata["continuation_kind"] == "same_topic_add_fields"
        assert result.final_statement == "SELECT Id, Name, Industry FROM Account LIMIT 5"
        assert len(engine.history("s1")) == 2

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self):
        """History of one session is invisible to another."""
        engine = _engine(["SELECT Id FROM Account"], [rows(ACCOUNT_ID_1)])

        await engine.ask("a", "List accounts")
        result = await engine.ask("b", "Also show their industry")

        assert result.metadata["continuation_kind"] == "none"
        assert len(engine.history("a")) == 1
        assert len(engine.history("b")) == 1

    @pytest.mark.asyncio
    async def test_history_is_bounded(self):
        """Only the newest history_max_turns turns are kept."""
        engine = _engine(["SELECT Id FROM Account"], [rows(ACCOUNT_ID_1)], history_max_turns=2)

        for _ in range(4):
            await engine.ask("s1", "List accounts")

        assert len(engine.history("s1")) == 2

    @pytest.mark.asyncio
    async def test_concurrent_requests_for_one_session_serialize(self):
        """Concurrent requests of a session each append exactly one turn."""
        engine = _engine(["SELECT Id FROM Account"], [rows(ACCOUNT_ID_1)])

        await asyncio.gather(*(engine.ask("s1", "List accounts") for _ in range(3)))

        assert len(engine.history("s1")) == 3

    @pytest.mark.asyncio
    async def test_reset_clears_history(self):
        """reset forgets the session."""
        engine = _engine(["SELECT Id FROM Account"], [rows(ACCOUNT_ID_1)])
        await engine.ask("s1", "List accounts")

        engine.reset("s1")

        assert engine.history("s1") == ()

    @pytest.mark.asyncio
    async def test_generate_and_heal_leaves_sessions_alone(self):
        """The stateless entry point does not record turns."""
        engine = _engine(["SELECT Id FROM Account"], [rows(ACCOUNT_ID_1)])

        result = await engine.generate_and_heal("List accounts")

        assert result.succeeded
        assert result.turn is not None
        assert "default" not in engine.sessions
