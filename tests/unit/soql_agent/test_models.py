"""Tests for engine records."""

import pytest

from soql_agent.models import (
    PHASE_TO_OUTCOME,
    CandidateStatement,
    ErrorKind,
    ExecutionOutcome,
    GenerationContext,
    HealingAttempt,
    HealingOutcome,
    HealingPhase,
    HealingResult,
)
from tests._support.fakes import ACCOUNT_ID_1, ACCOUNT_ID_2


class TestHealingPhase:
    """Terminal states."""

    def test_terminal(self):
        """Only GENERATING and EXECUTING keep the loop running."""
        running = {HealingPhase.GENERATING, HealingPhase.EXECUTING}
        for phase in HealingPhase:
            assert phase.is_terminal is (phase not in running)

    def test_every_terminal_phase_has_an_outcome(self):
        """Every terminal phase, and only those, maps to a healing outcome."""
        terminal = {phase for phase in HealingPhase if phase.is_terminal}
        assert set(PHASE_TO_OUTCOME) == terminal
        assert PHASE_TO_OUTCOME[HealingPhase.SUCCEEDED] is HealingOutcome.SUCCEEDED
        assert PHASE_TO_OUTCOME[HealingPhase.FAILED_FATAL] is HealingOutcome.FATAL


class TestCandidateStatement:
    """Exactly one tag per candidate."""

    def test_empty_statement_rejected(self):
        """Statements must have text."""
        with pytest.raises(ValueError):
            CandidateStatement.statement("  ")

    def test_tags(self):
        """Each constructor sets one tag."""
        assert CandidateStatement.statement("SELECT Id FROM Account").is_statement
        assert CandidateStatement.ambiguous("which?").is_ambiguous
        assert CandidateStatement.impossible("no").is_impossible


class TestGenerationContext:
    """Derived properties."""

    def test_available_identifiers_order(self):
        """Record-like literals come first, then carried ids, then other tokens."""
        context = GenerationContext(
            question="q",
            literal_identifiers=("ABCDEFGHIJKLMNO", ACCOUNT_ID_1),
            result_identifiers=(ACCOUNT_ID_2, ACCOUNT_ID_1),
        )
        assert context.available_identifiers == (ACCOUNT_ID_1, ACCOUNT_ID_2, "ABCDEFGHIJKLMNO")

    def test_tried_statements(self):
        """tried_statements lists every prior attempt."""
        attempt = HealingAttempt(
            1, "SELECT Id FROM Account", ExecutionOutcome.failure("boom", ErrorKind.UNKNOWN)
        )
        context = GenerationContext(question="q", prior_attempts=(attempt,))
        assert context.is_correction
        assert context.tried_statements == ("SELECT Id FROM Account",)


class TestHealingResult:
    """Serialization."""

    def test_to_dict(self):
        """Results serialize with enum values and attempts."""
        attempt = HealingAttempt(
            1, "SELECT Id FROM Account", ExecutionOutcome.success([{"Id": ACCOUNT_ID_1}])
        )
        result = HealingResult(
            outcome=HealingOutcome.SUCCEEDED,
            final_statement="SELECT Id FROM Account",
            rows=[{"Id": ACCOUNT_ID_1}],
            total_count=1,
            attempts=(attempt,),
        )
        data = result.to_dict()

        assert data["outcome"] == "SUCCEEDED"
        assert data["attempts"][0]["outcome"]["succeeded"] is True
        assert data["attempts"][0]["outcome"]["total_count"] == 1
        assert result.succeeded
