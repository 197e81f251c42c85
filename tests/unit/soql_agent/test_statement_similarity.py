"""Tests for structural statement similarity."""

import pytest

from common.utils.hashing import statement_fingerprint
from soql_agent.utils.sql_similarity import compute_statement_similarity


class TestStatementSimilarity:
    """Jaccard similarity over entities and fields."""

    def test_identical_modulo_spacing(self):
        """Case and whitespace differences are identical statements."""
        assert compute_statement_similarity(
            "SELECT Id FROM Account", "select  id\nfrom account"
        ) == 1.0

    def test_same_entity_different_fields(self):
        """Same entity with partly different fields scores in between."""
        score = compute_statement_similarity(
            "SELECT Id, Name FROM Account", "SELECT Id, Industry FROM Account"
        )
        assert score == pytest.approx(0.7 + 0.3 * (1 / 3))

    def test_different_entity(self):
        """Different entities share only the field part."""
        score = compute_statement_similarity("SELECT Id FROM Account", "SELECT Id FROM Contact")
        assert score == pytest.approx(0.3)

    def test_empty(self):
        """Missing statements have no similarity."""
        assert compute_statement_similarity("", "SELECT Id FROM Account") == 0.0


class TestStatementFingerprint:
    """Fingerprints used to flag repeated statements."""

    def test_spacing_and_case_ignored(self):
        """Formatting differences share a fingerprint."""
        assert statement_fingerprint("SELECT Id FROM Account") == statement_fingerprint(
            "select  id\nFROM account"
        )

    def test_different_statements(self):
        """Different statements differ."""
        assert statement_fingerprint("SELECT Id FROM Account") != statement_fingerprint(
            "SELECT Id FROM Contact"
        )
