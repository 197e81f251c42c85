"""Tests for the deterministic statement sanitizer."""

import pytest

from soql_agent.models import ContinuationKind, DomainConstraints, GenerationContext
from soql_agent.state.domain import ConversationTurn
from soql_agent.validation import SanitizerRules, StatementSanitizer
from tests._support.fakes import ACCOUNT_ID_1, ACCOUNT_ID_2, USER_ID


def _context(**kwargs) -> GenerationContext:
    return GenerationContext(question="q", **kwargs)


@pytest.fixture
def sanitizer():
    return StatementSanitizer()


class TestNormalization:
    """Whitespace, fences and terminators."""

    def test_fences_and_semicolon(self, sanitizer):
        """Code fences and trailing semicolons are removed."""
        result = sanitizer.apply("```sql\nSELECT Id\n  FROM Account;\n```")
        assert result.text == "SELECT Id FROM Account"
        assert "normalize" in result.applied_rules

    @pytest.mark.parametrize(
        "raw", ["```sql SELECT Id FROM Account;```", "```SOQL SELECT Id FROM Account```"]
    )
    def test_single_line_fence(self, sanitizer, raw):
        """A language tag on the fence line is dropped with the fence."""
        assert sanitizer.sanitize(raw) == "SELECT Id FROM Account"

    def test_literal_contents_untouched(self, sanitizer):
        """Whitespace and semicolons inside literals are preserved."""
        text = "SELECT Id FROM Account WHERE Name = 'a  b;'"
        assert sanitizer.sanitize(text) == text

    def test_clean_statement_reports_no_rules(self, sanitizer):
        """A clean statement passes through unchanged."""
        result = sanitizer.apply("SELECT Id, Name FROM Account")
        assert result.text == "SELECT Id, Name FROM Account"
        assert result.applied_rules == ()

    @pytest.mark.parametrize(
        "text",
        [
            "SELECT * FROM Account;",
            "```\nSELECT Id, FIELDS(ALL) FROM Account LIMIT 200\n```",
            "SELECT Id FROM Account WHERE Id = 'your_id'",
            "SELECT Id FROM Contact WHERE AccountId IN (:ids)",
        ],
    )
    def test_idempotent(self, sanitizer, text):
        """Sanitizing twice equals sanitizing once."""
        context = _context(literal_identifiers=(ACCOUNT_ID_1,))
        once = sanitizer.sanitize(text, context)
        assert sanitizer.sanitize(once, context) == once


class TestUnrestrictedSelection:
    """SELECT * and FIELDS(ALL) are replaced with explicit fields."""

    def test_select_star(self, sanitizer):
        """SELECT * becomes the fallback fields."""
        result = sanitizer.apply("SELECT * FROM Account")
        assert result.text == "SELECT Id, Name FROM Account"
        assert "unrestricted_selection" in result.applied_rules

    def test_fields_all_deduplicated(self, sanitizer):
        """FIELDS(ALL) next to Id does not select Id twice."""
        assert (
            sanitizer.sanitize("SELECT Id, FIELDS(ALL) FROM Account LIMIT 200")
            == "SELECT Id, Name FROM Account LIMIT 200"
        )

    def test_custom_fallback_fields(self):
        """Fallback fields are configurable."""
        custom = StatementSanitizer(fallback_fields=("Id", "Subject"))
        assert custom.sanitize("SELECT * FROM Task") == "SELECT Id, Subject FROM Task"

    def test_empty_fallback_rejected(self):
        """A sanitizer needs at least one fallback field."""
        with pytest.raises(ValueError):
            StatementSanitizer(fallback_fields=())


class TestPlaceholderSubstitution:
    """Placeholder ids are replaced with known ids."""

    @pytest.mark.parametrize("placeholder", ["your_id", "XXX", "[ACCOUNT_ID]", "<record_id>"])
    def test_quoted_placeholders(self, sanitizer, placeholder):
        """Quoted placeholder shapes are replaced with the literal id."""
        context = _context(literal_identifiers=(ACCOUNT_ID_1,))
        result = sanitizer.apply(
            f"SELECT Id FROM Account WHERE Id = '{placeholder}'", context
        )
        assert result.text == f"SELECT Id FROM Account WHERE Id = '{ACCOUNT_ID_1}'"
        assert "placeholder_substitution" in result.applied_rules

    def test_bind_variable_in_list(self, sanitizer):
        """IN :ids expands to every carried id."""
        context = _context(
            continuation_kind=ContinuationKind.TOPIC_SWITCH,
            result_identifiers=(ACCOUNT_ID_1, ACCOUNT_ID_2),
        )
        assert sanitizer.sanitize(
            "SELECT Id FROM Contact WHERE AccountId IN :accountIds", context
        ) == (
            f"SELECT Id FROM Contact WHERE AccountId IN ('{ACCOUNT_ID_1}', '{ACCOUNT_ID_2}')"
        )

    def test_user_placeholder(self, sanitizer):
        """User placeholders take the current user's id."""
        context = _context(
            literal_identifiers=(ACCOUNT_ID_1,),
            domain_constraints=DomainConstraints(current_user_id=USER_ID),
        )
        assert (
            sanitizer.sanitize("SELECT Id FROM Task WHERE OwnerId = :userId", context)
            == f"SELECT Id FROM Task WHERE OwnerId = '{USER_ID}'"
        )

    def test_real_literals_untouched(self, sanitizer):
        """Ordinary string values are not placeholders."""
        context = _context(literal_identifiers=(ACCOUNT_ID_1,))
        text = "SELECT Id FROM Account WHERE Name = 'Acme' AND Industry = 'Tech'"
        assert sanitizer.sanitize(text, context) == text

    @pytest.mark.parametrize(
        "text",
        [
            "SELECT Id FROM Contact WHERE Phone = '5555555555'",
            "SELECT Id FROM Account WHERE BillingPostalCode = '00000'",
        ],
    )
    def test_repeated_digit_literals_untouched(self, sanitizer, text):
        """Runs of one digit are real values, unlike runs of one letter."""
        context = _context(literal_identifiers=(ACCOUNT_ID_1,))
        result = sanitizer.apply(text, context)
        assert result.text == text
        assert "placeholder_substitution" not in result.applied_rules

    def test_no_identifiers_leaves_placeholder(self, sanitizer):
        """Without a known id the placeholder is left for the service to reject."""
        result = sanitizer.apply("SELECT Id FROM Account WHERE Id = 'your_id'", _context())
        assert result.text == "SELECT Id FROM Account WHERE Id = 'your_id'"
        assert "placeholder_substitution" not in result.applied_rules

    def test_rules_catalog(self):
        """The placeholder catalog recognizes common shapes only."""
        rules = SanitizerRules()
        assert rules.is_placeholder("insert_id_here")
        assert rules.is_placeholder("AAAAAA")
        assert not rules.is_placeholder("5555555555")
        assert not rules.is_placeholder(ACCOUNT_ID_1)
        assert not rules.is_placeholder("New York")


class TestClausePinning:
    """Add-fields follow-ups keep the previous filter, sort and limit."""

    PREVIOUS = ConversationTurn(
        question="Show accounts in New York",
        statement="SELECT Id, Name FROM Account WHERE BillingState = 'NY' ORDER BY Name LIMIT 10",
        target_entity_type="Account",
    )
    CARRIED = {"WHERE": "BillingState = 'NY'", "ORDER BY": "Name", "LIMIT": "10"}

    def test_pins_on_same_entity(self, sanitizer):
        """Dropped clauses are restored verbatim."""
        context = _context(
            continuation_kind=ContinuationKind.SAME_TOPIC_ADD_FIELDS,
            previous_turn=self.PREVIOUS,
            carried_clauses=self.CARRIED,
        )
        result = sanitizer.apply("SELECT Id, Name, Industry FROM Account", context)
        assert result.text == (
            "SELECT Id, Name, Industry FROM Account "
            "WHERE BillingState = 'NY' ORDER BY Name LIMIT 10"
        )
        assert "clause_pinning" in result.applied_rules

    def test_no_pinning_for_other_entity(self, sanitizer):
        """A statement against another entity is left alone."""
        context = _context(
            continuation_kind=ContinuationKind.SAME_TOPIC_ADD_FIELDS,
            previous_turn=self.PREVIOUS,
            carried_clauses=self.CARRIED,
        )
        assert sanitizer.sanitize("SELECT Id FROM Contact", context) == "SELECT Id FROM Contact"

    def test_no_pinning_for_filter_follow_up(self, sanitizer):
        """Filter follow-ups may change the WHERE clause."""
        context = _context(
            continuation_kind=ContinuationKind.SAME_TOPIC_FILTER,
            previous_turn=self.PREVIOUS,
            carried_clauses=self.CARRIED,
        )
        text = "SELECT Id, Name FROM Account WHERE BillingState = 'CA'"
        assert sanitizer.sanitize(text, context) == text
