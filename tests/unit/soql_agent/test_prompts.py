"""Tests for generation prompt rendering."""

from datetime import date

from langchain_core.prompts import PromptTemplate

from soql_agent.models import (
    ContinuationKind,
    DomainConstraints,
    GenerationContext,
    SchemaExcerpt,
)
from soql_agent.prompts import render_prompt
from soql_agent.state.domain import ConversationTurn
from tests._support.fakes import ACCOUNT, ACCOUNT_ID_1, USER_ID


class TestRenderPrompt:
    """Sections included for each kind of context."""

    def test_basic_sections(self):
        """Question, schema, user, date and sentinels are rendered."""
        context = GenerationContext(
            question="List accounts",
            schema_excerpt=SchemaExcerpt(target=ACCOUNT),
            domain_constraints=DomainConstraints(current_user_id=USER_ID, today=date(2024, 5, 1)),
        )
        prompt = render_prompt(context)

        assert "List accounts" in prompt
        assert "ENTITY Account" in prompt
        assert "- BillingCity (string)" in prompt
        assert "- OwnerId -> User via Owner" in prompt
        assert f"'{USER_ID}'" in prompt
        assert "2024-05-01" in prompt
        assert "CLARIFICATION_NEEDED:" in prompt
        assert "QUERY_IMPOSSIBLE:" in prompt

    def test_unknown_user(self):
        """A missing user id renders a marker rather than an empty string."""
        prompt = render_prompt(GenerationContext(question="Show my tasks"))
        assert "UNKNOWN_USER" in prompt

    def test_identifiers_and_conversation(self):
        """Add-fields follow-ups list previous ids and the clauses to keep."""
        previous = ConversationTurn(
            question="Accounts in NY",
            statement="SELECT Id FROM Account WHERE BillingState = 'NY'",
            target_entity_type="Account",
        )
        context = GenerationContext(
            question="Also show their industry",
            continuation_kind=ContinuationKind.SAME_TOPIC_ADD_FIELDS,
            previous_turn=previous,
            conversation_excerpt=(previous,),
            result_identifiers=(ACCOUNT_ID_1,),
            carried_clauses={"WHERE": "BillingState = 'NY'"},
        )
        prompt = render_prompt(context)

        assert "=== CONVERSATION ===" in prompt
        assert "SOQL: SELECT Id FROM Account WHERE BillingState = 'NY'" in prompt
        assert "WHERE BillingState = 'NY'" in prompt
        assert f"'{ACCOUNT_ID_1}'" in prompt

    def test_fields_listing_instruction(self):
        """Fields-listing questions ask for every field by name."""
        context = GenerationContext(
            question="What fields are on Account",
            target_entity_type="Account",
            is_fields_listing=True,
        )
        assert "LIST ALL FIELDS of Account" in render_prompt(context)

    def test_custom_template(self):
        """A replacement template receives the same variables."""
        template = PromptTemplate.from_template(
            "{question}|{schema}|{current_user_id}|{today}|{relationship_hints}|{identifiers}"
            "|{conversation}|{correction}|{fields_listing}|{clarification_sentinel}"
            "|{impossible_sentinel}"
        )
        prompt = render_prompt(GenerationContext(question="Q"), prompt=template)
        assert prompt.startswith("Q|(no schema available)|UNKNOWN_USER|")
