"""Prompt template for statement generation and correction.

Bump ``PROMPT_VERSION`` in ``soql_agent.config`` whenever the template changes.
"""

from typing import Optional

from langchain_core.prompts import PromptTemplate

from soql_agent.config import CLARIFICATION_SENTINEL, IMPOSSIBLE_SENTINEL
from soql_agent.models import ContinuationKind, GenerationContext

SOQL_GENERATION_TEMPLATE = """You are a Salesforce SOQL expert.
Generate VALID, EXECUTABLE SOQL queries.

=== RULES ===

1. FIELD SELECTION
   - Never use SELECT * or FIELDS(ALL). Name every field: SELECT Id, Name, Field1__c FROM Object

2. RECORD IDS
   - Use the exact 15 or 18 character ids given: WHERE Id = '00TGA00003fTAL32AO'
   - Never write placeholders such as 'your_id', 'your_task_id', 'replace_with_id' or 'xxx'

3. ADDRESS FIELDS
   - Never select compound Address fields. Use the components:
     BillingStreet, BillingCity, BillingState, BillingPostalCode, BillingCountry,
     ShippingCity, ShippingState, MailingStreet, MailingCity, MailingState, MailingCountry

4. POLYMORPHIC FIELDS (Task, Event)
   - WhoId points to Contact or Lead, WhatId to Account, Opportunity or Case
   - Query both sides when unsure: SELECT WhoId, Who.Name, Who.Type, WhatId, What.Name FROM Task

5. USER CONTEXT
   - Current user id: '{current_user_id}'
   - Today: {today}
   - "My tasks" means WHERE OwnerId = '{current_user_id}'
   - Never use bind variables such as :userId

6. TOP N AND SORTING
   - "Top 5": WHERE Amount > 0 ORDER BY Amount DESC LIMIT 5
   - "Latest 10": ORDER BY CreatedDate DESC LIMIT 10
   - Random ordering is not supported; use LIMIT alone

7. DATE LITERALS
   - TODAY, YESTERDAY, THIS_WEEK, LAST_MONTH, THIS_QUARTER, NEXT_YEAR, LAST_N_DAYS:30
   - Dates are YYYY-MM-DD, datetimes YYYY-MM-DDTHH:MM:SSZ

8. RELATIONSHIPS
   - Child to parent: Contact.Account.Name, Custom__r.Field__c
   - Parent to child: (SELECT Id, Name FROM Contacts)
   - To move to a related entity, select FROM the target and filter through the lookup:
     SELECT Id, Name FROM Account WHERE Id IN (SELECT AccountId FROM Contact WHERE ...)
   - Never nest a semi-join inside another semi-join

=== SCHEMA ===
{schema}
{relationship_hints}
{identifiers}
{conversation}
{correction}
=== QUESTION ===
{question}
{fields_listing}
Respond with ONLY the SOQL query. No markdown, no explanation.
If the question is unclear: {clarification_sentinel} <question to ask the user>
If no SOQL query can answer it: {impossible_sentinel} <reason>"""

DEFAULT_PROMPT = PromptTemplate.from_template(SOQL_GENERATION_TEMPLATE)


def _identifiers_section(context: GenerationContext) -> str:
    lines = []
    if context.literal_identifiers:
        lines.append("=== RECORD IDS IN THE QUESTION ===")
        lines.extend(f"- {i}" for i in context.literal_identifiers)
        lines.append("Use these exact ids.")
    if context.result_identifiers:
        lines.append("=== RECORD IDS FROM THE PREVIOUS RESULT ===")
        lines.append(", ".join(f"'{i}'" for i in context.result_identifiers))
    return "\n".join(lines)


def _conversation_section(context: GenerationContext) -> str:
    if context.continuation_kind is ContinuationKind.NONE or not context.conversation_excerpt:
        return ""
    lines = ["=== CONVERSATION ==="]
    for turn in context.conversation_excerpt:
        lines.append(f"Q: {turn.question}")
        if turn.statement:
            lines.append(f"SOQL: {turn.statement}")
    kind = context.continuation_kind
    previous_type = context.previous_turn.target_entity_type if context.previous_turn else None
    if kind is ContinuationKind.SAME_TOPIC_ADD_FIELDS:
        lines.append(
            "The question adds fields to the previous query. Keep its FROM entity and "
            "keep these clauses exactly:"
        )
        lines.extend(f"  {k} {v}" for k, v in context.carried_clauses.items())
    elif kind is ContinuationKind.SAME_TOPIC_FILTER:
        lines.append(
            "The question narrows the previous result set. Keep the previous FROM entity "
            "and add the new conditions."
        )
    elif kind is ContinuationKind.TOPIC_SWITCH and previous_type:
        target = context.target_entity_type or "a new entity"
        lines.append(f"The question moves from {previous_type} to {target}.")
    return "\n".join(lines)


def _correction_section(context: GenerationContext, correction_strategy: Optional[str]) -> str:
    if not context.prior_attempts:
        return ""
    lines = ["=== PREVIOUS ATTEMPTS (all failed) ==="]
    for attempt in context.prior_attempts:
        lines.append(f"{attempt.attempt_number}. {attempt.statement}")
        lines.append(f"   error: {attempt.outcome.error_message}")
    lines.append("Write a statement different from every one above.")
    if correction_strategy:
        lines.append("")
        lines.append(correction_strategy)
    return "\n".join(lines)


def render_prompt(
    context: GenerationContext,
    prompt: PromptTemplate = DEFAULT_PROMPT,
    correction_strategy: Optional[str] = None,
    clarification_sentinel: str = CLARIFICATION_SENTINEL,
    impossible_sentinel: str = IMPOSSIBLE_SENTINEL,
) -> str:
    """Render the generation prompt for one attempt."""
    constraints = context.domain_constraints
    fields_listing = ""
    if context.is_fields_listing and context.target_entity_type:
        fields_listing = f"LIST ALL FIELDS of {context.target_entity_type} by name.\n"
    return prompt.format(
        current_user_id=constraints.current_user_id or "UNKNOWN_USER",
        today=constraints.today.isoformat(),
        schema=context.schema_excerpt.render(),
        relationship_hints="\n".join(context.relationship_hints),
        identifiers=_identifiers_section(context),
        conversation=_conversation_section(context),
        correction=_correction_section(context, correction_strategy),
        question=context.question,
        fields_listing=fields_listing,
        clarification_sentinel=clarification_sentinel,
        impossible_sentinel=impossible_sentinel,
    )
