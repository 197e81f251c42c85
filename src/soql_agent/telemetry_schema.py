"""Telemetry attribute contract and payload safety.

Attribute names used by the healing engine spans, plus the redaction and
truncation applied before anything reaches an exporter.
"""

import hashlib
import json
from enum import Enum
from typing import Any, Optional, Tuple

from common.sanitization import redact_recursive


class SpanKind(str, Enum):
    """Semantic span kinds."""

    AGENT_NODE = "agent.node"
    TOOL_CALL = "tool.call"
    LLM_CALL = "llm.call"
    CHAIN = "chain"


class TelemetryKeys(str, Enum):
    """Standardized telemetry attribute keys."""

    # Event Identification
    EVENT_TYPE = "event.type"
    EVENT_NAME = "event.name"
    EVENT_SEQ = "event.seq"

    # Common Payload
    INPUTS = "telemetry.inputs_json"
    OUTPUTS = "telemetry.outputs_json"
    ERROR = "telemetry.error_json"

    # LLM Specific
    LLM_MODEL = "llm.model"
    LLM_RESPONSE_TEXT = "llm.response.text"
    LLM_TOKEN_INPUT = "llm.token_usage.input_tokens"
    LLM_TOKEN_OUTPUT = "llm.token_usage.output_tokens"
    LLM_TOKEN_TOTAL = "llm.token_usage.total_tokens"

    # Tool Specific
    TOOL_NAME = "tool.name"

    # Healing loop
    RUN_ID = "healing.run_id"
    ATTEMPT = "healing.attempt"
    MAX_ATTEMPTS = "healing.max_attempts"
    PHASE = "healing.phase"
    OUTCOME = "healing.outcome"
    CONTINUATION_KIND = "healing.continuation_kind"
    TARGET_ENTITY = "healing.target_entity"
    ERROR_KIND = "error.kind"
    ERROR_CATEGORY = "error.category"
    REPEATED_STATEMENT = "healing.repeated_statement"
    STATEMENT_SIMILARITY = "healing.statement_similarity"
    SANITIZER_RULES = "healing.sanitizer_rules"
    ROWS_RETURNED = "result.rows_returned"
    CANCEL_REASON = "healing.cancel_reason"

    # Safety Meta
    PAYLOAD_TRUNCATED = "telemetry.payload_truncated"
    PAYLOAD_SIZE = "telemetry.payload_size_bytes"
    PAYLOAD_HASH = "telemetry.payload_sha256"


MAX_PAYLOAD_SIZE = 32 * 1024  # 32KB hard limit for attributes
MAX_ATTRIBUTE_LEN = 2048

# Statement text is hashed and summarized rather than attached raw
STATEMENT_KEYS = {
    "statement",
    "final_statement",
    "failed_statement",
    "candidate",
}


def bound_attribute(key: str, value: Any) -> Any:
    """Apply size guardrails to a single attribute value."""
    if value is None:
        return None

    if key in STATEMENT_KEYS and isinstance(value, str):
        val_hash = hashlib.sha256(value.encode("utf-8")).hexdigest()[:12]
        summary = value[:500] + "..." if len(value) > 500 else value
        return f"hash:{val_hash} | {summary}"

    if isinstance(value, (dict, list, tuple)):
        json_str, _, _, _ = truncate_json(value, max_len=MAX_ATTRIBUTE_LEN)
        return json_str

    if isinstance(value, str) and len(value) > MAX_ATTRIBUTE_LEN:
        return value[: MAX_ATTRIBUTE_LEN - 3] + "..."

    return value


def truncate_json(
    obj: Any, max_len: int = MAX_PAYLOAD_SIZE
) -> Tuple[str, bool, int, Optional[str]]:
    """
    Serialize and truncate JSON payload.

    Returns:
        Tuple(serialized_str, was_truncated, size_bytes, sha256_hash)
    """
    clean_obj = redact_recursive(obj)

    try:
        json_str = json.dumps(clean_obj, sort_keys=True, default=str)
    except TypeError:
        json_str = str(clean_obj)

    size = len(json_str.encode("utf-8"))
    sha256 = hashlib.sha256(json_str.encode("utf-8")).hexdigest()

    if size > max_len:
        return json_str[:max_len] + "... [TRUNCATED]", True, size, sha256

    return json_str, False, size, sha256


# Graph node name -> span name
NODE_SPAN_NAMES: dict[str, str] = {
    "resolve": "resolve_reference",
    "build_context": "build_context",
    "generate": "generate_statement",
    "sanitize": "sanitize_statement",
    "execute": "execute_statement",
    "classify": "classify_error",
}
