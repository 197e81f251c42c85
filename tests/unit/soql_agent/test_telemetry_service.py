"""Tests for the telemetry service and payload guards."""

from soql_agent.telemetry import InMemoryTelemetryBackend, TelemetryService, telemetry
from soql_agent.telemetry_schema import (
    MAX_ATTRIBUTE_LEN,
    SpanKind,
    TelemetryKeys,
    bound_attribute,
    truncate_json,
)


class TestStickyMetadata:
    """Metadata inherited by nested spans."""

    def test_children_inherit_run_id(self, memory_telemetry):
        """Metadata set inside a span reaches spans started under it."""
        with telemetry.start_span("workflow"):
            telemetry.update_current_trace({"healing.run_id": "run-1"})
            with telemetry.start_span("child", span_type=SpanKind.AGENT_NODE):
                pass

        with telemetry.start_span("later"):
            pass

        (child,) = memory_telemetry.spans_named("child")
        (later,) = memory_telemetry.spans_named("later")
        assert child.attributes["healing.run_id"] == "run-1"
        assert "healing.run_id" not in later.attributes

    def test_sibling_sequence_numbers(self, memory_telemetry):
        """Siblings are numbered in start order."""
        with telemetry.start_span("parent"):
            with telemetry.start_span("first"):
                pass
            with telemetry.start_span("second"):
                pass

        seq = TelemetryKeys.EVENT_SEQ.value
        assert memory_telemetry.spans_named("first")[0].attributes[seq] == 0
        assert memory_telemetry.spans_named("second")[0].attributes[seq] == 1

    def test_event_type_from_span_kind(self, memory_telemetry):
        """The span kind becomes the event type."""
        with telemetry.start_span("call", span_type=SpanKind.TOOL_CALL):
            pass
        span = memory_telemetry.spans_named("call")[0]
        assert span.attributes[TelemetryKeys.EVENT_TYPE.value] == "tool.call"
        assert span.is_finished


class TestAttributeGuards:
    """Redaction, hashing and truncation."""

    def test_statement_hashed_once(self, memory_telemetry):
        """Statement attributes carry a hash prefix and the text."""
        with telemetry.start_span("exec", attributes={"statement": "SELECT Id FROM Account"}):
            pass
        value = memory_telemetry.spans_named("exec")[0].attributes["statement"]
        assert value.startswith("hash:")
        assert value.count("hash:") == 1
        assert value.endswith("| SELECT Id FROM Account")

    def test_secrets_redacted(self, memory_telemetry):
        """Bearer tokens and sensitive keys never reach the backend."""
        with telemetry.start_span("secret") as span:
            span.set_attribute("note", "Authorization: Bearer abc.def")
            span.set_attribute("api_key", "sk-live")

        attributes = memory_telemetry.spans_named("secret")[0].attributes
        assert "abc.def" not in attributes["note"]
        assert attributes["api_key"] == "<redacted>"

    def test_long_strings_bounded(self):
        """Oversized strings are cut to the attribute limit."""
        assert len(bound_attribute("note", "x" * 5000)) == MAX_ATTRIBUTE_LEN

    def test_truncate_json(self):
        """Large payloads are truncated and flagged."""
        text, truncated, size, sha256 = truncate_json({"rows": "y" * 100}, max_len=20)
        assert truncated
        assert text.endswith("... [TRUNCATED]")
        assert size > 20
        assert len(sha256) == 64


class TestBackendSelection:
    """Choosing the backend."""

    def test_env_selects_memory(self):
        """TELEMETRY_BACKEND=memory picks the in-memory backend."""
        assert isinstance(TelemetryService().backend, InMemoryTelemetryBackend)

    def test_trace_id_while_open(self):
        """The in-memory backend reports a trace id only inside a span."""
        service = TelemetryService(backend=InMemoryTelemetryBackend())
        assert service.get_current_trace_id() is None
        with service.start_span("open"):
            assert service.get_current_trace_id() == "0" * 32
        assert service.flush()
