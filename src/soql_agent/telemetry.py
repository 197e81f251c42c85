"""Telemetry service for the healing engine.

Nodes, LLM calls and executor calls open spans through the module-level
``telemetry`` instance. The backend is OpenTelemetry by default; tests swap in
the in-memory backend (``TELEMETRY_BACKEND=memory``).

Every attribute passes through ``_guard`` exactly once: secrets are redacted,
statements are hashed and oversized values are truncated before a backend sees
them.
"""

import abc
import contextlib
import logging
from contextvars import ContextVar
from typing import Any, Dict, Iterator, List, Optional, Tuple

from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

from common.config.env import get_env_str
from common.sanitization import redact_recursive
from soql_agent.telemetry_schema import SpanKind, TelemetryKeys, bound_attribute, truncate_json

logger = logging.getLogger(__name__)

SEQ_KEY = "_seq_counter"

# Attributes inherited by spans started later in the same async context
_inherited: ContextVar[Optional[Dict[str, Any]]] = ContextVar("healing_inherited", default=None)

_tracing_configured = False


def _guard(attributes: Dict[str, Any]) -> Dict[str, Any]:
    redacted = redact_recursive(attributes)
    return {k: bound_attribute(k, v) for k, v in redacted.items() if v is not None}


def configure_tracing() -> None:
    """Install the OTEL tracer provider once per process.

    ``OTEL_TRACES_EXPORTER=none`` keeps spans in-process (no exporter), which is
    what local runs without a collector want.
    """
    global _tracing_configured
    if _tracing_configured:
        return

    service_name = get_env_str("OTEL_SERVICE_NAME", "soql-agent")
    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: service_name}))

    exporter_name = (get_env_str("OTEL_TRACES_EXPORTER", "otlp") or "otlp").lower()
    if exporter_name != "none":
        endpoint = get_env_str("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
        protocol = (get_env_str("OTEL_EXPORTER_OTLP_PROTOCOL", "grpc") or "grpc").lower()
        if protocol == "grpc":
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        else:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        logger.info("Tracing exports to %s (%s)", endpoint, protocol)
    else:
        logger.info("Tracing configured without an exporter")

    trace.set_tracer_provider(provider)
    _tracing_configured = True


class TelemetrySpan(abc.ABC):
    """A span handed to ``with telemetry.start_span(...) as span`` blocks."""

    @abc.abstractmethod
    def _write(self, key: str, value: Any) -> None:
        """Store one already-guarded attribute."""

    @abc.abstractmethod
    def add_event(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> None:
        """Add a timed event to the span."""

    def set_attribute(self, key: str, value: Any) -> None:
        """Set a single attribute after redaction and bounding."""
        for guarded_key, guarded_value in _guard({key: value}).items():
            self._write(guarded_key, guarded_value)

    def set_attributes(self, attributes: Dict[str, Any]) -> None:
        """Set several attributes."""
        for guarded_key, guarded_value in _guard(attributes).items():
            self._write(guarded_key, guarded_value)

    def set_inputs(self, inputs: Dict[str, Any]) -> None:
        """Attach inputs as one redacted, size-capped JSON attribute."""
        payload, truncated, size, sha256 = truncate_json(inputs)
        self._write(TelemetryKeys.INPUTS.value, payload)
        self._write(TelemetryKeys.PAYLOAD_SIZE.value, size)
        if sha256:
            self._write(TelemetryKeys.PAYLOAD_HASH.value, sha256)
        if truncated:
            self._write(TelemetryKeys.PAYLOAD_TRUNCATED.value, True)

    def set_outputs(self, outputs: Dict[str, Any]) -> None:
        """Attach outputs; an ``error`` entry marks the span as failed."""
        payload, _, _, _ = truncate_json(outputs)
        self._write(TelemetryKeys.OUTPUTS.value, payload)
        error = outputs.get("error")
        if error:
            self._write(TelemetryKeys.ERROR.value, truncate_json({"error": str(error)})[0])
            self.mark_failed(str(error))

    def mark_failed(self, description: str) -> None:
        """Flag the span as failed (no-op unless the backend has a status)."""


class TelemetryBackend(abc.ABC):
    """Creates spans for ``TelemetryService``."""

    def configure(self) -> None:
        """Prepare the backend before the first span."""

    @abc.abstractmethod
    def open_span(
        self, name: str, span_type: SpanKind, attributes: Dict[str, Any]
    ) -> "contextlib.AbstractContextManager[TelemetrySpan]":
        """Open a span carrying already-guarded ``attributes``."""

    @abc.abstractmethod
    def get_current_trace_id(self) -> Optional[str]:
        """Current trace id as 32 hex characters, or None outside a span."""

    def flush(self, timeout_ms: int = 1000) -> bool:
        """Export anything buffered."""
        return True


class OTELTelemetrySpan(TelemetrySpan):
    """Wraps an OpenTelemetry span."""

    def __init__(self, otel_span):
        """Initialize with the OTEL span object."""
        self._span = otel_span

    def _write(self, key: str, value: Any) -> None:
        self._span.set_attribute(key, value)

    def add_event(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> None:
        """Add a timed event to the span."""
        self._span.add_event(name, _guard(attributes or {}))

    def mark_failed(self, description: str) -> None:
        """Set the OTEL status to ERROR."""
        self._span.set_status(Status(StatusCode.ERROR, description=description))


class OTELTelemetryBackend(TelemetryBackend):
    """Spans go to the globally configured OTEL tracer provider."""

    def __init__(self, tracer_name: str = "soql-agent"):
        """Initialize with the instrumentation scope name."""
        self.tracer_name = tracer_name

    def configure(self) -> None:
        """Install the tracer provider on first use."""
        configure_tracing()

    @contextlib.contextmanager
    def open_span(
        self, name: str, span_type: SpanKind, attributes: Dict[str, Any]
    ) -> Iterator[TelemetrySpan]:
        """Open an INTERNAL span as the current span."""
        tracer = trace.get_tracer(self.tracer_name)
        base = {"span.type": span_type.value, "service.name": self.tracer_name, **attributes}
        with tracer.start_as_current_span(name, kind=trace.SpanKind.INTERNAL, attributes=base) as s:
            yield OTELTelemetrySpan(s)

    def get_current_trace_id(self) -> Optional[str]:
        """Trace id of the current OTEL span."""
        context = trace.get_current_span().get_span_context()
        if not context.is_valid:
            return None
        return format(context.trace_id, "032x")

    def flush(self, timeout_ms: int = 1000) -> bool:
        """Force-flush the provider when it supports flushing."""
        force_flush = getattr(trace.get_tracer_provider(), "force_flush", None)
        if force_flush is None:
            return True
        return force_flush(timeout_millis=timeout_ms)


class InMemoryTelemetrySpan(TelemetrySpan):
    """Captured span used by tests."""

    def __init__(self, name: str, span_type: SpanKind, attributes: Dict[str, Any]):
        """Initialize with the attributes the service computed."""
        self.name = name
        self.span_type = span_type
        self.attributes: Dict[str, Any] = dict(attributes)
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self.failed: Optional[str] = None
        self.is_finished = False

    def _write(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def add_event(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> None:
        """Record the event with guarded attributes."""
        self.events.append((name, _guard(attributes or {})))

    def mark_failed(self, description: str) -> None:
        """Remember the failure description."""
        self.failed = description


class InMemoryTelemetryBackend(TelemetryBackend):
    """Keeps every span in ``spans`` in start order."""

    def __init__(self):
        """Initialize with no spans."""
        self.spans: List[InMemoryTelemetrySpan] = []

    @contextlib.contextmanager
    def open_span(
        self, name: str, span_type: SpanKind, attributes: Dict[str, Any]
    ) -> Iterator[TelemetrySpan]:
        """Capture a span and mark it finished on exit."""
        span = InMemoryTelemetrySpan(name, span_type, attributes)
        self.spans.append(span)
        try:
            yield span
        finally:
            span.is_finished = True

    def get_current_trace_id(self) -> Optional[str]:
        """A fixed id while any captured span is open."""
        if any(not span.is_finished for span in self.spans):
            return "0" * 32
        return None

    def spans_named(self, name: str) -> List[InMemoryTelemetrySpan]:
        """Captured spans with the given name, in start order."""
        return [span for span in self.spans if span.name == name]


def _default_backend() -> TelemetryBackend:
    if (get_env_str("TELEMETRY_BACKEND", "otel") or "otel").lower() == "memory":
        return InMemoryTelemetryBackend()
    return OTELTelemetryBackend()


@contextlib.contextmanager
def _child_scope() -> Iterator[Tuple[int, Dict[str, Any]]]:
    """Number the new span among its siblings and open a scope for its children.

    Yields the sibling sequence number and the attributes inherited from the
    enclosing scope.
    """
    parent = _inherited.get()
    if parent is None:
        parent = {}
    seq = parent.get(SEQ_KEY, 0)
    parent[SEQ_KEY] = seq + 1

    scope = {**parent, SEQ_KEY: 0}
    token = _inherited.set(scope)
    try:
        yield seq, {k: v for k, v in scope.items() if k != SEQ_KEY}
    finally:
        _inherited.reset(token)


class TelemetryService:
    """Public surface for telemetry calls."""

    def __init__(self, backend: Optional[TelemetryBackend] = None):
        """Initialize with a backend, or the one named by ``TELEMETRY_BACKEND``."""
        self._backend = backend or _default_backend()

    @property
    def backend(self) -> TelemetryBackend:
        """Active backend."""
        return self._backend

    def set_backend(self, backend: TelemetryBackend) -> None:
        """Switch backend at runtime (tests)."""
        self._backend = backend

    def configure(self) -> None:
        """Configure the active backend."""
        self._backend.configure()

    @contextlib.contextmanager
    def start_span(
        self,
        name: str,
        span_type: SpanKind = SpanKind.CHAIN,
        inputs: Optional[Dict[str, Any]] = None,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> Iterator[TelemetrySpan]:
        """Start a span carrying inherited, explicit and event attributes.

        Metadata set through ``update_current_trace`` inside this span is
        inherited by spans started under it and discarded when it exits.
        """
        with _child_scope() as (seq, inherited):
            merged = _guard({**inherited, **(attributes or {})})
            merged[TelemetryKeys.EVENT_SEQ.value] = seq
            merged.setdefault(TelemetryKeys.EVENT_TYPE.value, span_type.value)
            merged.setdefault(TelemetryKeys.EVENT_NAME.value, name)

            with self._backend.open_span(name, span_type, merged) as span:
                if inputs:
                    span.set_inputs(inputs)
                yield span

    def update_current_trace(self, metadata: Dict[str, Any]) -> None:
        """Make metadata inherited by spans started later in this scope."""
        scope = _inherited.get()
        if scope is None:
            scope = {}
            _inherited.set(scope)
        scope.update(metadata)

    def get_current_trace_id(self) -> Optional[str]:
        """Current trace id from the backend."""
        return self._backend.get_current_trace_id()

    def flush(self, timeout_ms: int = 1000) -> bool:
        """Export buffered spans."""
        return self._backend.flush(timeout_ms=timeout_ms)


telemetry = TelemetryService()
