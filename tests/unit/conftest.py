"""Unit test environment helpers."""

import os

import pytest


@pytest.fixture(autouse=True)
def _minimal_env(monkeypatch):
    """Set minimal env defaults for unit tests without external deps."""
    key = os.getenv("OPENAI_API_KEY")
    placeholders = {"<REPLACE_ME>", "changeme", "your_api_key_here"}
    if not key or key.strip() in placeholders or key.startswith("<"):
        monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.setenv("TELEMETRY_BACKEND", "memory")
    for name in (
        "AGENT_MAX_RETRIES",
        "AGENT_TIMEOUT_SECONDS",
        "AGENT_HISTORY_MAX_TURNS",
        "SALESFORCE_USER_ID",
        "LLM_PROVIDER",
        "LLM_MODEL",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
def memory_telemetry():
    """Route engine spans to a fresh in-memory backend for each test."""
    from soql_agent.telemetry import InMemoryTelemetryBackend, telemetry

    original = telemetry.backend
    backend = InMemoryTelemetryBackend()
    telemetry.set_backend(backend)
    yield backend
    telemetry.set_backend(original)
