"""LLM client factory and the chat-model text generator.

Supports OpenAI, Anthropic (Claude), Google (Gemini) and NVIDIA AI endpoints
with runtime model selection.
"""

from typing import Any, Optional

from langchain_core.language_models.chat_models import BaseChatModel

from common.config.env import get_env_str
from soql_agent.telemetry import telemetry
from soql_agent.telemetry_schema import SpanKind, TelemetryKeys, truncate_json

DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-4o"

# Default model and temperature per provider
PROVIDER_DEFAULTS = {
    "openai": ("gpt-4o", 0.0),
    "anthropic": ("claude-sonnet-4-20250514", 0.0),
    "google": ("gemini-2.5-flash", 0.0),
    "nvidia": ("meta/llama-3.3-70b-instruct", 0.2),
}

SUPPORTED_MODELS = {
    "openai": ["gpt-4o", "gpt-4o-mini", "gpt-4.1", "gpt-4.1-mini"],
    "anthropic": ["claude-sonnet-4-20250514", "claude-3-5-sonnet-20241022"],
    "google": ["gemini-2.5-flash", "gemini-2.5-pro"],
    "nvidia": ["meta/llama-3.3-70b-instruct", "meta/llama-3.1-70b-instruct"],
}

_PLACEHOLDER_KEYS = {"<REPLACE_ME>", "changeme", "your_api_key_here"}


def _require_key(name: str) -> None:
    key = get_env_str(name)
    if not key or key.strip() in _PLACEHOLDER_KEYS or key.startswith("<"):
        raise ValueError(
            f"{name} is missing or set to a placeholder value. "
            "Please update your .env file with a valid API key."
        )


def get_llm_client(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
) -> BaseChatModel:
    """Get an LLM client for the specified provider.

    Args:
        provider: 'openai', 'anthropic', 'google' or 'nvidia'.
                  Defaults to LLM_PROVIDER env var or 'openai'.
        model: Model name. Defaults to LLM_MODEL env var or the provider default.
        temperature: Sampling temperature. Defaults to the provider default
                  (0 everywhere except nvidia, which uses 0.2).

    Returns:
        BaseChatModel: LangChain chat model instance.

    Raises:
        ValueError: If provider is not supported or its API key is missing.
    """
    resolved_provider = (provider or get_env_str("LLM_PROVIDER", DEFAULT_PROVIDER)).lower()
    if resolved_provider not in SUPPORTED_MODELS:
        raise ValueError(
            f"Unsupported provider: {resolved_provider}. "
            f"Supported: {list(SUPPORTED_MODELS.keys())}"
        )

    default_model, default_temperature = PROVIDER_DEFAULTS[resolved_provider]
    resolved_model = model or get_env_str("LLM_MODEL", default_model)
    resolved_temperature = default_temperature if temperature is None else temperature

    if resolved_provider == "openai":
        from langchain_openai import ChatOpenAI

        _require_key("OPENAI_API_KEY")
        return ChatOpenAI(model=resolved_model, temperature=resolved_temperature)

    elif resolved_provider == "anthropic":
        from langchain_anthropic import ChatAnthropic

        return ChatAnthropic(model=resolved_model, temperature=resolved_temperature)

    elif resolved_provider == "google":
        from langchain_google_genai import ChatGoogleGenerativeAI

        return ChatGoogleGenerativeAI(model=resolved_model, temperature=resolved_temperature)

    from langchain_nvidia_ai_endpoints import ChatNVIDIA

    _require_key("NVIDIA_API_KEY")
    return ChatNVIDIA(model=resolved_model, temperature=resolved_temperature)


def get_available_providers() -> list[str]:
    """Names of the supported providers."""
    return list(SUPPORTED_MODELS.keys())


# keys: tuple(provider, model, temperature)
_LLM_CACHE = {}


def get_llm(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
) -> BaseChatModel:
    """
    Lazy accessor for LLM clients.

    Caches clients by configuration so API key checks happen at first use
    rather than at import time.
    """
    key = (provider, model, temperature)
    if key not in _LLM_CACHE:
        _LLM_CACHE[key] = get_llm_client(provider=provider, model=model, temperature=temperature)
    return _LLM_CACHE[key]


def extract_token_usage(response: Any) -> dict[str, int]:
    """
    Extract token usage from an LLM response.

    Reads the standard ``usage_metadata`` first, then the provider-specific
    ``response_metadata`` formats (OpenAI ``token_usage``, Anthropic/Google
    ``usage``).
    """
    usage: dict[str, int] = {}
    k_input = TelemetryKeys.LLM_TOKEN_INPUT.value
    k_output = TelemetryKeys.LLM_TOKEN_OUTPUT.value
    k_total = TelemetryKeys.LLM_TOKEN_TOTAL.value

    standard = getattr(response, "usage_metadata", None)
    if standard:
        usage[k_input] = int(standard.get("input_tokens", 0))
        usage[k_output] = int(standard.get("output_tokens", 0))
        usage[k_total] = int(standard.get("total_tokens", usage[k_input] + usage[k_output]))
        return usage

    meta = getattr(response, "response_metadata", None) or {}
    if "token_usage" in meta:
        tu = meta["token_usage"] or {}
        if "prompt_tokens" in tu:
            usage[k_input] = int(tu["prompt_tokens"])
        if "completion_tokens" in tu:
            usage[k_output] = int(tu["completion_tokens"])
        if "total_tokens" in tu:
            usage[k_total] = int(tu["total_tokens"])
    elif isinstance(meta.get("usage"), dict):
        u = meta["usage"]
        if "input_tokens" in u:
            usage[k_input] = int(u["input_tokens"])
        if "output_tokens" in u:
            usage[k_output] = int(u["output_tokens"])
        if k_input in usage and k_output in usage:
            usage[k_total] = usage[k_input] + usage[k_output]
    return usage


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return str(content or "")


class ChatModelTextGenerator:
    """TextGenerator backed by a LangChain chat model."""

    def __init__(self, llm: BaseChatModel):
        """Initialize with a chat model (see ``get_llm``)."""
        self.llm = llm
        self.model_name = getattr(llm, "model_name", None) or getattr(llm, "model", "unknown")

    async def complete(self, prompt: str) -> str:
        """Send the prompt as a single user message and return the text reply."""
        with telemetry.start_span(name="llm.call", span_type=SpanKind.LLM_CALL) as span:
            span.set_attribute(TelemetryKeys.EVENT_NAME.value, "statement_generation")
            span.set_attribute(TelemetryKeys.LLM_MODEL.value, str(self.model_name))

            response = await self.llm.ainvoke(prompt)
            text = _content_text(getattr(response, "content", response))

            out_trunc, truncated, _, _ = truncate_json(text)
            span.set_attribute(TelemetryKeys.LLM_RESPONSE_TEXT.value, out_trunc)
            if truncated:
                span.set_attribute(TelemetryKeys.PAYLOAD_TRUNCATED.value, True)

            usage = extract_token_usage(response)
            if usage:
                span.set_attributes(usage)
            return text
