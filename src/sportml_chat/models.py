"""
sportml-chat: Data models for requests, provider results and responses.

All public types used throughout the library are defined here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

DEFAULT_SYSTEM_PROMPT = (
    "You are SportML Chat, an AI assistant specialized exclusively in sports.\n\n"
    "Rules:\n"
    "- Answer ONLY questions about sports (football, tennis, basketball, handball, "
    "athletics, swimming, gymnastics, wrestling, boxing, MMA, Formula 1, cycling, "
    "volleyball, Olympic sports, etc.)\n"
    "- For any other topic reply: \"Sorry, I only cover sports. Ask me about "
    "football, tennis, basketball or other sports!\"\n"
    "- Keep answers concise, clear and informative\n"
    "- Friendly, enthusiastic tone\n"
    "- If you do not know something, say so openly\n"
    "- No special formatting (*, /, !)"
)


class FailureReason(str, Enum):
    """Why a provider could not produce a reply."""

    TIMEOUT = "timeout"
    ALL_MODELS_UNAVAILABLE = "all_models_unavailable"
    SERVICE_DOWN = "service_down"
    NO_SUITABLE_MODEL = "no_suitable_model"
    INVALID_RESPONSE = "invalid_response"
    HTTP_ERROR = "http_error"
    CONNECTION_ERROR = "connection_error"


@dataclass
class ChatRequest:
    """A validated inbound chat message.

    Attributes:
        message: The user question, already trimmed.
        client_id: Opaque identity derived from the network origin.
    """

    message: str
    client_id: str = "unknown"


@dataclass
class ProviderConfig:
    """Descriptor for one upstream provider.

    Attributes:
        name: Unique label used in logs and reply attribution (e.g., "groq").
        kind: Adapter type ("openai", "ollama"), resolved by the provider registry.
        priority: Lower value = tried first.
        base_url: Provider API base URL.
        models: Ordered candidate model identifiers.
        api_key: Credential for hosted providers, None for local ones.
        requires_api_key: Skip this provider entirely when api_key is missing.
        max_tokens: Maximum tokens to generate.
        temperature: Sampling temperature.
        timeout: Upper bound in seconds for one invoke() call.
        enrich: Wrap the adapter with schedule enrichment.
        system_prompt: Instruction prompt sent with every request.
        extra_options: Provider-specific options passed through to the adapter.
        headers: Extra HTTP headers sent with every request (e.g., OpenRouter's
            HTTP-Referer / X-Title).
        include_datetime: Append the current date and time to the system prompt.
    """

    name: str
    kind: str
    base_url: str
    models: list[str]
    priority: int = 1
    api_key: str | None = None
    requires_api_key: bool = False
    max_tokens: int = 1000
    temperature: float = 0.7
    timeout: float = 15.0
    enrich: bool = False
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    extra_options: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    include_datetime: bool = False

    @property
    def has_credentials(self) -> bool:
        """Whether the provider can be called at all."""
        return not self.requires_api_key or bool(self.api_key)


@dataclass
class ProviderSuccess:
    """A normalized reply from a provider.

    Attributes:
        reply: The generated text, trimmed.
        provider_label: Which provider and model answered, e.g. "groq (llama-3.1-8b-instant)".
        usage: Provider-reported usage metadata, passed through untouched.
    """

    reply: str
    provider_label: str
    usage: dict[str, Any] | None = None

    success: bool = field(default=True, init=False)


@dataclass
class ProviderFailure:
    """A provider attempt that produced no usable reply."""

    reason: FailureReason
    detail: str = ""

    success: bool = field(default=False, init=False)


ProviderResult = Union[ProviderSuccess, ProviderFailure]


@dataclass
class AttemptRecord:
    """Outcome of one provider in the orchestrator's walk."""

    provider: str
    skipped: bool = False
    success: bool = False
    reason: FailureReason | None = None
    elapsed_ms: float = 0.0


@dataclass
class ChatResponse:
    """Transport-neutral endpoint response.

    Attributes:
        status_code: HTTP status to send.
        body: JSON-serializable response body.
        headers: Extra response headers (e.g., Retry-After).
        attempts: Provider attempts made while serving this request.
    """

    status_code: int
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)
    attempts: list[AttemptRecord] = field(default_factory=list)

    @property
    def cached(self) -> bool:
        return bool(self.body.get("cached", False))
