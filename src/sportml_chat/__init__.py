"""
sportml-chat: Sports chat back-end with provider fallback.

Per-client rate limiting, response caching, and priority-ordered LLM
providers (hosted chat-completion APIs with model fallback and retry, a local
Ollama server, optional schedule enrichment) behind one chat endpoint.

Quickstart::

    from sportml_chat import ChatOrchestrator, ProviderConfig

    orchestrator = ChatOrchestrator().enable_cache(ttl_seconds=900)
    orchestrator.add_provider(ProviderConfig(
        name="groq", kind="openai", priority=1,
        base_url="https://api.groq.com/openai/v1",
        models=["llama-3.1-70b-versatile", "llama-3.1-8b-instant"],
        api_key="gsk_...", requires_api_key=True,
    ))
    orchestrator.add_provider(ProviderConfig(
        name="ollama", kind="ollama", priority=2,
        base_url="http://localhost:11434", models=["llama3.2:3b"],
    ))

    async with orchestrator:
        response = await orchestrator.handle({"message": "Who won the 2023 Tour de France?"})
        print(response.body["reply"])
"""

from sportml_chat.cache import ResponseCache
from sportml_chat.config import Settings
from sportml_chat.errors import (
    ChatError,
    ConfigurationError,
    RateLimitExceeded,
    ServiceUnavailable,
    ValidationError,
)
from sportml_chat.models import (
    ChatRequest,
    ChatResponse,
    FailureReason,
    ProviderConfig,
    ProviderFailure,
    ProviderResult,
    ProviderSuccess,
)
from sportml_chat.orchestrator import ChatOrchestrator, register_provider
from sportml_chat.providers import (
    OllamaProvider,
    OpenAIProvider,
    ProviderAdapter,
    ScheduleEnrichedProvider,
)
from sportml_chat.rate_limiter import SlidingWindowRateLimiter
from sportml_chat.retry import RetryDecision, RetryPolicy
from sportml_chat.schedule import ScheduleFeed
from sportml_chat.stats import StatsTracker

__version__ = "0.1.0"

__all__ = [
    # Core
    "ChatOrchestrator",
    "ChatRequest",
    "ChatResponse",
    "ProviderConfig",
    "ProviderResult",
    "ProviderSuccess",
    "ProviderFailure",
    "FailureReason",
    "Settings",
    # Providers
    "ProviderAdapter",
    "OllamaProvider",
    "OpenAIProvider",
    "ScheduleEnrichedProvider",
    "ScheduleFeed",
    "register_provider",
    # Features
    "ResponseCache",
    "SlidingWindowRateLimiter",
    "RetryPolicy",
    "RetryDecision",
    "StatsTracker",
    "create_app",
    # Errors
    "ChatError",
    "ConfigurationError",
    "RateLimitExceeded",
    "ServiceUnavailable",
    "ValidationError",
]


def __getattr__(name: str) -> object:
    """Lazy import for the optional HTTP server."""
    if name == "create_app":
        from sportml_chat.server import create_app

        return create_app
    raise AttributeError(f"module 'sportml_chat' has no attribute {name!r}")
