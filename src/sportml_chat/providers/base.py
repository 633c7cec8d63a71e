"""
sportml-chat: Abstract provider adapter protocol.

Any LLM provider can be integrated by implementing this protocol.
Built-in implementations exist for OpenAI-compatible chat-completion APIs
(Groq, OpenRouter, ...) and for a local Ollama server.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sportml_chat.models import ProviderConfig, ProviderResult


@runtime_checkable
class ProviderAdapter(Protocol):
    """Protocol defining the interface for provider adapters.

    Adapters never raise for upstream trouble: every failure mode is
    reported as a ``ProviderFailure`` so the orchestrator can move on to
    the next provider.

    Example::

        class MyProvider:
            async def invoke(self, message: str, config: ProviderConfig) -> ProviderResult:
                text = await my_api.complete(config.models[0], message)
                if not text:
                    return ProviderFailure(FailureReason.INVALID_RESPONSE)
                return ProviderSuccess(reply=text, provider_label=config.name)

            async def health_check(self, config: ProviderConfig) -> bool:
                return await my_api.ping()

            async def close(self) -> None:
                await my_api.disconnect()
    """

    async def invoke(self, message: str, config: ProviderConfig) -> ProviderResult:
        """Ask the provider to answer a message.

        Args:
            message: The trimmed user message.
            config: The provider descriptor (models, limits, credentials).

        Returns:
            ProviderSuccess with the normalized reply, or ProviderFailure.
        """
        ...

    async def health_check(self, config: ProviderConfig) -> bool:
        """Check if the provider is reachable and healthy."""
        ...

    async def close(self) -> None:
        """Clean up resources (HTTP sessions, connections, etc.)."""
        ...
