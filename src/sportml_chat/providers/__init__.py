"""sportml-chat: Provider adapter implementations."""

from sportml_chat.providers.base import ProviderAdapter
from sportml_chat.providers.enrichment import ScheduleEnrichedProvider
from sportml_chat.providers.ollama import OllamaProvider
from sportml_chat.providers.openai import OpenAIProvider

__all__ = [
    "ProviderAdapter",
    "OllamaProvider",
    "OpenAIProvider",
    "ScheduleEnrichedProvider",
]
