"""
sportml-chat: Schedule enrichment around another provider.

Questions that mention motorsport schedules get the upcoming events from the
schedule feed prepended as context before the wrapped provider is called.
Enrichment is best-effort: a failing feed is logged and the question goes
out unchanged.
"""

from __future__ import annotations

import logging
import re

from sportml_chat.models import ProviderConfig, ProviderResult
from sportml_chat.providers.base import ProviderAdapter
from sportml_chat.schedule import FORMULA_1, ScheduleFeed, ScheduleFeedError

logger = logging.getLogger(__name__)

MOTORSPORT_KEYWORDS = (
    "f1",
    "formula 1",
    "formula one",
    "grand prix",
    "gp",
    "qualifying",
    "race weekend",
    "next race",
    "pole position",
)

_KEYWORD_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(k) for k in MOTORSPORT_KEYWORDS) + r")\b",
    re.IGNORECASE,
)


def wants_schedule(message: str) -> bool:
    """Whether the message asks about something the schedule feed can answer."""
    return _KEYWORD_PATTERN.search(message) is not None


class ScheduleEnrichedProvider:
    """Wraps a provider and adds schedule context to motorsport questions.

    Example::

        provider = ScheduleEnrichedProvider(OpenAIProvider(), ScheduleFeed())
        result = await provider.invoke("When is the next F1 race?", config)
    """

    def __init__(
        self,
        inner: ProviderAdapter,
        feed: ScheduleFeed,
        league_id: str = FORMULA_1,
        max_events: int = 3,
    ) -> None:
        self.inner = inner
        self.feed = feed
        self.league_id = league_id
        self.max_events = max_events

    async def build_context(self, message: str) -> str | None:
        """Schedule context for the message, or None if not relevant/unavailable."""
        if not wants_schedule(message):
            return None

        try:
            events = await self.feed.next_events(self.league_id, limit=self.max_events)
            lines = "\n".join(f"- {event.describe()}" for event in events)
        except ScheduleFeedError as e:
            logger.warning(f"Schedule enrichment skipped: {e}")
            return None
        except Exception:
            # Enrichment must never fail the question itself
            logger.exception("Schedule enrichment failed unexpectedly")
            return None

        if not lines:
            return None
        return f"Upcoming events from the official schedule:\n{lines}"

    async def invoke(self, message: str, config: ProviderConfig) -> ProviderResult:
        context = await self.build_context(message)
        if context is not None:
            logger.debug(f"{config.name}: added schedule context to request")
            message = f"{context}\n\n{message}"
        return await self.inner.invoke(message, config)

    async def health_check(self, config: ProviderConfig) -> bool:
        return await self.inner.health_check(config)

    async def close(self) -> None:
        await self.inner.close()
