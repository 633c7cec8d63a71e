"""
sportml-chat: Read-only client for TheSportsDB schedule feed.

Used in two places:
- GET /api/next-events, which returns the next few events of a league
- ScheduleEnrichedProvider, which adds upcoming events to motorsport questions
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.thesportsdb.com/api/v1/json"
DEFAULT_API_KEY = "123"  # TheSportsDB public test key

ENGLISH_PREMIER_LEAGUE = "4328"
FORMULA_1 = "4370"


class ScheduleFeedError(Exception):
    """The schedule feed could not be read."""


@dataclass
class ScheduleEvent:
    """One upcoming event, flattened from the feed's nested structure."""

    event: str | None
    date: str | None
    time: str | None
    league: str | None

    @classmethod
    def from_feed(cls, raw: dict[str, Any]) -> ScheduleEvent:
        return cls(
            event=raw.get("strEvent"),
            date=raw.get("dateEvent"),
            time=raw.get("strTime"),
            league=raw.get("strLeague"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def describe(self) -> str:
        when = " ".join(part for part in (self.date, self.time) if part)
        return f"{self.event or 'TBA'} ({when or 'date TBA'})"


class ScheduleFeed:
    """Minimal async client for the ``eventsnextleague`` endpoint.

    Example::

        feed = ScheduleFeed()
        events = await feed.next_events(FORMULA_1, limit=3)
        await feed.close()
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_key: str = DEFAULT_API_KEY,
        timeout: float = 5.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Lazily create and return the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def next_events(
        self, league_id: str = ENGLISH_PREMIER_LEAGUE, limit: int = 5
    ) -> list[ScheduleEvent]:
        """Fetch the next events of a league.

        Raises:
            ScheduleFeedError: On HTTP errors, timeouts or malformed payloads.
        """
        url = f"{self.base_url}/{self.api_key}/eventsnextleague.php"
        session = await self._get_session()
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with session.get(
                url, params={"id": league_id}, timeout=timeout
            ) as resp:
                if resp.status != 200:
                    raise ScheduleFeedError(f"HTTP {resp.status}")
                data = await resp.json(content_type=None)
        except asyncio.TimeoutError as err:
            raise ScheduleFeedError(f"timeout after {self.timeout}s") from err
        except (aiohttp.ClientError, ValueError) as err:
            raise ScheduleFeedError(str(err) or type(err).__name__) from err

        if not isinstance(data, dict):
            raise ScheduleFeedError("unexpected payload")

        # The feed sends "events": null for leagues with nothing scheduled
        events = data.get("events") or []
        if not isinstance(events, list) or not all(isinstance(e, dict) for e in events):
            raise ScheduleFeedError("unexpected events payload")
        return [ScheduleEvent.from_feed(e) for e in events[:limit]]

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
