"""Shared test fixtures, mock providers and fake HTTP plumbing for sportml-chat tests."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from sportml_chat.models import (
    FailureReason,
    ProviderConfig,
    ProviderFailure,
    ProviderResult,
    ProviderSuccess,
)


class FakeClock:
    """Manually advanced time source for limiter and cache tests."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MockProvider:
    """Configurable mock provider adapter.

    By default, returns successful replies. Can be configured to fail,
    delay, or return custom content.
    """

    def __init__(
        self,
        reply: str = "Mock reply",
        should_fail: bool = False,
        reason: FailureReason = FailureReason.HTTP_ERROR,
        delay_seconds: float = 0.0,
        usage: dict[str, Any] | None = None,
    ) -> None:
        self.reply = reply
        self.should_fail = should_fail
        self.reason = reason
        self.delay_seconds = delay_seconds
        self.usage = usage
        self.call_count = 0
        self.last_message: str | None = None
        self._closed = False

    async def invoke(self, message: str, config: ProviderConfig) -> ProviderResult:
        self.call_count += 1
        self.last_message = message

        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        if self.should_fail:
            return ProviderFailure(self.reason, "mock failure")

        return ProviderSuccess(
            reply=self.reply,
            provider_label=f"{config.name} ({config.models[0] if config.models else 'mock'})",
            usage=self.usage,
        )

    async def health_check(self, config: ProviderConfig) -> bool:
        return not self.should_fail

    async def close(self) -> None:
        self._closed = True


def make_config(name: str = "mock", **kwargs: Any) -> ProviderConfig:
    """Provider descriptor with test-friendly defaults."""
    kwargs.setdefault("kind", "mock")
    kwargs.setdefault("base_url", "http://provider.test")
    kwargs.setdefault("models", ["mock-model"])
    return ProviderConfig(name=name, **kwargs)


def fake_response(
    status: int = 200, json_data: Any = None, text: str = ""
) -> AsyncMock:
    """An aiohttp-like response object."""
    resp = AsyncMock()
    resp.status = status
    resp.json = AsyncMock(return_value=json_data if json_data is not None else {})
    resp.text = AsyncMock(return_value=text)
    return resp


def as_context(resp: Any) -> AsyncMock:
    """Wrap a response (or an exception to raise) as ``async with session.post(...)``."""
    if isinstance(resp, BaseException):
        return AsyncMock(
            __aenter__=AsyncMock(side_effect=resp),
            __aexit__=AsyncMock(return_value=False),
        )
    return AsyncMock(
        __aenter__=AsyncMock(return_value=resp),
        __aexit__=AsyncMock(return_value=False),
    )


def fake_session(
    post: list[Any] | None = None, get: list[Any] | None = None
) -> AsyncMock:
    """A session whose post()/get() calls yield the given responses in order.

    Each item is either a fake response or an exception raised on entry.
    Calls are recorded on ``session.post.call_args_list``.
    """
    session = AsyncMock()
    session.closed = False
    session.post = MagicMock(side_effect=[as_context(r) for r in (post or [])])
    session.get = MagicMock(side_effect=[as_context(r) for r in (get or [])])
    return session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_provider() -> MockProvider:
    """A successful mock provider."""
    return MockProvider()


@pytest.fixture
def failing_provider() -> MockProvider:
    """A consistently failing mock provider."""
    return MockProvider(should_fail=True)
