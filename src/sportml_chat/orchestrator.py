"""
sportml-chat: Main ChatOrchestrator class, the chat endpoint handler.

Wires together providers, the rate limiter and the response cache into a
single transport-neutral ``handle()`` call.

Request flow:
1. Rate limit the client → 429 with Retry-After if over the ceiling
2. Parse and validate the body → 400 on unparsable/blank/oversized input
3. Check the response cache → return immediately if hit
4. Walk providers in ascending priority:
   a. Skip providers missing a required credential (not an attempt)
   b. Invoke the provider's adapter, bounded by its timeout
   c. First success: write through to the cache, annotate and return
5. If everything fails, return 503 with remediation suggestions
6. Any unexpected fault → 500, with details only outside production
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import TYPE_CHECKING, Any

from sportml_chat.cache import ResponseCache
from sportml_chat.errors import RateLimitExceeded, ServiceUnavailable, ValidationError
from sportml_chat.models import (
    AttemptRecord,
    ChatRequest,
    ChatResponse,
    FailureReason,
    ProviderConfig,
    ProviderFailure,
    ProviderResult,
    ProviderSuccess,
)
from sportml_chat.providers.enrichment import ScheduleEnrichedProvider
from sportml_chat.providers.ollama import OllamaProvider
from sportml_chat.providers.openai import OpenAIProvider
from sportml_chat.rate_limiter import SlidingWindowRateLimiter
from sportml_chat.retry import RetryPolicy
from sportml_chat.schedule import ScheduleFeed
from sportml_chat.stats import StatsTracker

if TYPE_CHECKING:
    from sportml_chat.config import Settings
    from sportml_chat.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 60

MSG_RATE_LIMITED = "Too many requests. Please wait a moment and try again."
MSG_INVALID_BODY = "Invalid request format. Please send JSON like {\"message\": \"...\"}."
MSG_MISSING_MESSAGE = "A message is required and must contain text."
MSG_TOO_LONG = "The message is too long. Please keep it under {limit} characters."
MSG_ALL_FAILED = (
    "All AI services are temporarily unavailable. Please try again in a few minutes."
)
MSG_ALL_TIMED_OUT = "The AI services took too long to answer. Please try again."
MSG_UNEXPECTED = "An unexpected error occurred. Please try again."

SUGGEST_RETRY = "Try again in a few minutes"
SUGGEST_SHORTER = "Try a shorter question"
SUGGEST_CONNECTIVITY = "Check the internet connection to the hosted AI service"
SUGGEST_LOCAL_SERVER = "Check that the local Ollama server is running (ollama serve)"
SUGGEST_LOCAL_MODEL = "Install a local model (e.g. ollama pull llama3.2:3b)"
SUGGEST_API_KEY = "Ask the administrator to configure an API key for the hosted AI service"


# Adapter factory: provider kind → adapter class
_PROVIDER_REGISTRY: dict[str, type] = {
    "openai": OpenAIProvider,
    "ollama": OllamaProvider,
}


class ChatOrchestrator:
    """Chat endpoint handler with rate limiting, caching and provider fallback.

    Quickstart::

        orchestrator = ChatOrchestrator()
        orchestrator.add_provider(ProviderConfig(
            name="ollama", kind="ollama",
            base_url="http://localhost:11434", models=["llama3.2:3b"],
        ))

        async with orchestrator:
            response = await orchestrator.handle(b'{"message": "Who won Euro 2024?"}',
                                                 client_id="203.0.113.7")
            print(response.status_code, response.body)

    From settings::

        orchestrator = ChatOrchestrator.from_settings(Settings.from_env())
    """

    def __init__(
        self,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        cache: ResponseCache | None = None,
        max_message_length: int = 2000,
        expose_errors: bool = True,
        schedule_feed: ScheduleFeed | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            rate_limiter: Per-client admission control; a default
                25-requests-per-minute limiter is created if omitted.
            cache: Response cache; None disables caching (pure passthrough).
            max_message_length: Longest accepted message, in characters.
            expose_errors: Attach exception details to 500 responses
                (disable in production).
            schedule_feed: Feed used to enrich providers with ``enrich=True``.
            retry_policy: Backoff policy for hosted providers created here.
        """
        self._providers: dict[str, ProviderConfig] = {}
        self._adapters: dict[str, ProviderAdapter] = {}
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter()
        self._cache = cache
        self.max_message_length = max_message_length
        self.expose_errors = expose_errors
        self.schedule_feed = schedule_feed
        self.retry_policy = retry_policy or RetryPolicy()
        self._stats = StatsTracker()
        self._started = False

    @classmethod
    def from_settings(cls, settings: Settings) -> ChatOrchestrator:
        """Build a fully wired orchestrator from application settings."""
        orchestrator = cls(
            rate_limiter=SlidingWindowRateLimiter(
                max_requests=settings.rate_limit_per_minute, window_seconds=60.0
            ),
            cache=ResponseCache(
                ttl_seconds=settings.cache_ttl_seconds,
                max_entries=settings.cache_max_entries,
                evict_count=settings.cache_evict_count,
            ),
            max_message_length=settings.max_message_length,
            expose_errors=not settings.is_production,
            schedule_feed=ScheduleFeed(
                base_url=settings.sportsdb_base_url,
                api_key=settings.sportsdb_api_key,
            ),
        )
        for config in settings.provider_configs():
            orchestrator.add_provider(config)
        return orchestrator

    # ──────────────────────────────────────────────────────────────────────
    # Provider Management
    # ──────────────────────────────────────────────────────────────────────

    def add_provider(
        self, config: ProviderConfig, adapter: ProviderAdapter | None = None
    ) -> ChatOrchestrator:
        """Register a provider.

        Args:
            config: The provider descriptor.
            adapter: Provide a custom adapter instead of using the built-in
                factory for ``config.kind``.

        Returns:
            self (for method chaining).

        Raises:
            ValueError: If the name is already registered or the kind is
                unknown and no adapter is provided.
        """
        if config.name in self._providers:
            raise ValueError(f"Provider '{config.name}' is already registered")

        if adapter is None:
            adapter = self._create_adapter(config)
        if config.enrich and self.schedule_feed is not None:
            adapter = ScheduleEnrichedProvider(adapter, self.schedule_feed)

        self._providers[config.name] = config
        self._adapters[config.name] = adapter
        logger.info(
            f"Registered provider '{config.name}' ({config.kind}, priority {config.priority}, "
            f"models: {', '.join(config.models) or 'auto'})"
        )
        return self

    def remove_provider(self, name: str) -> None:
        """Remove a registered provider.

        Raises:
            KeyError: If the provider is not registered.
        """
        if name not in self._providers:
            raise KeyError(f"Provider '{name}' is not registered")
        del self._providers[name]
        del self._adapters[name]
        logger.info(f"Removed provider '{name}'")

    def enable_cache(
        self,
        ttl_seconds: float = 900.0,
        max_entries: int = 100,
        evict_count: int = 20,
    ) -> ChatOrchestrator:
        """Enable response caching with a fresh in-memory cache.

        Returns:
            self (for method chaining).
        """
        self._cache = ResponseCache(
            ttl_seconds=ttl_seconds, max_entries=max_entries, evict_count=evict_count
        )
        logger.info(
            f"Response cache enabled (ttl={ttl_seconds:.0f}s, max={max_entries}, "
            f"evict={evict_count})"
        )
        return self

    @property
    def cache(self) -> ResponseCache | None:
        return self._cache

    # ──────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────────

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        configured = [c.name for c in self._ordered_providers() if c.has_credentials]
        logger.info(
            f"ChatOrchestrator started with {len(self._providers)} provider(s), "
            f"usable: {', '.join(configured) or 'none'}"
        )
        if not configured:
            logger.error("No usable providers: every request will get a 503")

    async def stop(self) -> None:
        """Close all adapter and feed connections."""
        for adapter in self._adapters.values():
            try:
                await adapter.close()
            except Exception as e:
                logger.warning(f"Error closing provider: {e}")

        if self.schedule_feed is not None:
            await self.schedule_feed.close()

        self._started = False
        logger.info("ChatOrchestrator stopped")

    async def __aenter__(self) -> ChatOrchestrator:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()

    # ──────────────────────────────────────────────────────────────────────
    # Core API
    # ──────────────────────────────────────────────────────────────────────

    async def handle(
        self, raw_body: bytes | str | dict[str, Any], client_id: str = "unknown"
    ) -> ChatResponse:
        """Serve one chat request.

        Args:
            raw_body: The request body, either raw JSON or an already
                decoded mapping.
            client_id: Identity used for rate limiting.

        Returns:
            Exactly one ChatResponse (200, 400, 429, 503/504 or 500).
        """
        started = time.perf_counter()
        attempts: list[AttemptRecord] = []
        self._stats.record_request()

        try:
            response = await self._handle(raw_body, client_id, started, attempts)
        except RateLimitExceeded as e:
            self._stats.record_rate_limited()
            response = ChatResponse(
                status_code=e.status_code,
                body={"error": str(e), "retryAfter": e.retry_after},
                headers={"Retry-After": str(e.retry_after)},
            )
        except ValidationError as e:
            self._stats.record_invalid()
            response = ChatResponse(status_code=e.status_code, body={"error": str(e)})
        except ServiceUnavailable as e:
            response = ChatResponse(
                status_code=e.status_code,
                body={"error": str(e), "suggestions": e.suggestions},
                headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
            )
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.exception(f"Unexpected error after {elapsed_ms:.0f}ms")
            body: dict[str, Any] = {"error": MSG_UNEXPECTED}
            if self.expose_errors:
                body["details"] = str(e)
            response = ChatResponse(status_code=500, body=body)

        response.attempts = attempts
        self._stats.record_status(response.status_code)
        return response

    def parse_request(
        self, raw_body: bytes | str | dict[str, Any], client_id: str = "unknown"
    ) -> ChatRequest:
        """Decode and validate a request body.

        Raises:
            ValidationError: If the body is not a JSON object, the message is
                missing, blank or not a string, or exceeds the length ceiling.
        """
        if isinstance(raw_body, (bytes, str)):
            try:
                payload = json.loads(raw_body)
            except ValueError as err:
                raise ValidationError(MSG_INVALID_BODY) from err
        else:
            payload = raw_body

        if not isinstance(payload, dict):
            raise ValidationError(MSG_INVALID_BODY)

        message = payload.get("message")
        if not isinstance(message, str) or not message.strip():
            raise ValidationError(MSG_MISSING_MESSAGE)

        message = message.strip()
        if len(message) > self.max_message_length:
            raise ValidationError(MSG_TOO_LONG.format(limit=self.max_message_length))

        return ChatRequest(message=message, client_id=client_id)

    async def _handle(
        self,
        raw_body: bytes | str | dict[str, Any],
        client_id: str,
        started: float,
        attempts: list[AttemptRecord],
    ) -> ChatResponse:
        # 1. Rate limit
        if not self.rate_limiter.admit(client_id):
            logger.warning(f"Rate limit exceeded for client {client_id}")
            raise RateLimitExceeded(MSG_RATE_LIMITED, retry_after=RETRY_AFTER_SECONDS)

        # 2. Validate
        request = self.parse_request(raw_body, client_id)

        # 3. Cache
        if self._cache is not None:
            cached = self._cache.get(request.message)
            if cached is not None:
                self._stats.record_cache_hit()
                logger.debug(f"Cache hit for: {request.message[:50]}")
                return ChatResponse(
                    status_code=200,
                    body={
                        "reply": cached,
                        "provider": "cache",
                        "cached": True,
                        "responseTime": _elapsed_ms(started),
                    },
                )

        # 4. Providers
        result = await self._dispatch(request, attempts)

        if self._cache is not None:
            self._cache.put(request.message, result.reply)

        response_time = _elapsed_ms(started)
        logger.info(f"Answered by {result.provider_label} in {response_time}ms")

        body: dict[str, Any] = {
            "reply": result.reply,
            "provider": result.provider_label,
            "cached": False,
            "responseTime": response_time,
        }
        if result.usage is not None:
            body["usage"] = result.usage
        return ChatResponse(status_code=200, body=body)

    async def _dispatch(
        self, request: ChatRequest, attempts: list[AttemptRecord]
    ) -> ProviderSuccess:
        """Walk providers by priority until one succeeds.

        Raises:
            ServiceUnavailable: If every provider failed or was skipped.
        """
        failures: list[tuple[ProviderConfig, ProviderFailure]] = []
        skipped: list[ProviderConfig] = []

        for config in self._ordered_providers():
            if not config.has_credentials:
                logger.info(f"Provider '{config.name}' has no API key configured, skipping")
                self._stats.record_skip(config.name)
                attempts.append(AttemptRecord(provider=config.name, skipped=True))
                skipped.append(config)
                continue

            logger.debug(f"Trying provider: {config.name}")
            self._stats.record_attempt(config.name)
            attempt_started = time.perf_counter()

            result = await self._invoke(config, request.message)
            elapsed_ms = (time.perf_counter() - attempt_started) * 1000

            if isinstance(result, ProviderSuccess):
                self._stats.record_success(config.name, elapsed_ms)
                attempts.append(
                    AttemptRecord(provider=config.name, success=True, elapsed_ms=elapsed_ms)
                )
                return result

            logger.warning(
                f"Provider '{config.name}' failed ({result.reason.value}): {result.detail}"
            )
            self._stats.record_failure(config.name, result.reason.value)
            attempts.append(
                AttemptRecord(
                    provider=config.name, reason=result.reason, elapsed_ms=elapsed_ms
                )
            )
            failures.append((config, result))

        if not failures:
            logger.error(
                f"No usable providers ({len(skipped)} skipped for missing credentials)"
            )

        timed_out = bool(failures) and all(
            f.reason == FailureReason.TIMEOUT for _, f in failures
        )
        raise ServiceUnavailable(
            MSG_ALL_TIMED_OUT if timed_out else MSG_ALL_FAILED,
            suggestions=_suggestions(failures, skipped),
            status_code=504 if timed_out else 503,
        )

    async def _invoke(self, config: ProviderConfig, message: str) -> ProviderResult:
        """Invoke one adapter, bounded by the provider's timeout.

        A timeout cancels the adapter task, which aborts its in-flight HTTP
        request and releases the connection.
        """
        adapter = self._adapters[config.name]
        try:
            return await asyncio.wait_for(
                adapter.invoke(message, config), timeout=config.timeout
            )
        except asyncio.TimeoutError:
            return ProviderFailure(
                FailureReason.TIMEOUT, f"no answer within {config.timeout}s"
            )

    # ──────────────────────────────────────────────────────────────────────
    # Observability
    # ──────────────────────────────────────────────────────────────────────

    def get_stats(self) -> dict[str, Any]:
        """Get endpoint, rate limiter and cache statistics."""
        stats = self._stats.get_stats()
        stats["rate_limiter"] = self.rate_limiter.get_stats()
        if self._cache is not None:
            stats["cache"] = self._cache.get_stats()
        return stats

    def get_provider_status(self) -> dict[str, dict[str, Any]]:
        """Get per-provider configuration status (never includes credentials)."""
        return {
            config.name: {
                "kind": config.kind,
                "priority": config.priority,
                "models": list(config.models),
                "configured": config.has_credentials,
                "enriched": isinstance(
                    self._adapters[config.name], ScheduleEnrichedProvider
                ),
            }
            for config in self._ordered_providers()
        }

    async def health(self) -> dict[str, bool]:
        """Probe every usable provider."""
        return {
            config.name: await self._adapters[config.name].health_check(config)
            for config in self._ordered_providers()
            if config.has_credentials
        }

    # ──────────────────────────────────────────────────────────────────────
    # Internal
    # ──────────────────────────────────────────────────────────────────────

    def _ordered_providers(self) -> list[ProviderConfig]:
        """Providers in ascending priority, registration order within ties."""
        return sorted(self._providers.values(), key=lambda c: c.priority)

    def _create_adapter(self, config: ProviderConfig) -> ProviderAdapter:
        """Create an adapter instance from a provider config."""
        kind = config.kind.lower()
        adapter_class = _PROVIDER_REGISTRY.get(kind)
        if adapter_class is None:
            raise ValueError(
                f"Unknown provider kind '{kind}'. "
                f"Available: {list(_PROVIDER_REGISTRY.keys())}. "
                f"Or pass a custom `adapter=` instance."
            )

        # Chat-completion adapters share the orchestrator's retry policy
        if issubclass(adapter_class, OpenAIProvider):
            return adapter_class(retry_policy=self.retry_policy)
        return adapter_class()  # type: ignore[no-any-return]


def _elapsed_ms(started: float) -> int:
    return round((time.perf_counter() - started) * 1000)


def _suggestions(
    failures: list[tuple[ProviderConfig, ProviderFailure]],
    skipped: list[ProviderConfig],
) -> list[str]:
    """Actionable hints for a 503, based on what went wrong."""
    suggestions = [SUGGEST_RETRY]
    reasons = {(config.kind, failure.reason) for config, failure in failures}

    if ("ollama", FailureReason.SERVICE_DOWN) in reasons:
        suggestions.append(SUGGEST_LOCAL_SERVER)
    if ("ollama", FailureReason.NO_SUITABLE_MODEL) in reasons:
        suggestions.append(SUGGEST_LOCAL_MODEL)
    if any(kind == "openai" for kind, _ in reasons):
        suggestions.append(SUGGEST_CONNECTIVITY)
    if skipped and not failures:
        suggestions.append(SUGGEST_API_KEY)
    suggestions.append(SUGGEST_SHORTER)
    return suggestions


def register_provider(kind: str, adapter_class: type) -> None:
    """Register a custom adapter class for a provider kind.

    Example::

        from sportml_chat import register_provider

        class MyProvider:
            async def invoke(self, message, config):
                ...
            async def health_check(self, config):
                ...
            async def close(self):
                ...

        register_provider("my_kind", MyProvider)
        orchestrator.add_provider(ProviderConfig(name="custom", kind="my_kind", ...))
    """
    _PROVIDER_REGISTRY[kind.lower()] = adapter_class
