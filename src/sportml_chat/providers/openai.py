"""
sportml-chat: OpenAI-compatible chat-completion provider.

Works with any provider that exposes a /chat/completions endpoint:
- Groq
- OpenRouter
- OpenAI
- vLLM, LM Studio, Together AI, Fireworks, etc.

Model fallback and retry:
1. One pass tries every candidate model strictly in configured order,
   moving to the next model immediately on any failure
2. The first non-empty reply wins
3. Models that failed with a transient signal (429/502/503/504, network
   error, timeout) stay in play; models that failed permanently are dropped
4. If a pass produced nothing, back off per the RetryPolicy and run another
   pass with the remaining models
5. When the policy gives up or no models remain → ALL_MODELS_UNAVAILABLE
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

import aiohttp

from sportml_chat.models import (
    FailureReason,
    ProviderConfig,
    ProviderFailure,
    ProviderResult,
    ProviderSuccess,
)
from sportml_chat.retry import RetryPolicy

logger = logging.getLogger(__name__)


def _extract_content(data: Any) -> str | None:
    """The first choice's message content, or None if the payload is malformed."""
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not choices:
        return ""
    if not isinstance(choices, list) or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message")
    if message is None:
        return ""
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if content is None:
        return ""
    return content if isinstance(content, str) else None


def model_timeout(config: ProviderConfig) -> float:
    """Per-call timeout, so every candidate model gets a turn within the provider budget."""
    return config.timeout / max(len(config.models), 1)


class OpenAIProvider:
    """OpenAI-compatible API provider with ordered model fallback.

    Example::

        provider = OpenAIProvider(retry_policy=RetryPolicy(max_attempts=3))
        config = ProviderConfig(
            name="groq",
            kind="openai",
            base_url="https://api.groq.com/openai/v1",
            models=["llama-3.1-70b-versatile", "llama-3.1-8b-instant"],
            api_key="gsk_...",
            requires_api_key=True,
        )
        result = await provider.invoke("Who won Wimbledon in 2023?", config)
        await provider.close()
    """

    def __init__(
        self,
        retry_policy: RetryPolicy | None = None,
        default_headers: dict[str, str] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize the provider.

        Args:
            retry_policy: Backoff policy between passes over the model list.
            default_headers: Additional headers for every request
                (e.g., OpenRouter's HTTP-Referer / X-Title).
            sleep: Coroutine used for backoff delays, injectable for tests.
            now: Clock for ``include_datetime`` system prompts.
        """
        self.retry_policy = retry_policy or RetryPolicy()
        self._default_headers = default_headers or {}
        self._sleep = sleep
        self._now = now
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Lazily create and return the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    def _headers(self, config: ProviderConfig) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            **self._default_headers,
            **config.headers,
        }
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        return headers

    def _system_prompt(self, config: ProviderConfig) -> str:
        if not config.include_datetime:
            return config.system_prompt
        stamp = self._now().strftime("%A, %d %B %Y, %H:%M")
        return f"{config.system_prompt}\n\nCurrent date and time: {stamp}"

    async def invoke(self, message: str, config: ProviderConfig) -> ProviderResult:
        """Answer a message via the /chat/completions endpoint.

        Args:
            message: The trimmed user message.
            config: Provider descriptor; ``config.models`` is the fallback order.

        Returns:
            ProviderSuccess labeled with the model that answered, or
            ProviderFailure(ALL_MODELS_UNAVAILABLE).
        """
        url = f"{config.base_url.rstrip('/')}/chat/completions"
        headers = self._headers(config)
        candidates = list(config.models)
        errors: list[str] = []
        attempt = 0

        while candidates:
            attempt += 1
            still_retryable: list[str] = []

            for model in candidates:
                result, retryable = await self._call_model(
                    url, headers, model, message, config
                )
                if isinstance(result, ProviderSuccess):
                    return result

                logger.info(f"{config.name}: model {model} failed ({result.detail})")
                errors.append(f"{model}: {result.detail}")
                if retryable:
                    still_retryable.append(model)

            candidates = still_retryable
            if not candidates:
                break

            decision = self.retry_policy.decide(attempt)
            if not decision.retry:
                break
            logger.debug(
                f"{config.name}: pass {attempt} failed, retrying "
                f"{len(candidates)} model(s) in {decision.delay:.1f}s"
            )
            await self._sleep(decision.delay)

        return ProviderFailure(
            reason=FailureReason.ALL_MODELS_UNAVAILABLE,
            detail="; ".join(errors) or "no models configured",
        )

    async def _call_model(
        self,
        url: str,
        headers: dict[str, str],
        model: str,
        message: str,
        config: ProviderConfig,
    ) -> tuple[ProviderResult, bool]:
        """Call one model once.

        Returns:
            (result, retryable): retryable is True when the failure is transient.
        """
        payload: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": self._system_prompt(config)},
                {"role": "user", "content": message},
            ],
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "stream": False,
            **config.extra_options,
        }

        session = await self._get_session()
        try:
            per_call = model_timeout(config)
            timeout = aiohttp.ClientTimeout(total=per_call)
            async with session.post(
                url, json=payload, headers=headers, timeout=timeout
            ) as resp:
                if 200 <= resp.status < 300:
                    data = await resp.json()
                    content = _extract_content(data)
                    if content is None:
                        return (
                            ProviderFailure(
                                FailureReason.INVALID_RESPONSE, "unexpected reply shape"
                            ),
                            False,
                        )
                    if not content.strip():
                        return (
                            ProviderFailure(FailureReason.INVALID_RESPONSE, "empty reply"),
                            False,
                        )
                    return (
                        ProviderSuccess(
                            reply=content.strip(),
                            provider_label=f"{config.name} ({model})",
                            usage=data.get("usage"),
                        ),
                        False,
                    )

                error_text = await resp.text()
                logger.debug(f"{config.name}/{model} HTTP {resp.status}: {error_text[:200]}")
                return (
                    ProviderFailure(FailureReason.HTTP_ERROR, f"HTTP {resp.status}"),
                    self.retry_policy.is_retryable_status(resp.status),
                )

        except asyncio.TimeoutError:
            return (
                ProviderFailure(FailureReason.TIMEOUT, f"timeout after {per_call:.1f}s"),
                True,
            )
        except aiohttp.ContentTypeError:
            return (
                ProviderFailure(FailureReason.INVALID_RESPONSE, "non-JSON reply"),
                False,
            )
        except aiohttp.ClientError as e:
            return (
                ProviderFailure(FailureReason.CONNECTION_ERROR, f"connection error: {type(e).__name__}"),
                True,
            )
        except ValueError:
            # Body was not valid JSON
            return (
                ProviderFailure(FailureReason.INVALID_RESPONSE, "malformed JSON"),
                False,
            )

    async def health_check(self, config: ProviderConfig) -> bool:
        """Check if the endpoint is reachable by listing models (GET /models)."""
        session = await self._get_session()
        try:
            timeout = aiohttp.ClientTimeout(total=5)
            async with session.get(
                f"{config.base_url.rstrip('/')}/models",
                headers=self._headers(config),
                timeout=timeout,
            ) as resp:
                return resp.status == 200
        except (asyncio.TimeoutError, aiohttp.ClientError):
            return False

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
