"""
sportml-chat: Local Ollama provider using the native /api/generate endpoint.

Each call first lists the installed models (GET /api/tags), so the adapter
only ever asks for a model that is actually present:
- the first configured candidate whose base name (before ":") appears in an
  installed model name wins
- otherwise the first installed model is used
- nothing installed → NO_SUITABLE_MODEL

The prompt is a plain completion frame ending in "Answer:"; stop sequences
keep the model from inventing a follow-up "Question:".
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from sportml_chat.models import (
    FailureReason,
    ProviderConfig,
    ProviderFailure,
    ProviderResult,
    ProviderSuccess,
)

logger = logging.getLogger(__name__)

STOP_SEQUENCES = ["\nQuestion:", "\nQ:", "Question:"]


def select_model(candidates: list[str], installed: list[str]) -> str | None:
    """Pick the model to run from the configured candidates and installed models."""
    for candidate in candidates:
        base_name = candidate.split(":")[0]
        if any(base_name in name for name in installed):
            return candidate
    return installed[0] if installed else None


def build_prompt(system_prompt: str, message: str) -> str:
    return f"{system_prompt}\n\nQuestion: {message}\nAnswer:"


class OllamaProvider:
    """Native Ollama API provider.

    Connects to a local or remote Ollama instance. No credentials are needed,
    so the provider is never skipped for configuration reasons; an Ollama
    server that is not running shows up as SERVICE_DOWN instead.

    Example::

        provider = OllamaProvider()
        config = ProviderConfig(
            name="ollama",
            kind="ollama",
            base_url="http://localhost:11434",
            models=["llama3.2:3b", "phi3"],
            max_tokens=800,
        )
        result = await provider.invoke("When is the next Grand Prix?", config)
        await provider.close()
    """

    def __init__(
        self,
        default_options: dict[str, Any] | None = None,
        keep_alive: int | None = None,
    ) -> None:
        """Initialize the Ollama provider.

        Args:
            default_options: Default Ollama options applied to every request
                (e.g., {"num_gpu": 0, "num_thread": 4} for CPU-only mode).
            keep_alive: Model residency time in seconds (-1 = permanent).
                Omitted from requests when None.
        """
        self.default_options = default_options or {}
        self.keep_alive = keep_alive
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Lazily create and return the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def list_models(self, config: ProviderConfig) -> list[str] | None:
        """Names of the installed models, or None if the server is unreachable."""
        session = await self._get_session()
        try:
            timeout = aiohttp.ClientTimeout(total=config.timeout)
            async with session.get(
                f"{config.base_url.rstrip('/')}/api/tags", timeout=timeout
            ) as resp:
                if resp.status != 200:
                    logger.warning(f"{config.name}: /api/tags returned HTTP {resp.status}")
                    return None
                data = await resp.json()
        except (asyncio.TimeoutError, aiohttp.ClientError, ValueError) as e:
            logger.warning(f"{config.name}: model listing failed: {type(e).__name__}")
            return None

        models = (data.get("models") or []) if isinstance(data, dict) else None
        if not isinstance(models, list) or not all(isinstance(m, dict) for m in models):
            logger.warning(f"{config.name}: /api/tags returned an unexpected payload")
            return None

        return [m["name"] for m in models if isinstance(m.get("name"), str) and m["name"]]

    async def invoke(self, message: str, config: ProviderConfig) -> ProviderResult:
        """Answer a message via Ollama's /api/generate endpoint.

        Args:
            message: The trimmed user message.
            config: Provider descriptor; ``config.models`` are preferred candidates.

        Returns:
            ProviderSuccess with ``usage={"total_duration": ...}``, or
            ProviderFailure (SERVICE_DOWN, NO_SUITABLE_MODEL, ...).
        """
        installed = await self.list_models(config)
        if installed is None:
            return ProviderFailure(FailureReason.SERVICE_DOWN, "Ollama not running")

        model = select_model(config.models, installed)
        if model is None:
            return ProviderFailure(FailureReason.NO_SUITABLE_MODEL, "no models installed")

        # Build options: defaults < per-provider extras < request settings
        options: dict[str, Any] = {}
        options.update(self.default_options)
        options.update(config.extra_options)
        options["temperature"] = config.temperature
        options["num_predict"] = config.max_tokens
        options["stop"] = list(STOP_SEQUENCES)

        payload: dict[str, Any] = {
            "model": model,
            "prompt": build_prompt(config.system_prompt, message),
            "stream": False,
            "options": options,
        }
        if self.keep_alive is not None:
            payload["keep_alive"] = self.keep_alive

        session = await self._get_session()
        try:
            timeout = aiohttp.ClientTimeout(total=config.timeout)
            async with session.post(
                f"{config.base_url.rstrip('/')}/api/generate",
                json=payload,
                timeout=timeout,
            ) as resp:
                if resp.status != 200:
                    error_text = await resp.text()
                    logger.debug(f"{config.name}/{model} HTTP {resp.status}: {error_text[:200]}")
                    return ProviderFailure(FailureReason.HTTP_ERROR, f"HTTP {resp.status}")

                data = await resp.json()

        except asyncio.TimeoutError:
            return ProviderFailure(FailureReason.TIMEOUT, f"timeout after {config.timeout}s")
        except aiohttp.ClientError as e:
            return ProviderFailure(
                FailureReason.CONNECTION_ERROR, f"connection error: {type(e).__name__}"
            )
        except ValueError:
            return ProviderFailure(FailureReason.INVALID_RESPONSE, "malformed JSON")

        reply = data.get("response") if isinstance(data, dict) else None
        if not isinstance(reply, str) or not reply.strip():
            return ProviderFailure(FailureReason.INVALID_RESPONSE, "invalid Ollama response")

        return ProviderSuccess(
            reply=reply.strip(),
            provider_label=f"{config.name} ({model})",
            usage={"total_duration": data.get("total_duration")},
        )

    async def health_check(self, config: ProviderConfig) -> bool:
        """Check if the Ollama server is reachable."""
        return await self.list_models(config) is not None

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
