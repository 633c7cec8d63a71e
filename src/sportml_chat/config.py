"""
sportml-chat: Settings loaded from the environment.

Values come from process environment variables, with a ``.env`` file in the
working directory loaded first (python-dotenv). Every setting has a default,
so an empty environment yields a working local setup (Ollama only; the
hosted providers are skipped until GROQ_API_KEY / OPENROUTER_API_KEY are set).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from dotenv import load_dotenv

from sportml_chat.errors import ConfigurationError
from sportml_chat.models import ProviderConfig
from sportml_chat.schedule import DEFAULT_API_KEY, DEFAULT_BASE_URL

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_GROQ_MODELS = [
    "llama-3.1-70b-versatile",
    "llama-3.1-8b-instant",
    "mixtral-8x7b-32768",
]
DEFAULT_OLLAMA_MODELS = ["llama3.2:3b", "llama3.2:1b", "phi3"]
DEFAULT_OPENROUTER_MODELS = ["deepseek/deepseek-r1"]

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _split_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env(
    environ: dict[str, str], name: str, default: T, convert: Callable[[str], T]
) -> T:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return convert(raw.strip())
    except ValueError as err:
        raise ConfigurationError(f"{name}={raw!r} is not a valid value") from err


@dataclass
class Settings:
    """Application settings.

    Attributes:
        groq_api_key: Credential for the hosted provider; None disables it.
        groq_base_url: OpenAI-compatible base URL of the hosted provider.
        groq_models: Hosted candidate models, tried in order.
        ollama_base_url: Local Ollama server URL.
        ollama_models: Preferred local models, tried in order.
        openrouter_api_key: Credential for the backup hosted provider; None disables it.
        openrouter_base_url: OpenAI-compatible base URL of the backup provider.
        openrouter_models: Backup hosted candidate models, tried in order.
        site_url: Sent to OpenRouter as HTTP-Referer.
        app_name: Sent to OpenRouter as X-Title.
        rate_limit_per_minute: Requests admitted per client per 60 seconds.
        cache_ttl_seconds: Response cache time-to-live.
        cache_max_entries: Cache size ceiling.
        cache_evict_count: Oldest entries dropped once the ceiling is exceeded.
        max_message_length: Longest accepted message, in characters.
        request_timeout: Upper bound in seconds for one provider call.
        enrichment_enabled: Add schedule context to motorsport questions.
        sportsdb_base_url: Schedule feed base URL.
        sportsdb_api_key: Schedule feed key.
        app_env: "production" hides error details from 500 responses.
        log_level: Root logging level.
        host: Bind address for the HTTP server.
        port: Bind port for the HTTP server.
    """

    groq_api_key: str | None = None
    groq_base_url: str = "https://api.groq.com/openai/v1"
    groq_models: list[str] = field(default_factory=lambda: list(DEFAULT_GROQ_MODELS))
    ollama_base_url: str = "http://localhost:11434"
    ollama_models: list[str] = field(default_factory=lambda: list(DEFAULT_OLLAMA_MODELS))
    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_models: list[str] = field(
        default_factory=lambda: list(DEFAULT_OPENROUTER_MODELS)
    )
    site_url: str = "http://localhost:3000"
    app_name: str = "SportML Chat"
    rate_limit_per_minute: int = 25
    cache_ttl_seconds: float = 15 * 60
    cache_max_entries: int = 100
    cache_evict_count: int = 20
    max_message_length: int = 2000
    request_timeout: float = 15.0
    enrichment_enabled: bool = True
    sportsdb_base_url: str = DEFAULT_BASE_URL
    sportsdb_api_key: str = DEFAULT_API_KEY
    app_env: str = "development"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000

    def __post_init__(self) -> None:
        if self.rate_limit_per_minute < 1:
            raise ConfigurationError("RATE_LIMIT_PER_MINUTE must be at least 1")
        if self.cache_max_entries < 1:
            raise ConfigurationError("CACHE_MAX_ENTRIES must be at least 1")
        if self.max_message_length < 1:
            raise ConfigurationError("MAX_MESSAGE_LENGTH must be at least 1")
        if self.request_timeout <= 0:
            raise ConfigurationError("REQUEST_TIMEOUT must be positive")

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @classmethod
    def from_env(
        cls, environ: dict[str, str] | None = None, dotenv: bool = True
    ) -> Settings:
        """Build settings from environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ`` (tests).
            dotenv: Load a ``.env`` file into ``os.environ`` first.

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed or is
                out of range.
        """
        if environ is None:
            if dotenv:
                load_dotenv()
            environ = dict(os.environ)

        return cls(
            groq_api_key=environ.get("GROQ_API_KEY", "").strip() or None,
            groq_base_url=environ.get("GROQ_BASE_URL") or cls.groq_base_url,
            groq_models=_env(environ, "GROQ_MODELS", list(DEFAULT_GROQ_MODELS), _split_list),
            ollama_base_url=environ.get("OLLAMA_BASE_URL") or cls.ollama_base_url,
            ollama_models=_env(
                environ, "OLLAMA_MODELS", list(DEFAULT_OLLAMA_MODELS), _split_list
            ),
            openrouter_api_key=environ.get("OPENROUTER_API_KEY", "").strip() or None,
            openrouter_base_url=environ.get("OPENROUTER_BASE_URL") or cls.openrouter_base_url,
            openrouter_models=_env(
                environ, "OPENROUTER_MODELS", list(DEFAULT_OPENROUTER_MODELS), _split_list
            ),
            site_url=environ.get("SITE_URL") or cls.site_url,
            app_name=environ.get("APP_NAME") or cls.app_name,
            rate_limit_per_minute=_env(environ, "RATE_LIMIT_PER_MINUTE", 25, int),
            cache_ttl_seconds=_env(environ, "CACHE_TTL_SECONDS", 15 * 60.0, float),
            cache_max_entries=_env(environ, "CACHE_MAX_ENTRIES", 100, int),
            cache_evict_count=_env(environ, "CACHE_EVICT_COUNT", 20, int),
            max_message_length=_env(environ, "MAX_MESSAGE_LENGTH", 2000, int),
            request_timeout=_env(environ, "REQUEST_TIMEOUT", 15.0, float),
            enrichment_enabled=_env(
                environ, "ENRICHMENT_ENABLED", True, lambda v: v.lower() in _TRUE_VALUES
            ),
            sportsdb_base_url=environ.get("SPORTSDB_BASE_URL") or cls.sportsdb_base_url,
            sportsdb_api_key=environ.get("SPORTSDB_API_KEY") or cls.sportsdb_api_key,
            app_env=environ.get("APP_ENV") or cls.app_env,
            log_level=(environ.get("LOG_LEVEL") or cls.log_level).upper(),
            host=environ.get("HOST") or cls.host,
            port=_env(environ, "PORT", 8000, int),
        )

    def provider_configs(self) -> list[ProviderConfig]:
        """Descriptors for the hosted (1), local (2) and backup hosted (3) providers."""
        return [
            ProviderConfig(
                name="groq",
                kind="openai",
                priority=1,
                base_url=self.groq_base_url,
                models=list(self.groq_models),
                api_key=self.groq_api_key,
                requires_api_key=True,
                max_tokens=1000,
                temperature=0.7,
                timeout=self.request_timeout,
                enrich=self.enrichment_enabled,
            ),
            ProviderConfig(
                name="ollama",
                kind="ollama",
                priority=2,
                base_url=self.ollama_base_url,
                models=list(self.ollama_models),
                max_tokens=800,
                temperature=0.7,
                timeout=self.request_timeout,
                enrich=self.enrichment_enabled,
            ),
            ProviderConfig(
                name="openrouter",
                kind="openai",
                priority=3,
                base_url=self.openrouter_base_url,
                models=list(self.openrouter_models),
                api_key=self.openrouter_api_key,
                requires_api_key=True,
                max_tokens=1000,
                temperature=0.7,
                timeout=self.request_timeout,
                enrich=self.enrichment_enabled,
                headers={"HTTP-Referer": self.site_url, "X-Title": self.app_name},
                include_datetime=True,
                extra_options={"top_p": 1},
            ),
        ]
