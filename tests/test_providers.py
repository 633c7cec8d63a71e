"""Tests for provider adapters using mocked HTTP sessions."""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock

import aiohttp
import pytest

from conftest import fake_response, fake_session, make_config
from sportml_chat.models import FailureReason, ProviderFailure, ProviderSuccess
from sportml_chat.providers.ollama import STOP_SEQUENCES, OllamaProvider, select_model
from sportml_chat.providers.openai import OpenAIProvider
from sportml_chat.retry import RetryPolicy


def completion(content: str = "Hello from Groq!") -> dict:
    return {
        "choices": [{"message": {"content": content}}],
        "usage": {"total_tokens": 25},
    }


def hosted_config(**kwargs):
    kwargs.setdefault("kind", "openai")
    kwargs.setdefault("base_url", "https://api.groq.test/openai/v1")
    kwargs.setdefault("models", ["m1", "m2", "m3"])
    kwargs.setdefault("api_key", "test-key")
    kwargs.setdefault("requires_api_key", True)
    return make_config("groq", **kwargs)


def local_config(**kwargs):
    kwargs.setdefault("kind", "ollama")
    kwargs.setdefault("base_url", "http://localhost:11434")
    kwargs.setdefault("models", ["llama3.2:3b", "phi3"])
    kwargs.setdefault("max_tokens", 800)
    return make_config("ollama", **kwargs)


def no_sleep_provider(**kwargs) -> tuple[OpenAIProvider, AsyncMock]:
    sleep = AsyncMock()
    return OpenAIProvider(sleep=sleep, **kwargs), sleep


class TestOpenAIProvider:
    """Hosted chat-completion adapter."""

    @pytest.mark.asyncio
    async def test_successful_generation(self) -> None:
        provider, _ = no_sleep_provider()
        provider._session = fake_session(post=[fake_response(200, completion("  Argentina  "))])

        result = await provider.invoke("Who won?", hosted_config())

        assert isinstance(result, ProviderSuccess)
        assert result.reply == "Argentina"
        assert result.provider_label == "groq (m1)"
        assert result.usage == {"total_tokens": 25}

    @pytest.mark.asyncio
    async def test_request_shape(self) -> None:
        provider, _ = no_sleep_provider()
        session = fake_session(post=[fake_response(200, completion())])
        provider._session = session
        config = hosted_config(max_tokens=1000, temperature=0.7, system_prompt="Sports only")

        await provider.invoke("Who won?", config)

        args, kwargs = session.post.call_args
        assert args[0] == "https://api.groq.test/openai/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer test-key"
        payload = kwargs["json"]
        assert payload["model"] == "m1"
        assert payload["stream"] is False
        assert payload["max_tokens"] == 1000
        assert payload["messages"] == [
            {"role": "system", "content": "Sports only"},
            {"role": "user", "content": "Who won?"},
        ]

    @pytest.mark.asyncio
    async def test_rate_limited_model_falls_through(self) -> None:
        provider, sleep = no_sleep_provider()
        session = fake_session(
            post=[fake_response(429, text="slow down"), fake_response(200, completion("ok"))]
        )
        provider._session = session

        result = await provider.invoke("q", hosted_config())

        assert isinstance(result, ProviderSuccess)
        assert result.provider_label == "groq (m2)"
        assert session.post.call_count == 2
        sleep.assert_not_awaited()  # no delay between models

    @pytest.mark.asyncio
    async def test_models_tried_in_order(self) -> None:
        provider, _ = no_sleep_provider(retry_policy=RetryPolicy(max_attempts=1))
        session = fake_session(
            post=[fake_response(400), fake_response(404), fake_response(200, completion())]
        )
        provider._session = session

        result = await provider.invoke("q", hosted_config())

        models = [c.kwargs["json"]["model"] for c in session.post.call_args_list]
        assert models == ["m1", "m2", "m3"]
        assert result.provider_label == "groq (m3)"

    @pytest.mark.asyncio
    async def test_empty_reply_moves_to_next_model(self) -> None:
        provider, _ = no_sleep_provider()
        provider._session = fake_session(
            post=[
                fake_response(200, {"choices": []}),
                fake_response(200, completion("   ")),
                fake_response(200, completion("real")),
            ]
        )

        result = await provider.invoke("q", hosted_config())
        assert result.reply == "real"

    @pytest.mark.asyncio
    async def test_all_models_permanently_failing(self) -> None:
        provider, sleep = no_sleep_provider()
        session = fake_session(post=[fake_response(401), fake_response(403), fake_response(400)])
        provider._session = session

        result = await provider.invoke("q", hosted_config())

        assert isinstance(result, ProviderFailure)
        assert result.reason == FailureReason.ALL_MODELS_UNAVAILABLE
        assert session.post.call_count == 3  # no retries for 4xx
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transient_failures_retried_with_backoff(self) -> None:
        provider, sleep = no_sleep_provider(
            retry_policy=RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=4.0)
        )
        session = fake_session(
            post=[
                fake_response(503),  # pass 1: m1 transient
                fake_response(400),  # pass 1: m2 permanent, dropped
                fake_response(502),  # pass 2: m1 transient again
                fake_response(200, completion("third time")),  # pass 3: m1
            ]
        )
        provider._session = session

        result = await provider.invoke("q", hosted_config(models=["m1", "m2"]))

        assert result.reply == "third time"
        models = [c.kwargs["json"]["model"] for c in session.post.call_args_list]
        assert models == ["m1", "m2", "m1", "m1"]
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self) -> None:
        provider, sleep = no_sleep_provider(retry_policy=RetryPolicy(max_attempts=2))
        session = fake_session(post=[fake_response(429), fake_response(429)])
        provider._session = session

        result = await provider.invoke("q", hosted_config(models=["m1"]))

        assert result.reason == FailureReason.ALL_MODELS_UNAVAILABLE
        assert session.post.call_count == 2
        assert sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_network_errors_are_transient(self) -> None:
        provider, _ = no_sleep_provider(retry_policy=RetryPolicy(max_attempts=2))
        provider._session = fake_session(
            post=[
                aiohttp.ClientConnectionError("refused"),
                asyncio.TimeoutError(),
                fake_response(200, completion("back")),
            ]
        )

        result = await provider.invoke("q", hosted_config(models=["m1", "m2"]))

        assert result.reply == "back"
        assert result.provider_label == "groq (m1)"

    @pytest.mark.asyncio
    async def test_failure_detail_has_no_credentials(self) -> None:
        provider, _ = no_sleep_provider(retry_policy=RetryPolicy(max_attempts=1))
        provider._session = fake_session(post=[fake_response(401, text="bad key test-key")])

        result = await provider.invoke("q", hosted_config(models=["m1"]))

        assert "test-key" not in result.detail

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            [1, 2],
            {"choices": ["x"]},
            {"choices": {"0": {}}},
            {"choices": [{"message": "hi"}]},
            {"choices": [{"message": {"content": 5}}]},
        ],
    )
    async def test_malformed_reply_fails_only_that_model(self, body) -> None:
        provider, sleep = no_sleep_provider()
        session = fake_session(
            post=[fake_response(200, body), fake_response(200, completion("fine"))]
        )
        provider._session = session

        result = await provider.invoke("q", hosted_config(models=["m1", "m2"]))

        assert result.reply == "fine"
        assert result.provider_label == "groq (m2)"
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_reply_is_not_retried(self) -> None:
        provider, sleep = no_sleep_provider()
        session = fake_session(post=[fake_response(200, {"choices": ["x"]})])
        provider._session = session

        result = await provider.invoke("q", hosted_config(models=["m1"]))

        assert result.reason == FailureReason.ALL_MODELS_UNAVAILABLE
        assert "unexpected reply shape" in result.detail
        assert session.post.call_count == 1

    @pytest.mark.asyncio
    async def test_per_model_timeout_leaves_room_for_fallback(self) -> None:
        provider, _ = no_sleep_provider()
        session = fake_session(post=[asyncio.TimeoutError(), fake_response(200, completion())])
        provider._session = session

        result = await provider.invoke("q", hosted_config(models=["m1", "m2", "m3"], timeout=15.0))

        assert result.provider_label == "groq (m2)"
        timeouts = [c.kwargs["timeout"].total for c in session.post.call_args_list]
        assert timeouts == [5.0, 5.0]

    @pytest.mark.asyncio
    async def test_extra_headers_and_dated_prompt(self) -> None:
        provider = OpenAIProvider(now=lambda: datetime(2026, 5, 24, 13, 5))
        session = fake_session(post=[fake_response(200, completion())])
        provider._session = session
        config = hosted_config(
            headers={"HTTP-Referer": "https://sportml.example", "X-Title": "SportML Chat"},
            include_datetime=True,
            system_prompt="Sports only",
        )

        await provider.invoke("q", config)

        kwargs = session.post.call_args.kwargs
        assert kwargs["headers"]["HTTP-Referer"] == "https://sportml.example"
        assert kwargs["headers"]["X-Title"] == "SportML Chat"
        assert kwargs["headers"]["Authorization"] == "Bearer test-key"
        assert kwargs["json"]["messages"][0]["content"] == (
            "Sports only\n\nCurrent date and time: Sunday, 24 May 2026, 13:05"
        )


class TestOllamaProvider:
    """Local Ollama adapter."""

    def test_select_model_prefers_configured(self) -> None:
        installed = ["phi3:latest", "llama3.2:3b-instruct"]
        assert select_model(["llama3.2:3b", "phi3"], installed) == "llama3.2:3b"

    def test_select_model_falls_back_to_installed(self) -> None:
        assert select_model(["mistral"], ["gemma:2b"]) == "gemma:2b"
        assert select_model(["mistral"], []) is None

    @pytest.mark.asyncio
    async def test_successful_generation(self) -> None:
        provider = OllamaProvider()
        session = fake_session(
            get=[fake_response(200, {"models": [{"name": "phi3:latest"}]})],
            post=[fake_response(200, {"response": " Max Verstappen ", "total_duration": 123})],
        )
        provider._session = session

        result = await provider.invoke("Who won 2023?", local_config())

        assert isinstance(result, ProviderSuccess)
        assert result.reply == "Max Verstappen"
        assert result.provider_label == "ollama (phi3)"
        assert result.usage == {"total_duration": 123}

        payload = session.post.call_args.kwargs["json"]
        assert payload["model"] == "phi3"
        assert payload["stream"] is False
        assert payload["options"]["stop"] == STOP_SEQUENCES
        assert payload["options"]["num_predict"] == 800
        assert payload["prompt"].endswith("Question: Who won 2023?\nAnswer:")

    @pytest.mark.asyncio
    async def test_service_down(self) -> None:
        provider = OllamaProvider()
        provider._session = fake_session(get=[aiohttp.ClientConnectionError("refused")])

        result = await provider.invoke("q", local_config())

        assert result.reason == FailureReason.SERVICE_DOWN

    @pytest.mark.asyncio
    async def test_tags_http_error_is_service_down(self) -> None:
        provider = OllamaProvider()
        provider._session = fake_session(get=[fake_response(500)])

        result = await provider.invoke("q", local_config())
        assert result.reason == FailureReason.SERVICE_DOWN

    @pytest.mark.asyncio
    async def test_no_models_installed(self) -> None:
        provider = OllamaProvider()
        session = fake_session(get=[fake_response(200, {"models": []})])
        provider._session = session

        result = await provider.invoke("q", local_config())

        assert result.reason == FailureReason.NO_SUITABLE_MODEL
        session.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_response(self) -> None:
        provider = OllamaProvider()
        provider._session = fake_session(
            get=[fake_response(200, {"models": [{"name": "phi3"}]})],
            post=[fake_response(200, {"response": ""})],
        )

        result = await provider.invoke("q", local_config())
        assert result.reason == FailureReason.INVALID_RESPONSE

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "tags",
        [[{"name": "x"}], {"models": "phi3"}, {"models": ["phi3"]}, "ok"],
    )
    async def test_malformed_model_listing_is_service_down(self, tags) -> None:
        provider = OllamaProvider()
        session = fake_session(get=[fake_response(200, tags)])
        provider._session = session

        result = await provider.invoke("q", local_config())

        assert result.reason == FailureReason.SERVICE_DOWN
        session.post.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"response": 42}, ["ok"], {"response": None}])
    async def test_malformed_generation_is_invalid_response(self, body) -> None:
        provider = OllamaProvider()
        provider._session = fake_session(
            get=[fake_response(200, {"models": [{"name": "phi3"}]})],
            post=[fake_response(200, body)],
        )

        result = await provider.invoke("q", local_config())
        assert result.reason == FailureReason.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_generation_timeout(self) -> None:
        provider = OllamaProvider()
        provider._session = fake_session(
            get=[fake_response(200, {"models": [{"name": "phi3"}]})],
            post=[asyncio.TimeoutError()],
        )

        result = await provider.invoke("q", local_config())
        assert result.reason == FailureReason.TIMEOUT

    @pytest.mark.asyncio
    async def test_default_options_applied(self) -> None:
        provider = OllamaProvider(default_options={"num_gpu": 0}, keep_alive=-1)
        session = fake_session(
            get=[fake_response(200, {"models": [{"name": "phi3"}]})],
            post=[fake_response(200, {"response": "ok"})],
        )
        provider._session = session

        await provider.invoke("q", local_config())

        payload = session.post.call_args.kwargs["json"]
        assert payload["options"]["num_gpu"] == 0
        assert payload["keep_alive"] == -1

    @pytest.mark.asyncio
    async def test_close(self) -> None:
        provider = OllamaProvider()
        session = fake_session()
        provider._session = session

        await provider.close()

        session.close.assert_awaited_once()
        assert provider._session is None
