"""Tests for AI provider adapters."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest
import respx

from src.analysis.config import AnalysisConfig
from src.analysis.providers import (
    DEEPSEEK_URL,
    MISTRAL_URL,
    OPENROUTER_URL,
    ChatCompletionsProvider,
    CloudflareProvider,
    GeminiProvider,
    HuggingFaceProvider,
    OpenAIProvider,
    build_providers,
    classify_failure,
)
from src.analysis.schemas import ProviderOutcome

GEMINI_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "gemini-1.5-flash:generateContent"
)
CLOUDFLARE_URL = (
    "https://api.cloudflare.com/client/v4/accounts/acct-1/ai/run/"
    "@cf/meta/llama-3-8b-instruct"
)
HUGGINGFACE_URL = (
    "https://api-inference.huggingface.co/models/meta-llama/Llama-3.2-3B-Instruct"
)


CREDENTIAL_ENV_VARS = (
    "GEMINI_API_KEY",
    "DEEPSEEK_API_KEY",
    "MISTRAL_API_KEY",
    "CLOUDFLARE_API_TOKEN",
    "CLOUDFLARE_ACCOUNT_ID",
    "HUGGINGFACE_API_KEY",
    "OPENROUTER_API_KEY",
    "OPENAI_API_KEY",
)


@pytest.fixture(autouse=True)
def _no_credentials_in_env(monkeypatch):
    for name in CREDENTIAL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config() -> AnalysisConfig:
    return AnalysisConfig(
        _env_file=None,
        gemini_api_key="g-key",
        deepseek_api_key="d-key",
        cloudflare_api_token="cf-token",
        cloudflare_account_id="acct-1",
        huggingface_api_key="hf-key",
    )


class TestClassifyFailure:
    @pytest.mark.parametrize("status", [429, 403])
    def test_quota_statuses(self, status):
        assert classify_failure(status) == ProviderOutcome.QUOTA_EXCEEDED

    @pytest.mark.parametrize(
        "body",
        [
            '{"error": {"status": "RESOURCE_EXHAUSTED"}}',
            "Daily limit reached",
            "You exceeded your current quota",
            "LIMIT_EXCEEDED",
        ],
    )
    def test_quota_body_markers(self, body):
        assert classify_failure(500, body) == ProviderOutcome.QUOTA_EXCEEDED

    def test_plain_server_error(self):
        assert classify_failure(500, "internal error") == ProviderOutcome.FAILED

    def test_transport_error(self):
        assert classify_failure(None, "connection refused") == ProviderOutcome.FAILED

    def test_extra_quota_status(self):
        assert classify_failure(402, "", [402]) == ProviderOutcome.QUOTA_EXCEEDED
        assert classify_failure(402, "") == ProviderOutcome.FAILED


class TestGeminiProvider:
    @respx.mock
    @pytest.mark.asyncio
    async def test_success(self, config, sample_story):
        route = respx.post(GEMINI_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "candidates": [
                        {"content": {"parts": [{"text": " Ghost Story. Score: 8/10 "}]}}
                    ]
                },
            )
        )

        async with httpx.AsyncClient() as client:
            result = await GeminiProvider(config, client).analyze(sample_story)

        assert result.ok
        assert result.text == "Ghost Story. Score: 8/10"
        request = route.calls.last.request
        assert request.headers["x-goog-api-key"] == "g-key"
        assert b"[STORY_START]" in request.content

    @respx.mock
    @pytest.mark.asyncio
    async def test_rate_limited(self, config, sample_story):
        respx.post(GEMINI_URL).mock(return_value=httpx.Response(429, text="slow down"))

        async with httpx.AsyncClient() as client:
            result = await GeminiProvider(config, client).analyze(sample_story)

        assert result.outcome == ProviderOutcome.QUOTA_EXCEEDED
        assert result.message == "Gemini Error: 429"

    @respx.mock
    @pytest.mark.asyncio
    async def test_malformed_body(self, config, sample_story):
        respx.post(GEMINI_URL).mock(return_value=httpx.Response(200, json={"candidates": []}))

        async with httpx.AsyncClient() as client:
            result = await GeminiProvider(config, client).analyze(sample_story)

        assert result.outcome == ProviderOutcome.FAILED
        assert "malformed response" in result.message

    @respx.mock
    @pytest.mark.asyncio
    async def test_transport_error(self, config, sample_story):
        respx.post(GEMINI_URL).mock(side_effect=httpx.ConnectError("refused"))

        async with httpx.AsyncClient() as client:
            result = await GeminiProvider(config, client).analyze(sample_story)

        assert result.outcome == ProviderOutcome.FAILED
        assert result.message.startswith("Gemini Exception:")


class TestChatCompletionsProvider:
    def _provider(self, config, client):
        return ChatCompletionsProvider(
            config,
            client,
            name="DeepSeek",
            url=DEEPSEEK_URL,
            api_key="d-key",
            model="deepseek-chat",
        )

    @respx.mock
    @pytest.mark.asyncio
    async def test_success(self, config, sample_story):
        route = respx.post(DEEPSEEK_URL).mock(
            return_value=httpx.Response(
                200,
                json={"choices": [{"message": {"content": "Slasher. Score: 6"}}]},
            )
        )

        async with httpx.AsyncClient() as client:
            result = await self._provider(config, client).analyze(sample_story)

        assert result.ok
        assert result.provider == "DeepSeek"
        assert result.text == "Slasher. Score: 6"
        assert route.calls.last.request.headers["Authorization"] == "Bearer d-key"

    @respx.mock
    @pytest.mark.asyncio
    async def test_payment_required_is_quota(self, config, sample_story):
        respx.post(DEEPSEEK_URL).mock(return_value=httpx.Response(402))

        async with httpx.AsyncClient() as client:
            result = await self._provider(config, client).analyze(sample_story)

        assert result.outcome == ProviderOutcome.QUOTA_EXCEEDED

    @respx.mock
    @pytest.mark.asyncio
    async def test_empty_content_fails(self, config, sample_story):
        respx.post(DEEPSEEK_URL).mock(
            return_value=httpx.Response(
                200, json={"choices": [{"message": {"content": "   "}}]}
            )
        )

        async with httpx.AsyncClient() as client:
            result = await self._provider(config, client).analyze(sample_story)

        assert result.outcome == ProviderOutcome.FAILED


class TestCloudflareProvider:
    @respx.mock
    @pytest.mark.asyncio
    async def test_success(self, config, sample_story):
        respx.post(CLOUDFLARE_URL).mock(
            return_value=httpx.Response(
                200, json={"result": {"response": "Monster story. Score: 5/10"}}
            )
        )

        async with httpx.AsyncClient() as client:
            result = await CloudflareProvider(config, client).analyze(sample_story)

        assert result.ok
        assert result.text == "Monster story. Score: 5/10"


class TestHuggingFaceProvider:
    @respx.mock
    @pytest.mark.asyncio
    async def test_list_response(self, config, sample_story):
        route = respx.post(HUGGINGFACE_URL).mock(
            return_value=httpx.Response(
                200, json=[{"generated_text": "Ghost story. Score: 7"}]
            )
        )

        async with httpx.AsyncClient() as client:
            result = await HuggingFaceProvider(config, client).analyze(sample_story)

        assert result.text == "Ghost story. Score: 7"
        payload = route.calls.last.request.content
        assert b'"max_new_tokens":250' in payload.replace(b" ", b"")
        assert b'"return_full_text":false' in payload.replace(b" ", b"")

    @respx.mock
    @pytest.mark.asyncio
    async def test_dict_response(self, config, sample_story):
        respx.post(HUGGINGFACE_URL).mock(
            return_value=httpx.Response(200, json={"generated_text": "Slasher. 4/10"})
        )

        async with httpx.AsyncClient() as client:
            result = await HuggingFaceProvider(config, client).analyze(sample_story)

        assert result.text == "Slasher. 4/10"

    @respx.mock
    @pytest.mark.asyncio
    async def test_model_loading_error(self, config, sample_story):
        respx.post(HUGGINGFACE_URL).mock(
            return_value=httpx.Response(503, json={"error": "Model is loading"})
        )

        async with httpx.AsyncClient() as client:
            result = await HuggingFaceProvider(config, client).analyze(sample_story)

        assert result.outcome == ProviderOutcome.FAILED
        assert result.message == "HuggingFace Error: 503"


class TestOpenAIProvider:
    def _provider_with_client(self, config, create):
        provider = OpenAIProvider(config)
        client = MagicMock()
        client.chat.completions.create = create
        client.close = AsyncMock()
        provider._client = client
        return provider, client

    @pytest.mark.asyncio
    async def test_success(self, config, sample_story):
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = "Ghost. Score: 9"
        provider, _ = self._provider_with_client(
            config, AsyncMock(return_value=response)
        )

        result = await provider.analyze(sample_story)

        assert result.ok
        assert result.text == "Ghost. Score: 9"

    @pytest.mark.asyncio
    async def test_rate_limit_is_quota(self, config, sample_story):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        error = openai.RateLimitError(
            "Rate limit reached",
            response=httpx.Response(429, request=request),
            body=None,
        )
        provider, _ = self._provider_with_client(config, AsyncMock(side_effect=error))

        result = await provider.analyze(sample_story)

        assert result.outcome == ProviderOutcome.QUOTA_EXCEEDED
        assert result.message == "OpenAI Error: 429"

    @pytest.mark.asyncio
    async def test_close_releases_client(self, config):
        provider, client = self._provider_with_client(config, AsyncMock())

        await provider.close()

        client.close.assert_awaited_once()
        assert provider._client is None


class TestBuildProviders:
    def test_order_and_filtering(self):
        config = AnalysisConfig(
            _env_file=None,
            gemini_api_key="g",
            deepseek_api_key="d",
            mistral_api_key="m",
            cloudflare_api_token="cf",
            cloudflare_account_id="acct",
            huggingface_api_key="hf",
            openrouter_api_key="or",
            openai_api_key="oa",
        )

        providers = build_providers(config, httpx.AsyncClient())

        assert [p.name for p in providers] == [
            "Gemini",
            "DeepSeek",
            "Mistral",
            "Cloudflare",
            "HuggingFace",
            "OpenRouter",
            "OpenAI",
        ]

    def test_cloudflare_skipped_without_account(self):
        config = AnalysisConfig(
            _env_file=None,
            cloudflare_api_token="cf",
            cloudflare_account_id=None,
            mistral_api_key="m",
        )

        providers = build_providers(config, httpx.AsyncClient())

        assert [p.name for p in providers] == ["Mistral"]
        assert providers[0]._url == MISTRAL_URL

    def test_no_credentials(self):
        assert build_providers(AnalysisConfig(_env_file=None), httpx.AsyncClient()) == []

    def test_openrouter_url(self):
        config = AnalysisConfig(
            _env_file=None,
            openrouter_api_key="or",
        )

        providers = build_providers(config, httpx.AsyncClient())

        assert providers[-1]._url == OPENROUTER_URL
