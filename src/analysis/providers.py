"""AI provider adapters.

Every provider turns a story into the shared analysis prompt, makes exactly
one call to its vendor and reports a tagged ProviderResult. Providers never
raise for vendor trouble: HTTP errors, malformed bodies and transport
exceptions all become QUOTA_EXCEEDED or FAILED results.

HTTP vendors share one httpx.AsyncClient owned by the chain. OpenAI goes
through the official SDK, initialized lazily on first use so a missing
package or key never breaks import.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import httpx

from src.analysis.config import AnalysisConfig
from src.analysis.constants import QUOTA_BODY_MARKERS, QUOTA_STATUS_CODES
from src.analysis.prompts import build_prompt
from src.analysis.schemas import ProviderOutcome, ProviderResult

if TYPE_CHECKING:
    from src.ingestion.schemas import Story

logger = logging.getLogger(__name__)

# Pay-per-use OpenAI-compatible vendors answer 402 when credit runs out.
PAYMENT_REQUIRED = 402


def classify_failure(
    status_code: int | None,
    body: str = "",
    extra_quota_statuses: Iterable[int] = (),
) -> ProviderOutcome:
    """Classify a failed call as quota exhaustion or a generic failure.

    Args:
        status_code: HTTP status, or None when no response was received.
        body: Response body or exception message.
        extra_quota_statuses: Vendor-specific statuses that also mean quota.

    Returns:
        QUOTA_EXCEEDED or FAILED.
    """
    if status_code is not None and (
        status_code in QUOTA_STATUS_CODES or status_code in set(extra_quota_statuses)
    ):
        return ProviderOutcome.QUOTA_EXCEEDED
    lowered = body.lower()
    if any(marker in lowered for marker in QUOTA_BODY_MARKERS):
        return ProviderOutcome.QUOTA_EXCEEDED
    return ProviderOutcome.FAILED


class BaseProvider(ABC):
    """One AI vendor in the failover chain."""

    name: str = "provider"

    def __init__(self, config: AnalysisConfig) -> None:
        self._config = config

    def build_prompt(self, story: Story) -> str:
        return build_prompt(
            story.title,
            story.body_text,
            max_body_chars=self._config.max_body_chars,
        )

    @abstractmethod
    async def analyze(self, story: Story) -> ProviderResult:
        """Run one analysis attempt for the story."""
        ...

    async def close(self) -> None:
        """Release vendor-specific resources."""

    def _result_for_failure(
        self,
        status_code: int | None,
        body: str,
        message: str,
        extra_quota_statuses: Iterable[int] = (),
    ) -> ProviderResult:
        outcome = classify_failure(status_code, body, extra_quota_statuses)
        if outcome == ProviderOutcome.QUOTA_EXCEEDED:
            return ProviderResult.quota_exceeded(self.name, message)
        return ProviderResult.failed(self.name, message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class HttpProvider(BaseProvider):
    """Provider reached with a single JSON POST over httpx.

    Subclasses describe the request and how to read the answer; the POST,
    status handling and failure classification live here.
    """

    extra_quota_statuses: frozenset[int] = frozenset()

    def __init__(self, config: AnalysisConfig, http_client: httpx.AsyncClient) -> None:
        super().__init__(config)
        self._http = http_client

    @abstractmethod
    def _endpoint(self) -> str: ...

    @abstractmethod
    def _headers(self) -> dict[str, str]: ...

    @abstractmethod
    def _payload(self, prompt: str) -> dict[str, Any]: ...

    @abstractmethod
    def _extract_text(self, data: Any) -> str | None: ...

    async def analyze(self, story: Story) -> ProviderResult:
        prompt = self.build_prompt(story)
        try:
            response = await self._http.post(
                self._endpoint(),
                headers=self._headers(),
                json=self._payload(prompt),
            )
        except httpx.HTTPError as e:
            logger.debug("%s request failed: %s", self.name, e)
            return self._result_for_failure(None, str(e), f"{self.name} Exception: {e}")

        if not response.is_success:
            body = response.text
            logger.debug(
                "%s returned %d: %s", self.name, response.status_code, body[:200]
            )
            return self._result_for_failure(
                response.status_code,
                body,
                f"{self.name} Error: {response.status_code}",
                self.extra_quota_statuses,
            )

        try:
            text = self._extract_text(response.json())
        except (ValueError, KeyError, IndexError, TypeError) as e:
            return ProviderResult.failed(
                self.name, f"{self.name} Exception: malformed response ({e})"
            )

        if not text or not text.strip():
            return ProviderResult.failed(self.name, f"{self.name} Error: empty response")
        return ProviderResult.success(self.name, text.strip())


class GeminiProvider(HttpProvider):
    """Google Gemini generateContent endpoint."""

    name = "Gemini"
    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    def _endpoint(self) -> str:
        return f"{self.BASE_URL}/{self._config.gemini_model}:generateContent"

    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self._config.gemini_api_key.get_secret_value()}

    def _payload(self, prompt: str) -> dict[str, Any]:
        return {"contents": [{"parts": [{"text": prompt}]}]}

    def _extract_text(self, data: Any) -> str | None:
        return data["candidates"][0]["content"]["parts"][0]["text"]


class ChatCompletionsProvider(HttpProvider):
    """Any vendor exposing an OpenAI-compatible /chat/completions endpoint."""

    extra_quota_statuses = frozenset({PAYMENT_REQUIRED})

    def __init__(
        self,
        config: AnalysisConfig,
        http_client: httpx.AsyncClient,
        *,
        name: str,
        url: str,
        api_key: str,
        model: str,
    ) -> None:
        super().__init__(config, http_client)
        self.name = name
        self._url = url
        self._api_key = api_key
        self._model = model

    def _endpoint(self) -> str:
        return self._url

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    def _payload(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self._model,
            "messages": [{"role": "user", "content": prompt}],
        }

    def _extract_text(self, data: Any) -> str | None:
        return data["choices"][0]["message"]["content"]


class CloudflareProvider(HttpProvider):
    """Cloudflare Workers AI text generation."""

    name = "Cloudflare"
    BASE_URL = "https://api.cloudflare.com/client/v4/accounts"

    def _endpoint(self) -> str:
        return (
            f"{self.BASE_URL}/{self._config.cloudflare_account_id}"
            f"/ai/run/{self._config.cloudflare_model}"
        )

    def _headers(self) -> dict[str, str]:
        token = self._config.cloudflare_api_token.get_secret_value()
        return {"Authorization": f"Bearer {token}"}

    def _payload(self, prompt: str) -> dict[str, Any]:
        return {"messages": [{"role": "user", "content": prompt}]}

    def _extract_text(self, data: Any) -> str | None:
        return data["result"]["response"]


class HuggingFaceProvider(HttpProvider):
    """HuggingFace serverless Inference API."""

    name = "HuggingFace"
    BASE_URL = "https://api-inference.huggingface.co/models"

    def _endpoint(self) -> str:
        return f"{self.BASE_URL}/{self._config.huggingface_model}"

    def _headers(self) -> dict[str, str]:
        key = self._config.huggingface_api_key.get_secret_value()
        return {"Authorization": f"Bearer {key}"}

    def _payload(self, prompt: str) -> dict[str, Any]:
        return {
            "inputs": prompt,
            "parameters": {
                "max_new_tokens": self._config.huggingface_max_new_tokens,
                "return_full_text": False,
            },
        }

    def _extract_text(self, data: Any) -> str | None:
        # Text-generation models answer with a list, some pipelines with a dict
        if isinstance(data, list):
            return data[0]["generated_text"]
        return data["generated_text"]


class OpenAIProvider(BaseProvider):
    """OpenAI chat completions through the official async SDK."""

    name = "OpenAI"

    def __init__(self, config: AnalysisConfig) -> None:
        super().__init__(config)
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazy-initialize OpenAI async client."""
        if self._client is None:
            import openai

            api_key = self._config.openai_api_key
            key_str = api_key.get_secret_value() if api_key else None
            self._client = openai.AsyncOpenAI(
                api_key=key_str,
                timeout=self._config.provider_timeout,
                max_retries=0,
            )
        return self._client

    async def analyze(self, story: Story) -> ProviderResult:
        import openai

        prompt = self.build_prompt(story)
        try:
            response = await self._get_client().chat.completions.create(
                model=self._config.openai_model,
                messages=[{"role": "user", "content": prompt}],
            )
        except openai.APIStatusError as e:
            return self._result_for_failure(
                e.status_code, str(e), f"{self.name} Error: {e.status_code}"
            )
        except openai.OpenAIError as e:
            return self._result_for_failure(None, str(e), f"{self.name} Exception: {e}")

        try:
            text = response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            return ProviderResult.failed(
                self.name, f"{self.name} Exception: malformed response ({e})"
            )
        if not text or not text.strip():
            return ProviderResult.failed(self.name, f"{self.name} Error: empty response")
        return ProviderResult.success(self.name, text.strip())

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


DEEPSEEK_URL = "https://api.deepseek.com/v1/chat/completions"
MISTRAL_URL = "https://api.mistral.ai/v1/chat/completions"
OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"


def build_providers(
    config: AnalysisConfig,
    http_client: httpx.AsyncClient,
) -> list[BaseProvider]:
    """Build the configured providers in fixed priority order.

    Order: Gemini, DeepSeek, Mistral, Cloudflare, HuggingFace, OpenRouter,
    OpenAI. A provider is included only when its credentials are present.
    """
    providers: list[BaseProvider] = []

    if config.gemini_api_key:
        providers.append(GeminiProvider(config, http_client))
    if config.deepseek_api_key:
        providers.append(
            ChatCompletionsProvider(
                config,
                http_client,
                name="DeepSeek",
                url=DEEPSEEK_URL,
                api_key=config.deepseek_api_key.get_secret_value(),
                model=config.deepseek_model,
            )
        )
    if config.mistral_api_key:
        providers.append(
            ChatCompletionsProvider(
                config,
                http_client,
                name="Mistral",
                url=MISTRAL_URL,
                api_key=config.mistral_api_key.get_secret_value(),
                model=config.mistral_model,
            )
        )
    if config.cloudflare_configured:
        providers.append(CloudflareProvider(config, http_client))
    if config.huggingface_api_key:
        providers.append(HuggingFaceProvider(config, http_client))
    if config.openrouter_api_key:
        providers.append(
            ChatCompletionsProvider(
                config,
                http_client,
                name="OpenRouter",
                url=OPENROUTER_URL,
                api_key=config.openrouter_api_key.get_secret_value(),
                model=config.openrouter_model,
            )
        )
    if config.openai_api_key:
        providers.append(OpenAIProvider(config))

    return providers
