"""Configuration for the AI analysis provider chain.

Provides Pydantic settings for provider credentials, model selection,
per-attempt timeout, prompt truncation and circuit breaker tuning. Tuning
knobs use ANALYSIS_* environment variables; vendor credentials are read from
their conventional names (GEMINI_API_KEY, OPENAI_API_KEY, ...) and also accept
the ANALYSIS_ prefix.

The config is frozen: build it once at startup and pass it explicitly to
ProviderChain.from_config().
"""

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def _credential(name: str, description: str):
    return Field(
        default=None,
        validation_alias=AliasChoices(name, f"ANALYSIS_{name}"),
        description=description,
    )


class AnalysisConfig(BaseSettings):
    """Configuration for the horror story analysis pipeline.

    Example:
        GEMINI_API_KEY=...
        CLOUDFLARE_API_TOKEN=...
        CLOUDFLARE_ACCOUNT_ID=...
        ANALYSIS_PROVIDER_TIMEOUT=20
    """

    model_config = SettingsConfigDict(
        env_prefix="ANALYSIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    # Provider credentials, in chain priority order
    gemini_api_key: SecretStr | None = _credential(
        "GEMINI_API_KEY", "Google Gemini API key"
    )
    deepseek_api_key: SecretStr | None = _credential(
        "DEEPSEEK_API_KEY", "DeepSeek API key"
    )
    mistral_api_key: SecretStr | None = _credential(
        "MISTRAL_API_KEY", "Mistral API key"
    )
    cloudflare_api_token: SecretStr | None = _credential(
        "CLOUDFLARE_API_TOKEN", "Cloudflare Workers AI token"
    )
    cloudflare_account_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "CLOUDFLARE_ACCOUNT_ID", "ANALYSIS_CLOUDFLARE_ACCOUNT_ID"
        ),
        description="Cloudflare account owning the Workers AI binding",
    )
    huggingface_api_key: SecretStr | None = _credential(
        "HUGGINGFACE_API_KEY", "HuggingFace Inference API key"
    )
    openrouter_api_key: SecretStr | None = _credential(
        "OPENROUTER_API_KEY", "OpenRouter API key"
    )
    openai_api_key: SecretStr | None = _credential(
        "OPENAI_API_KEY", "OpenAI API key"
    )

    # Model selection
    gemini_model: str = "gemini-1.5-flash"
    deepseek_model: str = "deepseek-chat"
    mistral_model: str = "mistral-small-latest"
    cloudflare_model: str = "@cf/meta/llama-3-8b-instruct"
    huggingface_model: str = "meta-llama/Llama-3.2-3B-Instruct"
    huggingface_max_new_tokens: int = Field(default=250, ge=1)
    openrouter_model: str = "meta-llama/llama-3.1-8b-instruct:free"
    openai_model: str = "gpt-4o"

    # Prompt
    max_body_chars: int = Field(
        default=500,
        ge=1,
        description="Story body characters sent to providers",
    )

    # Per-attempt timeout
    provider_timeout: float = Field(
        default=30.0,
        gt=0.0,
        le=300.0,
        description="Seconds allowed for a single provider attempt",
    )

    # Circuit breaker settings. Off by default: a breaker is state shared
    # across stories and changes which providers later stories attempt.
    circuit_breaker_enabled: bool = Field(
        default=False,
        description="Skip providers after repeated consecutive failures",
    )
    circuit_failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures before a provider is skipped",
    )
    circuit_recovery_timeout: float = Field(
        default=60.0,
        ge=0.0,
        description="Seconds before a skipped provider gets a trial call",
    )

    # Repair sweep pacing
    repair_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Pause between re-analyses during a repair sweep",
    )

    @property
    def cloudflare_configured(self) -> bool:
        """Cloudflare needs both a token and an account id."""
        return self.cloudflare_api_token is not None and bool(
            self.cloudflare_account_id
        )
