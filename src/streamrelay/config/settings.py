"""Configuration management using Pydantic Settings."""

from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BLUEPRINT_SYSTEM_PROMPT = "You are a Lovable 2.0 blueprint generation expert."

REASONING_SYSTEM_PROMPT = (
    "You are an expert AI architect and Lovable 2.0 platform specialist. Your role is to "
    "create comprehensive application prompts specifically optimized for the Lovable no-code "
    "platform.\n\n"
    "Generate detailed, production-ready blueprints that include complete technical "
    "specifications, database design, component architecture, and implementation details. "
    "Focus on creating comprehensive prompts that enable developers to build full "
    "applications without additional research."
)


class RelaySettings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service
    service_name: str = "stream-relay"
    service_version: str = "0.1.0"

    # FastAPI
    http_host: str = "0.0.0.0"
    http_port: int = 5000
    cors_allow_origins: list[str] = ["*"]

    # Upstream chat-completion provider.
    # The key is optional at startup; a missing key fails individual requests.
    upstream_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("upstream_api_key", "deepseek_api_key"),
    )
    upstream_base_url: str = "https://api.deepseek.com/v1"
    upstream_chat_path: str = "/chat/completions"
    upstream_model: str = "deepseek-chat"
    upstream_connect_timeout_seconds: float = 10.0
    # Maximum silence between two upstream body reads
    upstream_idle_timeout_seconds: float = 30.0
    # Largest record (in characters) buffered while waiting for its separator
    upstream_max_record_chars: int = 1_048_576

    # Generation defaults
    default_temperature: float = 0.7
    default_max_tokens: int = 8192
    blueprint_system_prompt: str = BLUEPRINT_SYSTEM_PROMPT
    reasoning_system_prompt: str = REASONING_SYSTEM_PROMPT

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # "json" | "console"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def upstream_configured(self) -> bool:
        return bool(self.upstream_api_key)

    def validate(self) -> None:
        if self.http_port <= 0:
            raise ValueError("http_port must be > 0")
        if not self.upstream_base_url.startswith(("http://", "https://")):
            raise ValueError("upstream_base_url must start with http:// or https://")
        if self.upstream_connect_timeout_seconds <= 0:
            raise ValueError("upstream_connect_timeout_seconds must be > 0")
        if self.upstream_idle_timeout_seconds <= 0:
            raise ValueError("upstream_idle_timeout_seconds must be > 0")
        if self.upstream_max_record_chars <= 0:
            raise ValueError("upstream_max_record_chars must be > 0")
        if not 0.0 <= self.default_temperature <= 2.0:
            raise ValueError("default_temperature must be within [0, 2]")
        if self.default_max_tokens <= 0:
            raise ValueError("default_max_tokens must be > 0")


_settings: RelaySettings | None = None


def get_settings() -> RelaySettings:
    global _settings
    if _settings is None:
        _settings = RelaySettings()
        _settings.validate()
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None
