"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5050)
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL used in the TeXML stream URL (e.g. https://<ngrok>.ngrok-free.app).",
    )

    # Carrier
    telnyx_api_key: str | None = Field(default=None)

    # Realtime speech relay
    openai_api_key: str | None = Field(default=None)
    realtime_url: str = Field(default="wss://api.openai.com/v1/realtime")
    realtime_model: str = Field(default="gpt-4o-realtime-preview-2024-10-01")
    voice: str = Field(default="alloy")
    temperature: float = Field(default=0.8, ge=0.0, le=2.0)
    instructions_file: str = Field(default="assistant_instructions.txt")
    session_update_delay_seconds: float = Field(
        default=0.1,
        ge=0.0,
        description="Pause between opening the relay connection and sending session.update.",
    )
    ai_speaks_first: bool = Field(
        default=False,
        description="If true, the assistant greets the caller as soon as the session is configured.",
    )
    assistant_greeting: str = Field(
        default="Hello there! I am an AI customer care agent for AIRIES AI. How can I help you today?"
    )
    transcribe_caller_audio: bool = Field(
        default=False,
        description="If true, asks the relay to transcribe caller audio so caller turns appear in the notes.",
    )

    # Call summary delivery
    company_uuid: str | None = Field(default=None, description="Tenant id included in every call record.")
    webhook_url: str | None = Field(default=None)
    webhook_timeout_seconds: float = Field(default=10.0, gt=0.0)
    notes_max_length: int = Field(default=500, ge=4)

    # Inbound call TeXML
    greeting_text: str = Field(default="Thank you for calling AIRIES AI TECHNOLOGIES.")
    prompt_text: str = Field(default="May I know who I am speaking to?")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def realtime_endpoint(self) -> str:
        return f"{self.realtime_url}?model={self.realtime_model}"

    def require_relay_credentials(self) -> None:
        if not self.openai_api_key:
            raise RuntimeError("Missing OpenAI API key. Please set OPENAI_API_KEY.")

    def require_credentials(self) -> None:
        """Startup check: the service needs both the relay key and the carrier key."""

        self.require_relay_credentials()
        if not self.telnyx_api_key:
            raise RuntimeError("Missing Telnyx API key. Please set TELNYX_API_KEY.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
