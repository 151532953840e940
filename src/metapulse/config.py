"""Runtime settings read from environment variables."""

from __future__ import annotations

import os
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

from .core.clients.gemini import DEFAULT_MODEL as DEFAULT_GEMINI_MODEL
from .core.clients.groq import DEFAULT_MODEL as DEFAULT_GROQ_MODEL

# env var -> Settings field
ENV_FIELDS = {
    "GROQ_API_KEY": "groq_api_key",
    "GEMINI_API_KEY": "gemini_api_key",
    "GROQ_MODEL": "groq_model",
    "GEMINI_MODEL": "gemini_model",
    "CONSENSUS_MAX_DELTA": "consensus_max_delta",
    "PROVIDER_TIMEOUT_SECONDS": "provider_timeout_seconds",
    "PROVIDER_CONNECT_TIMEOUT_SECONDS": "provider_connect_timeout_seconds",
    "PROVIDER_MAX_RETRIES": "provider_max_retries",
    "PROVIDER_BACKOFF_MS": "provider_backoff_ms",
    "GROQ_DAILY_TOKEN_BUDGET": "groq_daily_token_budget",
    "GEMINI_DAILY_TOKEN_BUDGET": "gemini_daily_token_budget",
    "RATE_LIMIT_STORE": "rate_limit_store",
    "DATA_DIR": "data_dir",
    "METAPULSE_LOG_LEVEL": "log_level",
    "MAX_INVESTMENT_PER_TOKEN": "max_investment_per_token",
}


class Settings(BaseModel):
    groq_api_key: str = ""
    gemini_api_key: str = ""
    groq_model: str = DEFAULT_GROQ_MODEL
    gemini_model: str = DEFAULT_GEMINI_MODEL
    consensus_max_delta: float = Field(0.3, ge=0.0, le=1.0)
    provider_timeout_seconds: float = Field(20.0, gt=0)
    provider_connect_timeout_seconds: float = Field(5.0, gt=0)
    provider_max_retries: int = Field(3, ge=0)
    provider_backoff_ms: float = Field(1000.0, ge=0)
    groq_daily_token_budget: Optional[int] = Field(None, gt=0)
    gemini_daily_token_budget: Optional[int] = Field(None, gt=0)
    rate_limit_store: Literal["memory", "sqlite"] = "memory"
    data_dir: str = "~/.metapulse"
    log_level: str = "INFO"
    max_investment_per_token: float = Field(1.0, ge=0)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from the environment. Empty variables keep their defaults."""
        environ = os.environ if environ is None else environ
        values = {field: environ[var] for var, field in ENV_FIELDS.items() if environ.get(var, "").strip()}
        if "rate_limit_store" in values:
            values["rate_limit_store"] = values["rate_limit_store"].strip().lower()
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise ValueError(f"Invalid MetaPulse configuration: {exc}") from exc

    def require_api_keys(self) -> None:
        missing = [var for var, field in (("GROQ_API_KEY", "groq_api_key"), ("GEMINI_API_KEY", "gemini_api_key"))
                   if not getattr(self, field)]
        if missing:
            raise ValueError(f"{' and '.join(missing)} environment variable(s) required to score tokens")
