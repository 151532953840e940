"""Tests for environment-driven settings."""

import pytest

from metapulse.config import Settings


def test_defaults():
    settings = Settings.from_env({})
    assert settings.groq_model == "llama-3.1-8b-instant"
    assert settings.gemini_model == "gemini-2.5-flash"
    assert settings.consensus_max_delta == 0.3
    assert settings.provider_timeout_seconds == 20
    assert settings.rate_limit_store == "memory"
    assert settings.groq_daily_token_budget is None


def test_reads_environment_values():
    settings = Settings.from_env(
        {
            "GROQ_API_KEY": "gsk-live",
            "GEMINI_API_KEY": "AIza-live",
            "CONSENSUS_MAX_DELTA": "0.25",
            "PROVIDER_MAX_RETRIES": "5",
            "GEMINI_DAILY_TOKEN_BUDGET": "100000",
            "RATE_LIMIT_STORE": " SQLite ",
            "METAPULSE_LOG_LEVEL": "debug",
        }
    )
    assert settings.groq_api_key == "gsk-live"
    assert settings.consensus_max_delta == 0.25
    assert settings.provider_max_retries == 5
    assert settings.gemini_daily_token_budget == 100_000
    assert settings.rate_limit_store == "sqlite"
    assert settings.log_level == "debug"


def test_blank_values_keep_defaults():
    settings = Settings.from_env({"GROQ_MODEL": "  ", "CONSENSUS_MAX_DELTA": ""})
    assert settings.groq_model == "llama-3.1-8b-instant"
    assert settings.consensus_max_delta == 0.3


@pytest.mark.parametrize(
    "env",
    [
        {"CONSENSUS_MAX_DELTA": "1.5"},
        {"RATE_LIMIT_STORE": "redis"},
        {"PROVIDER_MAX_RETRIES": "many"},
    ],
)
def test_invalid_values_raise(env):
    with pytest.raises(ValueError, match="Invalid MetaPulse configuration"):
        Settings.from_env(env)


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("GROQ_API_KEY", "gsk-env")
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    settings = Settings.from_env()
    assert settings.groq_api_key == "gsk-env"
    with pytest.raises(ValueError, match="GEMINI_API_KEY"):
        settings.require_api_keys()


def test_require_api_keys_names_every_missing_key():
    with pytest.raises(ValueError, match="GROQ_API_KEY and GEMINI_API_KEY"):
        Settings().require_api_keys()
    Settings(groq_api_key="g", gemini_api_key="k").require_api_keys()
