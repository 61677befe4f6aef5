"""Test settings parsing."""

import pytest

from lifegraph.core.config import DatabaseSettings, LLMSettings, MemorySettings


@pytest.mark.parametrize(
    "raw,expected",
    [
        (
            "postgres://u:p@db:5432/app",
            "postgresql+asyncpg://u:p@db:5432/app",
        ),
        (
            "postgresql://u:p@db:5432/app?sslmode=require",
            "postgresql+asyncpg://u:p@db:5432/app?ssl=require",
        ),
        (
            "postgresql+asyncpg://u:p@db:5432/app",
            "postgresql+asyncpg://u:p@db:5432/app",
        ),
        (
            "sqlite+aiosqlite:///:memory:",
            "sqlite+aiosqlite:///:memory:",
        ),
    ],
)
def test_database_connection_url(raw, expected):
    assert DatabaseSettings(DATABASE_URL=raw).connection_url == expected


def test_llm_credential_follows_provider():
    settings = LLMSettings(LLM_PROVIDER="gemini", XAI_API_KEY="xai-key", GEMINI_API_KEY="")

    assert settings.api_key == ""
    assert not settings.is_configured


def test_memory_defaults():
    settings = MemorySettings()

    assert settings.min_text_length == 20
    assert settings.rate_limit_max_calls == 30
    assert settings.rate_limit_window_seconds == 60
    assert settings.context_max_chars == 2000
