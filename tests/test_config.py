from __future__ import annotations

import pytest

from carv_ai_bot.config import (
    DEFAULT_BOT_NAME,
    DEFAULT_OPENAI_BASE_URL,
    DEFAULT_OPENAI_MODEL,
    Settings,
)


@pytest.fixture(autouse=True)
def clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    keys = [
        "TELEGRAM_BOT_TOKEN",
        "OPENAI_API_KEY",
        "OPENAI_API_BASE_URL",
        "OPENAI_MODEL",
        "OPENAI_MAX_TOKENS",
        "OPENAI_TEMPERATURE",
        "OPENAI_TIMEOUT_SECONDS",
        "AI_PROVIDER",
        "CARV_AUTH_TOKEN",
        "CARV_NEWS_BASE_URL",
        "NEWS_CACHE_TTL_SECONDS",
        "BOT_NAME",
        "MAX_MESSAGE_LENGTH",
        "RATE_LIMIT_PER_USER",
        "RATE_LIMIT_WINDOW_MS",
        "BOT_CHAT_CONTEXT_EXCHANGES",
        "TELEGRAM_WEBHOOK_URL",
        "TELEGRAM_WEBHOOK_SECRET",
        "BOT_WEBHOOK_HOST",
        "BOT_WEBHOOK_PORT",
        "LOG_LEVEL",
    ]
    for key in keys:
        monkeypatch.delenv(key, raising=False)


def _set_base_required(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


def test_settings_lists_all_missing_required(monkeypatch: pytest.MonkeyPatch) -> None:
    with pytest.raises(RuntimeError) as exc:
        Settings.from_env()

    assert "OPENAI_API_KEY" in str(exc.value)
    assert "TELEGRAM_BOT_TOKEN" in str(exc.value)


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_base_required(monkeypatch)

    settings = Settings.from_env()

    assert settings.telegram_bot_token == "123:abc"
    assert settings.openai_api_key == "sk-test"
    assert settings.bot_name == DEFAULT_BOT_NAME
    assert settings.openai_base_url == DEFAULT_OPENAI_BASE_URL
    assert settings.openai_model == DEFAULT_OPENAI_MODEL
    assert settings.openai_max_tokens == 1000
    assert settings.openai_temperature == 0.7
    assert settings.ai_provider is None
    assert settings.carv_auth_token is None
    assert settings.bot_max_message_length == 4096
    assert settings.rate_limit_per_user == 10
    assert settings.rate_limit_window_ms == 60000
    assert settings.bot_chat_context_exchanges == 10
    assert settings.telegram_webhook_url is None
    assert settings.log_level == "INFO"


def test_settings_warns_without_carv_token(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    _set_base_required(monkeypatch)

    with caplog.at_level("WARNING", logger="carv_ai_bot.config"):
        Settings.from_env()

    assert "carv_auth_token_missing" in caplog.text


def test_settings_reads_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_base_required(monkeypatch)
    monkeypatch.setenv("AI_PROVIDER", " Anthropic ")
    monkeypatch.setenv("CARV_AUTH_TOKEN", "carv-token")
    monkeypatch.setenv("RATE_LIMIT_PER_USER", "3")
    monkeypatch.setenv("RATE_LIMIT_WINDOW_MS", "1500")
    monkeypatch.setenv("BOT_CHAT_CONTEXT_EXCHANGES", "4")
    monkeypatch.setenv("MAX_MESSAGE_LENGTH", "1000")
    monkeypatch.setenv("OPENAI_TEMPERATURE", "0.2")
    monkeypatch.setenv("TELEGRAM_WEBHOOK_URL", "https://bot.example.com/webhook/telegram")
    monkeypatch.setenv("TELEGRAM_WEBHOOK_SECRET", "s3cret")
    monkeypatch.setenv("LOG_LEVEL", "warn")

    settings = Settings.from_env()

    assert settings.ai_provider == "anthropic"
    assert settings.carv_auth_token == "carv-token"
    assert settings.rate_limit_per_user == 3
    assert settings.rate_limit_window_ms == 1500
    assert settings.bot_chat_context_exchanges == 4
    assert settings.bot_max_message_length == 1000
    assert settings.openai_temperature == 0.2
    assert settings.telegram_webhook_url == "https://bot.example.com/webhook/telegram"
    assert settings.telegram_webhook_secret == "s3cret"
    assert settings.log_level == "WARNING"


def test_settings_zero_rate_limit_is_allowed(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_base_required(monkeypatch)
    monkeypatch.setenv("RATE_LIMIT_PER_USER", "0")

    assert Settings.from_env().rate_limit_per_user == 0


@pytest.mark.parametrize(
    ("name", "value", "expected"),
    [
        ("RATE_LIMIT_PER_USER", "-1", "RATE_LIMIT_PER_USER"),
        ("RATE_LIMIT_WINDOW_MS", "0", "RATE_LIMIT_WINDOW_MS"),
        ("BOT_CHAT_CONTEXT_EXCHANGES", "0", "BOT_CHAT_CONTEXT_EXCHANGES"),
        ("RATE_LIMIT_WINDOW_MS", "soon", "RATE_LIMIT_WINDOW_MS"),
        ("OPENAI_TEMPERATURE", "warm", "OPENAI_TEMPERATURE"),
        ("AI_PROVIDER", "gemini", "AI_PROVIDER"),
        ("LOG_LEVEL", "chatty", "LOG_LEVEL"),
    ],
)
def test_settings_rejects_invalid_values(
    monkeypatch: pytest.MonkeyPatch, name: str, value: str, expected: str
) -> None:
    _set_base_required(monkeypatch)
    monkeypatch.setenv(name, value)

    with pytest.raises(RuntimeError) as exc:
        Settings.from_env()

    assert expected in str(exc.value)
