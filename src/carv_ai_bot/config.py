from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

ProviderKind = Literal["openai", "anthropic", "custom"]

DEFAULT_BOT_NAME = "CarV AI Assistant"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODEL = "gpt-3.5-turbo"
DEFAULT_CARV_NEWS_BASE_URL = "https://interface.carv.io"

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    openai_api_key: str
    bot_name: str = DEFAULT_BOT_NAME
    ai_provider: ProviderKind | None = None
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    openai_model: str = DEFAULT_OPENAI_MODEL
    openai_max_tokens: int = 1000
    openai_temperature: float = 0.7
    openai_timeout_seconds: float = 45.0
    carv_auth_token: str | None = None
    carv_news_base_url: str = DEFAULT_CARV_NEWS_BASE_URL
    news_cache_ttl_seconds: int = 300
    bot_max_message_length: int = 4096
    rate_limit_per_user: int = 10
    rate_limit_window_ms: int = 60000
    bot_chat_context_exchanges: int = 10
    telegram_webhook_url: str | None = None
    telegram_webhook_secret: str | None = None
    bot_webhook_host: str = "127.0.0.1"
    bot_webhook_port: int = 8001
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        missing: list[str] = []

        required = {
            "telegram_bot_token": os.getenv("TELEGRAM_BOT_TOKEN"),
            "openai_api_key": os.getenv("OPENAI_API_KEY"),
        }

        for key, value in required.items():
            if not value:
                missing.append(key.upper())

        if missing:
            details = ", ".join(sorted(missing))
            raise RuntimeError(f"Missing required environment variables: {details}")

        carv_auth_token = _optional_str(os.getenv("CARV_AUTH_TOKEN"))
        if carv_auth_token is None:
            logger.warning(
                "carv_auth_token_missing detail=news functionality may be limited"
            )

        rate_limit_per_user = _parse_int("RATE_LIMIT_PER_USER", 10)
        if rate_limit_per_user < 0:
            raise RuntimeError("Invalid RATE_LIMIT_PER_USER. Must not be negative.")

        rate_limit_window_ms = _parse_int("RATE_LIMIT_WINDOW_MS", 60000)
        if rate_limit_window_ms <= 0:
            raise RuntimeError("Invalid RATE_LIMIT_WINDOW_MS. Must be positive.")

        context_exchanges = _parse_int("BOT_CHAT_CONTEXT_EXCHANGES", 10)
        if context_exchanges < 1:
            raise RuntimeError(
                "Invalid BOT_CHAT_CONTEXT_EXCHANGES. Must be at least 1."
            )

        return cls(
            telegram_bot_token=required["telegram_bot_token"] or "",
            openai_api_key=required["openai_api_key"] or "",
            bot_name=_optional_str(os.getenv("BOT_NAME")) or DEFAULT_BOT_NAME,
            ai_provider=_parse_provider(os.getenv("AI_PROVIDER")),
            openai_base_url=os.getenv("OPENAI_API_BASE_URL", DEFAULT_OPENAI_BASE_URL),
            openai_model=os.getenv("OPENAI_MODEL", DEFAULT_OPENAI_MODEL),
            openai_max_tokens=_parse_int("OPENAI_MAX_TOKENS", 1000),
            openai_temperature=_parse_float("OPENAI_TEMPERATURE", 0.7),
            openai_timeout_seconds=_parse_float("OPENAI_TIMEOUT_SECONDS", 45.0),
            carv_auth_token=carv_auth_token,
            carv_news_base_url=os.getenv(
                "CARV_NEWS_BASE_URL", DEFAULT_CARV_NEWS_BASE_URL
            ),
            news_cache_ttl_seconds=_parse_int("NEWS_CACHE_TTL_SECONDS", 300),
            bot_max_message_length=_parse_int("MAX_MESSAGE_LENGTH", 4096),
            rate_limit_per_user=rate_limit_per_user,
            rate_limit_window_ms=rate_limit_window_ms,
            bot_chat_context_exchanges=context_exchanges,
            telegram_webhook_url=_optional_str(os.getenv("TELEGRAM_WEBHOOK_URL")),
            telegram_webhook_secret=_optional_str(
                os.getenv("TELEGRAM_WEBHOOK_SECRET")
            ),
            bot_webhook_host=os.getenv("BOT_WEBHOOK_HOST", "127.0.0.1"),
            bot_webhook_port=_parse_int("BOT_WEBHOOK_PORT", 8001),
            log_level=_parse_log_level(os.getenv("LOG_LEVEL")),
        )


def _optional_str(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _parse_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"Invalid {name}. Expected an integer.") from exc


def _parse_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"Invalid {name}. Expected a number.") from exc


def _parse_provider(value: str | None) -> ProviderKind | None:
    if value is None or not value.strip():
        return None

    normalized = value.strip().lower()
    if normalized == "openai":
        return "openai"
    if normalized == "anthropic":
        return "anthropic"
    if normalized == "custom":
        return "custom"

    raise RuntimeError(
        "Invalid AI_PROVIDER. Expected 'openai', 'anthropic', or 'custom'."
    )


def _parse_log_level(value: str | None) -> str:
    if value is None or not value.strip():
        return "INFO"

    normalized = value.strip().upper()
    if normalized == "WARN":
        return "WARNING"
    if normalized in _LOG_LEVELS:
        return normalized

    raise RuntimeError(f"Invalid LOG_LEVEL. Expected one of: {', '.join(_LOG_LEVELS)}.")
