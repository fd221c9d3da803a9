from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

import httpx
import uvicorn
from fastapi import FastAPI

from carv_ai_bot.ai_providers import (
    ANTHROPIC_DEFAULT_BASE_URL,
    ANTHROPIC_DEFAULT_MODEL,
    create_provider,
    detect_provider,
)
from carv_ai_bot.ai_service import AIService
from carv_ai_bot.config import (
    DEFAULT_OPENAI_BASE_URL,
    DEFAULT_OPENAI_MODEL,
    Settings,
)
from carv_ai_bot.conversation_store import ConversationStore
from carv_ai_bot.investment_analyzer import InvestmentAnalyzer
from carv_ai_bot.news_service import NewsService
from carv_ai_bot.rate_limiter import RateLimiter
from carv_ai_bot.telegram_client import TelegramClient, TelegramSendError
from carv_ai_bot.webhook import BOT_COMMANDS, WebhookHandler, build_router

logger = logging.getLogger(__name__)


def resolve_model(settings: Settings, provider_kind: str) -> str:
    if provider_kind == "anthropic" and settings.openai_model == DEFAULT_OPENAI_MODEL:
        return ANTHROPIC_DEFAULT_MODEL
    return settings.openai_model


def resolve_base_url(settings: Settings, provider_kind: str) -> str:
    if (
        provider_kind == "anthropic"
        and settings.openai_base_url == DEFAULT_OPENAI_BASE_URL
    ):
        return ANTHROPIC_DEFAULT_BASE_URL
    return settings.openai_base_url


def create_app(
    settings: Settings, *, http_client: httpx.AsyncClient | None = None
) -> FastAPI:
    http_client = http_client or httpx.AsyncClient()

    provider_kind = settings.ai_provider or detect_provider(settings.openai_base_url)
    model = resolve_model(settings, provider_kind)
    provider = create_provider(
        provider_kind,
        api_key=settings.openai_api_key,
        model=model,
        http_client=http_client,
        base_url=resolve_base_url(settings, provider_kind),
        timeout_seconds=settings.openai_timeout_seconds,
        max_tokens=settings.openai_max_tokens,
        temperature=settings.openai_temperature,
    )

    telegram_client = TelegramClient(
        bot_token=settings.telegram_bot_token,
        http_client=http_client,
    )
    rate_limiter = RateLimiter(
        limit=settings.rate_limit_per_user,
        window_ms=settings.rate_limit_window_ms,
    )
    conversations = ConversationStore(
        max_exchanges=settings.bot_chat_context_exchanges
    )
    news_service = NewsService(
        http_client=http_client,
        base_url=settings.carv_news_base_url,
        auth_token=settings.carv_auth_token,
        cache_ttl_seconds=settings.news_cache_ttl_seconds,
    )
    investment_analyzer = InvestmentAnalyzer(news_source=news_service)
    ai_service = AIService(
        provider=provider,
        conversations=conversations,
        news_service=news_service,
        investment_analyzer=investment_analyzer,
        bot_name=settings.bot_name,
        model=model,
        max_tokens=settings.openai_max_tokens,
        temperature=settings.openai_temperature,
    )
    handler = WebhookHandler(
        settings=settings,
        telegram_client=telegram_client,
        rate_limiter=rate_limiter,
        ai_service=ai_service,
        news_service=news_service,
        investment_analyzer=investment_analyzer,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        rate_limiter.start()
        await _publish_bot_setup(settings, telegram_client)
        logger.info(
            "bot_started name=%s provider=%s model=%s rate_limit=%d window_ms=%d",
            settings.bot_name,
            provider.name,
            model,
            settings.rate_limit_per_user,
            settings.rate_limit_window_ms,
        )
        try:
            yield
        finally:
            logger.info("bot_shutting_down name=%s", settings.bot_name)
            await rate_limiter.stop()
            await http_client.aclose()

    app = FastAPI(title="carv-ai-bot", version="1.0", lifespan=lifespan)
    app.include_router(
        build_router(handler, secret_token=settings.telegram_webhook_secret)
    )

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/status")
    async def status() -> dict[str, Any]:
        return {
            "bot_name": settings.bot_name,
            "provider": provider.name,
            "model": model,
            "sweep_running": rate_limiter.running,
            "conversations": asdict(ai_service.get_conversation_stats()),
            "rate_limits": asdict(rate_limiter.get_stats()),
            "news_cache": asdict(news_service.get_cache_stats()),
        }

    return app


async def _publish_bot_setup(
    settings: Settings, telegram_client: TelegramClient
) -> None:
    try:
        await telegram_client.set_my_commands(BOT_COMMANDS)
    except TelegramSendError:
        logger.exception("telegram_set_commands_failed")

    if settings.telegram_webhook_url is None:
        return

    try:
        await telegram_client.set_webhook(
            url=settings.telegram_webhook_url,
            secret_token=settings.telegram_webhook_secret,
        )
    except TelegramSendError:
        logger.exception(
            "telegram_set_webhook_failed url=%s", settings.telegram_webhook_url
        )
    else:
        logger.info("telegram_webhook_registered url=%s", settings.telegram_webhook_url)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    settings = Settings.from_env()
    logging.getLogger().setLevel(settings.log_level)
    app = create_app(settings)

    uvicorn.run(
        app,
        host=settings.bot_webhook_host,
        port=settings.bot_webhook_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
