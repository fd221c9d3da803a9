from __future__ import annotations

import logging
import math
import secrets

from fastapi import APIRouter, BackgroundTasks, Header, HTTPException

from carv_ai_bot.ai_providers import ChatReplyError
from carv_ai_bot.ai_service import AIService, normalize_asset_name
from carv_ai_bot.chat_prompt import split_message
from carv_ai_bot.config import Settings
from carv_ai_bot.investment_analyzer import InvestmentAnalyzer
from carv_ai_bot.news_service import (
    NewsError,
    NewsService,
    format_news_for_display,
    format_trending_topics,
)
from carv_ai_bot.rate_limiter import RateLimiter
from carv_ai_bot.telegram import parse_telegram_update
from carv_ai_bot.telegram_client import TelegramClient, TelegramSendError
from carv_ai_bot.types import IncomingMessage

logger = logging.getLogger(__name__)

BOT_COMMANDS: list[tuple[str, str]] = [
    ("start", "Start the bot"),
    ("help", "Show help message"),
    ("clear", "Clear conversation history"),
    ("stats", "Show usage statistics"),
    ("about", "About CARV SVM Chain"),
    ("news", "Latest crypto and blockchain news"),
    ("trending", "Trending topics in crypto"),
    ("invest", "General investment analysis"),
    ("analyze", "Analyze a specific asset"),
]

HELP_TEXT = """📚 **Available Commands:**

/start - Start the bot and get welcome message
/help - Show this help message
/clear - Clear conversation history
/stats - Show your usage statistics
/about - Learn more about CARV SVM Chain

📊 **Investment Commands:**
/invest - Get general investment analysis and recommendations
/analyze <asset> - Analyze specific asset (e.g., /analyze bitcoin)

📰 **News Commands:**
/news - Get latest cryptocurrency and blockchain news
/trending - Show trending topics in crypto space

⚠️ **Disclaimer:** This is not financial advice. Always consult with a financial advisor."""

ABOUT_TEXT = """🌐 **About CARV SVM Chain**

CARV SVM Chain is a high-performance blockchain built on the SVM (Solana Virtual Machine) framework, enabling:

⚡ **High Performance**: Fast transaction processing
🔧 **Developer Friendly**: Solana-compatible programming
🌍 **Scalable**: Built for mass adoption
🤖 **AI Ready**: Perfect for AI-powered applications

Learn more: [CARV Documentation](https://docs.carv.io)"""

ANALYZE_USAGE_TEXT = (
    "📊 Usage: /analyze <asset>\n\n"
    "Examples:\n/analyze bitcoin\n/analyze ethereum\n/analyze solana"
)
NON_TEXT_NOTICE = (
    "📝 I can only process text messages. Please send me a text message to chat!"
)
UNKNOWN_COMMAND_NOTICE = "❓ Unknown command. Use /help to see available commands."
CHAT_APOLOGY = (
    "🤖 Sorry, I'm having trouble processing your request. Please try again."
)
GENERIC_APOLOGY = "❌ Sorry, something went wrong. Please try again later."


class WebhookHandler:
    def __init__(
        self,
        *,
        settings: Settings,
        telegram_client: TelegramClient,
        rate_limiter: RateLimiter,
        ai_service: AIService,
        news_service: NewsService,
        investment_analyzer: InvestmentAnalyzer,
    ) -> None:
        self._settings = settings
        self._telegram_client = telegram_client
        self._rate_limiter = rate_limiter
        self._ai_service = ai_service
        self._news_service = news_service
        self._investment_analyzer = investment_analyzer

    async def handle_webhook(
        self, payload: dict[str, object], background_tasks: BackgroundTasks
    ) -> dict[str, str]:
        message = parse_telegram_update(payload)
        if message is None:
            logger.debug("unsupported_update key_count=%d", len(payload))
            return {"status": "ignored", "reason": "unsupported_update"}

        logger.info(
            "message_received user_id=%s chat_type=%s message_length=%d",
            message.user_id,
            message.chat_type,
            len(message.text),
        )

        if not self._rate_limiter.try_acquire(message.user_id):
            wait_minutes = minutes_until(
                self._rate_limiter.get_time_until_reset(message.user_id)
            )
            background_tasks.add_task(
                self._safe_send_text,
                message,
                (
                    "⚠️ Rate limit exceeded! Please wait "
                    f"{wait_minutes} minute(s) before sending another message."
                ),
            )
            return {"status": "accepted", "reason": "rate_limited"}

        if not message.is_text:
            background_tasks.add_task(self._safe_send_text, message, NON_TEXT_NOTICE)
            return {"status": "accepted", "reason": "non_text"}

        if message.is_command:
            background_tasks.add_task(self.handle_command, message)
            return {"status": "accepted", "reason": "command_queued"}

        background_tasks.add_task(self.handle_chat_message, message)
        return {"status": "accepted", "reason": "chat_queued"}

    async def handle_command(self, message: IncomingMessage) -> None:
        command, argument = parse_command(message.text)
        try:
            if command == "/start":
                await self._send_markdown(message, welcome_text(message.username))
            elif command == "/help":
                await self._send_markdown(message, HELP_TEXT)
            elif command == "/clear":
                self._ai_service.clear_history(message.user_id)
                await self._safe_send_text(
                    message, "🧹 Conversation history cleared! Starting fresh."
                )
            elif command == "/stats":
                await self._send_markdown(message, self._stats_text(message.user_id))
            elif command == "/about":
                await self._send_markdown(
                    message, ABOUT_TEXT, disable_web_page_preview=True
                )
            elif command == "/news":
                await self._send_news(message)
            elif command == "/trending":
                await self._send_trending(message)
            elif command == "/invest":
                await self._send_investment_analysis(message)
            elif command == "/analyze":
                await self._send_asset_analysis(message, argument)
            else:
                await self._safe_send_text(message, UNKNOWN_COMMAND_NOTICE)
        except Exception:
            logger.exception(
                "unexpected_command_error user_id=%s command=%s",
                message.user_id,
                command,
            )
            await self._safe_send_text(message, GENERIC_APOLOGY)

    async def handle_chat_message(self, message: IncomingMessage) -> None:
        await self._safe_typing(message)
        try:
            reply = await self._ai_service.generate_response(
                message.user_id, message.text, message.display_name
            )
        except ChatReplyError as exc:
            logger.warning(
                "chat_generation_error user_id=%s status=%s detail=%s",
                message.user_id,
                exc.status_code,
                exc,
            )
            await self._safe_send_text(message, CHAT_APOLOGY)
            return
        except Exception:
            logger.exception("unexpected_chat_error user_id=%s", message.user_id)
            await self._safe_send_text(message, CHAT_APOLOGY)
            return

        parts = split_message(reply, self._settings.bot_max_message_length)
        for part in parts:
            await self._safe_send_text(message, part)

        logger.info(
            "chat_reply_sent user_id=%s reply_length=%d message_count=%d",
            message.user_id,
            len(reply),
            len(parts),
        )

    async def _send_news(self, message: IncomingMessage) -> None:
        await self._safe_typing(message)
        try:
            articles = await self._news_service.get_latest_news()
        except NewsError as exc:
            logger.warning("news_command_failed user_id=%s detail=%s", message.user_id, exc)
            await self._safe_send_text(
                message,
                "📰 Sorry, I'm having trouble fetching the latest news right now. "
                "Please try again later.",
            )
            return
        await self._send_markdown(
            message, format_news_for_display(articles), disable_web_page_preview=True
        )

    async def _send_trending(self, message: IncomingMessage) -> None:
        await self._safe_typing(message)
        try:
            topics = await self._news_service.get_trending_topics()
        except NewsError as exc:
            logger.warning(
                "trending_command_failed user_id=%s detail=%s", message.user_id, exc
            )
            await self._safe_send_text(
                message,
                "🔥 Sorry, I'm having trouble fetching trending topics right now. "
                "Please try again later.",
            )
            return
        await self._send_markdown(message, format_trending_topics(topics))

    async def _send_investment_analysis(self, message: IncomingMessage) -> None:
        await self._safe_typing(message)
        try:
            analysis = await self._investment_analyzer.analyze_investment_opportunities()
        except NewsError as exc:
            logger.warning(
                "invest_command_failed user_id=%s detail=%s", message.user_id, exc
            )
            await self._safe_send_text(
                message,
                "📊 Sorry, I'm having trouble analyzing investment opportunities "
                "right now. Please try again later.",
            )
            return
        await self._send_markdown(message, analysis)

    async def _send_asset_analysis(
        self, message: IncomingMessage, argument: str
    ) -> None:
        asset = argument.split(maxsplit=1)[0] if argument else ""
        if not asset:
            await self._safe_send_text(message, ANALYZE_USAGE_TEXT)
            return

        await self._safe_typing(message)
        analysis = await self._investment_analyzer.get_asset_recommendation(
            normalize_asset_name(asset)
        )
        await self._send_markdown(message, analysis)

    def _stats_text(self, user_id: str) -> str:
        remaining = self._rate_limiter.get_remaining_requests(user_id)
        wait_minutes = minutes_until(self._rate_limiter.get_time_until_reset(user_id))
        return (
            "📊 **Your Statistics:**\n\n"
            f"🔄 Remaining requests: {remaining}/{self._rate_limiter.limit}\n"
            f"⏰ Rate limit resets in: {wait_minutes} minute(s)\n\n"
            "💬 I'm here to help with CARV SVM Chain and blockchain topics!"
        )

    async def _send_markdown(
        self,
        message: IncomingMessage,
        text: str,
        *,
        disable_web_page_preview: bool = False,
    ) -> None:
        for part in split_message(text, self._settings.bot_max_message_length):
            try:
                await self._telegram_client.send_text(
                    chat_id=message.chat_id,
                    text=part,
                    parse_mode="Markdown",
                    disable_web_page_preview=disable_web_page_preview,
                )
            except TelegramSendError as exc:
                # Telegram rejects unbalanced Markdown entities; resend as plain text.
                logger.info(
                    "markdown_send_rejected user_id=%s detail=%s",
                    message.user_id,
                    exc,
                )
                await self._safe_send_text(message, part)

    async def _safe_send_text(self, message: IncomingMessage, text: str) -> None:
        try:
            await self._telegram_client.send_text(chat_id=message.chat_id, text=text)
        except TelegramSendError:
            logger.exception(
                "telegram_send_text_failed user_id=%s chat_id=%s",
                message.user_id,
                message.chat_id,
            )

    async def _safe_typing(self, message: IncomingMessage) -> None:
        try:
            await self._telegram_client.send_chat_action(
                chat_id=message.chat_id, action="typing"
            )
        except TelegramSendError as exc:
            logger.debug(
                "telegram_chat_action_failed user_id=%s detail=%s",
                message.user_id,
                exc,
            )


def parse_command(text: str) -> tuple[str, str]:
    head, _, tail = text.strip().partition(" ")
    command = head.split("@", maxsplit=1)[0].lower()
    return command, tail.strip()


def minutes_until(milliseconds: int) -> int:
    return math.ceil(milliseconds / 60000)


def welcome_text(username: str | None) -> str:
    greeting = f", @{username}" if username else ""
    return f"""🤖 Welcome to CarV AI Investment Assistant{greeting}!

I'm your AI-powered investment advisor that analyzes cryptocurrency and blockchain news to provide investment recommendations.

🔹 Market sentiment analysis
🔹 Buy/Sell/Hold recommendations
🔹 Asset-specific analysis
📰 Latest cryptocurrency and blockchain news

💡 **Try asking:**
• "Should I invest in bitcoin?"
• "What's the market sentiment for ethereum?"
• /invest for general investment analysis
• /analyze bitcoin for specific asset analysis
• /news for latest news

⚠️ **Disclaimer:** This is not financial advice. Always do your own research.

Use /help to see all available commands."""


def is_valid_secret(expected: str | None, provided: str | None) -> bool:
    if expected is None:
        return True
    if provided is None:
        return False
    return secrets.compare_digest(expected.encode(), provided.encode())


def build_router(handler: WebhookHandler, *, secret_token: str | None) -> APIRouter:
    router = APIRouter()

    @router.post("/webhook/telegram")
    async def telegram_webhook(
        payload: dict[str, object],
        background_tasks: BackgroundTasks,
        x_telegram_bot_api_secret_token: str | None = Header(default=None),
    ) -> dict[str, str]:
        if not is_valid_secret(secret_token, x_telegram_bot_api_secret_token):
            logger.warning("telegram_webhook_rejected reason=bad_secret")
            raise HTTPException(status_code=403, detail="Invalid secret token")
        return await handler.handle_webhook(payload, background_tasks)

    return router
