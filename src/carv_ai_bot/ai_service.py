from __future__ import annotations

import logging

from carv_ai_bot.ai_providers import ChatProvider
from carv_ai_bot.chat_prompt import build_chat_messages, build_system_prompt
from carv_ai_bot.conversation_store import ConversationStats, ConversationStore
from carv_ai_bot.investment_analyzer import InvestmentAnalyzer
from carv_ai_bot.news_service import (
    NewsError,
    NewsService,
    format_news_for_display,
    format_trending_topics,
)

logger = logging.getLogger(__name__)

INVESTMENT_KEYWORDS: tuple[str, ...] = (
    "invertir", "invest", "comprar", "buy", "vender", "sell", "recomendación",
    "recommendation", "análisis", "analysis", "mercado", "market", "trading",
    "precio", "price", "tendencia", "trend", "oportunidad", "opportunity",
    "portfolio", "cartera", "estrategia", "strategy", "predicción", "prediction",
)

NEWS_KEYWORDS: tuple[str, ...] = (
    "noticias", "news", "crypto", "bitcoin", "ethereum", "blockchain",
    "mercado", "market", "precio", "price", "trading", "defi", "nft",
    "tendencias", "trending", "últimas", "latest", "actualidad",
)

INVESTMENT_ASSETS: tuple[str, ...] = (
    "bitcoin", "btc", "ethereum", "eth", "solana", "sol", "cardano", "ada",
    "polkadot", "dot",
)

# Checked in order; the first matching category wins.
NEWS_ROUTES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("bitcoin", ("bitcoin", "btc")),
    ("ethereum", ("ethereum", "eth")),
    ("solana", ("solana", "sol")),
    ("defi", ("defi", "decentralized")),
    ("nft", ("nft",)),
    ("regulation", ("regulation", "sec", "regulación")),
    ("markets", ("market", "mercado", "price", "precio")),
)
TRENDING_KEYWORDS: tuple[str, ...] = ("trending", "tendencias")

ASSET_ALIASES: dict[str, str] = {
    "btc": "bitcoin",
    "eth": "ethereum",
    "sol": "solana",
    "ada": "cardano",
    "dot": "polkadot",
    "link": "chainlink",
    "uni": "uniswap",
}

INVESTMENT_APOLOGY = (
    "📊 Sorry, I'm having trouble analyzing investment opportunities right now. "
    "Please try again later."
)
NEWS_APOLOGY = (
    "📰 Sorry, I'm having trouble fetching the latest news right now. "
    "Please try again later."
)


def normalize_asset_name(asset: str) -> str:
    lowered = asset.strip().lower()
    return ASSET_ALIASES.get(lowered, lowered)


def is_investment_request(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in INVESTMENT_KEYWORDS)


def is_news_request(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in NEWS_KEYWORDS)


class AIService:
    def __init__(
        self,
        *,
        provider: ChatProvider,
        conversations: ConversationStore,
        news_service: NewsService,
        investment_analyzer: InvestmentAnalyzer,
        bot_name: str,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> None:
        self._provider = provider
        self._conversations = conversations
        self._news_service = news_service
        self._investment_analyzer = investment_analyzer
        self._bot_name = bot_name
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    @property
    def provider_name(self) -> str:
        return self._provider.name

    async def generate_response(
        self, user_id: str, message: str, display_name: str | None = None
    ) -> str:
        investment_reply = await self.handle_investment_request(message)
        if investment_reply is not None:
            return investment_reply

        news_reply = await self.handle_news_request(message)
        if news_reply is not None:
            return news_reply

        history = self._conversations.get_history(user_id)
        chat_messages = build_chat_messages(
            system_prompt=build_system_prompt(
                bot_name=self._bot_name, display_name=display_name
            ),
            history=history,
            prompt=message,
        )

        logger.info(
            "generating_chat_reply user_id=%s message_length=%d history_length=%d",
            user_id,
            len(message),
            len(history),
        )
        reply = await self._provider.generate_reply(
            chat_messages,
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )

        self._conversations.append_exchange(
            user_id, user_text=message, assistant_text=reply
        )
        return reply

    async def handle_investment_request(self, message: str) -> str | None:
        if not is_investment_request(message):
            return None

        lowered = message.lower()
        logger.info("investment_request_detected message_length=%d", len(message))
        mentioned = next(
            (asset for asset in INVESTMENT_ASSETS if asset in lowered), None
        )
        try:
            if mentioned is not None:
                return await self._investment_analyzer.get_asset_recommendation(
                    normalize_asset_name(mentioned)
                )
            return await self._investment_analyzer.analyze_investment_opportunities()
        except NewsError as exc:
            logger.warning("investment_request_failed detail=%s", exc)
            return INVESTMENT_APOLOGY

    async def handle_news_request(self, message: str) -> str | None:
        if not is_news_request(message):
            return None

        lowered = message.lower()
        logger.info("news_request_detected message_length=%d", len(message))
        try:
            for category, keywords in NEWS_ROUTES:
                if any(keyword in lowered for keyword in keywords):
                    articles = await self._news_service.get_news_by_category(category)
                    return format_news_for_display(articles)

            if any(keyword in lowered for keyword in TRENDING_KEYWORDS):
                topics = await self._news_service.get_trending_topics()
                return format_trending_topics(topics)

            articles = await self._news_service.get_latest_news()
            return format_news_for_display(articles)
        except NewsError as exc:
            logger.warning("news_request_failed detail=%s", exc)
            return NEWS_APOLOGY

    def clear_history(self, user_id: str) -> None:
        self._conversations.clear(user_id)

    def get_conversation_stats(self) -> ConversationStats:
        return self._conversations.get_stats()
