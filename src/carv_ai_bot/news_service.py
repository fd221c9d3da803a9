from __future__ import annotations

import asyncio
import logging
import re
import time
from collections import Counter
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

NEWS_ENDPOINT = "/ai-agent-backend/news"
LATEST_NEWS_CACHE_KEY = "latest_news"

CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "bitcoin": ("bitcoin", "btc", "satoshi"),
    "ethereum": ("ethereum", "eth", "ether"),
    "solana": ("solana", "sol"),
    "defi": ("defi", "decentralized finance", "yield farming", "liquidity"),
    "nft": ("nft", "non-fungible", "digital art"),
    "regulation": ("sec", "regulation", "legal", "compliance"),
    "markets": ("price", "market", "trading", "volume"),
    "security": ("hack", "exploit", "security", "breach"),
    "adoption": ("adoption", "partnership", "enterprise", "institutional"),
}

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "is", "are", "was", "were", "be", "been", "have",
        "has", "had", "do", "does", "did", "will", "would", "could", "should",
        "may", "might", "can", "this", "that", "these", "those",
    }
)

_NON_WORD_RE = re.compile(r"[^\w\s]")


class NewsError(Exception):
    def __init__(self, user_message: str, *, status_code: int | None = None) -> None:
        super().__init__(user_message)
        self.user_message = user_message
        self.status_code = status_code


@dataclass(frozen=True)
class NewsArticle:
    title: str
    card_text: str
    url: str

    @property
    def searchable_text(self) -> str:
        return f"{self.title} {self.card_text}".lower()


@dataclass(frozen=True)
class TrendingTopic:
    keyword: str
    count: int


@dataclass(frozen=True)
class CacheStats:
    size: int
    entries: tuple[str, ...]


@dataclass
class _CacheEntry:
    articles: list[NewsArticle]
    stored_at: float


class NewsService:
    """Cached client for the CARV crypto news feed.

    Only the latest-news listing hits the network. Search, category and
    trending views are computed locally from that listing.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        base_url: str = "https://interface.carv.io",
        auth_token: str | None = None,
        cache_ttl_seconds: int = 300,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._http_client = http_client
        self._base_url = base_url.rstrip("/")
        self._auth_token = auth_token
        self._cache_ttl_seconds = max(0, cache_ttl_seconds)
        self._timeout_seconds = timeout_seconds
        self._cache: dict[str, _CacheEntry] = {}

    async def get_latest_news(self) -> list[NewsArticle]:
        cached = self._get_fresh(LATEST_NEWS_CACHE_KEY)
        if cached is not None:
            logger.debug("news_cache_hit key=%s", LATEST_NEWS_CACHE_KEY)
            return cached

        try:
            articles = await self._fetch_latest()
        except NewsError as exc:
            stale = self._cache.get(LATEST_NEWS_CACHE_KEY)
            if stale is not None:
                logger.warning("news_fetch_failed_serving_stale detail=%s", exc)
                return list(stale.articles)
            logger.error("news_fetch_failed detail=%s", exc)
            raise

        self._cache[LATEST_NEWS_CACHE_KEY] = _CacheEntry(
            articles=articles, stored_at=time.monotonic()
        )
        logger.info("news_fetched count=%d", len(articles))
        return list(articles)

    async def search_news(self, query: str) -> list[NewsArticle]:
        articles = await self.get_latest_news()
        terms = query.lower().split()
        if not terms:
            return articles

        matches = [
            article
            for article in articles
            if any(term in article.searchable_text for term in terms)
        ]
        logger.info("news_search query=%r results=%d", query, len(matches))
        return matches

    async def get_news_by_category(self, category: str) -> list[NewsArticle]:
        articles = await self.get_latest_news()
        normalized = category.strip().lower()
        keywords = CATEGORY_KEYWORDS.get(normalized, (normalized,))

        matches = [
            article
            for article in articles
            if any(keyword in article.searchable_text for keyword in keywords)
        ]
        logger.info("news_category category=%s results=%d", normalized, len(matches))
        return matches

    async def get_trending_topics(self, limit: int = 10) -> list[TrendingTopic]:
        articles = await self.get_latest_news()
        return extract_trending_topics(articles, limit=limit)

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("news_cache_cleared")

    def get_cache_stats(self) -> CacheStats:
        return CacheStats(size=len(self._cache), entries=tuple(self._cache))

    def _get_fresh(self, key: str) -> list[NewsArticle] | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if time.monotonic() - entry.stored_at >= self._cache_ttl_seconds:
            return None
        return list(entry.articles)

    async def _fetch_latest(self) -> list[NewsArticle]:
        url = f"{self._base_url}{NEWS_ENDPOINT}"
        headers = {"Content-Type": "application/json"}
        if self._auth_token:
            headers["Authorization"] = self._auth_token

        for attempt in range(2):
            try:
                response = await self._http_client.get(
                    url, headers=headers, timeout=self._timeout_seconds
                )
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                if attempt == 1:
                    raise NewsError("News service timed out. Try again.") from exc
                await asyncio.sleep(0.5)
                continue
            return _parse_news_response(response)

        raise NewsError("News request failed unexpectedly.")


def _parse_news_response(response: httpx.Response) -> list[NewsArticle]:
    if response.status_code != 200:
        raise NewsError(
            f"News API returned status {response.status_code}.",
            status_code=response.status_code,
        )

    try:
        payload = response.json()
    except ValueError as exc:
        raise NewsError("News service returned invalid JSON.") from exc

    if not isinstance(payload, dict):
        raise NewsError("News service returned an invalid response format.")

    if payload.get("code") != 0:
        detail = payload.get("msg") or "Unknown error"
        raise NewsError(f"News API error: {detail}", status_code=response.status_code)

    data = payload.get("data")
    infos = data.get("infos") if isinstance(data, dict) else None
    if not isinstance(infos, list):
        return []

    articles: list[NewsArticle] = []
    for item in infos:
        article = _parse_article(item)
        if article is not None:
            articles.append(article)
    return articles


def _parse_article(item: Any) -> NewsArticle | None:
    if not isinstance(item, dict):
        return None
    title = item.get("title")
    if not isinstance(title, str) or not title.strip():
        return None
    card_text = item.get("card_text")
    url = item.get("url")
    return NewsArticle(
        title=title.strip(),
        card_text=card_text.strip() if isinstance(card_text, str) else "",
        url=url.strip() if isinstance(url, str) else "",
    )


def extract_trending_topics(
    articles: list[NewsArticle], *, limit: int = 10
) -> list[TrendingTopic]:
    counts: Counter[str] = Counter()
    for article in articles:
        cleaned = _NON_WORD_RE.sub("", article.title.lower())
        counts.update(
            word
            for word in cleaned.split()
            if len(word) > 3 and word not in STOP_WORDS
        )

    return [
        TrendingTopic(keyword=keyword, count=count)
        for keyword, count in counts.most_common(limit)
    ]


def format_news_for_display(articles: list[NewsArticle], limit: int = 5) -> str:
    if not articles:
        return "📰 No news found for your query."

    shown = articles[:limit]
    lines = [f"📰 **Latest News** ({len(shown)} of {len(articles)} articles)", ""]
    for index, article in enumerate(shown, start=1):
        lines.append(f"{index}. **{article.title}**")
        if article.card_text:
            lines.append(f"   {article.card_text}")
        if article.url:
            lines.append(f"   [Read more]({article.url})")
        lines.append("")

    if len(articles) > limit:
        lines.append(f"... and {len(articles) - limit} more articles available.")

    return "\n".join(lines).strip()


def format_trending_topics(topics: list[TrendingTopic]) -> str:
    if not topics:
        return "🔥 No trending topics right now."

    lines = ["🔥 **Trending Topics in Crypto & Blockchain:**", ""]
    for index, topic in enumerate(topics, start=1):
        lines.append(f"{index}. **{topic.keyword}** ({topic.count} mentions)")
    return "\n".join(lines)
