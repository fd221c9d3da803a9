from __future__ import annotations

import httpx
import pytest

from carv_ai_bot.news_service import (
    NewsArticle,
    NewsError,
    NewsService,
    TrendingTopic,
    extract_trending_topics,
    format_news_for_display,
    format_trending_topics,
)

INFOS = [
    {
        "title": "Bitcoin rally lifts market",
        "card_text": "BTC climbs as ETF inflows grow.",
        "url": "https://news.example.com/1",
    },
    {
        "title": "Ethereum upgrade scheduled",
        "card_text": "Developers confirm the next hard fork.",
        "url": "https://news.example.com/2",
    },
    {
        "title": "Regulators probe exchange",
        "card_text": "The SEC opened an investigation.",
        "url": "https://news.example.com/3",
    },
]


def _ok(infos: list[dict[str, str]] = INFOS) -> httpx.Response:
    return httpx.Response(200, json={"code": 0, "data": {"infos": infos}})


def _service(
    transport: httpx.MockTransport, *, auth_token: str | None = None, ttl: int = 300
) -> NewsService:
    return NewsService(
        http_client=httpx.AsyncClient(transport=transport),
        base_url="https://interface.carv.io",
        auth_token=auth_token,
        cache_ttl_seconds=ttl,
    )


@pytest.mark.anyio
async def test_latest_news_parses_and_sends_auth() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/ai-agent-backend/news"
        assert request.headers["Authorization"] == "carv-token"
        return _ok()

    service = _service(httpx.MockTransport(handler), auth_token="carv-token")
    articles = await service.get_latest_news()

    assert [article.title for article in articles] == [
        "Bitcoin rally lifts market",
        "Ethereum upgrade scheduled",
        "Regulators probe exchange",
    ]
    assert articles[0].url == "https://news.example.com/1"


@pytest.mark.anyio
async def test_latest_news_is_cached() -> None:
    calls = 0

    def handler(_: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return _ok()

    service = _service(httpx.MockTransport(handler))
    await service.get_latest_news()
    await service.get_news_by_category("bitcoin")
    await service.get_trending_topics()

    assert calls == 1
    stats = service.get_cache_stats()
    assert stats.size == 1
    assert stats.entries == ("latest_news",)

    service.clear_cache()
    await service.get_latest_news()
    assert calls == 2


@pytest.mark.anyio
async def test_expired_cache_served_when_api_fails(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    now = 1000.0
    monkeypatch.setattr("carv_ai_bot.news_service.time.monotonic", lambda: now)
    responses = [_ok(), httpx.Response(200, json={"code": 1, "msg": "quota"})]

    def handler(_: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    service = _service(httpx.MockTransport(handler), ttl=60)
    first = await service.get_latest_news()

    now = 1100.0
    second = await service.get_latest_news()

    assert second == first
    assert responses == []


@pytest.mark.anyio
async def test_api_error_without_cache_raises() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    service = _service(httpx.MockTransport(handler))

    with pytest.raises(NewsError) as exc:
        await service.get_latest_news()

    assert exc.value.status_code == 500


@pytest.mark.anyio
async def test_search_matches_any_term_case_insensitive() -> None:
    service = _service(httpx.MockTransport(lambda _: _ok()))

    results = await service.search_news("HARD fork")
    everything = await service.search_news("   ")

    assert [article.title for article in results] == ["Ethereum upgrade scheduled"]
    assert len(everything) == 3


@pytest.mark.anyio
async def test_category_filters_by_keyword_table() -> None:
    service = _service(httpx.MockTransport(lambda _: _ok()))

    regulation = await service.get_news_by_category("Regulation")
    unknown = await service.get_news_by_category("exchange")

    assert [article.title for article in regulation] == ["Regulators probe exchange"]
    assert [article.title for article in unknown] == ["Regulators probe exchange"]


def test_trending_topics_skip_short_and_stop_words() -> None:
    articles = [
        NewsArticle(title="Bitcoin ETF approval: what next?", card_text="", url=""),
        NewsArticle(title="Bitcoin miners and the halving", card_text="", url=""),
        NewsArticle(title="Halving hype these days", card_text="", url=""),
    ]

    topics = extract_trending_topics(articles, limit=3)

    assert topics == [
        TrendingTopic(keyword="bitcoin", count=2),
        TrendingTopic(keyword="halving", count=2),
        TrendingTopic(keyword="approval", count=1),
    ]


def test_format_news_for_display_limits_articles() -> None:
    articles = [
        NewsArticle(title=f"Story {index}", card_text="text", url=f"https://x/{index}")
        for index in range(7)
    ]

    out = format_news_for_display(articles, limit=5)

    assert out.startswith("📰 **Latest News** (5 of 7 articles)")
    assert "5. **Story 4**" in out
    assert "Story 5" not in out
    assert out.endswith("... and 2 more articles available.")


def test_format_news_for_display_empty() -> None:
    assert format_news_for_display([]) == "📰 No news found for your query."


def test_format_trending_topics() -> None:
    out = format_trending_topics([TrendingTopic(keyword="bitcoin", count=3)])

    assert "1. **bitcoin** (3 mentions)" in out
