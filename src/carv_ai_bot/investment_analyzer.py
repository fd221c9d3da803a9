from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal, Protocol

from carv_ai_bot.news_service import NewsArticle, NewsError

logger = logging.getLogger(__name__)

Sentiment = Literal["positive", "negative", "neutral"]
Action = Literal["BUY", "SELL", "HOLD"]
Confidence = Literal["high", "medium", "low"]

POSITIVE_KEYWORDS: tuple[str, ...] = (
    "bullish", "surge", "rally", "gain", "rise", "up", "positive", "growth",
    "adoption", "partnership", "launch", "success", "profit", "earnings",
    "approval", "greenlight", "breakthrough", "innovation", "upgrade",
    "subida", "ganancia", "crecimiento", "éxito", "beneficio", "aprobación",
    "innovación", "mejora", "alianza", "lanzamiento",
)

NEGATIVE_KEYWORDS: tuple[str, ...] = (
    "bearish", "crash", "drop", "fall", "decline", "down", "negative", "loss",
    "hack", "exploit", "breach", "security", "regulation", "ban",
    "restriction", "failure", "bankruptcy", "scam", "fraud", "investigation",
    "lawsuit", "bajista", "caída", "pérdida", "hackeo", "brecha", "seguridad",
    "regulación", "prohibición", "restricción", "fracaso", "quiebra", "estafa",
    "fraude", "investigación", "demanda",
)

ASSET_KEYWORDS: dict[str, tuple[str, ...]] = {
    "bitcoin": ("bitcoin", "btc", "satoshi"),
    "ethereum": ("ethereum", "eth", "ether"),
    "solana": ("solana", "sol"),
    "cardano": ("cardano", "ada"),
    "polkadot": ("polkadot", "dot"),
    "chainlink": ("chainlink", "link"),
    "uniswap": ("uniswap", "uni"),
    "aave": ("aave",),
    "defi": ("defi", "decentralized finance", "yield farming"),
    "nft": ("nft", "non-fungible", "digital art"),
}

TIMEFRAME_KEYWORDS: dict[str, tuple[str, ...]] = {
    "short": ("short", "immediate", "urgent"),
    "medium": ("medium", "weeks", "months"),
    "long": ("long", "years", "future"),
}

MIN_ASSET_MENTIONS = 2
MAX_RECOMMENDATIONS = 5

DISCLAIMER = (
    "This analysis is based on recent news sentiment and should not be "
    "considered as financial advice. Always do your own research and consider "
    "consulting with a financial advisor before making investment decisions."
)

_ACTION_FOR_SENTIMENT: dict[Sentiment, Action] = {
    "positive": "BUY",
    "negative": "SELL",
    "neutral": "HOLD",
}
_SENTIMENT_EMOJI: dict[str, str] = {
    "positive": "🟢",
    "negative": "🔴",
    "neutral": "🟡",
    "BUY": "🟢",
    "SELL": "🔴",
    "HOLD": "🟡",
}
_CONFIDENCE_EMOJI: dict[Confidence, str] = {
    "high": "🔥",
    "medium": "⚡",
    "low": "💡",
}


class NewsSource(Protocol):
    async def get_latest_news(self) -> list[NewsArticle]: ...

    async def get_news_by_category(self, category: str) -> list[NewsArticle]: ...


@dataclass
class SentimentCounts:
    positive: int = 0
    negative: int = 0
    neutral: int = 0

    def add(self, sentiment: Sentiment) -> None:
        setattr(self, sentiment, getattr(self, sentiment) + 1)


@dataclass
class AssetSentiment(SentimentCounts):
    mentions: int = 0


@dataclass
class SentimentAnalysis:
    overall: SentimentCounts = field(default_factory=SentimentCounts)
    assets: dict[str, AssetSentiment] = field(default_factory=dict)
    timeframes: dict[str, SentimentCounts] = field(
        default_factory=lambda: {name: SentimentCounts() for name in TIMEFRAME_KEYWORDS}
    )


@dataclass(frozen=True)
class Recommendation:
    kind: Literal["market", "asset"]
    asset: str
    action: Action
    reasoning: str
    confidence: Confidence
    timeframe: str
    mentions: int | None = None


def calculate_sentiment(text: str) -> Sentiment:
    lowered = text.lower()
    positive = sum(lowered.count(keyword) for keyword in POSITIVE_KEYWORDS)
    negative = sum(lowered.count(keyword) for keyword in NEGATIVE_KEYWORDS)

    if positive > negative:
        return "positive"
    if negative > positive:
        return "negative"
    return "neutral"


def identify_assets(text: str) -> list[str]:
    lowered = text.lower()
    return [
        asset
        for asset, keywords in ASSET_KEYWORDS.items()
        if any(keyword in lowered for keyword in keywords)
    ]


def analyze_news_sentiment(articles: list[NewsArticle]) -> SentimentAnalysis:
    analysis = SentimentAnalysis()

    for article in articles:
        text = article.searchable_text
        sentiment = calculate_sentiment(text)
        analysis.overall.add(sentiment)

        for asset in identify_assets(text):
            asset_counts = analysis.assets.setdefault(asset, AssetSentiment())
            asset_counts.add(sentiment)
            asset_counts.mentions += 1

        for timeframe, keywords in TIMEFRAME_KEYWORDS.items():
            if any(keyword in text for keyword in keywords):
                analysis.timeframes[timeframe].add(sentiment)

    return analysis


def dominant_sentiment(counts: SentimentCounts) -> Sentiment:
    if counts.positive > counts.negative and counts.positive > counts.neutral:
        return "positive"
    if counts.negative > counts.positive and counts.negative > counts.neutral:
        return "negative"
    return "neutral"


def market_recommendation(sentiment: Sentiment) -> Recommendation:
    if sentiment == "positive":
        return Recommendation(
            kind="market",
            asset="Overall Market",
            action="BUY",
            reasoning=(
                "Overall market sentiment is positive. Consider increasing "
                "exposure to crypto assets."
            ),
            confidence="medium",
            timeframe="short to medium term",
        )
    if sentiment == "negative":
        return Recommendation(
            kind="market",
            asset="Overall Market",
            action="SELL",
            reasoning=(
                "Overall market sentiment is negative. Consider reducing "
                "exposure or hedging positions."
            ),
            confidence="medium",
            timeframe="short term",
        )
    return Recommendation(
        kind="market",
        asset="Overall Market",
        action="HOLD",
        reasoning=(
            "Market sentiment is mixed. Maintain current positions and monitor "
            "for clearer signals."
        ),
        confidence="low",
        timeframe="short term",
    )


def asset_recommendation(
    asset: str, sentiment: Sentiment, mentions: int
) -> Recommendation:
    if mentions >= 5:
        confidence: Confidence = "high"
    elif mentions >= 3:
        confidence = "medium"
    else:
        confidence = "low"

    if sentiment == "positive":
        reasoning = (
            f"Recent news about {asset} is predominantly positive. "
            "Consider accumulating positions."
        )
        timeframe = "short to medium term"
    elif sentiment == "negative":
        reasoning = (
            f"Recent news about {asset} is predominantly negative. "
            "Consider reducing exposure."
        )
        timeframe = "short term"
    else:
        reasoning = (
            f"News about {asset} is mixed. Monitor for clearer signals before "
            "making changes."
        )
        timeframe = "short term"

    return Recommendation(
        kind="asset",
        asset=asset.upper(),
        action=_ACTION_FOR_SENTIMENT[sentiment],
        reasoning=reasoning,
        confidence=confidence,
        timeframe=timeframe,
        mentions=mentions,
    )


def generate_recommendations(analysis: SentimentAnalysis) -> list[Recommendation]:
    asset_recommendations = [
        asset_recommendation(asset, dominant_sentiment(counts), counts.mentions)
        for asset, counts in analysis.assets.items()
        if counts.mentions >= MIN_ASSET_MENTIONS
    ]
    asset_recommendations.sort(key=lambda item: item.mentions or 0, reverse=True)

    market = market_recommendation(dominant_sentiment(analysis.overall))
    return [market, *asset_recommendations][:MAX_RECOMMENDATIONS]


def format_investment_response(
    analysis: SentimentAnalysis, recommendations: list[Recommendation]
) -> str:
    overall = dominant_sentiment(analysis.overall)
    lines = [
        "📊 **Investment Analysis & Recommendations**",
        "",
        "🌍 **Market Overview:**",
        f"Overall sentiment: {overall.upper()}",
        f"Positive news: {analysis.overall.positive}",
        f"Negative news: {analysis.overall.negative}",
        f"Neutral news: {analysis.overall.neutral}",
        "",
    ]

    if analysis.assets:
        lines.append("📈 **Asset Analysis:**")
        ranked = sorted(
            analysis.assets.items(), key=lambda item: item[1].mentions, reverse=True
        )
        for asset, counts in ranked[:5]:
            sentiment = dominant_sentiment(counts)
            lines.append(
                f"{_SENTIMENT_EMOJI[sentiment]} {asset.upper()}: {sentiment} "
                f"({counts.mentions} mentions)"
            )
        lines.append("")

    lines.extend(["💡 **Recommendations:**", ""])
    for index, recommendation in enumerate(recommendations, start=1):
        lines.append(
            f"{index}. {_SENTIMENT_EMOJI[recommendation.action]} "
            f"**{recommendation.action} {recommendation.asset}** "
            f"{_CONFIDENCE_EMOJI[recommendation.confidence]}"
        )
        lines.append(f"   {recommendation.reasoning}")
        lines.append(f"   Timeframe: {recommendation.timeframe}")
        if recommendation.mentions:
            lines.append(f"   Based on {recommendation.mentions} recent mentions")
        lines.append("")

    lines.extend(["⚠️ **Disclaimer:**", DISCLAIMER])
    return "\n".join(lines)


def format_asset_recommendation(
    recommendation: Recommendation, counts: SentimentCounts | None
) -> str:
    lines = [
        f"📊 **{recommendation.asset} Investment Analysis**",
        "",
        f"{_SENTIMENT_EMOJI[recommendation.action]} "
        f"**Recommendation: {recommendation.action}** "
        f"{_CONFIDENCE_EMOJI[recommendation.confidence]}",
        "",
        "**Reasoning:**",
        recommendation.reasoning,
        "",
        f"**Timeframe:** {recommendation.timeframe}",
        f"**Confidence:** {recommendation.confidence.upper()}",
        f"**Based on:** {recommendation.mentions} recent news mentions",
        "",
    ]

    if counts is not None:
        lines.extend(
            [
                "**Sentiment Breakdown:**",
                f"🟢 Positive: {counts.positive}",
                f"🔴 Negative: {counts.negative}",
                f"🟡 Neutral: {counts.neutral}",
                "",
            ]
        )

    lines.append(
        "⚠️ **Disclaimer:** This analysis is based on news sentiment and should "
        "not be considered as financial advice. Always do your own research."
    )
    return "\n".join(lines)


class InvestmentAnalyzer:
    def __init__(self, *, news_source: NewsSource) -> None:
        self._news_source = news_source

    async def analyze_investment_opportunities(self) -> str:
        articles = await self._news_source.get_latest_news()
        analysis = analyze_news_sentiment(articles)
        recommendations = generate_recommendations(analysis)
        logger.info(
            "investment_analysis_completed assets=%d recommendations=%d",
            len(analysis.assets),
            len(recommendations),
        )
        return format_investment_response(analysis, recommendations)

    async def get_asset_recommendation(self, asset: str) -> str:
        normalized = asset.strip().lower()
        label = normalized.upper()
        try:
            articles = await self._news_source.get_news_by_category(normalized)
        except NewsError as exc:
            logger.warning(
                "asset_analysis_failed asset=%s detail=%s", normalized, exc
            )
            return (
                f"📊 **{label} Analysis:**\n\n"
                f"Unable to analyze {label} at this time. Please try again later."
            )

        analysis = analyze_news_sentiment(articles)
        counts = analysis.assets.get(normalized)
        if counts is None or counts.mentions < MIN_ASSET_MENTIONS:
            return (
                f"📊 **{label} Analysis:**\n\n"
                f"Not enough recent news data for {label}. Consider checking back "
                "later for updated analysis."
            )

        recommendation = asset_recommendation(
            normalized, dominant_sentiment(counts), counts.mentions
        )
        return format_asset_recommendation(recommendation, counts)
