"""
Consumer Sentiment Agent
------------------------
Collects public mentions of an industry from social and news providers and
scores them with a fixed word-list lexicon.

Providers (queried in parallel, each isolated):
  - Twitter recent search   (bearer token)
  - Reddit subreddit search (keyless)
  - NewsAPI everything      (API key)

Scoring:
  score = (pos - neg) / (pos + neg), confidence = min((pos + neg) / 10, 1)
  label: score > 0.10 POSITIVE, score < -0.10 NEGATIVE, otherwise NEUTRAL

Architecture:
  ConsumerSentimentAgent.run(MarketQuery) -> SourceResult[SentimentAnalysis]
"""

import logging
import re
from collections import Counter, defaultdict
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import numpy as np
import requests

from agents.base import Agent
from agents.classifier import IndustryCategory, classify_industry
from agents.errors import MarketDataError
from agents.providers import BaseProvider, Deadline, provider_budget, strip_html
from config.settings import Settings, settings as default_settings
from models.schemas import (
    NEGATIVE, NEUTRAL, POSITIVE,
    Engagement, MarketQuery, MarketSignal, PlatformSentiment,
    SentimentAnalysis, SourceResult,
)

logger = logging.getLogger(__name__)


# ─── Lexicon ────────────────────────────────────────────────────────────────

POSITIVE_WORDS = frozenset([
    "good", "great", "excellent", "amazing", "love", "best", "awesome",
    "fantastic", "wonderful", "perfect", "outstanding", "brilliant", "superb",
    "delicious", "recommend", "satisfied", "happy", "pleased", "impressed",
])

NEGATIVE_WORDS = frozenset([
    "bad", "terrible", "awful", "hate", "worst", "horrible", "disgusting",
    "disappointed", "unsatisfied", "poor", "cheap", "expensive", "overpriced",
    "slow", "rude", "dirty", "crowded", "noisy", "cold",
])

STOP_WORDS = frozenset([
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "is", "are", "was", "were", "be", "been", "have", "has",
    "had", "do", "does", "did", "will", "would", "could", "should",
])

_TOKEN_SPLIT = re.compile(r"\W+", re.ASCII)


def tokenize(text: str) -> List[str]:
    return _TOKEN_SPLIT.split(text.lower())


def sentiment_label(score: float) -> str:
    if score > 0.1:
        return POSITIVE
    if score < -0.1:
        return NEGATIVE
    return NEUTRAL


def score_text(text: Optional[str]) -> Tuple[str, float, float]:
    """Return (label, score, confidence) for one piece of text."""
    if not text:
        return NEUTRAL, 0.0, 0.5
    pos = neg = 0
    for word in tokenize(text):
        if word in POSITIVE_WORDS:
            pos += 1
        if word in NEGATIVE_WORDS:
            neg += 1
    total = pos + neg
    if total == 0:
        return NEUTRAL, 0.0, 0.5
    score = (pos - neg) / total
    return sentiment_label(score), score, min(total / 10, 1.0)


def extract_keywords(text: str) -> List[str]:
    return [w for w in tokenize(text) if len(w) > 3 and w not in STOP_WORDS][:3]


def make_signal(
    text: str,
    keyword: str,
    platform: str,
    timestamp: datetime,
    scored_text: Optional[str] = None,
    author: Optional[str] = None,
    engagement: Optional[Engagement] = None,
) -> MarketSignal:
    label, score, confidence = score_text(scored_text if scored_text is not None else text)
    return MarketSignal(
        keyword=keyword,
        platform=platform,
        sentiment=label,
        score=score,
        confidence=confidence,
        volume=1,
        text=text,
        timestamp=timestamp,
        author=author,
        engagement=engagement,
    )


def _parse_timestamp(value) -> datetime:
    """Normalize provider timestamps to naive UTC."""
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        if parsed.tzinfo:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    except (TypeError, ValueError, OverflowError, OSError):
        return datetime.utcnow()


def timeframe_days(timeframe: str) -> int:
    return {"1d": 1, "7d": 7}.get(timeframe, 30)


# ─── Category Keyword Maps ──────────────────────────────────────────────────

SEARCH_KEYWORDS: Dict[IndustryCategory, List[str]] = {
    IndustryCategory.RESTAURANT: ["restaurant", "dining", "food service", "eating out", "restaurant review"],
    IndustryCategory.COFFEE_SHOP: ["coffee shop", "cafe", "coffee", "espresso", "latte", "coffee experience"],
    IndustryCategory.RETAIL: ["retail", "shopping", "store", "customer service", "buying experience"],
    IndustryCategory.TECHNOLOGY: ["tech startup", "software", "app", "digital service", "tech product"],
    IndustryCategory.FITNESS: ["gym", "fitness", "workout", "exercise", "health club", "personal trainer"],
    IndustryCategory.HEALTHCARE: ["healthcare", "medical service", "doctor", "clinic", "health"],
    IndustryCategory.EDUCATION: ["education", "learning", "school", "training", "course"],
}

SUBREDDITS: Dict[IndustryCategory, List[str]] = {
    IndustryCategory.RESTAURANT: ["restaurant", "food", "dining", "KitchenConfidential", "FoodService"],
    IndustryCategory.COFFEE_SHOP: ["Coffee", "espresso", "cafe", "barista"],
    IndustryCategory.RETAIL: ["retail", "CustomerService", "shopping"],
    IndustryCategory.TECHNOLOGY: ["technology", "startups", "programming", "SaaS"],
    IndustryCategory.FITNESS: ["fitness", "gym", "workout", "exercise"],
    IndustryCategory.HEALTHCARE: ["healthcare", "medicine", "medical"],
    IndustryCategory.EDUCATION: ["education", "teaching", "learning"],
}
DEFAULT_SUBREDDITS = ["business", "entrepreneur", "smallbusiness"]


def search_keywords(industry: str, category: IndustryCategory) -> List[str]:
    return SEARCH_KEYWORDS.get(category, [industry, f"{industry} business", f"{industry} service"])


# ─── Providers ──────────────────────────────────────────────────────────────


class TwitterProvider(BaseProvider):
    name = "twitter"

    def build_query(self, industry: str, location: Optional[str], category: IndustryCategory) -> str:
        query = " OR ".join(search_keywords(industry, category))
        if location:
            query += f" ({location})"
        return query + " -is:retweet -is:reply"

    def fetch(self, industry: str, location: Optional[str], timeframe: str,
              category: IndustryCategory, deadline: Optional[Deadline] = None) -> List[MarketSignal]:
        token = self._require(self.settings.TWITTER_BEARER_TOKEN, "TWITTER_BEARER_TOKEN")
        payload = self._get(
            f"{self.settings.TWITTER_BASE}/tweets/search/recent",
            deadline=deadline,
            params={
                "query": self.build_query(industry, location, category),
                "max_results": 100,
                "tweet.fields": "created_at,public_metrics,author_id",
                "expansions": "author_id",
                "user.fields": "username",
            },
            headers={"Authorization": f"Bearer {token}"},
        )
        tweets = payload.get("data") or []
        users = {u.get("id"): u for u in (payload.get("includes") or {}).get("users", [])}

        signals = []
        for tweet in tweets:
            text = strip_html(tweet.get("text"))
            metrics = tweet.get("public_metrics") or {}
            signals.append(make_signal(
                text=text,
                keyword=(extract_keywords(text) or ["general"])[0],
                platform="Twitter",
                timestamp=_parse_timestamp(tweet.get("created_at")),
                author=(users.get(tweet.get("author_id")) or {}).get("username"),
                engagement=Engagement(
                    likes=metrics.get("like_count", 0),
                    shares=metrics.get("retweet_count", 0),
                    comments=metrics.get("reply_count", 0),
                ),
            ))
        return signals


class RedditProvider(BaseProvider):
    name = "reddit"
    MAX_POSTS = 50

    def fetch(self, industry: str, location: Optional[str], timeframe: str,
              category: IndustryCategory, deadline: Optional[Deadline] = None) -> List[MarketSignal]:
        window = {"1d": "day", "7d": "week"}.get(timeframe, "month")
        signals: List[MarketSignal] = []

        for subreddit in SUBREDDITS.get(category, DEFAULT_SUBREDDITS):
            if deadline is not None and deadline.expired:
                logger.warning(f"⏱️ Reddit budget spent, skipping r/{subreddit} onwards")
                break
            try:
                payload = self._get(
                    f"{self.settings.REDDIT_BASE}/{subreddit}/search.json",
                    deadline=deadline,
                    params={"q": industry, "restrict_sr": 1, "sort": "relevance",
                            "t": window, "limit": self.MAX_POSTS},
                )
            except MarketDataError as e:
                logger.debug(f"r/{subreddit} skipped: {e}")
                continue

            for child in (payload.get("data") or {}).get("children", []):
                post = child.get("data") or {}
                title = strip_html(post.get("title"))
                body = strip_html(post.get("selftext"))
                signals.append(make_signal(
                    text=title,
                    scored_text=f"{title} {body}",
                    keyword=industry,
                    platform="Reddit",
                    timestamp=_parse_timestamp(post.get("created_utc")),
                    engagement=Engagement(
                        likes=post.get("ups", 0) or 0,
                        shares=0,
                        comments=post.get("num_comments", 0) or 0,
                    ),
                ))

        return signals[: self.MAX_POSTS]


class NewsApiProvider(BaseProvider):
    name = "newsapi"

    def fetch(self, industry: str, location: Optional[str], timeframe: str,
              category: IndustryCategory, deadline: Optional[Deadline] = None) -> List[MarketSignal]:
        key = self._require(self.settings.NEWS_API_KEY, "NEWS_API_KEY")
        since = (datetime.utcnow() - timedelta(days=timeframe_days(timeframe))).date().isoformat()
        payload = self._get(
            f"{self.settings.NEWS_API_BASE}/everything",
            deadline=deadline,
            params={
                "q": f"{industry} {location}" if location else industry,
                "from": since,
                "sortBy": "publishedAt",
                "pageSize": 50,
                "apiKey": key,
            },
        )

        signals = []
        for article in payload.get("articles") or []:
            title = strip_html(article.get("title"))
            description = strip_html(article.get("description"))
            signals.append(make_signal(
                text=title,
                scored_text=f"{title} {description}",
                keyword=industry,
                platform="News",
                timestamp=_parse_timestamp(article.get("publishedAt")),
                author=(article.get("source") or {}).get("name"),
            ))
        return signals


# ─── Aggregation ────────────────────────────────────────────────────────────


def weighted_score(signals: List[MarketSignal]) -> float:
    scores = np.array([s.score for s in signals], dtype=float)
    volumes = np.array([s.volume for s in signals], dtype=float)
    return float(np.average(scores, weights=volumes))


def platform_breakdown(signals: List[MarketSignal]) -> Dict[str, PlatformSentiment]:
    grouped: Dict[str, List[MarketSignal]] = defaultdict(list)
    for s in signals:
        grouped[s.platform].append(s)

    breakdown = {}
    for platform, items in grouped.items():
        avg = weighted_score(items)
        breakdown[platform] = PlatformSentiment(
            sentiment=sentiment_label(avg),
            score=round(avg, 2),
            volume=sum(i.volume for i in items),
        )
    return breakdown


def trending_topics(signals: List[MarketSignal], limit: int = 5) -> List[str]:
    counts: Counter = Counter()
    for s in signals:
        counts.update(extract_keywords(s.text))
    return [word for word, _ in counts.most_common(limit)]


def key_insights(signals: List[MarketSignal], average: float) -> List[str]:
    insights = []
    if average > 0.3:
        insights.append("Strong positive consumer sentiment detected")
    elif average < -0.3:
        insights.append("Concerning negative sentiment trend identified")
    else:
        insights.append("Mixed consumer sentiment with room for improvement")

    platforms = list(dict.fromkeys(s.platform for s in signals))
    if len(platforms) > 1:
        insights.append(f"Sentiment tracked across {len(platforms)} platforms: {', '.join(platforms)}")

    engaged = sum(1 for s in signals if s.likes > 10)
    if engaged:
        insights.append(f"{engaged} high-engagement mentions found")
    return insights


def daily_trend(signals: List[MarketSignal], days: int = 7) -> List[Dict]:
    grouped: Dict[str, List[MarketSignal]] = defaultdict(list)
    for s in signals:
        grouped[s.timestamp.date().isoformat()].append(s)
    trend = [
        {"date": day, "score": round(weighted_score(items), 2), "volume": len(items)}
        for day, items in sorted(grouped.items())
    ]
    return trend[-days:]


def weekly_trend(signals: List[MarketSignal], weeks: int = 4) -> List[Dict]:
    """ISO-week buckets ("2024-W22"), most recent `weeks` kept."""
    grouped: Dict[str, List[MarketSignal]] = defaultdict(list)
    for s in signals:
        year, week, _ = s.timestamp.isocalendar()
        grouped[f"{year}-W{week:02d}"].append(s)
    trend = [
        {"week": week, "score": round(weighted_score(items), 2), "volume": len(items)}
        for week, items in sorted(grouped.items())
    ]
    return trend[-weeks:]


def sentiment_recommendations(label: str, signals: List[MarketSignal]) -> List[str]:
    if label == POSITIVE:
        recs = ["Leverage positive sentiment in marketing campaigns",
                "Engage with satisfied customers for testimonials"]
    elif label == NEGATIVE:
        recs = ["Address consumer concerns immediately",
                "Implement customer feedback collection system"]
    else:
        recs = ["Work on building stronger brand awareness",
                "Focus on customer experience improvements"]

    twitter_volume = sum(1 for s in signals if s.platform == "Twitter")
    if twitter_volume > 20:
        recs.append("High social media engagement - maintain active presence")
    else:
        recs.append("Increase social media engagement and content strategy")
    return recs


def fallback_sentiment(industry: str, location: str) -> SentimentAnalysis:
    return SentimentAnalysis(
        industry=industry,
        location=location,
        overall_sentiment=NEUTRAL,
        sentiment_score=0.1,
        confidence=0.5,
        total_mentions=0,
        trending_topics=[industry, "customer service", "quality"],
        key_insights=["Social media API access not configured",
                      "Manual sentiment research recommended"],
        recommendations=[
            "Set up social media monitoring tools",
            "Conduct customer surveys for direct feedback",
            "Monitor review sites and local forums",
        ],
    )


def combine_signals(industry: str, location: str, signals: List[MarketSignal]) -> SentimentAnalysis:
    average = weighted_score(signals)
    confidence = float(np.mean([s.confidence for s in signals]))
    label = sentiment_label(average)
    return SentimentAnalysis(
        industry=industry,
        location=location,
        overall_sentiment=label,
        sentiment_score=round(average, 2),
        confidence=round(confidence, 2),
        total_mentions=sum(s.volume for s in signals),
        platform_breakdown=platform_breakdown(signals),
        trending_topics=trending_topics(signals),
        key_insights=key_insights(signals, average),
        daily_trend=daily_trend(signals),
        weekly_trend=weekly_trend(signals),
        top_mentions=sorted(signals, key=lambda s: s.likes, reverse=True)[:10],
        recommendations=sentiment_recommendations(label, signals),
    )


# ─── Agent ──────────────────────────────────────────────────────────────────


class ConsumerSentimentAgent(Agent):
    """
    Adapter for public consumer sentiment about an industry.
    """

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None,
                 providers: Optional[List[BaseProvider]] = None):
        super().__init__("ConsumerSentimentAgent")
        self.settings = settings or default_settings
        self.providers = providers if providers is not None else [
            TwitterProvider(self.settings, session),
            RedditProvider(self.settings, session),
            NewsApiProvider(self.settings, session),
        ]
        self._executor = ThreadPoolExecutor(
            max_workers=max(len(self.providers), 1), thread_name_prefix="sentiment"
        )

    def run(self, query: MarketQuery) -> Optional[SourceResult]:
        return self.analyze_consumer_sentiment(
            query.industry, query.location, query.timeframe, query.category
        )

    def _safe_fetch(self, provider: BaseProvider, *args, deadline: Optional[Deadline] = None) -> List[MarketSignal]:
        try:
            signals = provider.fetch(*args, deadline=deadline)
        except MarketDataError as e:
            self.logger.warning(f"{provider.name} unavailable: {e}")
            return []
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            self.logger.error(f"{provider.name} returned an unexpected payload: {e}")
            return []
        self.logger.info(f"💬 {provider.name}: {len(signals)} mentions")
        return signals

    def collect_signals(self, industry: str, location: Optional[str], timeframe: str,
                        category: IndustryCategory) -> List[MarketSignal]:
        # stays inside ADAPTER_TIMEOUT; providers still running at the deadline are dropped
        deadline = Deadline(provider_budget(self.settings))
        futures = [
            self._executor.submit(self._safe_fetch, p, industry, location, timeframe, category,
                                  deadline=deadline)
            for p in self.providers
        ]
        done, not_done = wait(futures, timeout=deadline.remaining())
        if not_done:
            self.logger.warning(f"⏱️ {len(not_done)} sentiment provider(s) still running after the provider budget")

        signals: List[MarketSignal] = []
        # keep provider order stable
        for future in futures:
            if future in done:
                signals.extend(future.result())
        return signals

    def analyze_consumer_sentiment(
        self,
        industry: str,
        location: Optional[str] = None,
        timeframe: str = "7d",
        category: Optional[IndustryCategory] = None,
    ) -> SourceResult:
        category = category or classify_industry(industry)
        location_label = location or "Global"
        self.logger.info(f"🔍 Analyzing consumer sentiment for {industry} industry")

        signals = self.collect_signals(industry, location, timeframe, category)
        if not signals:
            self.logger.warning("No sentiment data from any provider, using fallback analysis")
            return SourceResult.synthetic(
                fallback_sentiment(industry, location_label),
                "no mentions returned by any sentiment provider",
            )
        return SourceResult.real(combine_signals(industry, location_label, signals))
