"""
Lexicon scoring and the consumer sentiment adapter.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import threading
import time
from datetime import datetime, timedelta

import pytest

from agents.classifier import IndustryCategory
from agents.errors import AdapterUnavailable, ProviderFailure
from agents.providers import Deadline
from agents.sentiment import (
    ConsumerSentimentAgent, NewsApiProvider, RedditProvider, TwitterProvider,
    combine_signals, daily_trend, extract_keywords, make_signal,
    score_text, sentiment_label, trending_topics, weekly_trend,
)
from models.schemas import Engagement, Provenance


def _signal(text, platform="Reddit", likes=0, when=datetime(2024, 6, 1, 9, 0)):
    return make_signal(
        text=text,
        keyword="coffee",
        platform=platform,
        timestamp=when,
        engagement=Engagement(likes=likes),
    )


class StaticProvider:
    def __init__(self, name, signals=None, error=None):
        self.name = name
        self.signals = signals or []
        self.error = error

    def fetch(self, industry, location, timeframe, category, deadline=None):
        if self.error is not None:
            raise self.error
        return list(self.signals)


class StalledProvider(StaticProvider):
    """Blocks until `gate` is set, like a provider whose socket never answers."""

    def __init__(self, name, gate, signals=None):
        super().__init__(name, signals)
        self.gate = gate

    def fetch(self, industry, location, timeframe, category, deadline=None):
        self.gate.wait(5)
        return list(self.signals)


# ─── Lexicon ─────────────────────────────────────────────────────────────────

class TestLexicon:
    def test_positive_text(self):
        label, score, confidence = score_text("Love this amazing place")
        assert label == "POSITIVE"
        assert score == 1.0
        assert confidence == pytest.approx(0.2)

    def test_balanced_text_is_neutral(self):
        label, score, confidence = score_text("great coffee but slow service")
        assert label == "NEUTRAL"
        assert score == 0.0
        assert confidence == pytest.approx(0.2)

    def test_no_lexicon_words(self):
        assert score_text("opening hours on weekdays") == ("NEUTRAL", 0.0, 0.5)

    def test_empty_text(self):
        assert score_text("") == ("NEUTRAL", 0.0, 0.5)

    def test_confidence_caps_at_one(self):
        text = " ".join(["great"] * 12)
        assert score_text(text)[2] == 1.0

    def test_punctuation_is_a_separator(self):
        label, score, _ = score_text("terrible!!! awful... worst,")
        assert label == "NEGATIVE"
        assert score == -1.0

    @pytest.mark.parametrize("score,expected", [
        (0.1, "NEUTRAL"), (0.1000001, "POSITIVE"), (0.11, "POSITIVE"),
        (-0.1, "NEUTRAL"), (-0.1000001, "NEGATIVE"), (-0.11, "NEGATIVE"),
    ])
    def test_label_thresholds(self, score, expected):
        assert sentiment_label(score) == expected

    def test_keywords_drop_short_and_stop_words(self):
        assert extract_keywords("the best espresso with oat milk") == ["best", "espresso", "milk"]


# ─── Combination ─────────────────────────────────────────────────────────────

class TestCombineSignals:
    def test_volume_weighted_mean_sets_label(self):
        signals = [_signal("love it"), _signal("hate it"), _signal("great place")]
        analysis = combine_signals("coffee shop", "Austin", signals)
        assert analysis.overall_sentiment == "POSITIVE"
        assert analysis.sentiment_score == 0.33
        assert analysis.total_mentions == 3

    def test_platform_breakdown(self):
        signals = [_signal("love it", "Twitter"), _signal("awful", "News"), _signal("terrible", "News")]
        analysis = combine_signals("coffee shop", "Austin", signals)
        assert set(analysis.platform_breakdown) == {"Twitter", "News"}
        assert analysis.platform_breakdown["News"].sentiment == "NEGATIVE"
        assert analysis.platform_breakdown["News"].volume == 2

    def test_top_mentions_sorted_by_likes(self):
        signals = [_signal("a", likes=3), _signal("b", likes=40), _signal("c", likes=12)]
        analysis = combine_signals("coffee shop", "Austin", signals)
        assert [s.likes for s in analysis.top_mentions] == [40, 12, 3]
        assert "2 high-engagement mentions found" in analysis.key_insights

    def test_trending_topics_by_frequency(self):
        signals = [_signal("espresso tonic"), _signal("espresso martini"), _signal("matcha latte")]
        assert trending_topics(signals)[0] == "espresso"

    def test_daily_trend_groups_by_date(self):
        signals = [
            _signal("love", when=datetime(2024, 6, 1, 8)),
            _signal("hate", when=datetime(2024, 6, 2, 8)),
            _signal("great", when=datetime(2024, 6, 2, 9)),
        ]
        trend = daily_trend(signals)
        assert [d["date"] for d in trend] == ["2024-06-01", "2024-06-02"]
        assert trend[1]["volume"] == 2

    def test_weekly_trend_keeps_last_four_iso_weeks(self):
        start = datetime(2024, 5, 1, 9)
        signals = [_signal("love", when=start + timedelta(weeks=k)) for k in range(6)]
        signals.append(_signal("awful", when=start + timedelta(weeks=5, days=1)))
        trend = weekly_trend(signals)
        assert [w["week"] for w in trend] == ["2024-W20", "2024-W21", "2024-W22", "2024-W23"]
        assert trend[-1] == {"week": "2024-W23", "score": 0.0, "volume": 2}

    def test_weekly_trend_orders_across_new_year(self):
        signals = [_signal("love", when=datetime(2025, 1, 2)), _signal("love", when=datetime(2024, 12, 20))]
        assert [w["week"] for w in weekly_trend(signals)] == ["2024-W51", "2025-W01"]

    def test_analysis_carries_weekly_trend(self):
        analysis = combine_signals("coffee shop", "Austin", [_signal("love it")])
        assert analysis.weekly_trend == [{"week": "2024-W22", "score": 1.0, "volume": 1}]
        assert analysis.to_dict()["weekly_trend"] == analysis.weekly_trend


# ─── Providers ───────────────────────────────────────────────────────────────

class TestProviders:
    def test_twitter_requires_token(self, test_settings, http):
        provider = TwitterProvider(test_settings, http)
        with pytest.raises(AdapterUnavailable):
            provider.fetch("coffee shop", "Austin", "7d", IndustryCategory.COFFEE_SHOP)
        assert http.calls == []

    def test_twitter_parses_tweets(self, test_settings, http):
        settings = test_settings.model_copy(update={"TWITTER_BEARER_TOKEN": "token"})
        http.add("GET", "tweets/search/recent", {
            "data": [{
                "id": "1", "text": "<b>Amazing</b> espresso downtown", "author_id": "u1",
                "created_at": "2024-06-01T10:00:00Z",
                "public_metrics": {"like_count": 15, "retweet_count": 2, "reply_count": 1},
            }],
            "includes": {"users": [{"id": "u1", "username": "beanlover"}]},
        })
        signals = TwitterProvider(settings, http).fetch("coffee shop", None, "7d", IndustryCategory.COFFEE_SHOP)
        assert len(signals) == 1
        assert signals[0].text == "Amazing espresso downtown"
        assert signals[0].author == "beanlover"
        assert signals[0].likes == 15
        assert signals[0].sentiment == "POSITIVE"

    def test_reddit_skips_failing_subreddits(self, test_settings, http):
        http.add("GET", "/Coffee/search.json", {
            "data": {"children": [
                {"data": {"title": "Best latte in town", "selftext": "", "ups": 20,
                          "num_comments": 4, "created_utc": 1717236000}},
            ]},
        })
        signals = RedditProvider(test_settings, http).fetch(
            "coffee shop", None, "7d", IndustryCategory.COFFEE_SHOP
        )
        assert len(signals) == 1
        assert signals[0].platform == "Reddit"
        # one call per subreddit even though three of four failed
        assert len(http.calls) == 4

    def test_reddit_stops_when_budget_is_spent(self, test_settings, http):
        http.add("GET", "/Coffee/search.json", {"data": {"children": []}})
        signals = RedditProvider(test_settings, http).fetch(
            "coffee shop", None, "7d", IndustryCategory.COFFEE_SHOP, deadline=Deadline(0)
        )
        assert signals == []
        assert http.calls == []

    def test_request_timeout_shrinks_to_remaining_budget(self, test_settings, http):
        http.add("GET", "/Coffee/search.json", {"data": {"children": []}})
        RedditProvider(test_settings, http).fetch(
            "coffee shop", None, "7d", IndustryCategory.COFFEE_SHOP, deadline=Deadline(0.5)
        )
        assert all(kwargs["timeout"] <= 0.5 for _, _, kwargs in http.calls)

    def test_malformed_json_is_provider_failure(self, test_settings, http):
        settings = test_settings.model_copy(update={"NEWS_API_KEY": "key"})
        http.add("GET", "newsapi.org", ValueError("not json"))
        with pytest.raises(ProviderFailure):
            NewsApiProvider(settings, http).fetch("coffee shop", None, "7d", IndustryCategory.COFFEE_SHOP)


# ─── Agent ───────────────────────────────────────────────────────────────────

class TestConsumerSentimentAgent:
    def test_no_mentions_gives_synthetic_fallback(self, test_settings):
        agent = ConsumerSentimentAgent(test_settings, providers=[
            StaticProvider("twitter", error=AdapterUnavailable("no token")),
            StaticProvider("reddit", error=ProviderFailure("503")),
        ])
        result = agent.analyze_consumer_sentiment("coffee shop", "Austin")
        assert result.provenance == Provenance.SYNTHETIC
        assert result.data.total_mentions == 0
        assert result.data.overall_sentiment == "NEUTRAL"
        assert result.data.sentiment_score == 0.1

    def test_one_provider_is_enough(self, test_settings):
        agent = ConsumerSentimentAgent(test_settings, providers=[
            StaticProvider("twitter", error=AdapterUnavailable("no token")),
            StaticProvider("reddit", signals=[_signal("love it"), _signal("great coffee")]),
        ])
        result = agent.analyze_consumer_sentiment("coffee shop", "Austin")
        assert result.is_real
        assert result.data.total_mentions == 2
        assert result.data.overall_sentiment == "POSITIVE"

    def test_unexpected_payload_is_isolated(self, test_settings):
        agent = ConsumerSentimentAgent(test_settings, providers=[
            StaticProvider("news", error=KeyError("articles")),
            StaticProvider("reddit", signals=[_signal("awful")]),
        ])
        result = agent.analyze_consumer_sentiment("coffee shop")
        assert result.is_real
        assert result.data.location == "Global"
        assert result.data.overall_sentiment == "NEGATIVE"

    def test_stalled_provider_does_not_discard_the_others(self, test_settings):
        gate = threading.Event()
        settings = test_settings.model_copy(update={"ADAPTER_TIMEOUT": 0.5})
        agent = ConsumerSentimentAgent(settings, providers=[
            StaticProvider("reddit", signals=[_signal("love it"), _signal("great coffee")]),
            StalledProvider("twitter", gate, signals=[_signal("awful")]),
        ])
        started = time.monotonic()
        try:
            result = agent.analyze_consumer_sentiment("coffee shop", "Austin")
        finally:
            gate.set()
        assert time.monotonic() - started < settings.ADAPTER_TIMEOUT
        assert result.is_real
        assert result.data.total_mentions == 2
        assert result.data.overall_sentiment == "POSITIVE"
