"""News aggregation and sentiment analysis.

Modules:
    parse: RSS/Atom parsing and text helpers
    pull: Feed retrieval with failure isolation
    score: Lexicon-based sentiment scoring
    sources: Feed source registry
    aggregator: Multi-source fetch, cache, throttle and merge
    digest: Per-category sentiment digest
"""

from marketnews.news.aggregator import NewsAggregator, generate_news_id
from marketnews.news.errors import (
    EntryProcessingError,
    FeedFormatError,
    FetchTimeoutError,
    InvalidFeedError,
    NetworkError,
    NewsError,
    SourceConfigError,
)
from marketnews.news.models import (
    FeedSource,
    NewsCategory,
    NewsFilter,
    NewsItem,
    ParsedFeed,
    RawFeedEntry,
    SentimentClass,
    SentimentResult,
    TimeRange,
)
from marketnews.news.parse import extract_keywords, extract_symbols, parse_feed
from marketnews.news.pull import fetch_and_parse
from marketnews.news.score import (
    SentimentAnalyzer,
    analyze_advanced_sentiment,
    analyze_aggregate_sentiment,
    analyze_crypto_sentiment,
    analyze_sentiment,
)
from marketnews.news.sources import ALL_NEWS_SOURCES, get_active_sources, load_sources

__all__ = [
    "NewsAggregator",
    "generate_news_id",
    "NewsError",
    "FeedFormatError",
    "InvalidFeedError",
    "NetworkError",
    "FetchTimeoutError",
    "EntryProcessingError",
    "SourceConfigError",
    "FeedSource",
    "NewsCategory",
    "NewsFilter",
    "NewsItem",
    "ParsedFeed",
    "RawFeedEntry",
    "SentimentClass",
    "SentimentResult",
    "TimeRange",
    "parse_feed",
    "extract_symbols",
    "extract_keywords",
    "fetch_and_parse",
    "SentimentAnalyzer",
    "analyze_sentiment",
    "analyze_advanced_sentiment",
    "analyze_crypto_sentiment",
    "analyze_aggregate_sentiment",
    "ALL_NEWS_SOURCES",
    "get_active_sources",
    "load_sources",
]
