"""News data model.

Value types shared by the parser, the sentiment scorer and the aggregator.
Sources, sentiment results and news items are immutable; feed entries and
parsed feeds are transient parser output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class NewsCategory(str, Enum):
    """Fixed source classification."""

    GENERAL_FINANCE = "general_finance"
    CRYPTOCURRENCY = "cryptocurrency"
    STOCKS = "stocks"
    FOREX = "forex"
    COMMODITIES = "commodities"
    ECONOMIC_INDICATORS = "economic_indicators"
    EARNINGS = "earnings"
    MARKET_ANALYSIS = "market_analysis"


class SentimentClass(str, Enum):
    """Market sentiment classification."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class FeedFormat(str, Enum):
    """Detected feed schema."""

    RSS = "rss"
    ATOM = "atom"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FeedSource:
    """One configured feed endpoint."""

    id: str
    name: str
    feed_url: str
    category: NewsCategory
    reliability: float
    update_frequency_minutes: float
    active: bool = True
    homepage_url: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("FeedSource.id must not be empty")
        if not 0.0 <= self.reliability <= 1.0:
            raise ValueError(f"reliability must be in [0, 1], got {self.reliability}")
        if self.update_frequency_minutes < 0:
            raise ValueError("update_frequency_minutes must be >= 0")
        if not isinstance(self.category, NewsCategory):
            object.__setattr__(self, "category", NewsCategory(self.category))


@dataclass(frozen=True)
class FeedEnclosure:
    """Media attached to a feed entry."""

    url: str
    type: str = ""


@dataclass
class RawFeedEntry:
    """Feed entry as found in the document, before enrichment."""

    title: str
    description: str
    link: str
    pub_date: str = ""
    content: Optional[str] = None
    guid: Optional[str] = None
    category: Optional[str] = None
    author: Optional[str] = None
    enclosure: Optional[FeedEnclosure] = None


@dataclass
class ParsedFeed:
    """Feed-level metadata plus its entries in document order."""

    title: str
    description: str
    link: str
    last_build_date: Optional[str] = None
    items: List[RawFeedEntry] = field(default_factory=list)
    format: FeedFormat = FeedFormat.UNKNOWN

    @property
    def is_empty(self) -> bool:
        return not self.items


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class SentimentResult:
    """Sentiment reading for one text or an aggregate of many.

    Attributes:
        score: Net direction, -1.0 (bearish) to 1.0 (bullish).
        magnitude: Strength of the sentiment language, 0.0 to 1.0.
        classification: bullish, bearish or neutral.
        confidence: 0.0 to 1.0.
    """

    score: float
    magnitude: float
    classification: SentimentClass
    confidence: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "score", _clamp(float(self.score), -1.0, 1.0))
        object.__setattr__(self, "magnitude", _clamp(float(self.magnitude), 0.0, 1.0))
        object.__setattr__(self, "confidence", _clamp(float(self.confidence), 0.0, 1.0))
        if not isinstance(self.classification, SentimentClass):
            object.__setattr__(self, "classification", SentimentClass(self.classification))

    @classmethod
    def no_data(cls) -> "SentimentResult":
        """Zeroed neutral reading with no confidence."""
        return cls(score=0.0, magnitude=0.0, classification=SentimentClass.NEUTRAL, confidence=0.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "magnitude": self.magnitude,
            "classification": self.classification.value,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class NewsItem:
    """Normalized, enriched article served to callers."""

    id: str
    title: str
    description: str
    url: str
    source: str
    source_id: str
    category: NewsCategory
    published_at: datetime
    content: Optional[str] = None
    sentiment: Optional[SentimentResult] = None
    symbols: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    image_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Flat JSON-compatible record with ISO-8601 dates."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "content": self.content,
            "url": self.url,
            "source": self.source,
            "source_id": self.source_id,
            "category": self.category.value,
            "published_at": self.published_at.isoformat(),
            "sentiment": self.sentiment.to_dict() if self.sentiment else None,
            "symbols": list(self.symbols),
            "keywords": list(self.keywords),
            "image_url": self.image_url,
        }


@dataclass(frozen=True)
class TimeRange:
    """Inclusive publish-time window."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass
class NewsFilter:
    """Query-time narrowing for ``NewsAggregator.fetch_news``."""

    sources: Optional[Sequence[str]] = None
    categories: Optional[Sequence[NewsCategory]] = None
    symbols: Optional[Sequence[str]] = None
    sentiment: Optional[SentimentClass] = None
    time_range: Optional[TimeRange] = None
    limit: Optional[int] = None

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit < 0:
            raise ValueError(f"limit must be >= 0, got {self.limit}")


@dataclass
class CacheEntry:
    """Last successful batch for one source."""

    items: List[NewsItem]
    fetched_at: datetime
    source_id: str

    def age_minutes(self, now: datetime) -> float:
        return (now - self.fetched_at).total_seconds() / 60.0


@dataclass
class ThrottleState:
    """Live-request bookkeeping for one source."""

    last_request: datetime
    request_count: int = 0
