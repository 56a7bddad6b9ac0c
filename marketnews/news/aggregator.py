"""Multi-source news aggregation.

``NewsAggregator`` owns two per-source maps for its lifetime:

* cache: last batch that produced at least one item. Valid while younger
  than ``cache_timeout_minutes``, stale afterwards, never dropped except by
  ``clear_cache``.
* throttle: time of the last issued fetch attempt. A source is cooling for
  ``update_frequency_minutes`` after each attempt, whatever its outcome.

Fetches fan out with ``asyncio.gather`` and are collected as a settled batch,
so one failing source contributes nothing (or stale data) without affecting
the others.
"""

from __future__ import annotations

import asyncio
import random
import threading
import weakref
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from marketnews.config import AggregatorSettings, get_config
from marketnews.logging_setup import get_logger, source_context
from marketnews.news.errors import EntryProcessingError
from marketnews.news.models import (
    CacheEntry,
    FeedSource,
    NewsCategory,
    NewsFilter,
    NewsItem,
    RawFeedEntry,
    SentimentClass,
    SentimentResult,
    ThrottleState,
    TimeRange,
)
from marketnews.news.parse import (
    clean_text,
    extract_image_url,
    extract_keywords,
    extract_symbols,
    parse_feed_date,
)
from marketnews.news.pull import Fetcher, fetch_and_parse, fetch_text
from marketnews.news.score import SentimentAnalyzer
from marketnews.news.sources import ALL_NEWS_SOURCES, load_sources

logger = get_logger("news.aggregator")

Clock = Callable[[], datetime]

DEFAULT_LIMIT = 100
BREAKING_NEWS_LIMIT = 10
RETRY_BASE_DELAY = 0.5

MARKET_SENTIMENT_WINDOW = timedelta(hours=24)
CRYPTO_SENTIMENT_WINDOW = timedelta(hours=12)
BREAKING_NEWS_WINDOW = timedelta(hours=2)

MARKET_CATEGORIES = (
    NewsCategory.GENERAL_FINANCE,
    NewsCategory.STOCKS,
    NewsCategory.CRYPTOCURRENCY,
)

# Readings served by get_crypto_sentiment when no crypto article is available
# and crypto_fallback == "synthetic"
CRYPTO_FALLBACK_READINGS = (
    SentimentResult(0.15, 0.7, SentimentClass.BULLISH, 0.6),
    SentimentResult(-0.1, 0.6, SentimentClass.BEARISH, 0.5),
    SentimentResult(0.25, 0.8, SentimentClass.BULLISH, 0.7),
    SentimentResult(0.05, 0.4, SentimentClass.NEUTRAL, 0.4),
    SentimentResult(-0.2, 0.7, SentimentClass.BEARISH, 0.6),
)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_news_id(url: str, source_id: str) -> str:
    """Deterministic item id from link and source.

    A signed 32-bit rolling hash (``h = h * 31 + ord(c)``) over
    ``"<url>_<source_id>"``, rendered as ``news_<base36(|h|)>``.
    """
    h = 0
    for char in f"{url}_{source_id}":
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return f"news_{_to_base36(abs(h))}"


class NewsAggregator:
    """Fetch, enrich, cache and merge news across a source registry.

    Args:
        sources: Registry to aggregate. Defaults to ``NEWS_SOURCES_FILE`` when
            configured, else the compiled-in ``ALL_NEWS_SOURCES``.
        settings: Aggregation settings; defaults to ``get_config().news``.
        fetcher: Raw-text fetch capability; defaults to ``fetch_text`` with
            the configured retry count.
        clock: Returns the current aware UTC time.
        rng: Random source for the synthetic crypto fallback; defaults to a
            ``random.Random`` seeded from ``RANDOM_SEED``.
        analyzer: Sentiment scorer.
    """

    def __init__(
        self,
        sources: Optional[Sequence[FeedSource]] = None,
        settings: Optional[AggregatorSettings] = None,
        fetcher: Optional[Fetcher] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        analyzer: Optional[SentimentAnalyzer] = None,
    ) -> None:
        config = get_config()
        if sources is None:
            sources = load_sources(config.sources_file) if config.sources_file else ALL_NEWS_SOURCES
        self._sources: tuple[FeedSource, ...] = tuple(sources)
        self._settings = settings or config.news
        self._fetcher = fetcher
        self._clock: Clock = clock or _utc_now
        self._rng = rng or random.Random(config.random_seed)
        self._analyzer = analyzer or SentimentAnalyzer()

        self._cache: Dict[str, CacheEntry] = {}
        self._throttles: Dict[str, ThrottleState] = {}

        # asyncio.Lock is bound to one event loop; keep a lock table per loop
        self._locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[str, asyncio.Lock]]" = (
            weakref.WeakKeyDictionary()
        )
        self._locks_guard = threading.Lock()

    @property
    def sources(self) -> tuple[FeedSource, ...]:
        return self._sources

    @property
    def settings(self) -> AggregatorSettings:
        return self._settings

    def now(self) -> datetime:
        """Current time as seen by this aggregator's clock."""
        return self._clock()

    # ------------------------------------------------------------------
    # Cache and throttle state
    # ------------------------------------------------------------------

    def _source_lock(self, source_id: str) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        with self._locks_guard:
            table = self._locks.setdefault(loop, {})
            lock = table.get(source_id)
            if lock is None:
                lock = table[source_id] = asyncio.Lock()
            return lock

    def _is_cache_valid(self, entry: CacheEntry, now: datetime) -> bool:
        return entry.age_minutes(now) < self._settings.cache_timeout_minutes

    def _can_request(self, source: FeedSource, now: datetime) -> bool:
        throttle = self._throttles.get(source.id)
        if throttle is None:
            return True
        elapsed = now - throttle.last_request
        return elapsed >= timedelta(minutes=source.update_frequency_minutes)

    def _record_attempt(self, source: FeedSource, now: datetime) -> None:
        previous = self._throttles.get(source.id)
        self._throttles[source.id] = ThrottleState(
            last_request=now,
            request_count=(previous.request_count if previous else 0) + 1,
        )

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _fetch_deadline(self) -> float:
        """Overall bound for one source fetch including retries and backoff."""
        attempts = self._settings.retry_attempts
        backoff = RETRY_BASE_DELAY * (2 ** (attempts - 1) - 1)
        return self._settings.request_timeout * attempts + backoff

    async def _default_fetch(self, url: str, timeout: float) -> str:
        return await fetch_text(
            url,
            timeout,
            retry_attempts=self._settings.retry_attempts,
            base_delay=RETRY_BASE_DELAY,
        )

    async def fetch_from_source(self, source: FeedSource) -> List[NewsItem]:
        """Items for one source, from cache or a live fetch.

        Order of checks: valid cache, throttle, live fetch. A live fetch that
        yields no usable items leaves the cache untouched and returns it.
        Calls for the same source are serialized.
        """
        async with self._source_lock(source.id):
            return await self._fetch_from_source(source)

    async def _fetch_from_source(self, source: FeedSource) -> List[NewsItem]:
        now = self._clock()
        cached = self._cache.get(source.id)
        fallback = list(cached.items) if cached else []

        if cached is not None and self._is_cache_valid(cached, now):
            logger.debug("Using cached data for %s", source.name, extra=source_context(source))
            return fallback

        if not self._can_request(source, now):
            logger.info(
                "Rate limited for %s; serving %d cached items",
                source.name,
                len(fallback),
                extra=source_context(source, items=len(fallback)),
            )
            return fallback

        self._record_attempt(source, now)
        logger.info("Fetching from %s", source.name, extra=source_context(source))

        feed = await fetch_and_parse(
            source.feed_url,
            timeout=self._settings.request_timeout,
            fetcher=self._fetcher or self._default_fetch,
            deadline=self._fetch_deadline(),
        )

        if feed.is_empty:
            logger.warning(
                "No items found in feed from %s (%s)",
                source.name,
                feed.title,
                extra=source_context(source),
            )
            return fallback

        items = self._build_items(feed.items, source)
        if not items:
            logger.warning(
                "No usable entries in feed from %s", source.name, extra=source_context(source)
            )
            return fallback

        self._cache[source.id] = CacheEntry(
            items=items,
            fetched_at=self._clock(),
            source_id=source.id,
        )
        logger.info(
            "Fetched %d articles from %s",
            len(items),
            source.name,
            extra=source_context(source, items=len(items)),
        )
        return list(items)

    def _build_items(self, entries: Sequence[RawFeedEntry], source: FeedSource) -> List[NewsItem]:
        items: List[NewsItem] = []
        for entry in entries[: self._settings.max_articles_per_source]:
            try:
                items.append(self.build_news_item(entry, source))
            except EntryProcessingError as e:
                logger.warning("Skipping entry from %s: %s", source.name, e)
            except Exception as e:
                logger.warning("Failed to process entry from %s: %s", source.name, e)
        return items

    def build_news_item(self, entry: RawFeedEntry, source: FeedSource) -> NewsItem:
        """Normalize and enrich one feed entry.

        Raises:
            EntryProcessingError: Title or link missing after cleaning.
        """
        title = clean_text(entry.title)
        link = (entry.link or "").strip()
        if not title or not link:
            raise EntryProcessingError(
                "Entry is missing a title or link",
                source_id=source.id,
                details={"title": entry.title, "link": entry.link},
            )

        description = clean_text(entry.description)
        combined = f"{title} {description}"

        symbols = tuple(extract_symbols(combined)) if self._settings.symbol_extraction else ()

        sentiment = None
        if self._settings.sentiment_analysis:
            if source.category is NewsCategory.CRYPTOCURRENCY:
                sentiment = self._analyzer.analyze_crypto_sentiment(title, description)
            else:
                sentiment = self._analyzer.analyze_advanced_sentiment(title, description)

        if entry.enclosure is not None and entry.enclosure.url:
            image_url: Optional[str] = entry.enclosure.url
        else:
            image_url = extract_image_url(entry.description)

        return NewsItem(
            id=generate_news_id(link, source.id),
            title=title,
            description=description,
            url=link,
            source=source.name,
            source_id=source.id,
            category=source.category,
            published_at=parse_feed_date(entry.pub_date, now=self._clock()),
            content=entry.content,
            sentiment=sentiment,
            symbols=symbols,
            keywords=tuple(extract_keywords(title, description)),
            image_url=image_url,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _candidate_sources(self, news_filter: Optional[NewsFilter]) -> List[FeedSource]:
        candidates = [s for s in self._sources if s.active]
        if news_filter is None:
            return candidates
        if news_filter.sources is not None:
            wanted_ids = set(news_filter.sources)
            candidates = [s for s in candidates if s.id in wanted_ids]
        if news_filter.categories is not None:
            wanted_categories = {NewsCategory(c) for c in news_filter.categories}
            candidates = [s for s in candidates if s.category in wanted_categories]
        return candidates

    @staticmethod
    def _apply_filters(items: List[NewsItem], news_filter: Optional[NewsFilter]) -> List[NewsItem]:
        if news_filter is None:
            return items

        filtered = items
        if news_filter.symbols:
            wanted = {s.lstrip("$").upper() for s in news_filter.symbols}
            filtered = [item for item in filtered if wanted.intersection(item.symbols)]

        if news_filter.sentiment is not None:
            wanted_class = SentimentClass(news_filter.sentiment)
            filtered = [
                item
                for item in filtered
                if item.sentiment is not None and item.sentiment.classification is wanted_class
            ]

        if news_filter.time_range is not None:
            window = news_filter.time_range
            filtered = [item for item in filtered if window.contains(item.published_at)]

        return filtered

    async def fetch_news(self, news_filter: Optional[NewsFilter] = None) -> List[NewsItem]:
        """Merged, newest-first news across candidate sources.

        Args:
            news_filter: Optional source/category narrowing before the fetch,
                and symbol/sentiment/time-range filtering after the merge.

        Returns:
            At most ``news_filter.limit`` items (100 by default).
        """
        candidates = self._candidate_sources(news_filter)
        results = await asyncio.gather(
            *(self.fetch_from_source(source) for source in candidates),
            return_exceptions=True,
        )

        merged: List[NewsItem] = []
        for source, result in zip(candidates, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Failed to fetch from %s: %s", source.name, result, extra=source_context(source)
                )
                continue
            merged.extend(result)

        merged.sort(key=lambda item: item.published_at, reverse=True)
        filtered = self._apply_filters(merged, news_filter)

        limit = DEFAULT_LIMIT
        if news_filter is not None and news_filter.limit is not None:
            limit = news_filter.limit
        return filtered[:limit]

    def _window(self, span: timedelta) -> TimeRange:
        now = self._clock()
        return TimeRange(start=now - span, end=now)

    async def get_market_sentiment(self, symbols: Optional[Sequence[str]] = None) -> SentimentResult:
        """Aggregate sentiment over the last 24h of finance, stock and crypto news."""
        news = await self.fetch_news(
            NewsFilter(
                categories=list(MARKET_CATEGORIES),
                symbols=list(symbols) if symbols else None,
                time_range=self._window(MARKET_SENTIMENT_WINDOW),
            )
        )
        return self._analyzer.analyze_aggregate_sentiment(news)

    async def get_crypto_sentiment(self) -> SentimentResult:
        """Aggregate sentiment over the last 12h of crypto news.

        With no articles, returns a preset reading chosen with the injected RNG
        (``crypto_fallback == "synthetic"``) or a zero-confidence neutral
        reading (``"none"``).
        """
        news = await self.fetch_news(
            NewsFilter(
                categories=[NewsCategory.CRYPTOCURRENCY],
                time_range=self._window(CRYPTO_SENTIMENT_WINDOW),
            )
        )

        if not news:
            if self._settings.crypto_fallback == "synthetic":
                logger.warning("No crypto news found; serving synthetic fallback sentiment")
                return self._rng.choice(CRYPTO_FALLBACK_READINGS)
            logger.warning("No crypto news found; returning no-data sentiment")
            return SentimentResult.no_data()

        logger.info("Analyzing sentiment from %d crypto articles", len(news))
        return self._analyzer.analyze_aggregate_sentiment(news)

    async def get_breaking_news(self, limit: int = BREAKING_NEWS_LIMIT) -> List[NewsItem]:
        """News published in the last 2 hours."""
        return await self.fetch_news(
            NewsFilter(time_range=self._window(BREAKING_NEWS_WINDOW), limit=limit)
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def clear_cache(self, source_id: Optional[str] = None) -> None:
        if source_id is None:
            self._cache.clear()
        else:
            self._cache.pop(source_id, None)

    def get_cache_stats(self) -> Dict[str, Any]:
        now = self._clock()
        entries = [
            {
                "source": entry.source_id,
                "age_minutes": round(entry.age_minutes(now), 2),
                "items": len(entry.items),
                "stale": not self._is_cache_valid(entry, now),
            }
            for entry in self._cache.values()
        ]
        return {"size": len(self._cache), "entries": entries}

    def get_throttle_status(self) -> List[Dict[str, Any]]:
        now = self._clock()
        status = []
        for source in self._sources:
            if not source.active:
                continue
            throttle = self._throttles.get(source.id)
            status.append(
                {
                    "source_id": source.id,
                    "source": source.name,
                    "last_request": throttle.last_request if throttle else None,
                    "request_count": throttle.request_count if throttle else 0,
                    "can_request": self._can_request(source, now),
                }
            )
        return status

    def get_source_health(self) -> List[Dict[str, Any]]:
        """Cache and throttle state per source, inactive sources included."""
        now = self._clock()
        health = []
        for source in self._sources:
            entry = self._cache.get(source.id)
            if entry is None:
                cache_state = "absent"
            elif self._is_cache_valid(entry, now):
                cache_state = "valid"
            else:
                cache_state = "stale"
            health.append(
                {
                    "source_id": source.id,
                    "source": source.name,
                    "active": source.active,
                    "category": source.category.value,
                    "cache": cache_state,
                    "cached_items": len(entry.items) if entry else 0,
                    "throttle": "ready" if self._can_request(source, now) else "cooling",
                }
            )
        return health
