"""Static feed source registry.

Grouped into default, crypto-focused and economic subsets. Helpers take an
optional ``sources`` sequence so a registry loaded from YAML can be queried
the same way as the compiled-in one.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import yaml

from marketnews.logging_setup import get_logger
from marketnews.news.errors import SourceConfigError
from marketnews.news.models import FeedSource, NewsCategory

logger = get_logger("news.sources")

DEFAULT_NEWS_SOURCES: Tuple[FeedSource, ...] = (
    FeedSource(
        id="reuters-business",
        name="Reuters Business",
        feed_url="https://www.reutersagency.com/feed/?best-topics=business-finance&post_type=best",
        category=NewsCategory.GENERAL_FINANCE,
        reliability=0.95,
        update_frequency_minutes=10,
        homepage_url="https://www.reuters.com/business/",
    ),
    FeedSource(
        id="nasdaq-news",
        name="Nasdaq News",
        feed_url="https://www.nasdaq.com/feed/rssoutbound?category=Markets",
        category=NewsCategory.STOCKS,
        reliability=0.90,
        update_frequency_minutes=15,
        homepage_url="https://www.nasdaq.com",
    ),
    FeedSource(
        id="crypto-news",
        name="Crypto News",
        feed_url="https://cryptonews.com/news/feed/",
        category=NewsCategory.CRYPTOCURRENCY,
        reliability=0.85,
        update_frequency_minutes=10,
        homepage_url="https://cryptonews.com",
    ),
    FeedSource(
        id="financial-juice",
        name="Financial Juice",
        feed_url="https://www.financialjuice.com/feed.ashx",
        category=NewsCategory.GENERAL_FINANCE,
        reliability=0.88,
        update_frequency_minutes=5,
        homepage_url="https://www.financialjuice.com",
    ),
    FeedSource(
        id="seeking-alpha",
        name="Seeking Alpha",
        feed_url="https://seekingalpha.com/feed.xml",
        category=NewsCategory.MARKET_ANALYSIS,
        reliability=0.88,
        update_frequency_minutes=20,
        homepage_url="https://seekingalpha.com",
    ),
    FeedSource(
        id="benzinga",
        name="Benzinga",
        feed_url="https://www.benzinga.com/feed",
        category=NewsCategory.STOCKS,
        reliability=0.82,
        update_frequency_minutes=15,
        homepage_url="https://www.benzinga.com",
    ),
    FeedSource(
        id="bloomberg-markets",
        name="Bloomberg Markets",
        feed_url="https://feeds.bloomberg.com/markets/news.rss",
        category=NewsCategory.GENERAL_FINANCE,
        reliability=0.96,
        update_frequency_minutes=5,
        homepage_url="https://www.bloomberg.com/markets",
    ),
    FeedSource(
        id="cnbc-finance",
        name="CNBC Finance",
        feed_url="https://www.cnbc.com/id/100003114/device/rss/rss.html",
        category=NewsCategory.GENERAL_FINANCE,
        reliability=0.89,
        update_frequency_minutes=10,
        homepage_url="https://www.cnbc.com/finance/",
    ),
    FeedSource(
        id="financial-times",
        name="Financial Times",
        feed_url="https://www.ft.com/rss/home",
        category=NewsCategory.GENERAL_FINANCE,
        reliability=0.94,
        update_frequency_minutes=15,
        homepage_url="https://www.ft.com",
    ),
    FeedSource(
        id="investing-com",
        name="Investing.com",
        feed_url="https://www.investing.com/rss/news.rss",
        category=NewsCategory.GENERAL_FINANCE,
        reliability=0.83,
        update_frequency_minutes=10,
        homepage_url="https://www.investing.com",
    ),
)

CRYPTO_FOCUSED_SOURCES: Tuple[FeedSource, ...] = (
    # cointelegraph and coinbase-blog feeds are currently unreliable
    FeedSource(
        id="cointelegraph",
        name="Cointelegraph",
        feed_url="https://cointelegraph.com/rss",
        category=NewsCategory.CRYPTOCURRENCY,
        reliability=0.86,
        update_frequency_minutes=10,
        active=False,
        homepage_url="https://cointelegraph.com",
    ),
    FeedSource(
        id="coinbase-blog",
        name="Coinbase Blog",
        feed_url="https://blog.coinbase.com/feed",
        category=NewsCategory.CRYPTOCURRENCY,
        reliability=0.88,
        update_frequency_minutes=30,
        active=False,
        homepage_url="https://blog.coinbase.com",
    ),
    FeedSource(
        id="decrypt",
        name="Decrypt",
        feed_url="https://decrypt.co/feed",
        category=NewsCategory.CRYPTOCURRENCY,
        reliability=0.84,
        update_frequency_minutes=15,
        homepage_url="https://decrypt.co",
    ),
)

ECONOMIC_SOURCES: Tuple[FeedSource, ...] = (
    FeedSource(
        id="fed-news",
        name="Federal Reserve News",
        feed_url="https://www.federalreserve.gov/feeds/press_all.xml",
        category=NewsCategory.ECONOMIC_INDICATORS,
        reliability=0.98,
        update_frequency_minutes=60,
        homepage_url="https://www.federalreserve.gov",
    ),
    FeedSource(
        id="treasury-gov",
        name="US Treasury",
        feed_url="https://home.treasury.gov/rss/news",
        category=NewsCategory.ECONOMIC_INDICATORS,
        reliability=0.97,
        update_frequency_minutes=120,
        homepage_url="https://home.treasury.gov",
    ),
)

ALL_NEWS_SOURCES: Tuple[FeedSource, ...] = (
    DEFAULT_NEWS_SOURCES + CRYPTO_FOCUSED_SOURCES + ECONOMIC_SOURCES
)


def get_active_sources(sources: Sequence[FeedSource] = ALL_NEWS_SOURCES) -> List[FeedSource]:
    return [s for s in sources if s.active]


def get_sources_by_category(
    category: NewsCategory | str,
    sources: Sequence[FeedSource] = ALL_NEWS_SOURCES,
) -> List[FeedSource]:
    """Active sources in ``category``."""
    category = NewsCategory(category)
    return [s for s in sources if s.category == category and s.active]


def get_high_reliability_sources(
    threshold: float = 0.9,
    sources: Sequence[FeedSource] = ALL_NEWS_SOURCES,
) -> List[FeedSource]:
    """Active sources with reliability at or above ``threshold``."""
    return [s for s in sources if s.reliability >= threshold and s.active]


def get_source_by_id(
    source_id: str,
    sources: Sequence[FeedSource] = ALL_NEWS_SOURCES,
) -> Optional[FeedSource]:
    """Look up a source by id, active or not."""
    for source in sources:
        if source.id == source_id:
            return source
    return None


def _source_from_mapping(raw: Mapping[str, Any], index: int) -> FeedSource:
    missing = [key for key in ("id", "name", "feed_url", "category") if not raw.get(key)]
    if missing:
        raise SourceConfigError(
            f"Source #{index} is missing required fields: {', '.join(missing)}",
            source_id=str(raw.get("id", "")),
        )
    try:
        return FeedSource(
            id=str(raw["id"]),
            name=str(raw["name"]),
            feed_url=str(raw["feed_url"]),
            category=NewsCategory(raw["category"]),
            reliability=float(raw.get("reliability", 0.5)),
            update_frequency_minutes=float(raw.get("update_frequency_minutes", 15)),
            active=bool(raw.get("active", True)),
            homepage_url=str(raw.get("homepage_url", "")),
        )
    except (TypeError, ValueError) as e:
        raise SourceConfigError(
            f"Source #{index} is invalid: {e}", source_id=str(raw.get("id", ""))
        ) from e


def load_sources(path: Path | str) -> Tuple[FeedSource, ...]:
    """Load a source registry from YAML.

    Expected layout::

        sources:
          - id: my-feed
            name: My Feed
            feed_url: https://example.com/rss
            category: stocks
            reliability: 0.9
            update_frequency_minutes: 10
            active: true

    Args:
        path: YAML file path.

    Returns:
        Tuple of FeedSource in file order.

    Raises:
        SourceConfigError: File missing, not YAML, wrong shape, duplicate
            ids, or an invalid entry.
    """
    path = Path(path)
    if not path.exists():
        raise SourceConfigError(f"Source file not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise SourceConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("sources"), list):
        raise SourceConfigError(f"{path} must contain a top-level 'sources' list")

    loaded: List[FeedSource] = []
    seen: set[str] = set()
    for index, raw in enumerate(data["sources"]):
        if not isinstance(raw, dict):
            raise SourceConfigError(f"Source #{index} in {path} is not a mapping")
        source = _source_from_mapping(raw, index)
        if source.id in seen:
            raise SourceConfigError(f"Duplicate source id '{source.id}'", source_id=source.id)
        seen.add(source.id)
        loaded.append(source)

    logger.info("Loaded %d sources from %s", len(loaded), path)
    return tuple(loaded)
