"""Category sentiment digest.

Summarizes enriched news items per category (or per source) into a small
table and writes it as CSV.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from marketnews.logging_setup import get_logger
from marketnews.news.models import NewsItem

logger = get_logger("news.digest")

DIGEST_COLUMNS = [
    "item_count",
    "mean_score",
    "p95_abs_score",
    "bullish_count",
    "bearish_count",
    "neutral_count",
    "most_recent_minutes",
]

ITEM_COLUMNS = [
    "id",
    "source",
    "source_id",
    "category",
    "published_at",
    "title",
    "score",
    "magnitude",
    "confidence",
    "classification",
]

GROUP_KEYS = ("category", "source_id", "source")


def parse_window(window: str) -> timedelta:
    """Parse window string like '1d', '12h', '30m' to timedelta."""
    window = window.strip().lower()

    if window.endswith("d"):
        return timedelta(days=int(window[:-1]))
    elif window.endswith("h"):
        return timedelta(hours=int(window[:-1]))
    elif window.endswith("m"):
        return timedelta(minutes=int(window[:-1]))
    else:
        # Default to days
        return timedelta(days=int(window))


def items_to_frame(items: Iterable[NewsItem]) -> pd.DataFrame:
    """One row per item; unscored items get score 0 and class ``neutral``."""
    rows = []
    for item in items:
        sentiment = item.sentiment
        rows.append(
            {
                "id": item.id,
                "source": item.source,
                "source_id": item.source_id,
                "category": item.category.value,
                "published_at": item.published_at,
                "title": item.title,
                "score": sentiment.score if sentiment else 0.0,
                "magnitude": sentiment.magnitude if sentiment else 0.0,
                "confidence": sentiment.confidence if sentiment else 0.0,
                "classification": sentiment.classification.value if sentiment else "neutral",
            }
        )
    if not rows:
        return pd.DataFrame(columns=ITEM_COLUMNS)
    return pd.DataFrame(rows, columns=ITEM_COLUMNS)


def build_category_digest(
    items: Iterable[NewsItem],
    by: str = "category",
    now: Optional[datetime] = None,
) -> pd.DataFrame:
    """Aggregate item sentiment per group.

    Args:
        items: Enriched news items.
        by: Grouping column: ``category``, ``source_id`` or ``source``.
        now: Reference time for recency; defaults to the current UTC time.

    Returns:
        DataFrame indexed by group, sorted by mean score descending, with
        item_count, mean_score, p95_abs_score, bullish/bearish/neutral counts
        and minutes since the most recent item.
    """
    if by not in GROUP_KEYS:
        raise ValueError(f"Invalid grouping '{by}'. Must be one of: {GROUP_KEYS}")

    df = items_to_frame(items)
    if df.empty:
        logger.warning("No items to digest")
        return pd.DataFrame(columns=DIGEST_COLUMNS).rename_axis(by)

    now = now or datetime.now(UTC)
    df["minutes_ago"] = [(now - ts).total_seconds() / 60.0 for ts in df["published_at"]]

    grouped = df.groupby(by)
    digest = pd.DataFrame(
        {
            "item_count": grouped.size(),
            "mean_score": grouped["score"].mean().round(4),
            "p95_abs_score": grouped["score"].apply(lambda s: s.abs().quantile(0.95)).round(4),
            "bullish_count": grouped["classification"].apply(lambda s: int((s == "bullish").sum())),
            "bearish_count": grouped["classification"].apply(lambda s: int((s == "bearish").sum())),
            "neutral_count": grouped["classification"].apply(lambda s: int((s == "neutral").sum())),
            "most_recent_minutes": grouped["minutes_ago"].min().round(1),
        }
    )
    return digest.sort_values("mean_score", ascending=False)


def write_digest_csv(digest: pd.DataFrame, path: Path) -> Path:
    """Write a digest frame (group index included) to CSV."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    digest.to_csv(path, index=True)
    logger.info("Wrote news digest to %s (%d groups)", path, len(digest))
    return path
