"""MarketNews command line (`marketnews`).

Thin orchestration over ``NewsAggregator``:

- ``sources``: list the feed registry
- ``fetch``: fetch merged news as JSON lines
- ``breaking``: news from the last two hours
- ``sentiment``: aggregate market or crypto sentiment
- ``parse``: parse a local RSS/Atom file
- ``digest``: fetch and write a per-category sentiment CSV

Each invocation starts with an empty cache, so every active source is
fetched once.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, List, NoReturn, Optional, Sequence

from marketnews import __version__
from marketnews.config import get_config
from marketnews.logging_setup import get_logger, setup_logging
from marketnews.news.aggregator import NewsAggregator
from marketnews.news.digest import build_category_digest, parse_window, write_digest_csv
from marketnews.news.errors import NewsError
from marketnews.news.models import NewsCategory, NewsFilter, NewsItem, SentimentClass, TimeRange
from marketnews.news.parse import parse_feed
from marketnews.news.sources import ALL_NEWS_SOURCES, load_sources

logger = get_logger("cli.news")


def _fail(message: str) -> NoReturn:
    print(message, file=sys.stderr)
    sys.exit(1)


def _build_aggregator() -> NewsAggregator:
    return NewsAggregator()


def _split_csv(values: Optional[Sequence[str]]) -> Optional[List[str]]:
    """Flatten repeated and comma-separated option values."""
    if not values:
        return None
    parts = [p.strip() for value in values for p in value.split(",")]
    return [p for p in parts if p] or None


def _emit_items(items: Iterable[NewsItem], out: Optional[str]) -> int:
    lines = [json.dumps(item.to_dict(), ensure_ascii=False) for item in items]
    if out:
        output_path = Path(out)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
        print(f"Wrote {len(lines)} news items to {output_path}")
    else:
        for line in lines:
            print(line)
    return len(lines)


# ---------------------------- Registry ---------------------------- #


def cmd_sources(args: argparse.Namespace) -> None:
    """List configured feed sources."""
    config = get_config()
    sources = load_sources(config.sources_file) if config.sources_file else ALL_NEWS_SOURCES

    if args.category:
        sources = tuple(s for s in sources if s.category == NewsCategory(args.category))
    if not args.all:
        sources = tuple(s for s in sources if s.active)

    if args.json:
        for s in sources:
            print(
                json.dumps(
                    {
                        "id": s.id,
                        "name": s.name,
                        "feed_url": s.feed_url,
                        "category": s.category.value,
                        "reliability": s.reliability,
                        "update_frequency_minutes": s.update_frequency_minutes,
                        "active": s.active,
                    }
                )
            )
        return

    for s in sources:
        status = "active" if s.active else "inactive"
        print(
            f"{s.id:<20} {s.category.value:<20} {s.reliability:>5.2f} "
            f"{s.update_frequency_minutes:>6g}m  {status:<8} {s.name}"
        )
    print(f"{len(sources)} sources")


# ---------------------------- News ---------------------------- #


def _filter_from_args(args: argparse.Namespace, now: datetime) -> NewsFilter:
    categories = _split_csv(args.category)
    return NewsFilter(
        sources=_split_csv(args.source),
        categories=[NewsCategory(c) for c in categories] if categories else None,
        symbols=_split_csv(args.symbol),
        sentiment=SentimentClass(args.sentiment) if args.sentiment else None,
        time_range=(
            TimeRange(start=now - timedelta(hours=args.hours), end=now) if args.hours else None
        ),
        limit=args.limit,
    )


def cmd_fetch(args: argparse.Namespace) -> None:
    """Fetch merged news from all matching sources."""
    aggregator = _build_aggregator()
    news_filter = _filter_from_args(args, aggregator.now())
    items = asyncio.run(aggregator.fetch_news(news_filter))
    _emit_items(items, args.out)


def cmd_breaking(args: argparse.Namespace) -> None:
    """Print news published in the last two hours."""
    aggregator = _build_aggregator()
    items = asyncio.run(aggregator.get_breaking_news(limit=args.limit))
    _emit_items(items, args.out)


def cmd_sentiment(args: argparse.Namespace) -> None:
    """Print aggregate sentiment as JSON."""
    aggregator = _build_aggregator()
    if args.crypto:
        result = asyncio.run(aggregator.get_crypto_sentiment())
        scope = "crypto"
    else:
        result = asyncio.run(aggregator.get_market_sentiment(_split_csv(args.symbols)))
        scope = "market"
    print(json.dumps({"scope": scope, **result.to_dict()}))


def cmd_parse(args: argparse.Namespace) -> None:
    """Parse a local feed file and print its entries."""
    input_path = Path(args.input)
    if not input_path.exists():
        _fail(f"Input file not found: {input_path}")

    feed = parse_feed(input_path.read_text(encoding="utf-8"))
    print(
        json.dumps(
            {
                "title": feed.title,
                "link": feed.link,
                "format": feed.format.value,
                "items": len(feed.items),
            },
            ensure_ascii=False,
        )
    )
    for entry in feed.items:
        print(
            json.dumps(
                {
                    "title": entry.title,
                    "link": entry.link,
                    "pub_date": entry.pub_date,
                    "author": entry.author,
                    "category": entry.category,
                },
                ensure_ascii=False,
            )
        )


def cmd_digest(args: argparse.Namespace) -> None:
    """Fetch news and write a per-group sentiment digest CSV."""
    window = parse_window(args.window)
    aggregator = _build_aggregator()
    now = aggregator.now()
    items = asyncio.run(
        aggregator.fetch_news(NewsFilter(time_range=TimeRange(start=now - window, end=now)))
    )
    digest = build_category_digest(items, by=args.by, now=now)

    output_csv = Path(args.out) if args.out else get_config().reports_dir / "news_digest.csv"
    write_digest_csv(digest, output_csv)
    print(f"Built digest for {len(digest)} groups from {len(items)} items to {output_csv}")


def _add_filter_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--source",
        action="append",
        help="Source id (repeatable or comma-separated)",
    )
    parser.add_argument(
        "--category",
        action="append",
        help="Source category (repeatable or comma-separated)",
    )
    parser.add_argument(
        "--symbol",
        action="append",
        help="Ticker symbol without '$' (repeatable or comma-separated)",
    )
    parser.add_argument(
        "--sentiment",
        choices=[c.value for c in SentimentClass],
        help="Keep only items with this classification",
    )
    parser.add_argument(
        "--hours",
        type=float,
        default=None,
        help="Only items published within the last N hours",
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        prog="marketnews",
        description="Financial and crypto news aggregation with sentiment scoring",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # sources
    sources_p = subparsers.add_parser("sources", help="List feed sources")
    sources_p.add_argument(
        "--category",
        choices=[c.value for c in NewsCategory],
        help="Only sources in this category",
    )
    sources_p.add_argument(
        "--all",
        action="store_true",
        help="Include inactive sources",
    )
    sources_p.add_argument(
        "--json",
        action="store_true",
        help="Print one JSON object per source",
    )
    sources_p.set_defaults(func=cmd_sources)

    # fetch
    fetch_p = subparsers.add_parser("fetch", help="Fetch merged news as JSON lines")
    _add_filter_args(fetch_p)
    fetch_p.add_argument(
        "--limit",
        type=int,
        default=100,
        help="Maximum number of items",
    )
    fetch_p.add_argument(
        "--out",
        default=None,
        help="Write JSONL here instead of stdout",
    )
    fetch_p.set_defaults(func=cmd_fetch)

    # breaking
    breaking_p = subparsers.add_parser("breaking", help="News from the last two hours")
    breaking_p.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Maximum number of items",
    )
    breaking_p.add_argument(
        "--out",
        default=None,
        help="Write JSONL here instead of stdout",
    )
    breaking_p.set_defaults(func=cmd_breaking)

    # sentiment
    sentiment_p = subparsers.add_parser("sentiment", help="Aggregate sentiment")
    sentiment_p.add_argument(
        "--crypto",
        action="store_true",
        help="Crypto sentiment over the last 12 hours",
    )
    sentiment_p.add_argument(
        "--symbols",
        action="append",
        help="Restrict market sentiment to these symbols",
    )
    sentiment_p.set_defaults(func=cmd_sentiment)

    # parse
    parse_p = subparsers.add_parser("parse", help="Parse a local RSS/Atom file")
    parse_p.add_argument(
        "--in", "--input",
        dest="input",
        required=True,
        help="Feed file path",
    )
    parse_p.set_defaults(func=cmd_parse)

    # digest
    digest_p = subparsers.add_parser("digest", help="Write a sentiment digest CSV")
    digest_p.add_argument(
        "--out",
        default=None,
        help="Output CSV path (default: <REPORTS_DIR>/news_digest.csv)",
    )
    digest_p.add_argument(
        "--by",
        choices=["category", "source_id", "source"],
        default="category",
        help="Grouping column",
    )
    digest_p.add_argument(
        "--window",
        default="1d",
        help="Time window (e.g., 1d, 12h)",
    )
    digest_p.set_defaults(func=cmd_digest)

    args = parser.parse_args(argv)
    setup_logging()

    try:
        args.func(args)
    except (NewsError, ValueError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        _fail(f"Error: {e}")


if __name__ == "__main__":
    main()
