"""Pytest configuration and fixtures."""

from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from xml.sax.saxutils import escape

import pytest

from marketnews.config import reset_config
from marketnews.logging_setup import reset_logging
from marketnews.news.errors import NetworkError
from marketnews.news.models import FeedSource, NewsCategory

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def reset_globals() -> Generator[None, None, None]:
    """Reset global state before each test."""
    reset_config()
    reset_logging()
    yield
    reset_config()
    reset_logging()


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeFetcher:
    """Async fetcher serving canned responses and recording calls.

    A response is feed text, an exception instance to raise, or a callable
    taking the call number (1-based) and returning one of those.
    """

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[str] = []

    def count(self, url: str) -> int:
        return self.calls.count(url)

    async def __call__(self, url: str, timeout: float) -> str:
        self.calls.append(url)
        response = self.responses.get(url)
        if callable(response) and not isinstance(response, BaseException):
            response = response(self.count(url))
        if response is None:
            raise NetworkError("no canned response", url=url, status_code=404)
        if isinstance(response, BaseException):
            raise response
        return response


def build_rss(items: list[dict[str, str]], title: str = "Test Feed") -> str:
    """RSS 2.0 document from item field mappings (title, link, pubDate, ...)."""
    parts = ['<?xml version="1.0"?><rss version="2.0"><channel>']
    parts.append(f"<title>{escape(title)}</title><link>https://feed.example.com</link>")
    for item in items:
        parts.append("<item>")
        for key, value in item.items():
            parts.append(f"<{key}>{escape(value)}</{key}>")
        parts.append("</item>")
    parts.append("</channel></rss>")
    return "".join(parts)


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at 2024-01-15 12:00 UTC."""
    return FakeClock(datetime(2024, 1, 15, 12, 0, tzinfo=UTC))


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def make_rss() -> Callable[..., str]:
    return build_rss


@pytest.fixture
def make_source() -> Callable[..., FeedSource]:
    """Factory for test sources with a predictable feed URL."""

    def _make(
        source_id: str = "test-source",
        category: NewsCategory = NewsCategory.GENERAL_FINANCE,
        update_frequency_minutes: float = 10,
        active: bool = True,
    ) -> FeedSource:
        return FeedSource(
            id=source_id,
            name=source_id.replace("-", " ").title(),
            feed_url=f"https://{source_id}.example.com/rss",
            category=category,
            reliability=0.9,
            update_frequency_minutes=update_frequency_minutes,
            active=active,
        )

    return _make


@pytest.fixture
def sample_rss_path() -> Path:
    return FIXTURES_DIR / "sample_rss.xml"


@pytest.fixture
def sample_rss_text(sample_rss_path: Path) -> str:
    return sample_rss_path.read_text(encoding="utf-8")


@pytest.fixture
def sample_atom_text() -> str:
    return (FIXTURES_DIR / "sample_atom.xml").read_text(encoding="utf-8")
