"""Feed retrieval.

The aggregator only needs "raw text or a clear failure within a deadline".
``fetch_text`` is the default capability (urllib in a worker thread);
anything with the ``Fetcher`` signature can be injected instead.
``fetch_and_parse`` is the failure-isolation boundary: it never raises.
"""

from __future__ import annotations

import asyncio
import socket
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from marketnews.logging_setup import get_logger
from marketnews.news.errors import (
    FeedFormatError,
    FetchTimeoutError,
    InvalidFeedError,
    NetworkError,
)
from marketnews.news.models import FeedFormat, ParsedFeed
from marketnews.news.parse import parse_feed

logger = get_logger("news.pull")

# Timeout for feed requests (seconds)
REQUEST_TIMEOUT = 10.0

# User agent to avoid blocking
USER_AGENT = "MarketNews/0.3 (RSS News Aggregator)"

# Raw text for a URL within ``timeout`` seconds, or NetworkError
Fetcher = Callable[[str, float], Awaitable[str]]


def _read_url(url: str, timeout: float) -> str:
    """Blocking fetch of a feed URL."""
    req = Request(
        url,
        headers={
            "User-Agent": USER_AGENT,
            "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml",
        },
    )
    try:
        with urlopen(req, timeout=timeout) as response:
            charset = response.headers.get_content_charset() or "utf-8"
            return response.read().decode(charset, errors="replace")
    except HTTPError as e:
        raise NetworkError(f"HTTP error {e.code}", url=url, status_code=e.code) from e
    except URLError as e:
        if isinstance(e.reason, (socket.timeout, TimeoutError)):
            raise FetchTimeoutError(f"Timeout after {timeout}s", url=url) from e
        raise NetworkError(f"URL error: {e.reason}", url=url) from e
    except (socket.timeout, TimeoutError) as e:
        raise FetchTimeoutError(f"Timeout after {timeout}s", url=url) from e
    except OSError as e:
        raise NetworkError(f"Connection error: {e}", url=url) from e


async def fetch_text(
    url: str,
    timeout: float = REQUEST_TIMEOUT,
    retry_attempts: int = 1,
    base_delay: float = 0.5,
) -> str:
    """Fetch raw feed text without blocking the event loop.

    Args:
        url: Feed URL.
        timeout: Per-attempt deadline in seconds.
        retry_attempts: Total attempts; timeouts and network errors are retried
            with exponential backoff.
        base_delay: First backoff delay in seconds.

    Returns:
        Decoded response body.

    Raises:
        NetworkError: Final attempt failed (FetchTimeoutError on timeout).
    """
    for attempt in range(retry_attempts):
        try:
            return await asyncio.to_thread(_read_url, url, timeout)
        except NetworkError as e:
            if attempt == retry_attempts - 1:
                raise
            delay = base_delay * (2**attempt)
            logger.warning(
                "Attempt %d/%d for %s failed (%s); retrying in %.1fs",
                attempt + 1,
                retry_attempts,
                url,
                e,
                delay,
            )
            await asyncio.sleep(delay)
    raise NetworkError("No fetch attempts made", url=url)


def _degenerate_feed(url: str, title: str, description: str) -> ParsedFeed:
    return ParsedFeed(
        title=title,
        description=description,
        link=url,
        last_build_date=datetime.now(timezone.utc).isoformat(),
        items=[],
        format=FeedFormat.UNKNOWN,
    )


async def fetch_and_parse(
    url: str,
    timeout: float = REQUEST_TIMEOUT,
    fetcher: Optional[Fetcher] = None,
    deadline: Optional[float] = None,
) -> ParsedFeed:
    """Fetch and parse a feed, absorbing every failure.

    Network errors, timeouts, empty bodies and format errors all produce a
    zero-item ParsedFeed whose title names the failure, so callers can treat
    "no items" uniformly.

    Args:
        url: Feed URL.
        timeout: Deadline in seconds, enforced even for injected fetchers.
        fetcher: Fetch capability; defaults to ``fetch_text``.
        deadline: Overall bound when the fetcher retries; defaults to ``timeout``.

    Returns:
        Parsed feed, or an empty degenerate feed on any failure.
    """
    fetch = fetcher or fetch_text

    try:
        raw_text = await asyncio.wait_for(fetch(url, timeout), timeout=deadline or timeout)
    except (asyncio.TimeoutError, FetchTimeoutError):
        logger.warning("Request timeout after %.1fs for %s", timeout, url)
        return _degenerate_feed(
            url, "Feed Timeout Unavailable", f"Timed out fetching feed from {url}"
        )
    except NetworkError as e:
        logger.warning("Feed fetch failed for %s: %s", url, e)
        return _degenerate_feed(
            url, "Feed Temporarily Unavailable", f"Unable to fetch feed from {url}"
        )
    except Exception as e:
        logger.warning("Error fetching %s: %s", url, e)
        return _degenerate_feed(url, "Feed Error", f"Error fetching feed from {url}")

    if not raw_text or not raw_text.strip():
        logger.warning("No content received from %s", url)
        return _degenerate_feed(url, "Empty Feed", f"No content available from {url}")

    logger.debug("Fetched %d bytes from %s", len(raw_text), url)

    try:
        return parse_feed(raw_text)
    except FeedFormatError as e:
        logger.warning("Failed to parse feed from %s: %s", url, e)
        return _degenerate_feed(url, "Feed Parse Error", f"Failed to parse feed from {url}")
    except InvalidFeedError as e:
        logger.warning("Invalid feed from %s: %s", url, e)
        return _degenerate_feed(url, "Feed Format Error", f"Invalid feed format from {url}")
    except Exception as e:
        logger.warning("Unexpected error parsing %s: %s", url, e)
        return _degenerate_feed(url, "Feed Error", f"Error parsing feed from {url}")
