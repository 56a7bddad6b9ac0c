"""Tests for feed retrieval and the fetch-and-parse failure boundary."""

import asyncio
import socket
from urllib.error import HTTPError, URLError

import pytest

from marketnews.news import pull
from marketnews.news.errors import FetchTimeoutError, NetworkError
from marketnews.news.models import FeedFormat
from marketnews.news.pull import fetch_and_parse, fetch_text

URL = "https://feed.example.com/rss"

GOOD_FEED = (
    "<rss><channel><title>X</title><item><title>Stocks surge</title>"
    "<link>http://a/1</link></item></channel></rss>"
)


def _serving(response):
    async def fetcher(url: str, timeout: float) -> str:
        if isinstance(response, BaseException):
            raise response
        return response

    return fetcher


class TestFetchAndParse:
    """Tests for fetch_and_parse absorbing every failure."""

    def test_success(self):
        """Test a good document is parsed."""
        feed = asyncio.run(fetch_and_parse(URL, 1.0, fetcher=_serving(GOOD_FEED)))
        assert feed.format == FeedFormat.RSS
        assert [e.title for e in feed.items] == ["Stocks surge"]

    def test_network_error(self):
        """Test network failure yields an empty 'Unavailable' feed."""
        feed = asyncio.run(
            fetch_and_parse(URL, 1.0, fetcher=_serving(NetworkError("down", url=URL)))
        )
        assert feed.items == []
        assert feed.title == "Feed Temporarily Unavailable"
        assert feed.link == URL
        assert feed.format == FeedFormat.UNKNOWN

    def test_fetch_timeout_error(self):
        """Test a fetcher-reported timeout."""
        feed = asyncio.run(
            fetch_and_parse(URL, 1.0, fetcher=_serving(FetchTimeoutError("slow", url=URL)))
        )
        assert feed.items == []
        assert "Unavailable" in feed.title

    def test_deadline_enforced_on_injected_fetcher(self):
        """Test a fetcher that ignores its timeout is still cut off."""

        async def hanging(url: str, timeout: float) -> str:
            await asyncio.sleep(5)
            return GOOD_FEED

        feed = asyncio.run(fetch_and_parse(URL, 0.05, fetcher=hanging))
        assert feed.items == []
        assert feed.title == "Feed Timeout Unavailable"

    def test_unexpected_exception(self):
        """Test arbitrary fetcher exceptions are absorbed."""
        feed = asyncio.run(fetch_and_parse(URL, 1.0, fetcher=_serving(RuntimeError("boom"))))
        assert feed.items == []
        assert feed.title == "Feed Error"

    def test_empty_body(self):
        """Test an empty body is reported as an empty feed."""
        feed = asyncio.run(fetch_and_parse(URL, 1.0, fetcher=_serving("   \n")))
        assert feed.items == []
        assert feed.title == "Empty Feed"

    def test_malformed_document(self):
        """Test malformed XML yields an empty 'Error' feed instead of raising."""
        feed = asyncio.run(
            fetch_and_parse(URL, 1.0, fetcher=_serving("<rss><channel><title>X</title>"))
        )
        assert feed.items == []
        assert "Error" in feed.title

    def test_invalid_feed(self):
        """Test a channel without title yields an empty feed."""
        feed = asyncio.run(
            fetch_and_parse(URL, 1.0, fetcher=_serving("<rss><channel></channel></rss>"))
        )
        assert feed.items == []
        assert feed.title == "Feed Format Error"


class TestFetchText:
    """Tests for the default urllib fetcher."""

    def test_retries_then_succeeds(self, monkeypatch: pytest.MonkeyPatch):
        """Test network errors are retried with backoff."""
        calls = []

        def flaky(url: str, timeout: float) -> str:
            calls.append(url)
            if len(calls) < 3:
                raise NetworkError("reset", url=url)
            return GOOD_FEED

        monkeypatch.setattr(pull, "_read_url", flaky)
        text = asyncio.run(fetch_text(URL, 1.0, retry_attempts=3, base_delay=0))
        assert text == GOOD_FEED
        assert len(calls) == 3

    def test_gives_up_after_last_attempt(self, monkeypatch: pytest.MonkeyPatch):
        """Test the final failure propagates."""
        calls = []

        def failing(url: str, timeout: float) -> str:
            calls.append(url)
            raise NetworkError("refused", url=url)

        monkeypatch.setattr(pull, "_read_url", failing)
        with pytest.raises(NetworkError):
            asyncio.run(fetch_text(URL, 1.0, retry_attempts=2, base_delay=0))
        assert len(calls) == 2

    def test_single_attempt_by_default(self, monkeypatch: pytest.MonkeyPatch):
        """Test no retry unless asked."""
        calls = []

        def failing(url: str, timeout: float) -> str:
            calls.append(url)
            raise NetworkError("refused", url=url)

        monkeypatch.setattr(pull, "_read_url", failing)
        with pytest.raises(NetworkError):
            asyncio.run(fetch_text(URL, 1.0))
        assert len(calls) == 1


class TestReadUrl:
    """Tests for urllib error mapping."""

    def test_http_error(self, monkeypatch: pytest.MonkeyPatch):
        """Test HTTP errors carry the status code."""

        def raise_http(req, timeout):
            raise HTTPError(URL, 503, "Service Unavailable", hdrs=None, fp=None)

        monkeypatch.setattr(pull, "urlopen", raise_http)
        with pytest.raises(NetworkError) as exc_info:
            pull._read_url(URL, 1.0)
        assert exc_info.value.status_code == 503
        assert exc_info.value.to_dict()["url"] == URL

    def test_timeout(self, monkeypatch: pytest.MonkeyPatch):
        """Test socket timeouts map to FetchTimeoutError."""

        def raise_timeout(req, timeout):
            raise URLError(socket.timeout("timed out"))

        monkeypatch.setattr(pull, "urlopen", raise_timeout)
        with pytest.raises(FetchTimeoutError):
            pull._read_url(URL, 1.0)

    def test_connection_error(self, monkeypatch: pytest.MonkeyPatch):
        """Test other URL errors map to NetworkError."""

        def raise_refused(req, timeout):
            raise URLError(ConnectionRefusedError("refused"))

        monkeypatch.setattr(pull, "urlopen", raise_refused)
        with pytest.raises(NetworkError) as exc_info:
            pull._read_url(URL, 1.0)
        assert not isinstance(exc_info.value, FetchTimeoutError)
