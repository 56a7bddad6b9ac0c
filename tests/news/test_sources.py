"""Tests for the feed source registry."""

from pathlib import Path

import pytest

from marketnews.news.errors import SourceConfigError
from marketnews.news.models import FeedSource, NewsCategory
from marketnews.news.sources import (
    ALL_NEWS_SOURCES,
    CRYPTO_FOCUSED_SOURCES,
    DEFAULT_NEWS_SOURCES,
    ECONOMIC_SOURCES,
    get_active_sources,
    get_high_reliability_sources,
    get_source_by_id,
    get_sources_by_category,
    load_sources,
)


class TestRegistry:
    """Tests for the compiled-in registry."""

    def test_group_sizes(self):
        assert len(DEFAULT_NEWS_SOURCES) == 10
        assert len(CRYPTO_FOCUSED_SOURCES) == 3
        assert len(ECONOMIC_SOURCES) == 2
        assert len(ALL_NEWS_SOURCES) == 15

    def test_ids_unique(self):
        ids = [s.id for s in ALL_NEWS_SOURCES]
        assert len(ids) == len(set(ids))

    def test_disabled_crypto_sources(self):
        """Test the unreliable crypto feeds ship inactive."""
        assert not get_source_by_id("cointelegraph").active
        assert not get_source_by_id("coinbase-blog").active
        assert get_source_by_id("decrypt").active

    def test_active_sources(self):
        active = get_active_sources()
        assert len(active) == 13
        assert all(s.active for s in active)

    def test_by_category_active_only(self):
        crypto = get_sources_by_category(NewsCategory.CRYPTOCURRENCY)
        assert [s.id for s in crypto] == ["crypto-news", "decrypt"]

    def test_by_category_accepts_string(self):
        assert get_sources_by_category("economic_indicators") == list(ECONOMIC_SOURCES)

    def test_high_reliability(self):
        ids = {s.id for s in get_high_reliability_sources()}
        assert ids == {
            "reuters-business",
            "nasdaq-news",
            "bloomberg-markets",
            "financial-times",
            "fed-news",
            "treasury-gov",
        }

    def test_high_reliability_threshold(self):
        assert [s.id for s in get_high_reliability_sources(0.98)] == ["fed-news"]

    def test_lookup_unknown(self):
        assert get_source_by_id("nope") is None

    def test_helpers_take_custom_registry(self, make_source):
        custom = [make_source("a"), make_source("b", active=False)]
        assert get_active_sources(custom) == [custom[0]]
        assert get_source_by_id("b", custom) is custom[1]


class TestFeedSourceValidation:
    """Tests for FeedSource invariants."""

    def test_reliability_range(self):
        with pytest.raises(ValueError):
            FeedSource("x", "X", "http://x", NewsCategory.STOCKS, 1.5, 10)

    def test_negative_frequency(self):
        with pytest.raises(ValueError):
            FeedSource("x", "X", "http://x", NewsCategory.STOCKS, 0.5, -1)

    def test_category_coerced(self):
        source = FeedSource("x", "X", "http://x", "forex", 0.5, 10)
        assert source.category is NewsCategory.FOREX


class TestLoadSources:
    """Tests for YAML registry loading."""

    def _write(self, tmp_path: Path, text: str) -> Path:
        path = tmp_path / "sources.yaml"
        path.write_text(text)
        return path

    def test_valid_file(self, tmp_path: Path):
        path = self._write(
            tmp_path,
            "sources:\n"
            "  - id: wire\n"
            "    name: Wire\n"
            "    feed_url: https://wire.example.com/rss\n"
            "    category: stocks\n"
            "    reliability: 0.8\n"
            "    update_frequency_minutes: 5\n"
            "  - id: coins\n"
            "    name: Coins\n"
            "    feed_url: https://coins.example.com/feed\n"
            "    category: cryptocurrency\n"
            "    active: false\n",
        )
        sources = load_sources(path)

        assert [s.id for s in sources] == ["wire", "coins"]
        assert sources[0].category is NewsCategory.STOCKS
        assert sources[0].update_frequency_minutes == 5
        assert sources[1].active is False
        assert sources[1].reliability == 0.5

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(SourceConfigError):
            load_sources(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = self._write(tmp_path, "sources: [unclosed\n")
        with pytest.raises(SourceConfigError):
            load_sources(path)

    def test_wrong_shape(self, tmp_path: Path):
        path = self._write(tmp_path, "- just\n- a list\n")
        with pytest.raises(SourceConfigError):
            load_sources(path)

    def test_missing_fields(self, tmp_path: Path):
        path = self._write(tmp_path, "sources:\n  - id: wire\n    name: Wire\n")
        with pytest.raises(SourceConfigError) as exc_info:
            load_sources(path)
        assert "feed_url" in str(exc_info.value)
        assert exc_info.value.source_id == "wire"

    def test_invalid_category(self, tmp_path: Path):
        path = self._write(
            tmp_path,
            "sources:\n"
            "  - id: wire\n"
            "    name: Wire\n"
            "    feed_url: https://wire.example.com/rss\n"
            "    category: sports\n",
        )
        with pytest.raises(SourceConfigError):
            load_sources(path)

    def test_duplicate_ids(self, tmp_path: Path):
        entry = (
            "  - id: wire\n"
            "    name: Wire\n"
            "    feed_url: https://wire.example.com/rss\n"
            "    category: stocks\n"
        )
        path = self._write(tmp_path, "sources:\n" + entry + entry)
        with pytest.raises(SourceConfigError):
            load_sources(path)
