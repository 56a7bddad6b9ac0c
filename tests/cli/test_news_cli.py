"""Tests for the marketnews command line."""

import json
import os
import pathlib
import random
import subprocess
import sys
from datetime import timedelta

import pandas as pd
import pytest

from marketnews.cli import news as news_cli
from marketnews.config import AggregatorSettings
from marketnews.news.aggregator import NewsAggregator
from marketnews.news.models import NewsCategory

_PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[2]


def _iso(clock, **ago) -> str:
    return (clock() - timedelta(**ago)).strftime("%Y-%m-%dT%H:%M:%SZ")


@pytest.fixture
def patched_aggregator(monkeypatch, make_source, fake_fetcher, clock, make_rss):
    """Serve CLI commands from canned feeds."""
    stocks = make_source("stocks", category=NewsCategory.STOCKS)
    coins = make_source("coins", category=NewsCategory.CRYPTOCURRENCY)
    fake_fetcher.responses[stocks.feed_url] = make_rss(
        [
            {"title": "$AAPL shares surge", "link": "http://s/1", "pubDate": _iso(clock, minutes=20)},
            {"title": "$TSLA shares plunge", "link": "http://s/2", "pubDate": _iso(clock, hours=5)},
        ]
    )
    fake_fetcher.responses[coins.feed_url] = make_rss(
        [{"title": "Exchange hack", "link": "http://c/1", "pubDate": _iso(clock, hours=1)}]
    )
    aggregator = NewsAggregator(
        sources=[stocks, coins],
        settings=AggregatorSettings(),
        fetcher=fake_fetcher,
        clock=clock,
        rng=random.Random(0),
    )
    monkeypatch.setattr(news_cli, "_build_aggregator", lambda: aggregator)
    return aggregator


def _json_lines(text: str) -> list[dict]:
    return [json.loads(line) for line in text.splitlines() if line.strip()]


class TestSourcesCommand:
    """Tests for `marketnews sources`."""

    def test_lists_active(self, capsys):
        news_cli.main(["sources"])
        out = capsys.readouterr().out
        assert "reuters-business" in out
        assert "cointelegraph" not in out
        assert out.strip().endswith("13 sources")

    def test_all_by_category_json(self, capsys):
        news_cli.main(["sources", "--all", "--category", "cryptocurrency", "--json"])
        rows = _json_lines(capsys.readouterr().out)
        assert [r["id"] for r in rows] == ["crypto-news", "cointelegraph", "coinbase-blog", "decrypt"]
        assert rows[1]["active"] is False


class TestParseCommand:
    """Tests for `marketnews parse`."""

    def test_parse_sample(self, capsys, sample_rss_path):
        news_cli.main(["parse", "--in", str(sample_rss_path)])
        rows = _json_lines(capsys.readouterr().out)

        assert rows[0] == {
            "title": "Sample Markets Wire",
            "link": "https://news.example.com",
            "format": "rss",
            "items": 2,
        }
        assert rows[1]["title"] == "Stocks surge as $AAPL beats estimates"
        assert rows[1]["author"] == "Jane Analyst"

    def test_missing_file(self, capsys, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            news_cli.main(["parse", "--in", str(tmp_path / "absent.xml")])
        assert exc_info.value.code == 1
        assert "Input file not found" in capsys.readouterr().err

    def test_malformed_file(self, capsys, tmp_path):
        bad = tmp_path / "bad.xml"
        bad.write_text("<rss><channel>")
        with pytest.raises(SystemExit) as exc_info:
            news_cli.main(["parse", "--in", str(bad)])
        assert exc_info.value.code == 1
        captured = capsys.readouterr()
        assert "Error:" in captured.err
        assert captured.out == ""


class TestFetchCommands:
    """Tests for commands served by the aggregator."""

    def test_fetch_stdout(self, capsys, patched_aggregator):
        news_cli.main(["fetch"])
        rows = _json_lines(capsys.readouterr().out)
        assert [r["url"] for r in rows] == ["http://s/1", "http://c/1", "http://s/2"]
        assert rows[0]["symbols"] == ["AAPL"]

    def test_fetch_filters(self, capsys, patched_aggregator):
        news_cli.main(["fetch", "--category", "stocks", "--sentiment", "bearish"])
        rows = _json_lines(capsys.readouterr().out)
        assert [r["url"] for r in rows] == ["http://s/2"]

    def test_fetch_symbol_and_limit(self, capsys, patched_aggregator):
        news_cli.main(["fetch", "--symbol", "AAPL,TSLA", "--limit", "1"])
        rows = _json_lines(capsys.readouterr().out)
        assert [r["url"] for r in rows] == ["http://s/1"]

    def test_negative_limit_fails(self, capsys, patched_aggregator):
        with pytest.raises(SystemExit) as exc_info:
            news_cli.main(["fetch", "--limit", "-1"])
        assert exc_info.value.code == 1
        assert "limit must be >= 0" in capsys.readouterr().err

    def test_fetch_hours_uses_aggregator_clock(self, capsys, patched_aggregator):
        news_cli.main(["fetch", "--hours", "2"])
        rows = _json_lines(capsys.readouterr().out)
        assert [r["url"] for r in rows] == ["http://s/1", "http://c/1"]

    def test_fetch_to_file(self, capsys, patched_aggregator, tmp_path):
        out = tmp_path / "news" / "items.jsonl"
        news_cli.main(["fetch", "--out", str(out)])
        assert "Wrote 3 news items" in capsys.readouterr().out
        assert len(_json_lines(out.read_text())) == 3

    def test_breaking(self, capsys, patched_aggregator):
        news_cli.main(["breaking"])
        rows = _json_lines(capsys.readouterr().out)
        assert [r["url"] for r in rows] == ["http://s/1", "http://c/1"]

    def test_market_sentiment(self, capsys, patched_aggregator):
        news_cli.main(["sentiment", "--symbols", "TSLA"])
        result = json.loads(capsys.readouterr().out)
        assert result["scope"] == "market"
        assert result["classification"] == "bearish"

    def test_crypto_sentiment(self, capsys, patched_aggregator):
        news_cli.main(["sentiment", "--crypto"])
        result = json.loads(capsys.readouterr().out)
        assert result["scope"] == "crypto"
        assert result["classification"] == "bearish"
        assert 0.0 < result["confidence"] <= 1.0

    def test_digest(self, capsys, patched_aggregator, tmp_path):
        out = tmp_path / "digest.csv"
        news_cli.main(["digest", "--out", str(out), "--window", "1d"])
        assert "Built digest for 2 groups from 3 items" in capsys.readouterr().out

        df = pd.read_csv(out)
        assert set(df["category"]) == {"stocks", "cryptocurrency"}


class TestCLIEntrypoint:
    """Tests for module invocation."""

    def test_help_runs(self):
        """Test that the module prints help and lists subcommands."""
        env = {**os.environ, "PYTHONPATH": str(_PROJECT_ROOT)}
        result = subprocess.run(
            [sys.executable, "-m", "marketnews.cli.news", "--help"],
            capture_output=True,
            text=True,
            env=env,
        )
        assert result.returncode == 0, f"stderr: {result.stderr}"
        for command in ("sources", "fetch", "breaking", "sentiment", "parse", "digest"):
            assert command in result.stdout
