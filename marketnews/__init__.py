"""MarketNews - Financial and crypto news aggregation with lexicon sentiment.

Fetches RSS 2.0 and Atom feeds from a registry of sources, normalizes them
into a single item model, scores market sentiment, and serves a merged,
time-ordered view under per-source caching and throttling.
"""

__version__ = "0.3.0"
