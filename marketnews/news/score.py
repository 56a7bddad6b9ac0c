"""Lexicon-based market sentiment scoring.

Deterministic and explainable: curated bullish / bearish / neutral word
sets, intensity modifiers and negation handling, walked over the tokens of
a headline and its description in a single left-to-right pass. No model
downloads, no randomness.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from marketnews.logging_setup import get_logger
from marketnews.news.models import SentimentClass, SentimentResult

logger = get_logger("news.score")


BULLISH_WORDS: Set[str] = {
    "surge", "surges", "surged", "surging", "rally", "rallies", "rallied",
    "bull", "bulls", "bullish", "gain", "gains", "gained", "rise", "rises",
    "rising", "rose", "jump", "jumps", "jumped", "soar", "soars", "soared",
    "climb", "climbs", "climbed", "boost", "boosts", "boosted", "breakout",
    "uptrend", "optimistic", "optimism", "positive", "growth", "profit",
    "profits", "profitable", "outperform", "outperforms", "strong", "stronger",
    "robust", "healthy", "recovery", "recovers", "recovered", "rebound",
    "rebounds", "rebounded", "momentum", "breakthrough", "innovation",
    "expansion", "acquisition", "merger", "partnership", "upgrade", "upgraded",
    "upgrades", "overweight", "beat", "beats", "exceed", "exceeds", "exceeded",
    "record", "high", "highs",
    # crypto
    "moon", "lambo", "hodl", "pump", "adoption", "mainstream", "institutional",
    "halving", "burning",
}

BEARISH_WORDS: Set[str] = {
    "crash", "crashes", "crashed", "crashing", "plunge", "plunges", "plunged",
    "bear", "bears", "bearish", "fall", "falls", "fell", "falling", "drop",
    "drops", "dropped", "decline", "declines", "declined", "declining", "selloff",
    "dump", "dumps", "dumped", "collapse", "collapses", "collapsed", "downtrend",
    "pessimistic", "pessimism", "negative", "loss", "losses", "deficit",
    "underperform", "underperforms", "weak", "weaker", "fragile", "volatile",
    "recession", "correction", "pullback", "bankruptcy", "bankrupt",
    "liquidation", "debt", "default", "crisis", "concern", "concerns",
    "warning", "warns", "downgrade", "downgraded", "downgrades", "underweight",
    "below", "disappointing", "disappoints", "low", "lows", "tumble",
    "tumbles", "tumbled", "slump", "slumps", "slumped",
    # crypto
    "rekt", "scam", "hack", "hacked", "exploit", "fud", "crackdown", "ban",
    "banned", "restrictions", "delisting", "investigation",
}

NEUTRAL_WORDS: Set[str] = {
    "stable", "flat", "unchanged", "sideways", "consolidation", "consolidates",
    "mixed", "moderate", "slight", "minimal", "gradual", "steady", "hold",
    "holds", "maintain", "maintains", "neutral", "balanced", "cautious",
    "monitoring", "rangebound",
}

INTENSITY_MULTIPLIERS: Dict[str, float] = {
    "very": 1.5,
    "extremely": 2.0,
    "highly": 1.4,
    "significantly": 1.6,
    "massively": 1.8,
    "dramatically": 1.7,
    "sharply": 1.5,
    "strongly": 1.4,
    "slightly": 0.5,
    "somewhat": 0.7,
    "moderately": 0.8,
    "barely": 0.3,
    "mildly": 0.6,
}

NEGATION_WORDS: Set[str] = {
    "not", "no", "never", "none", "nothing", "nowhere", "neither", "nor",
    "cannot", "cant", "without", "lack", "absent", "missing", "fail", "unable",
}

CRYPTO_BULLISH_SIGNALS: Set[str] = {
    "etf", "etfs", "institutional", "adoption", "halving", "burning", "upgrade", "upgrades",
}
CRYPTO_BEARISH_SIGNALS: Set[str] = {
    "regulation", "regulations", "ban", "bans", "hack", "hacks", "exploit",
    "exploits", "investigation",
}

BASIC_THRESHOLD = 0.2
ADVANCED_THRESHOLD = 0.15
AGGREGATE_THRESHOLD = 0.1
TITLE_WEIGHT = 0.7
DESCRIPTION_WEIGHT = 0.3
CRYPTO_VOLATILITY_FACTOR = 0.8
CRYPTO_SIGNAL_STEP = 0.1
NO_MATCH_CONFIDENCE = 0.1
# Denominator floor for magnitude; keeps one plain match in a short headline
# below saturation so intensity modifiers stay visible.
MAGNITUDE_FLOOR = 2.0

_TOKEN_PATTERN = re.compile(r"\W+")


def _clamp(value: float, low: float = -1.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _classify(score: float, threshold: float) -> SentimentClass:
    if score > threshold:
        return SentimentClass.BULLISH
    if score < -threshold:
        return SentimentClass.BEARISH
    return SentimentClass.NEUTRAL


def tokenize(text: str) -> List[str]:
    """Lowercase and split on non-word characters (apostrophes dropped)."""
    return [t for t in _TOKEN_PATTERN.split(text.lower().replace("'", "")) if t]


def _lexicon_class(token: str) -> Optional[SentimentClass]:
    if token in BULLISH_WORDS:
        return SentimentClass.BULLISH
    if token in BEARISH_WORDS:
        return SentimentClass.BEARISH
    if token in NEUTRAL_WORDS:
        return SentimentClass.NEUTRAL
    return None


_INVERTED = {
    SentimentClass.BULLISH: SentimentClass.BEARISH,
    SentimentClass.BEARISH: SentimentClass.BULLISH,
    SentimentClass.NEUTRAL: SentimentClass.NEUTRAL,
}


@dataclass
class _TokenWalk:
    """Carry-state for the left-to-right token fold."""

    negated: bool = False
    multiplier: float = 1.0
    bullish: float = 0.0
    bearish: float = 0.0
    neutral: float = 0.0
    matches: int = 0
    # Class and weight of the immediately preceding token if it scored
    last_scored: Optional[SentimentClass] = None
    last_weight: float = 0.0

    @property
    def total(self) -> float:
        return self.bullish + self.bearish + self.neutral

    def add(self, sentiment: SentimentClass, weight: float) -> None:
        if sentiment is SentimentClass.BULLISH:
            self.bullish += weight
        elif sentiment is SentimentClass.BEARISH:
            self.bearish += weight
        else:
            self.neutral += weight

    def step(self, token: str) -> None:
        if token in NEGATION_WORDS:
            self.negated = True
            self.last_scored = None
            return

        if token in INTENSITY_MULTIPLIERS:
            factor = INTENSITY_MULTIPLIERS[token]
            if self.last_scored is not None:
                # Trailing modifier ("crashed sharply"): preceding word weighs weight * factor
                self.add(self.last_scored, self.last_weight * (factor - 1.0))
                self.last_scored = None
            else:
                self.multiplier = factor
            return

        sentiment = _lexicon_class(token)
        if sentiment is None:
            self.last_scored = None
            return

        if self.negated:
            sentiment = _INVERTED[sentiment]
        weight = 1.0 * self.multiplier
        self.add(sentiment, weight)
        self.matches += 1
        self.last_scored = sentiment
        self.last_weight = weight
        self.negated = False
        self.multiplier = 1.0


def analyze_sentiment(title: str, description: str = "") -> SentimentResult:
    """Score title and description as one text.

    Args:
        title: Headline.
        description: Body or summary text.

    Returns:
        SentimentResult; texts with no lexicon match are neutral with a
        fixed low confidence of 0.1.
    """
    words = tokenize(f"{title or ''} {description or ''}")

    walk = _TokenWalk()
    for token in words:
        walk.step(token)

    word_count = len(words)
    total = walk.total
    magnitude = min(total / max(word_count * 0.1, MAGNITUDE_FLOOR), 1.0)

    if walk.matches == 0 or total == 0:
        return SentimentResult(
            score=0.0,
            magnitude=0.0,
            classification=SentimentClass.NEUTRAL,
            confidence=NO_MATCH_CONFIDENCE,
        )

    score = _clamp((walk.bullish - walk.bearish) / max(total, 1.0))
    match_density = min(walk.matches / max(word_count * 0.05, 1.0), 1.0)
    confidence = _clamp((abs(score) + match_density) / 2, 0.0, 1.0)

    return SentimentResult(
        score=score,
        magnitude=_clamp(magnitude, 0.0, 1.0),
        classification=_classify(score, BASIC_THRESHOLD),
        confidence=confidence,
    )


def analyze_advanced_sentiment(title: str, description: str = "") -> SentimentResult:
    """Headline-weighted sentiment.

    Title and description are scored separately and blended 0.7 / 0.3,
    then reclassified with tighter +/-0.15 thresholds.
    """
    title_result = analyze_sentiment(title)
    description_result = analyze_sentiment(description)

    score = title_result.score * TITLE_WEIGHT + description_result.score * DESCRIPTION_WEIGHT
    magnitude = (
        title_result.magnitude * TITLE_WEIGHT + description_result.magnitude * DESCRIPTION_WEIGHT
    )
    confidence = (
        title_result.confidence * TITLE_WEIGHT
        + description_result.confidence * DESCRIPTION_WEIGHT
    )

    return SentimentResult(
        score=_clamp(score),
        magnitude=_clamp(magnitude, 0.0, 1.0),
        classification=_classify(score, ADVANCED_THRESHOLD),
        confidence=_clamp(confidence, 0.0, 1.0),
    )


def crypto_signal_adjustment(text: str) -> float:
    """Net score nudge from crypto-specific signal words, +/-0.1 per occurrence."""
    adjustment = 0.0
    for token in tokenize(text):
        if token in CRYPTO_BULLISH_SIGNALS:
            adjustment += CRYPTO_SIGNAL_STEP
        elif token in CRYPTO_BEARISH_SIGNALS:
            adjustment -= CRYPTO_SIGNAL_STEP
    return adjustment


def analyze_crypto_sentiment(title: str, description: str = "") -> SentimentResult:
    """Advanced sentiment tuned for noisier crypto coverage.

    Confidence is scaled down by 0.8 and the score is nudged by the crypto
    signal words, then clamped and reclassified.

    The classification follows the nudged score, not the underlying advanced
    reading; keeping the advanced label here would let score and class
    disagree, and callers filter on classification.
    """
    base = analyze_advanced_sentiment(title, description)
    score = _clamp(base.score + crypto_signal_adjustment(f"{title} {description}"))

    return SentimentResult(
        score=score,
        magnitude=base.magnitude,
        classification=_classify(score, ADVANCED_THRESHOLD),
        confidence=base.confidence * CRYPTO_VOLATILITY_FACTOR,
    )


def _title_and_description(item: Any) -> Tuple[str, str]:
    if isinstance(item, Mapping):
        return str(item.get("title") or ""), str(item.get("description") or "")
    if isinstance(item, tuple):
        title = item[0] if item else ""
        description = item[1] if len(item) > 1 else ""
        return str(title or ""), str(description or "")
    return str(getattr(item, "title", "") or ""), str(getattr(item, "description", "") or "")


def analyze_aggregate_sentiment(items: Iterable[Any]) -> SentimentResult:
    """Confidence-weighted mean sentiment across many articles.

    Args:
        items: NewsItems, mappings with ``title``/``description`` keys, or
            ``(title, description)`` tuples.

    Returns:
        Aggregate SentimentResult. Confidence is total weight divided by the
        article count, so many weak readings yield a weak aggregate. Empty
        input returns a zeroed neutral result with confidence 0.
    """
    results = [
        analyze_advanced_sentiment(*_title_and_description(item)) for item in items
    ]
    if not results:
        return SentimentResult.no_data()

    total_weight = 0.0
    weighted_score = 0.0
    weighted_magnitude = 0.0
    for result in results:
        weight = result.confidence
        total_weight += weight
        weighted_score += result.score * weight
        weighted_magnitude += result.magnitude * weight

    if total_weight == 0:
        return SentimentResult.no_data()

    avg_score = weighted_score / total_weight
    avg_magnitude = weighted_magnitude / total_weight
    avg_confidence = total_weight / len(results)

    logger.debug(
        "Aggregate sentiment over %d articles: score=%.3f confidence=%.3f",
        len(results),
        avg_score,
        avg_confidence,
    )

    return SentimentResult(
        score=_clamp(avg_score),
        magnitude=_clamp(avg_magnitude, 0.0, 1.0),
        classification=_classify(avg_score, AGGREGATE_THRESHOLD),
        confidence=min(avg_confidence, 1.0),
    )


class SentimentAnalyzer:
    """Facade over the scoring functions for dependency injection."""

    analyze_sentiment = staticmethod(analyze_sentiment)
    analyze_advanced_sentiment = staticmethod(analyze_advanced_sentiment)
    analyze_crypto_sentiment = staticmethod(analyze_crypto_sentiment)
    analyze_aggregate_sentiment = staticmethod(analyze_aggregate_sentiment)
