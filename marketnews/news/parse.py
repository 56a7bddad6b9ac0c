"""Feed parsing and text extraction.

Turns raw RSS 2.0 / RSS 1.0 / Atom text into a ``ParsedFeed``. Format
detection is an explicit step; each format has its own normalizer and both
produce ``RawFeedEntry`` records. Also holds the format-independent text
helpers (markup cleanup, date parsing, symbol and keyword extraction).
"""

from __future__ import annotations

import html
import re
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Dict, Iterable, List, Optional

from marketnews.logging_setup import get_logger
from marketnews.news.errors import FeedFormatError, InvalidFeedError
from marketnews.news.models import FeedEnclosure, FeedFormat, ParsedFeed, RawFeedEntry

logger = get_logger("news.parse")

ATOM_NS = "http://www.w3.org/2005/Atom"
CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
DC_NS = "http://purl.org/dc/elements/1.1/"

# Common RSS/Atom date formats tried after the native parsers
DATE_FORMATS = [
    "%a, %d %b %Y %H:%M:%S %z",  # RFC 822
    "%a, %d %b %Y %H:%M:%S GMT",
    "%a, %d %b %Y %H:%M:%S %Z",
    "%a, %d %b %Y %H:%M %z",
    "%d %b %Y %H:%M:%S %z",
    "%Y-%m-%dT%H:%M:%S%z",  # ISO 8601
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%d",
]

STOP_WORDS = frozenset(
    {"the", "is", "at", "which", "on", "and", "a", "to", "are", "as", "was", "will", "be",
     "with", "from", "that", "this", "have", "has", "for", "its", "after", "into", "over"}
)

MAX_KEYWORDS = 10

_SYMBOL_PATTERN = re.compile(r"\$([A-Z]{1,5})\b")
_IMG_PATTERN = re.compile(r"<img[^>]+src=[\"']([^\"'>]+)[\"']", re.IGNORECASE)
_CDATA_PATTERN = re.compile(r"^<!\[CDATA\[(.*?)\]\]>$", re.DOTALL)
_TAG_PATTERN = re.compile(r"<[^>]*>")
_WS_PATTERN = re.compile(r"\s+")


# ----------------------------- Text helpers ----------------------------- #


def extract_cdata(text: Optional[str]) -> str:
    """Strip a literal CDATA wrapper that survived entity escaping."""
    if not text:
        return ""
    text = text.strip()
    match = _CDATA_PATTERN.match(text)
    return match.group(1).strip() if match else text


def clean_text(text: Optional[str]) -> str:
    """Remove markup, decode HTML entities and normalize whitespace."""
    if not text:
        return ""

    text = _TAG_PATTERN.sub(" ", text)
    text = html.unescape(text)
    # Entity-encoded markup shows up as tags only after unescaping
    text = _TAG_PATTERN.sub(" ", text)
    text = text.replace("\xa0", " ")
    return _WS_PATTERN.sub(" ", text).strip()


def extract_symbols(text: str) -> List[str]:
    """Find ``$TICKER`` tokens (1-5 uppercase letters), first-seen order."""
    if not text:
        return []
    seen: Dict[str, None] = {}
    for match in _SYMBOL_PATTERN.finditer(text):
        seen.setdefault(match.group(1), None)
    return list(seen)


def extract_keywords(title: str, description: str = "") -> List[str]:
    """Lowercased tokens longer than 3 characters, minus stop words, at most 10."""
    combined = f"{title} {description}".lower()
    keywords = [
        word
        for word in re.split(r"\W+", combined)
        if len(word) > 3 and word not in STOP_WORDS
    ]
    return keywords[:MAX_KEYWORDS]


def extract_image_url(markup: Optional[str]) -> Optional[str]:
    """Return the first ``<img src>`` found in raw description markup."""
    if not markup:
        return None
    match = _IMG_PATTERN.search(html.unescape(markup))
    return match.group(1) if match else None


def parse_feed_date(value: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Parse a feed date string to an aware UTC datetime.

    Tries the native ISO and RFC 822 parsers, then the known feed patterns.
    Unparseable or empty input yields ``now`` so one bad date never sinks
    an entry.
    """
    fallback = now or datetime.now(timezone.utc)
    if not value:
        return fallback

    text = _WS_PATTERN.sub(" ", value.strip())

    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError, OverflowError):
            parsed = None

    if parsed is None:
        for fmt in DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except (ValueError, OverflowError):
                continue

    if parsed is None:
        logger.debug("Could not parse date: %s", value)
        return fallback

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError:
        # Offset pushes the instant outside datetime range (e.g. year 1 at +01:00)
        logger.debug("Date out of range after UTC conversion: %s", value)
        return fallback


# ----------------------------- XML helpers ----------------------------- #


def _local(tag: str) -> str:
    """Tag name without its ``{namespace}`` prefix."""
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def _children(element: ET.Element, name: str) -> List[ET.Element]:
    return [child for child in element if _local(child.tag) == name]


def _matching(element: ET.Element, name: str) -> List[ET.Element]:
    """Direct children with exactly ``name``, then any sharing its local name."""
    exact = [child for child in element if child.tag == name]
    if "{" in name:
        return exact
    return exact + [
        child for child in element if child.tag != name and _local(child.tag) == name
    ]


def _child(element: ET.Element, *names: str) -> Optional[ET.Element]:
    """First direct child matching any of ``names``."""
    for name in names:
        matches = _matching(element, name)
        if matches:
            return matches[0]
    return None


def _text(element: Optional[ET.Element]) -> str:
    """Full text content of an element, CDATA-unwrapped and trimmed."""
    if element is None:
        return ""
    return extract_cdata("".join(element.itertext()))


def _first_text(element: ET.Element, *names: str) -> str:
    """First non-empty text among children matching ``names`` in order."""
    for name in names:
        for child in _matching(element, name):
            value = _text(child)
            if value:
                return value
    return ""


def _iter_local(root: ET.Element, name: str) -> Iterable[ET.Element]:
    return (el for el in root.iter() if _local(el.tag) == name)


# ----------------------------- Detection ----------------------------- #


def detect_feed_format(root: ET.Element) -> FeedFormat:
    """Classify a parsed document as RSS, Atom or unknown."""
    if root.tag == f"{{{ATOM_NS}}}feed":
        return FeedFormat.ATOM
    if _local(root.tag) in ("rss", "channel"):
        return FeedFormat.RSS
    if next(iter(_iter_local(root, "channel")), None) is not None:
        return FeedFormat.RSS
    return FeedFormat.UNKNOWN


# ----------------------------- RSS ----------------------------- #


def _parse_rss_item(item: ET.Element) -> RawFeedEntry:
    title = _first_text(item, "title")
    description = _first_text(item, "description")
    content = _first_text(item, f"{{{CONTENT_NS}}}encoded", "encoded")
    link = _first_text(item, "link")
    pub_date = _first_text(item, "pubDate", f"{{{DC_NS}}}date", "date")
    guid = _first_text(item, "guid")
    category = _first_text(item, "category")
    author = _first_text(item, "author", f"{{{DC_NS}}}creator", "creator")

    enclosure = None
    enclosure_el = _child(item, "enclosure")
    if enclosure_el is not None and enclosure_el.get("url"):
        enclosure = FeedEnclosure(
            url=enclosure_el.get("url", ""),
            type=enclosure_el.get("type", ""),
        )

    return RawFeedEntry(
        title=title,
        description=description,
        content=content or None,
        link=link,
        pub_date=pub_date,
        guid=guid or link or None,
        category=category or None,
        author=author or None,
        enclosure=enclosure,
    )


def _parse_rss(root: ET.Element) -> ParsedFeed:
    if _local(root.tag) == "channel":
        channel = root
    else:
        channel = next(iter(_iter_local(root, "channel")), None)
    if channel is None:
        raise InvalidFeedError("Invalid RSS feed: no channel element found")

    title = _first_text(channel, "title")
    if not title:
        raise InvalidFeedError("Invalid RSS feed: channel has no title")

    item_elements = _children(channel, "item")
    if not item_elements:
        # RSS 1.0 keeps items beside the channel, not inside it
        item_elements = list(_iter_local(root, "item"))

    items = [_parse_rss_item(el) for el in item_elements]

    return ParsedFeed(
        title=clean_text(title),
        description=_first_text(channel, "description"),
        link=_first_text(channel, "link"),
        last_build_date=_first_text(channel, "lastBuildDate", "pubDate") or None,
        items=items,
        format=FeedFormat.RSS,
    )


# ----------------------------- Atom ----------------------------- #


def _atom(name: str) -> str:
    return f"{{{ATOM_NS}}}{name}"


def _atom_link(element: ET.Element, rel: str = "alternate") -> str:
    links = element.findall(_atom("link"))
    for link in links:
        if link.get("rel", "alternate") == rel and link.get("href"):
            return link.get("href", "")
    if rel == "alternate":
        for link in links:
            if link.get("href"):
                return link.get("href", "")
    return ""


def _parse_atom_entry(entry: ET.Element) -> RawFeedEntry:
    title = _text(entry.find(_atom("title")))
    summary = _text(entry.find(_atom("summary")))
    content = _text(entry.find(_atom("content")))
    link = _atom_link(entry)
    published = _text(entry.find(_atom("published"))) or _text(entry.find(_atom("updated")))
    entry_id = _text(entry.find(_atom("id")))

    category_el = entry.find(_atom("category"))
    category = category_el.get("term", "") if category_el is not None else ""
    author = _text(entry.find(f"{_atom('author')}/{_atom('name')}"))

    enclosure = None
    for link_el in entry.findall(_atom("link")):
        if link_el.get("rel") == "enclosure" and link_el.get("href"):
            enclosure = FeedEnclosure(url=link_el.get("href", ""), type=link_el.get("type", ""))
            break

    return RawFeedEntry(
        title=title,
        description=content or summary,
        content=content or None,
        link=link,
        pub_date=published,
        guid=entry_id or link or None,
        category=category or None,
        author=author or None,
        enclosure=enclosure,
    )


def _parse_atom(root: ET.Element) -> ParsedFeed:
    items = [_parse_atom_entry(el) for el in root.findall(_atom("entry"))]
    return ParsedFeed(
        title=clean_text(_text(root.find(_atom("title")))),
        description=_text(root.find(_atom("subtitle"))),
        link=_atom_link(root),
        last_build_date=_text(root.find(_atom("updated"))) or None,
        items=items,
        format=FeedFormat.ATOM,
    )


_NORMALIZERS: Dict[FeedFormat, Callable[[ET.Element], ParsedFeed]] = {
    FeedFormat.RSS: _parse_rss,
    FeedFormat.ATOM: _parse_atom,
}


# ----------------------------- Entry point ----------------------------- #


def parse_feed(raw_text: str) -> ParsedFeed:
    """Parse an RSS or Atom document.

    Args:
        raw_text: Raw feed document.

    Returns:
        ParsedFeed with entries in document order. Entries that have neither
        a title nor a link are dropped.

    Raises:
        FeedFormatError: Document is not well-formed or not a known feed.
        InvalidFeedError: RSS channel is missing or has no title.
    """
    if not raw_text or not raw_text.strip():
        raise FeedFormatError("Empty feed document")

    try:
        root = ET.fromstring(raw_text.lstrip("\ufeff").strip())
    except ET.ParseError as e:
        raise FeedFormatError(f"XML parse error: {e}") from e

    feed_format = detect_feed_format(root)
    normalizer = _NORMALIZERS.get(feed_format)
    if normalizer is None:
        raise FeedFormatError(f"Unrecognized feed format (root <{_local(root.tag)}>)")

    feed = normalizer(root)
    total = len(feed.items)
    feed.items = [entry for entry in feed.items if entry.title or entry.link]
    if len(feed.items) < total:
        logger.debug("Dropped %d entries without title or link", total - len(feed.items))
    return feed
