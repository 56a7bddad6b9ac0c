"""News pipeline exceptions.

Feed and network errors never reach aggregator callers: ``fetch_and_parse``
absorbs them and returns an empty feed. They exist for logging and for
direct callers of ``parse_feed``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class NewsError(Exception):
    """Base exception for the news pipeline."""

    def __init__(
        self,
        message: str,
        source_id: str = "",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.source_id = source_id
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "source_id": self.source_id,
            "details": self.details,
        }


class FeedFormatError(NewsError):
    """Document is not well-formed markup or not a recognized feed schema."""


class InvalidFeedError(NewsError):
    """Recognized feed format with required metadata missing."""


class NetworkError(NewsError):
    """Failed to retrieve raw feed text."""

    def __init__(
        self,
        message: str,
        url: str = "",
        status_code: Optional[int] = None,
        source_id: str = "",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_id, details)
        self.url = url
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"url": self.url, "status_code": self.status_code})
        return data


class FetchTimeoutError(NetworkError):
    """Fetch exceeded its deadline."""


class EntryProcessingError(NewsError):
    """A single feed entry could not be turned into a news item."""


class SourceConfigError(NewsError):
    """Source registry file is missing or invalid."""
