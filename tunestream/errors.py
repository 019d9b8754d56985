"""
Exception classes for tunestream.

Hierarchy:
    TuneStreamError (base)
        NoResults - one search attempt found nothing (triggers the next attempt)
        UpstreamUnavailable - network failure or non-success from a provider
        NoAudioVariant - extraction worked but offered no audio-only format
        TrackNotFound - every provider and search attempt was exhausted
        ProxyUpstreamError - the final media fetch failed at transport level

Search failures (``NoResults``, and ``UpstreamUnavailable`` raised while
searching) are caught by the resolver and turned into fallback; only the
remaining ones reach the HTTP layer, where they are rendered as
``{"error": message}``.
"""

from typing import Any, Dict, Optional


class TuneStreamError(Exception):
    """
    Base exception for all tunestream errors.

    Attributes:
        message: Human-readable error description, safe to show to callers.
        details: Optional context for logging (provider, query, url, ...).
        status_code: HTTP status used when the error reaches a route.
    """

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class NoResults(TuneStreamError):
    """A provider answered but had nothing for the query."""


class UpstreamUnavailable(TuneStreamError):
    """A provider could not be reached, answered with an error, or sent garbage."""

    status_code = 502


class NoAudioVariant(TuneStreamError):
    """The extraction provider listed formats, but none of them is audio-only."""


class TrackNotFound(TuneStreamError):
    """Raised once both the strict and the loosened search came back empty."""


class ProxyUpstreamError(TuneStreamError):
    """The proxied fetch failed before any response headers were available."""

    def __init__(self, message: str = "Proxy failed", status_code: int = 500,
                 details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.status_code = status_code
