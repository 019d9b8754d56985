"""Value objects passed between the providers, the resolver and the proxy.

Everything here is created per request and thrown away afterwards. Missing
text fields are ``None`` rather than empty strings so callers can tell
"absent" apart from "present but blank".
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class AudioQuality(str, Enum):
    """Which bitrate-ordered variant to pick from an extraction provider."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Optional[str], default: Optional["AudioQuality"] = None) -> "AudioQuality":
        if not value:
            return default or cls.HIGH
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown audio quality '{value}'") from None


class SearchProvider(str, Enum):
    """Metadata search backend used to turn a title/artist into a candidate."""

    JIOSAAVN = "jiosaavn"
    YOUTUBE = "youtube"

    @classmethod
    def parse(cls, value: Optional[str], default: Optional["SearchProvider"] = None) -> "SearchProvider":
        if not value:
            return default or cls.JIOSAAVN
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown search provider '{value}'") from None


@dataclass(frozen=True)
class Artist:
    name: str
    id: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "id": self.id}


@dataclass(frozen=True)
class TrackQuery:
    """A track the caller wants to play.

    ``url`` short-circuits resolution entirely; ``id`` is a platform id that
    may let the resolver skip the metadata search.
    """

    title: str
    artist: str = ""
    id: Optional[str] = None
    url: Optional[str] = None

    @property
    def artist_names(self) -> List[str]:
        return [name.strip() for name in self.artist.split(",") if name.strip()]


@dataclass(frozen=True)
class SearchCandidate:
    id: str
    name: Optional[str]
    duration_seconds: Optional[int] = None
    primary_artists: Tuple[Artist, ...] = ()
    all_artists: Tuple[Artist, ...] = ()
    album_name: Optional[str] = None
    raw_stream_hint: Optional[str] = None
    thumbnail: Optional[str] = None
    source: str = ""

    @property
    def artist_names(self) -> List[str]:
        return [a.name for a in (*self.primary_artists, *self.all_artists) if a.name]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "duration": self.duration_seconds,
            "album": {"name": self.album_name},
            "artists": {
                "primary": [a.to_dict() for a in self.primary_artists],
                "all": [a.to_dict() for a in self.all_artists],
            },
            "url": self.raw_stream_hint,
            "thumbnail": self.thumbnail,
            "source": self.source,
        }


@dataclass(frozen=True)
class AudioVariant:
    """One adaptive format offered by an extraction provider."""

    bitrate: int
    url: str
    mime_type: str = ""


@dataclass(frozen=True)
class ResolvedStream:
    url: str
    mime_hint: Optional[str] = None
    bitrate: Optional[int] = None
    source: str = ""


@dataclass(frozen=True)
class ProxyRequest:
    target_url: str
    range_header: Optional[str] = None
