"""
Clients for the upstream services tunestream resolves tracks against.

Two kinds of provider live here:

* search providers turn a free-text query into ``SearchCandidate`` objects
  (``SaavnAPI`` first, ``PipedAPI`` for the YouTube catalogue);
* extraction providers turn a YouTube video id into a ``ResolvedStream``
  (``InvidiousAPI`` first, the ``yt-dlp`` command line as a fallback).

Each client owns the quirks of its upstream's response shape. A search that
simply finds nothing returns an empty list; a provider that cannot be reached
or answers with garbage raises ``UpstreamUnavailable`` so the resolver can log
it and move on to the next path.
"""

from __future__ import annotations

import html
import logging
import shutil
import subprocess
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import parse_qs, urljoin, urlsplit, urlunsplit

import requests

from .config import DEFAULT_INVIDIOUS_API, DEFAULT_PIPED_INSTANCE, DEFAULT_SAAVN_API_URL, DEFAULT_STREAM_HOST
from .errors import NoAudioVariant, TrackNotFound, UpstreamUnavailable
from .matching import select_best_candidate
from .models import Artist, AudioQuality, AudioVariant, ResolvedStream, SearchCandidate

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/108.0.0.0 Safari/537.36",
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
}


def _text(value: Any) -> Optional[str]:
    """Return a cleaned string, or None for missing/blank values."""
    if value is None:
        return None
    text = html.unescape(str(value)).strip()
    return text or None


def _first_text(item: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        text = _text(item.get(key))
        if text:
            return text
    return None


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _pick_link(value: Any) -> Optional[str]:
    """Pull a URL out of a scalar or a quality-ordered list of ``{link|url}`` objects.

    Lists are ordered lowest to highest quality, so the last entry wins.
    """
    if isinstance(value, list):
        if not value:
            return None
        value = value[-1]
    if isinstance(value, dict):
        return _text(value.get("link") or value.get("url"))
    return _text(value)


def _parse_artists(value: Any) -> Tuple[Artist, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        return ()
    artists = []
    for entry in value:
        if isinstance(entry, dict):
            name = _text(entry.get("name") or entry.get("title"))
            artist_id = str(entry.get("id") or "")
        else:
            name = _text(entry)
            artist_id = ""
        if name:
            artists.append(Artist(name=name, id=artist_id))
    return tuple(artists)


class SaavnAPI:
    """Primary metadata search against a JioSaavn song search API."""

    name = "jiosaavn"

    def __init__(self, search_url: str = DEFAULT_SAAVN_API_URL, session: Any = None,
                 timeout: float = 10.0) -> None:
        self.search_url = search_url
        self.http = session or requests.Session()
        self.timeout = timeout

    def search(self, query: str, limit: int = 10) -> List[SearchCandidate]:
        params = {"query": query, "page": 0, "limit": limit}
        logger.info("[saavn.query] params=%s", params)
        try:
            response = self.http.get(self.search_url, params=params, headers=BROWSER_HEADERS,
                                     timeout=self.timeout)
        except requests.RequestException as exc:
            raise UpstreamUnavailable(f"JioSaavn search failed: {exc}", details={"query": query}) from exc

        if response.status_code != 200:
            logger.warning("[saavn.search] HTTP %s for %r", response.status_code, query)
            return []
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamUnavailable("JioSaavn returned invalid JSON", details={"query": query}) from exc

        results = [self.parse_song(item) for item in self._results(data) if isinstance(item, dict)]
        return results[:limit]

    def lookup(self, title: str, artist: str = "", limit: int = 10) -> SearchCandidate:
        """Search for ``title``/``artist`` and return the best matching song."""
        query = " ".join(part for part in (title, artist) if part)
        results = self.search(query, limit)
        best = select_best_candidate(results, title, artist)
        if best is None:
            raise TrackNotFound("No results found", details={"query": query})
        return best

    @staticmethod
    def _results(data: Any) -> List[Any]:
        if isinstance(data, list):
            return data
        if not isinstance(data, dict):
            return []
        nested = data.get("data")
        if isinstance(nested, dict) and isinstance(nested.get("results"), list):
            return nested["results"]
        for value in (data.get("results"), nested):
            if isinstance(value, list):
                return value
        return []

    def parse_song(self, item: Dict[str, Any]) -> SearchCandidate:
        """Normalize one raw song object, whichever API generation produced it."""
        artists = item.get("artists")
        if isinstance(artists, dict):
            primary = _parse_artists(artists.get("primary"))
            all_artists = _parse_artists(artists.get("all"))
        else:
            primary = _parse_artists(artists or item.get("primary_artists") or item.get("primaryArtists"))
            all_artists = _parse_artists(item.get("all_artists"))

        album = item.get("album")
        if isinstance(album, dict):
            album_name = _text(album.get("name"))
        else:
            album_name = _text(album) or _text(item.get("album_name"))

        download = _pick_link(
            item.get("downloadUrl") or item.get("download_url")
            or item.get("media_url") or item.get("media_preview_url")
        )

        return SearchCandidate(
            id=str(item.get("id") or ""),
            name=_first_text(item, "name", "title", "song"),
            duration_seconds=_to_int(item.get("duration")),
            primary_artists=primary,
            all_artists=all_artists,
            album_name=album_name,
            raw_stream_hint=download,
            thumbnail=_pick_link(item.get("image") or item.get("thumbnail")),
            source=self.name,
        )


class PipedAPI:
    """Secondary metadata search over the YouTube Music catalogue via a Piped instance."""

    name = "youtube"
    FILTER = "music_songs"

    def __init__(self, instance: str = DEFAULT_PIPED_INSTANCE, session: Any = None,
                 timeout: float = 10.0) -> None:
        self.instance = instance.rstrip("/")
        self.http = session or requests.Session()
        self.timeout = timeout

    def search(self, query: str, limit: int = 10) -> List[SearchCandidate]:
        params = {"q": query, "filter": self.FILTER}
        logger.info("[piped.query] instance=%s params=%s", self.instance, params)
        try:
            response = self.http.get(f"{self.instance}/search", params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise UpstreamUnavailable(f"Piped search failed: {exc}", details={"query": query}) from exc

        if response.status_code != 200:
            logger.warning("[piped.search] HTTP %s for %r", response.status_code, query)
            return []
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamUnavailable("Piped returned invalid JSON", details={"query": query}) from exc

        results = []
        for item in (data.get("items") or []) if isinstance(data, dict) else []:
            candidate = self.parse_item(item)
            if candidate:
                results.append(candidate)
        return results[:limit]

    def parse_item(self, item: Dict[str, Any]) -> Optional[SearchCandidate]:
        if not isinstance(item, dict) or item.get("isShort") or item.get("type") != "stream":
            return None
        # Piped puts the video id in the watch URL: "/watch?v=ID"
        video_id = (parse_qs(urlsplit(item.get("url") or "").query).get("v") or [None])[0]
        if not video_id:
            return None

        uploader = _text(item.get("uploaderName")) or "Unknown"
        if not uploader.endswith(" - Topic"):
            uploader += " - Topic"

        return SearchCandidate(
            id=video_id,
            name=_text(item.get("title")),
            duration_seconds=_to_int(item.get("duration")),
            primary_artists=(Artist(name=uploader),),
            thumbnail=_text(item.get("thumbnail")),
            source=self.name,
        )


def audio_variants(formats: Sequence[Dict[str, Any]]) -> List[AudioVariant]:
    """Keep audio-only adaptive formats, sorted by bitrate, highest first."""
    variants = [
        AudioVariant(bitrate=_to_int(f.get("bitrate")) or 0, url=f["url"], mime_type=f["type"])
        for f in formats
        if isinstance(f, dict) and str(f.get("type") or "").startswith("audio") and f.get("url")
    ]
    variants.sort(key=lambda v: v.bitrate, reverse=True)
    return variants


def select_variant(variants: Sequence[AudioVariant], quality: AudioQuality) -> AudioVariant:
    """Pick from a bitrate-descending list: high = first, low = last, medium = middle."""
    if not variants:
        raise NoAudioVariant("No audio streams found")
    if quality == AudioQuality.HIGH:
        return variants[0]
    if quality == AudioQuality.LOW:
        return variants[-1]
    return variants[len(variants) // 2]


def replace_hostname(url: str, hostname: str) -> str:
    """Swap the host of ``url`` for ``hostname``, keeping scheme, port, path and query."""
    parts = urlsplit(url)
    netloc = hostname if parts.port is None else f"{hostname}:{parts.port}"
    return urlunsplit(parts._replace(netloc=netloc))


class InvidiousAPI:
    """Primary stream extraction: adaptive formats from an Invidious instance."""

    name = "invidious"
    VIDEO_PATH = "/api/v1/videos/{id}"

    def __init__(self, base_url: str = DEFAULT_INVIDIOUS_API, stream_host: str = DEFAULT_STREAM_HOST,
                 session: Any = None, timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.stream_host = stream_host
        self.http = session or requests.Session()
        self.timeout = timeout

    def extract_stream(self, video_id: str, quality: AudioQuality = AudioQuality.HIGH) -> ResolvedStream:
        url = self.base_url + self.VIDEO_PATH.format(id=video_id)
        try:
            response = self.http.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise UpstreamUnavailable(f"Stream API error: {exc}", details={"video_id": video_id}) from exc
        if response.status_code != 200:
            raise UpstreamUnavailable(f"Stream API error: {response.status_code}",
                                      details={"video_id": video_id})
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamUnavailable("Stream API returned invalid JSON", details={"video_id": video_id}) from exc

        formats = data.get("adaptiveFormats") if isinstance(data, dict) else None
        if not formats:
            raise NoAudioVariant("No adaptive formats found", details={"video_id": video_id})

        variant = select_variant(audio_variants(formats), quality)
        # Local-proxy instances hand out relative "/videoplayback?..." URLs.
        stream_url = replace_hostname(urljoin(self.base_url + "/", variant.url), self.stream_host)
        logger.info("[invidious] %s -> %s kbps %s (%s)", video_id, variant.bitrate // 1000,
                    variant.mime_type, quality.value)
        return ResolvedStream(url=stream_url, mime_hint=variant.mime_type, bitrate=variant.bitrate,
                              source=self.name)


class YtDlpExtractor:
    """Fallback extraction through the ``yt-dlp`` command line.

    Only used when Invidious is unreachable or has no usable formats. Runs
    non-interactively with best-audio format selection and prints a single URL.
    """

    name = "yt-dlp"
    WATCH_URL = "https://www.youtube.com/watch?v={id}"
    FLAGS = (
        "--get-url",
        "--format", "bestaudio/best",
        "--no-playlist",
        "--no-warnings",
        "--no-progress",
        "--ignore-config",
    )

    def __init__(self, executable: str = "yt-dlp", timeout: float = 30.0) -> None:
        self.executable = executable
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return shutil.which(self.executable) is not None

    def extract_stream(self, video_id: str, quality: AudioQuality = AudioQuality.HIGH) -> ResolvedStream:
        if not self.available:
            raise UpstreamUnavailable("yt-dlp is not installed", details={"executable": self.executable})

        cmd = [self.executable, *self.FLAGS, self.WATCH_URL.format(id=video_id)]
        logger.info("[yt-dlp] extracting %s", video_id)
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout,
                                    stdin=subprocess.DEVNULL, check=False)
        except subprocess.TimeoutExpired as exc:
            raise UpstreamUnavailable(f"yt-dlp timed out after {self.timeout:g}s",
                                      details={"video_id": video_id}) from exc
        except OSError as exc:
            raise UpstreamUnavailable(f"yt-dlp could not be started: {exc}",
                                      details={"video_id": video_id}) from exc

        if result.returncode != 0:
            stderr = (result.stderr or "").strip().splitlines()
            raise UpstreamUnavailable(stderr[-1] if stderr else f"yt-dlp exited with {result.returncode}",
                                      details={"video_id": video_id})

        lines = [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]
        if not lines:
            raise UpstreamUnavailable("yt-dlp returned no URL", details={"video_id": video_id})
        return ResolvedStream(url=lines[0], source=self.name)
