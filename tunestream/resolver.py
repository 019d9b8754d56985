"""
Turn a requested track into a proxied, playable audio URL.

The resolver walks a fixed fallback chain:

1. a track that already carries a direct URL is returned untouched;
2. a YouTube track whose id already looks like a video id skips the search;
3. otherwise the active search provider is queried with title + artists,
   and once more with the title alone if that found nothing;
4. the best candidate is picked with ``select_best_candidate``;
5. a stream is obtained for it (JioSaavn's inline media URL, or Invidious
   with yt-dlp as a fallback for YouTube ids);
6. the upstream URL is wrapped as ``<base>/proxy?url=<encoded>``.

Provider failures are logged and treated as "no result from this provider".
Only when every path is exhausted does a typed error reach the caller.
Which provider and quality to use are passed in per call; the resolver keeps
no state between calls.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence
from urllib.parse import quote

from .errors import NoAudioVariant, NoResults, TrackNotFound, TuneStreamError
from .matching import select_best_candidate
from .models import AudioQuality, ResolvedStream, SearchCandidate, SearchProvider, TrackQuery

logger = logging.getLogger(__name__)

YOUTUBE_ID_LENGTH = 11
SEARCH_LIMIT = 10


def proxied_url(proxy_base: str, upstream_url: str) -> str:
    """Same-origin URL that makes the proxy relay ``upstream_url``."""
    return f"{proxy_base.rstrip('/')}/proxy?url={quote(upstream_url, safe='')}"


def looks_like_video_id(value: Optional[str]) -> bool:
    return bool(value) and len(value) == YOUTUBE_ID_LENGTH


class Resolver:
    """Orchestrates search and extraction providers.

    :param saavn: primary search provider (``search``).
    :param youtube: YouTube catalogue search provider (``search``).
    :param extractors: extraction providers tried in order (``extract_stream``).
    """

    def __init__(self, saavn, youtube, extractors: Sequence) -> None:
        self.saavn = saavn
        self.youtube = youtube
        self.extractors = list(extractors)

    def _search_provider(self, provider: SearchProvider):
        return self.saavn if provider == SearchProvider.JIOSAAVN else self.youtube

    def smart_search(self, query: str, provider: SearchProvider,
                     limit: int = SEARCH_LIMIT) -> List[SearchCandidate]:
        """Plain search on the active provider, without any fallback."""
        return self._search_provider(provider).search(query, limit)

    def _try_search(self, client, query: str) -> List[SearchCandidate]:
        """One search attempt; raises ``NoResults`` when it produced nothing usable."""
        if not query:
            raise NoResults("Empty query")
        try:
            results = client.search(query, SEARCH_LIMIT)
        except TuneStreamError as exc:
            logger.warning("[resolver] %s search failed for %r: %s", client.name, query, exc)
            raise NoResults(str(exc), details={"provider": client.name, "query": query}) from exc
        if not results:
            raise NoResults(f"No results on {client.name}", details={"query": query})
        return results

    def search_with_retry(self, client, track: TrackQuery) -> List[SearchCandidate]:
        """Strict (title + artists) search, then title only if that was empty."""
        strict = " ".join([track.title, *track.artist_names]).strip()
        try:
            return self._try_search(client, strict)
        except NoResults:
            pass

        loose = track.title.strip()
        logger.info("[resolver] retrying %s search with title only: %r", client.name, loose)
        try:
            return self._try_search(client, loose)
        except NoResults as exc:
            raise TrackNotFound(f"Track not found on {client.name}",
                                details={"title": track.title, "artist": track.artist}) from exc

    def extract_stream(self, video_id: str, quality: AudioQuality) -> ResolvedStream:
        """Try each extraction provider in order for ``video_id``.

        If every provider fails and any of them reported ``NoAudioVariant``,
        that error is raised; otherwise ``TrackNotFound``.
        """
        no_audio: Optional[NoAudioVariant] = None
        for extractor in self.extractors:
            try:
                return extractor.extract_stream(video_id, quality)
            except TuneStreamError as exc:
                logger.warning("[resolver] %s extraction failed for %s: %s", extractor.name, video_id, exc)
                if isinstance(exc, NoAudioVariant):
                    no_audio = no_audio or exc
        if no_audio is not None:
            raise no_audio
        raise TrackNotFound("No playable stream found", details={"video_id": video_id})

    def _resolve_youtube(self, track: TrackQuery, quality: AudioQuality) -> ResolvedStream:
        video_id = track.id
        if not looks_like_video_id(video_id):
            results = self.search_with_retry(self.youtube, track)
            video_id = select_best_candidate(results, track.title, track.artist).id
        return self.extract_stream(video_id, quality)

    def _resolve_saavn(self, track: TrackQuery, quality: AudioQuality) -> ResolvedStream:
        try:
            results = self.search_with_retry(self.saavn, track)
        except TrackNotFound:
            logger.info("[resolver] nothing on %s, falling back to youtube", self.saavn.name)
            return self._resolve_youtube(track, quality)

        candidate = select_best_candidate(results, track.title, track.artist)
        if candidate.raw_stream_hint:
            return ResolvedStream(url=candidate.raw_stream_hint, source=self.saavn.name)

        logger.info("[resolver] %s match %r has no media url, falling back to youtube",
                    self.saavn.name, candidate.name)
        return self._resolve_youtube(track, quality)

    def resolve_stream(self, track: TrackQuery, provider: SearchProvider,
                       quality: AudioQuality) -> ResolvedStream:
        if provider == SearchProvider.JIOSAAVN:
            return self._resolve_saavn(track, quality)
        return self._resolve_youtube(track, quality)

    def resolve_audio_url(self, track: TrackQuery, provider: SearchProvider,
                          quality: AudioQuality, proxy_base: str) -> str:
        if track.url:
            return track.url
        stream = self.resolve_stream(track, provider, quality)
        logger.info("[resolver] %r resolved via %s", track.title, stream.source)
        return proxied_url(proxy_base, stream.url)
