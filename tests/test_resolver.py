"""Test the resolution fallback chain"""

from unittest.mock import Mock
from urllib.parse import parse_qs, urlsplit

import pytest

from tunestream.errors import NoAudioVariant, NoResults, TrackNotFound, UpstreamUnavailable
from tunestream.models import AudioQuality, ResolvedStream, SearchProvider, TrackQuery
from tunestream.resolver import Resolver, looks_like_video_id, proxied_url

from .conftest import FakeSearch, make_candidate

BASE = "http://localhost:3001"


def extractor(name, result):
    mock = Mock()
    mock.name = name
    if isinstance(result, Exception):
        mock.extract_stream.side_effect = result
    else:
        mock.extract_stream.return_value = result
    return mock


def upstream_of(proxied: str) -> str:
    return parse_qs(urlsplit(proxied).query)["url"][0]


@pytest.fixture
def invidious():
    return extractor("invidious", ResolvedStream(url="https://yt.omada.cafe/videoplayback?id=1",
                                                 source="invidious"))


@pytest.fixture
def ytdlp():
    return extractor("yt-dlp", ResolvedStream(url="https://rr1.googlevideo.com/videoplayback?id=2",
                                              source="yt-dlp"))


def test_proxied_url_round_trips():
    upstream = "https://host/path/seg 1.ts?a=1&b=2"
    url = proxied_url(BASE + "/", upstream)
    assert url.startswith(BASE + "/proxy?url=https%3A%2F%2Fhost%2F")
    assert upstream_of(url) == upstream


def test_looks_like_video_id():
    assert looks_like_video_id("4NRXx6U8ABQ")
    assert not looks_like_video_id("abc")
    assert not looks_like_video_id(None)


def test_direct_url_short_circuits(invidious, ytdlp):
    saavn, youtube = FakeSearch("jiosaavn"), FakeSearch("youtube")
    resolver = Resolver(saavn, youtube, [invidious, ytdlp])

    url = resolver.resolve_audio_url(TrackQuery(title="x", url="https://already/there.mp3"),
                                     SearchProvider.JIOSAAVN, AudioQuality.HIGH, BASE)

    assert url == "https://already/there.mp3"
    assert saavn.queries == [] and youtube.queries == []
    invidious.extract_stream.assert_not_called()


class TestSaavnPath:

    def test_strict_search_match(self, blinding_lights, invidious):
        hinted = [make_candidate(c.name, [a.name for a in c.primary_artists], id=c.id,
                                 hint=f"https://aac.saavncdn.com/{c.id}.mp4")
                  for c in blinding_lights]
        saavn = FakeSearch("jiosaavn", hinted)
        resolver = Resolver(saavn, FakeSearch("youtube"), [invidious])

        url = resolver.resolve_audio_url(TrackQuery(title="Blinding Lights", artist="The Weeknd"),
                                         SearchProvider.JIOSAAVN, AudioQuality.HIGH, BASE)

        assert upstream_of(url) == "https://aac.saavncdn.com/bl-1.mp4"
        assert saavn.queries == ["Blinding Lights The Weeknd"]
        invidious.extract_stream.assert_not_called()

    def test_loosened_retry_after_empty_strict_search(self, invidious):
        saavn = FakeSearch("jiosaavn", [], [make_candidate("Rare Song", hint="https://aac/rare.mp4")])
        resolver = Resolver(saavn, FakeSearch("youtube"), [invidious])

        url = resolver.resolve_audio_url(TrackQuery(title="Rare Song", artist="Obscure Artist"),
                                         SearchProvider.JIOSAAVN, AudioQuality.LOW, BASE)

        assert saavn.queries == ["Rare Song Obscure Artist", "Rare Song"]
        assert upstream_of(url) == "https://aac/rare.mp4"

    def test_provider_error_counts_as_no_results(self, invidious):
        saavn = FakeSearch("jiosaavn", UpstreamUnavailable("down"), [make_candidate("Song", hint="https://aac/s.mp4")])
        resolver = Resolver(saavn, FakeSearch("youtube"), [invidious])

        url = resolver.resolve_audio_url(TrackQuery(title="Song", artist="A"),
                                         SearchProvider.JIOSAAVN, AudioQuality.HIGH, BASE)

        assert upstream_of(url) == "https://aac/s.mp4"

    def test_candidate_without_media_falls_back_to_youtube(self, invidious):
        saavn = FakeSearch("jiosaavn", [make_candidate("Song", ["A"])])
        youtube = FakeSearch("youtube", [make_candidate("Song", ["A - Topic"], id="4NRXx6U8ABQ", source="youtube")])
        resolver = Resolver(saavn, youtube, [invidious])

        url = resolver.resolve_audio_url(TrackQuery(title="Song", artist="A"),
                                         SearchProvider.JIOSAAVN, AudioQuality.MEDIUM, BASE)

        assert upstream_of(url) == "https://yt.omada.cafe/videoplayback?id=1"
        invidious.extract_stream.assert_called_once_with("4NRXx6U8ABQ", AudioQuality.MEDIUM)

    def test_track_not_found_after_every_attempt(self, invidious):
        saavn, youtube = FakeSearch("jiosaavn"), FakeSearch("youtube")
        resolver = Resolver(saavn, youtube, [invidious])

        with pytest.raises(TrackNotFound):
            resolver.resolve_audio_url(TrackQuery(title="Nothing", artist="Nobody"),
                                       SearchProvider.JIOSAAVN, AudioQuality.HIGH, BASE)

        assert saavn.queries == ["Nothing Nobody", "Nothing"]
        assert youtube.queries == ["Nothing Nobody", "Nothing"]
        invidious.extract_stream.assert_not_called()

    def test_id_only_request_falls_through_to_extraction(self, invidious):
        saavn, youtube = FakeSearch("jiosaavn"), FakeSearch("youtube")
        resolver = Resolver(saavn, youtube, [invidious])

        url = resolver.resolve_audio_url(TrackQuery(title="", id="4NRXx6U8ABQ"),
                                         SearchProvider.JIOSAAVN, AudioQuality.HIGH, BASE)

        assert saavn.queries == []
        assert youtube.queries == []
        invidious.extract_stream.assert_called_once_with("4NRXx6U8ABQ", AudioQuality.HIGH)
        assert upstream_of(url) == "https://yt.omada.cafe/videoplayback?id=1"

    def test_video_id_survives_candidate_without_media(self, invidious):
        saavn, youtube = FakeSearch("jiosaavn", [make_candidate("Song", ["A"])]), FakeSearch("youtube")
        resolver = Resolver(saavn, youtube, [invidious])

        resolver.resolve_audio_url(TrackQuery(title="Song", artist="A", id="4NRXx6U8ABQ"),
                                   SearchProvider.JIOSAAVN, AudioQuality.LOW, BASE)

        assert youtube.queries == []
        invidious.extract_stream.assert_called_once_with("4NRXx6U8ABQ", AudioQuality.LOW)


class TestYouTubePath:

    def test_native_id_skips_search(self, invidious):
        youtube = FakeSearch("youtube")
        resolver = Resolver(FakeSearch("jiosaavn"), youtube, [invidious])

        url = resolver.resolve_audio_url(TrackQuery(title="Whatever", id="4NRXx6U8ABQ"),
                                         SearchProvider.YOUTUBE, AudioQuality.HIGH, BASE)

        assert youtube.queries == []
        invidious.extract_stream.assert_called_once_with("4NRXx6U8ABQ", AudioQuality.HIGH)
        assert upstream_of(url) == "https://yt.omada.cafe/videoplayback?id=1"

    def test_non_native_id_searches_with_all_artists(self, invidious):
        youtube = FakeSearch("youtube", [
            make_candidate("Duet (Live)", ["X - Topic"], id="liveliveliv"),
            make_candidate("Duet", ["Lead - Topic"], id="studiostudi"),
        ])
        resolver = Resolver(FakeSearch("jiosaavn"), youtube, [invidious])

        resolver.resolve_audio_url(TrackQuery(title="Duet", artist="Lead, Guest", id="saavn-123"),
                                   SearchProvider.YOUTUBE, AudioQuality.HIGH, BASE)

        assert youtube.queries == ["Duet Lead Guest"]
        # "Duet (Live)" title-matches but neither artist overlaps "Lead, Guest"
        invidious.extract_stream.assert_called_once_with("studiostudi", AudioQuality.HIGH)

    def test_ytdlp_fallback_when_invidious_unreachable(self, ytdlp):
        invidious = extractor("invidious", UpstreamUnavailable("Stream API error: 502"))
        resolver = Resolver(FakeSearch("jiosaavn"), FakeSearch("youtube"), [invidious, ytdlp])

        url = resolver.resolve_audio_url(TrackQuery(title="", id="4NRXx6U8ABQ"),
                                         SearchProvider.YOUTUBE, AudioQuality.HIGH, BASE)

        assert upstream_of(url) == "https://rr1.googlevideo.com/videoplayback?id=2"
        ytdlp.extract_stream.assert_called_once()

    def test_no_audio_variant_surfaces_when_everything_fails(self):
        invidious = extractor("invidious", NoAudioVariant("No audio streams found"))
        ytdlp = extractor("yt-dlp", UpstreamUnavailable("yt-dlp is not installed"))
        resolver = Resolver(FakeSearch("jiosaavn"), FakeSearch("youtube"), [invidious, ytdlp])

        with pytest.raises(NoAudioVariant):
            resolver.extract_stream("4NRXx6U8ABQ", AudioQuality.HIGH)

    def test_no_audio_variant_wins_regardless_of_order(self):
        ytdlp = extractor("yt-dlp", NoAudioVariant("No audio streams found"))
        invidious = extractor("invidious", UpstreamUnavailable("Stream API error: 502"))
        resolver = Resolver(FakeSearch("jiosaavn"), FakeSearch("youtube"), [ytdlp, invidious])

        with pytest.raises(NoAudioVariant):
            resolver.extract_stream("4NRXx6U8ABQ", AudioQuality.HIGH)
        invidious.extract_stream.assert_called_once()

    def test_all_extractors_unreachable(self):
        resolver = Resolver(FakeSearch("jiosaavn"), FakeSearch("youtube"), [
            extractor("invidious", UpstreamUnavailable("down")),
            extractor("yt-dlp", UpstreamUnavailable("down")),
        ])
        with pytest.raises(TrackNotFound):
            resolver.extract_stream("4NRXx6U8ABQ", AudioQuality.HIGH)


def test_smart_search_dispatches_on_provider():
    saavn = FakeSearch("jiosaavn", [make_candidate("A")])
    youtube = FakeSearch("youtube", [make_candidate("B", source="youtube")])
    resolver = Resolver(saavn, youtube, [])

    assert resolver.smart_search("q", SearchProvider.YOUTUBE)[0].name == "B"
    assert resolver.smart_search("q", SearchProvider.JIOSAAVN)[0].name == "A"


class TestSearchAttempts:

    def test_empty_attempt_raises_no_results(self):
        resolver = Resolver(FakeSearch("jiosaavn", []), FakeSearch("youtube"), [])
        with pytest.raises(NoResults):
            resolver._try_search(resolver.saavn, "anything")

    def test_provider_error_becomes_no_results(self):
        saavn = FakeSearch("jiosaavn", UpstreamUnavailable("down"))
        resolver = Resolver(saavn, FakeSearch("youtube"), [])

        with pytest.raises(NoResults) as excinfo:
            resolver._try_search(saavn, "anything")

        assert isinstance(excinfo.value.__cause__, UpstreamUnavailable)
        assert excinfo.value.details == {"provider": "jiosaavn", "query": "anything"}

    def test_blank_query_is_not_sent(self):
        saavn = FakeSearch("jiosaavn", [make_candidate("A")])
        resolver = Resolver(saavn, FakeSearch("youtube"), [])

        with pytest.raises(NoResults):
            resolver._try_search(saavn, "")
        assert saavn.queries == []

    def test_exhaustion_chains_the_last_attempt(self):
        resolver = Resolver(FakeSearch("jiosaavn"), FakeSearch("youtube"), [])

        with pytest.raises(TrackNotFound) as excinfo:
            resolver.search_with_retry(resolver.saavn, TrackQuery(title="Nothing", artist="Nobody"))

        assert isinstance(excinfo.value.__cause__, NoResults)
