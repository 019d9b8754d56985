"""Test configuration and fixtures"""

from typing import Iterable, List, Optional
from unittest.mock import Mock

import pytest
from requests.structures import CaseInsensitiveDict

from tunestream.models import Artist, SearchCandidate


class FakeResponse:
    """Stand-in for ``requests.Response`` with just the parts the code reads."""

    def __init__(self, status_code: int = 200, json_data=None, text: str = "",
                 headers: Optional[dict] = None, chunks: Iterable[bytes] = (),
                 reason: str = "OK", error: Optional[Exception] = None):
        self.status_code = status_code
        self._json = json_data
        self.text = text
        self.headers = CaseInsensitiveDict(headers or {})
        self._chunks = list(chunks)
        self.reason = reason
        self._error = error
        self.closed = False

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json

    def iter_content(self, chunk_size: int = 1):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error

    def close(self):
        self.closed = True


class FakeSearch:
    """Search provider returning canned result lists, one per call."""

    def __init__(self, name: str, *responses: List[SearchCandidate]):
        self.name = name
        self._responses = list(responses)
        self.queries: List[str] = []

    def search(self, query: str, limit: int = 10) -> List[SearchCandidate]:
        self.queries.append(query)
        if not self._responses:
            return []
        result = self._responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def make_candidate(name, artists=(), id="cand", hint=None, source="jiosaavn"):
    return SearchCandidate(
        id=id,
        name=name,
        primary_artists=tuple(Artist(name=a) for a in artists),
        raw_stream_hint=hint,
        source=source,
    )


@pytest.fixture
def session():
    """Mock ``requests`` session; set ``session.get.return_value`` per test."""
    return Mock()


@pytest.fixture
def blinding_lights():
    return [
        make_candidate("Blinding Lights", ["The Weeknd"], id="bl-1"),
        make_candidate("Blinding Lights (Remix)", ["DJ X"], id="bl-2"),
    ]
