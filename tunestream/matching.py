"""Text matching used to pick the right search result for a title/artist query."""

from __future__ import annotations

import re
from typing import Iterable, Optional, Sequence

from .models import SearchCandidate

_NON_WORD = re.compile(r"[^\w\s]")
_ARTICLE = "the "


def normalize(text: Optional[str]) -> str:
    """Lowercase, trim and strip everything that is not a word character or whitespace.

    Trimming happens after the strip as well, so ``normalize`` is idempotent
    even for strings such as ``"Song !"``.
    """
    if text is None:
        return ""
    text = str(text).strip().lower()
    return _NON_WORD.sub("", text).strip()


def _drop_article(text: str) -> str:
    return text[len(_ARTICLE):] if text.startswith(_ARTICLE) else text


def names_overlap(a: Optional[str], b: Optional[str]) -> bool:
    """True when one normalized name is a prefix of the other.

    Covers exact matches as well as truncated or decorated titles, e.g.
    ``"Song (Remastered)"`` vs ``"Song"``. A leading "the" is ignored, so
    ``"The Weeknd"`` and ``"Weeknd"`` overlap too.
    """
    a, b = normalize(a), normalize(b)
    if a.startswith(b) or b.startswith(a):
        return True
    a, b = _drop_article(a), _drop_article(b)
    return a.startswith(b) or b.startswith(a)


def _title_matches(title: str, candidate: SearchCandidate) -> bool:
    return candidate.name is not None and names_overlap(title, candidate.name)


def _artist_matches(candidate_artists: Iterable[str], artist: str) -> bool:
    # "A, B" queries match when any one of the listed artists does
    wanted = [name for name in artist.split(",") if normalize(name)] or [artist]
    return any(names_overlap(w, name) for name in candidate_artists for w in wanted)


def select_best_candidate(
    candidates: Sequence[SearchCandidate],
    title: str,
    artist: Optional[str] = "",
) -> Optional[SearchCandidate]:
    """Pick the candidate that best fits ``title`` and ``artist``.

    Title is the primary signal and the artist only disambiguates, because
    upstream artist metadata is often missing or formatted differently:

    1. first candidate matching title and (any) artist, or title alone when no
       artist was asked for;
    2. otherwise the first title match;
    3. otherwise the first candidate, or ``None`` for an empty list.
    """
    if not candidates:
        return None

    for candidate in candidates:
        if not _title_matches(title, candidate):
            continue
        if not artist or _artist_matches(candidate.artist_names, artist):
            return candidate

    for candidate in candidates:
        if _title_matches(title, candidate):
            return candidate

    return candidates[0]
