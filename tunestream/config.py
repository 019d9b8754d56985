"""Runtime configuration read from the environment (and a ``.env`` file).

Environment variables used:

* ``SEARCH_PROVIDER`` - default metadata search backend, ``jiosaavn`` or
  ``youtube``. Requests may override it with ``provider=``.
* ``AUDIO_QUALITY`` - default variant choice, ``low``, ``medium`` or ``high``.
  Requests may override it with ``quality=``.
* ``PIPED_INSTANCE`` - saved base URL of the Piped instance used for YouTube
  catalogue search.
* ``SAAVN_API_URL`` - JioSaavn song search endpoint.
* ``INVIDIOUS_API`` - Invidious instance used for stream extraction.
* ``STREAM_HOST`` - public hostname substituted into extracted media URLs.
* ``REQUEST_TIMEOUT`` - seconds allowed for each outbound HTTP call.
* ``YTDLP_PATH`` / ``YTDLP_TIMEOUT`` - yt-dlp executable and its time limit.
* ``PUBLIC_BASE_URL`` - base used when building proxied URLs; defaults to the
  base URL of the incoming request.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .models import AudioQuality, SearchProvider

DEFAULT_SAAVN_API_URL = "https://jiosavan-ytify.vercel.app/api/search/songs"
DEFAULT_PIPED_INSTANCE = "https://pipedapi.kavin.rocks"
DEFAULT_INVIDIOUS_API = "https://yt.omada.cafe"
DEFAULT_STREAM_HOST = "yt.omada.cafe"


def _float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    search_provider: SearchProvider = SearchProvider.JIOSAAVN
    audio_quality: AudioQuality = AudioQuality.HIGH
    piped_instance: str = DEFAULT_PIPED_INSTANCE
    saavn_api_url: str = DEFAULT_SAAVN_API_URL
    invidious_api: str = DEFAULT_INVIDIOUS_API
    stream_host: str = DEFAULT_STREAM_HOST
    request_timeout: float = 10.0
    ytdlp_path: str = "yt-dlp"
    ytdlp_timeout: float = 30.0
    public_base_url: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            search_provider=SearchProvider.parse(env.get("SEARCH_PROVIDER")),
            audio_quality=AudioQuality.parse(env.get("AUDIO_QUALITY")),
            piped_instance=(env.get("PIPED_INSTANCE") or DEFAULT_PIPED_INSTANCE).rstrip("/"),
            saavn_api_url=env.get("SAAVN_API_URL") or DEFAULT_SAAVN_API_URL,
            invidious_api=(env.get("INVIDIOUS_API") or DEFAULT_INVIDIOUS_API).rstrip("/"),
            stream_host=env.get("STREAM_HOST") or DEFAULT_STREAM_HOST,
            request_timeout=_float(env.get("REQUEST_TIMEOUT"), 10.0),
            ytdlp_path=env.get("YTDLP_PATH") or "yt-dlp",
            ytdlp_timeout=_float(env.get("YTDLP_TIMEOUT"), 30.0),
            public_base_url=(env.get("PUBLIC_BASE_URL") or "").rstrip("/") or None,
        )
