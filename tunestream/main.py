"""
tunestream backend

This FastAPI application resolves a requested song into a playable audio
stream and relays that stream through a same-origin proxy. Tracks are looked
up by title/artist on a metadata search provider (JioSaavn, or the YouTube
catalogue through a Piped instance); YouTube ids are turned into audio URLs
with the Invidious API, falling back to the ``yt-dlp`` command line. The
chosen URL is handed back as ``/proxy?url=...`` so the browser never talks to
the upstream hosts directly. The proxy forwards ``Range`` requests and
rewrites HLS playlists so every segment is fetched through it as well.

Endpoints:

* ``GET /resolve?title=&artist=&id=&url=&provider=&quality=`` - proxied URL
* ``GET /search?q=&limit=&provider=`` - raw search candidates
* ``GET /jiosaavn/search?title=&artist=`` - best JioSaavn match
* ``GET /jiosaavn/search/all?q=&limit=`` - JioSaavn candidates
* ``GET /scrape?videoId=`` - proxied audio URL for a YouTube id
* ``GET /proxy?url=`` - the streaming relay

Configuration comes from environment variables (see ``tunestream.config``),
optionally loaded from a ``.env`` file. ``LOG_LEVEL`` controls verbosity.

To run the development server locally:

    uvicorn tunestream.main:app --reload --port 3001
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings
from .errors import TuneStreamError
from .models import AudioQuality, ProxyRequest, SearchProvider, TrackQuery
from .providers import InvidiousAPI, PipedAPI, SaavnAPI, YtDlpExtractor
from .proxy import StreamProxy
from .resolver import Resolver, proxied_url

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("tunestream")

settings = Settings.from_env()

resolver = Resolver(
    saavn=SaavnAPI(settings.saavn_api_url, timeout=settings.request_timeout),
    youtube=PipedAPI(settings.piped_instance, timeout=settings.request_timeout),
    extractors=[
        InvidiousAPI(settings.invidious_api, settings.stream_host, timeout=settings.request_timeout),
        YtDlpExtractor(settings.ytdlp_path, timeout=settings.ytdlp_timeout),
    ],
)
stream_proxy = StreamProxy(timeout=settings.request_timeout)

app = FastAPI(title="tunestream")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Range"],
    expose_headers=["Content-Length", "Content-Range"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info("%s %s", request.method, request.url.path)
    return await call_next(request)


@app.exception_handler(TuneStreamError)
async def tunestream_error_handler(request: Request, exc: TuneStreamError) -> JSONResponse:
    logger.warning("%s %s failed: %s %s", request.method, request.url.path, exc, exc.details)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse({"error": "Invalid request parameters"}, status_code=400)


def get_settings() -> Settings:
    return settings


def get_resolver() -> Resolver:
    return resolver


def get_stream_proxy() -> StreamProxy:
    return stream_proxy


def proxy_base_for(request: Request, config: Settings) -> str:
    """Base URL the browser should use to reach ``/proxy`` on this server."""
    return config.public_base_url or str(request.base_url).rstrip("/")


def _provider(value: Optional[str], config: Settings) -> SearchProvider:
    try:
        return SearchProvider.parse(value, config.search_provider)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _quality(value: Optional[str], config: Settings) -> AudioQuality:
    try:
        return AudioQuality.parse(value, config.audio_quality)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


# Health check endpoint
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "tunestream"}


@app.get("/resolve")
def resolve(
    request: Request,
    title: Optional[str] = None,
    artist: Optional[str] = None,
    id: Optional[str] = None,
    url: Optional[str] = None,
    provider: Optional[str] = None,
    quality: Optional[str] = None,
    config: Settings = Depends(get_settings),
    resolver: Resolver = Depends(get_resolver),
):
    """Resolve a track to a proxied audio URL.

    ``provider`` and ``quality`` override the configured defaults for this
    request only.
    """
    if not (title or id or url):
        raise HTTPException(status_code=400, detail="Missing title")

    track = TrackQuery(title=title or "", artist=artist or "", id=id, url=url)
    audio_url = resolver.resolve_audio_url(
        track,
        provider=_provider(provider, config),
        quality=_quality(quality, config),
        proxy_base=proxy_base_for(request, config),
    )
    return {"url": audio_url}


@app.get("/search")
def search(
    q: Optional[str] = None,
    limit: int = Query(10, ge=1, le=50),
    provider: Optional[str] = None,
    config: Settings = Depends(get_settings),
    resolver: Resolver = Depends(get_resolver),
):
    if not q:
        raise HTTPException(status_code=400, detail="Missing query")
    results = resolver.smart_search(q, _provider(provider, config), limit)
    return {"results": [candidate.to_dict() for candidate in results]}


@app.get("/jiosaavn/search")
def jiosaavn_search(
    title: Optional[str] = None,
    artist: Optional[str] = None,
    resolver: Resolver = Depends(get_resolver),
):
    if not title:
        raise HTTPException(status_code=400, detail="Missing title")
    return resolver.saavn.lookup(title, artist or "").to_dict()


@app.get("/jiosaavn/search/all")
def jiosaavn_search_all(
    q: Optional[str] = None,
    limit: int = Query(20, ge=1, le=50),
    resolver: Resolver = Depends(get_resolver),
):
    if not q:
        raise HTTPException(status_code=400, detail="Missing query")
    return {"results": [candidate.to_dict() for candidate in resolver.saavn.search(q, limit)]}


@app.get("/scrape")
def scrape(
    request: Request,
    video_id: Optional[str] = Query(None, alias="videoId"),
    quality: Optional[str] = None,
    config: Settings = Depends(get_settings),
    resolver: Resolver = Depends(get_resolver),
):
    """Extract an audio URL for a YouTube video id (Invidious, then yt-dlp)."""
    if not video_id:
        raise HTTPException(status_code=400, detail="Missing videoId")
    try:
        stream = resolver.extract_stream(video_id, _quality(quality, config))
    except TuneStreamError as exc:
        logger.error("[scrape] %s: %s", video_id, exc)
        raise HTTPException(status_code=500, detail="Failed to scrape")
    return {"url": proxied_url(proxy_base_for(request, config), stream.url)}


@app.get("/proxy")
def proxy(
    request: Request,
    url: Optional[str] = None,
    config: Settings = Depends(get_settings),
    stream_proxy: StreamProxy = Depends(get_stream_proxy),
) -> Response:
    if not url:
        raise HTTPException(status_code=400, detail="Missing url")
    relay_request = ProxyRequest(target_url=url, range_header=request.headers.get("range"))
    return stream_proxy.relay(relay_request, proxy_base_for(request, config))
