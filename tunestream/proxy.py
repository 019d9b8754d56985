"""Same-origin relay for media resources and HLS playlists."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterator
from urllib.parse import urlsplit

import requests
from fastapi.responses import Response, StreamingResponse

from .errors import ProxyUpstreamError
from .models import ProxyRequest
from .resolver import proxied_url

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/vnd.apple.mpegurl"
MANIFEST_MARKER = "mpegurl"
MANIFEST_EXTENSION = ".m3u8"
CHUNK_SIZE = 64 * 1024

_URL_TOKEN = re.compile(r"https?://[^\s]+")


def is_manifest(content_type: str, target_url: str) -> bool:
    return (MANIFEST_MARKER in (content_type or "").lower()
            or urlsplit(target_url).path.endswith(MANIFEST_EXTENSION)
            or target_url.endswith(MANIFEST_EXTENSION))


def rewrite_manifest(text: str, proxy_base: str) -> str:
    """Route every absolute URL in a playlist back through the proxy."""
    return _URL_TOKEN.sub(lambda match: proxied_url(proxy_base, match.group(0)), text)


class StreamProxy:
    """Relays one upstream resource per call; holds no per-request state."""

    def __init__(self, session: Any = None, timeout: float = 10.0) -> None:
        self.http = session or requests.Session()
        self.timeout = timeout

    def relay(self, request: ProxyRequest, proxy_base: str) -> Response:
        headers = {"Range": request.range_header} if request.range_header else {}
        try:
            upstream = self.http.get(request.target_url, headers=headers, stream=True,
                                     timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("[proxy] fetch failed for %s: %s", request.target_url, exc)
            raise ProxyUpstreamError(details={"url": request.target_url}) from exc

        if not upstream.ok:
            logger.warning("[proxy] upstream %s for %s", upstream.status_code, request.target_url)
            upstream.close()
            return Response(content=upstream.reason or "", status_code=upstream.status_code,
                            headers={"Access-Control-Allow-Origin": "*"}, media_type="text/plain")

        content_type = upstream.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE
        status_code = 206 if request.range_header else upstream.status_code
        response_headers: Dict[str, str] = {
            "Content-Type": content_type,
            "Access-Control-Allow-Origin": "*",
        }
        if upstream.headers.get("Content-Range"):
            response_headers["Content-Range"] = upstream.headers["Content-Range"]

        if is_manifest(content_type, request.target_url):
            try:
                playlist = upstream.text
            except requests.RequestException as exc:
                raise ProxyUpstreamError(details={"url": request.target_url}) from exc
            finally:
                upstream.close()
            # Content-Length is recomputed for the rewritten body.
            return Response(content=rewrite_manifest(playlist, proxy_base), status_code=status_code,
                            headers=response_headers, media_type=content_type)

        if upstream.headers.get("Content-Length"):
            response_headers["Content-Length"] = upstream.headers["Content-Length"]
        return StreamingResponse(self._iter_body(upstream, request.target_url),
                                 status_code=status_code, headers=response_headers)

    @staticmethod
    def _iter_body(upstream, target_url: str) -> Iterator[bytes]:
        try:
            for chunk in upstream.iter_content(chunk_size=CHUNK_SIZE):
                if chunk:
                    yield chunk
        except requests.RequestException as exc:
            # Headers are already sent; re-raise so the server aborts the connection
            # instead of finishing a truncated body cleanly.
            logger.error("[proxy] stream interrupted for %s: %s", target_url, exc)
            raise
        finally:
            upstream.close()
