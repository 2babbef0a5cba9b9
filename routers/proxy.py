from typing import Optional
from urllib.parse import urlparse

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response

from logging_config import get_logger

logger = get_logger(__name__)

proxy_router = APIRouter(prefix="/proxy", tags=["proxy"])

PROXY_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
PROXY_CACHE_CONTROL = "public, max-age=86400"


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


@proxy_router.get("")
async def proxy_image(url: Optional[str] = Query(None), client: httpx.AsyncClient = Depends(get_http_client)):
    """Serve an external image from this origin so canvas image elements load
    without hitting third-party hosts directly. Images only."""
    if not url:
        raise HTTPException(status_code=400, detail="Missing URL")

    if urlparse(url).scheme not in ("http", "https"):
        logger.warning(f"Proxy rejected {url!r}: invalid protocol")
        raise HTTPException(status_code=400, detail="Invalid protocol")

    try:
        upstream = await client.get(url, headers={"User-Agent": PROXY_USER_AGENT}, follow_redirects=True)
    except httpx.HTTPError as e:
        logger.error(f"Proxy fetch of {url} failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to proxy resource")

    if not upstream.is_success:
        logger.warning(f"Proxy fetch of {url} returned {upstream.status_code}")
        raise HTTPException(status_code=upstream.status_code, detail="Failed to fetch resource")

    content_type = upstream.headers.get("content-type", "application/octet-stream")
    if not content_type.startswith("image/"):
        logger.warning(f"Proxy rejected {url}: content type {content_type}")
        raise HTTPException(status_code=400, detail="Only images are allowed")

    logger.debug(f"Proxied {len(upstream.content)} bytes of {content_type} from {url}")
    return Response(
        content=upstream.content,
        media_type=content_type,
        headers={"Cache-Control": PROXY_CACHE_CONTROL},
    )
