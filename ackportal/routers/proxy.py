"""
Proxy Router - streaming document proxies for the reader.

/proxy fetches a plain http(s) URL; /proxy/graph streams remote library
content by drive/item ids or by shared URL. Both go through the same
content-source resolution the notification attachments use.
"""

import logging

import httpx
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from ackportal.core.structured_logging import safe_url
from ackportal.services import content_sources
from ackportal.services.content_sources import (
    ContentFetchError,
    ContentRequest,
    ContentSource,
    DriveItemSource,
    LocalSource,
    SharedUrlSource,
    UnresolvableContentError,
)
from ackportal.services.graph_token_service import GraphAuthError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/proxy", tags=["proxy"])


def _bearer_token(request: Request, token: str | None) -> str | None:
    if token:
        return token
    header = request.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def _static_token_provider(token: str):
    async def _provider(scopes: tuple[str, ...]) -> str:
        return token

    return _provider


async def _resolve(source: ContentSource, token: str | None = None) -> ContentRequest:
    provider = _static_token_provider(token) if token else None
    try:
        return await content_sources.resolve(source, provider)
    except UnresolvableContentError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except GraphAuthError:
        raise HTTPException(status_code=401, detail="token_required")


async def _stream(request: ContentRequest) -> StreamingResponse:
    try:
        client, response = await content_sources.open_stream(request)
    except ContentFetchError as exc:
        status_code = exc.status_code if exc.status_code in (401, 403, 404) else 502
        raise HTTPException(status_code=status_code, detail="upstream_error")
    except httpx.HTTPError as exc:
        logger.warning("Proxy upstream error for %s: %s", safe_url(request.url), exc.__class__.__name__)
        raise HTTPException(status_code=502, detail="upstream_error")

    async def _close() -> None:
        await response.aclose()
        await client.aclose()

    return StreamingResponse(
        response.aiter_bytes(),
        media_type=content_sources.response_content_type(response),
        headers={"Cache-Control": "no-store"},
        background=BackgroundTask(_close),
    )


@router.get("")
async def proxy_url(url: str = Query(..., min_length=1)):
    """Stream a public http(s) document so it can be embedded."""
    return await _stream(await _resolve(LocalSource(url=url)))


@router.get("/graph")
async def proxy_graph(
    request: Request,
    drive_id: str | None = Query(None, alias="driveId"),
    item_id: str | None = Query(None, alias="itemId"),
    url: str | None = Query(None),
    token: str | None = Query(None),
):
    """
    Stream remote library content.

    Requires the caller's bearer token (Authorization header or `token`
    query parameter); the service's own Graph credentials are never used here.
    """
    bearer = _bearer_token(request, token)
    if bearer is None:
        raise HTTPException(status_code=401, detail="token_required")
    if drive_id and item_id:
        source: ContentSource = DriveItemSource(drive_id=drive_id, item_id=item_id)
    elif url:
        source = SharedUrlSource(url=url)
    else:
        raise HTTPException(status_code=400, detail="driveId and itemId, or url, are required")
    return await _stream(await _resolve(source, bearer))
