"""Document content sources.

A document's bytes live in one of a closed set of places, chosen by which
locator fields are populated:

- DriveItemSource: remote library item (drive_id + item_id), read via Graph
- SharedUrlSource: remote library URL without ids, read via Graph shares
- LocalSource: any other http(s) URL, fetched directly

Each variant has exactly one resolver that turns it into a ContentRequest.
The same resolution backs attachment assembly and the /proxy endpoints.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Protocol, Union
from urllib.parse import quote, urlparse

import httpx

from ackportal.core.config import settings
from ackportal.core.structured_logging import safe_url
from ackportal.core.url_validation import UnsafeURLError, validate_outbound_url
from ackportal.db.enums import DocumentSource
from ackportal.services import graph_token_service

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
USER_AGENT = "AckPortal-Proxy/1.0"


class UnresolvableContentError(Exception):
    """The document has no usable locator."""


class ContentFetchError(Exception):
    """Upstream returned a non-success status for the content."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DocumentLocator(Protocol):
    url: str | None
    drive_id: str | None
    item_id: str | None
    source: str | None


@dataclass(frozen=True)
class LocalSource:
    url: str


@dataclass(frozen=True)
class DriveItemSource:
    drive_id: str
    item_id: str


@dataclass(frozen=True)
class SharedUrlSource:
    url: str


ContentSource = Union[LocalSource, DriveItemSource, SharedUrlSource]


@dataclass(frozen=True)
class ContentRequest:
    url: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class FetchedContent:
    body: bytes
    content_type: str


def is_remote_library_url(url: str | None) -> bool:
    if not url:
        return False
    hostname = (urlparse(url).hostname or "").lower()
    return hostname.endswith(".sharepoint.com")


def select_source(document: DocumentLocator) -> ContentSource:
    """Pick the content source variant from the populated locator fields."""
    url = (document.url or "").strip()
    drive_id = (document.drive_id or "").strip()
    item_id = (document.item_id or "").strip()

    if drive_id and item_id:
        return DriveItemSource(drive_id=drive_id, item_id=item_id)
    if url and (document.source == DocumentSource.SHAREPOINT.value or is_remote_library_url(url)):
        return SharedUrlSource(url=url)
    if url:
        return LocalSource(url=url)
    raise UnresolvableContentError("Document has neither a URL nor library identifiers")


def encode_share_id(url: str) -> str:
    """Graph sharing id for a raw URL: 'u!' + unpadded base64url(url)."""
    encoded = base64.urlsafe_b64encode(url.encode("utf-8")).decode("ascii").rstrip("=")
    return f"u!{encoded}"


def _graph_url(path: str) -> str:
    return f"{settings.GRAPH_BASE_URL.rstrip('/')}/{path.lstrip('/')}"


TokenProvider = Callable[[tuple[str, ...]], Awaitable[str]]


async def _default_token_provider(scopes: tuple[str, ...]) -> str:
    return await graph_token_service.get_token(scopes)


async def _resolve_local(source: LocalSource, token_provider: TokenProvider) -> ContentRequest:
    parsed = urlparse(source.url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise UnresolvableContentError(f"Unsupported URL: {safe_url(source.url)}")
    try:
        await asyncio.to_thread(validate_outbound_url, source.url)
    except UnsafeURLError as exc:
        raise UnresolvableContentError(f"Refusing to fetch {safe_url(source.url)}: {exc}") from exc
    return ContentRequest(url=source.url, headers={"User-Agent": USER_AGENT})


async def _resolve_drive_item(
    source: DriveItemSource, token_provider: TokenProvider
) -> ContentRequest:
    token = await token_provider(graph_token_service.READ_SCOPES)
    path = (
        f"drives/{quote(source.drive_id, safe='')}"
        f"/items/{quote(source.item_id, safe='')}/content"
    )
    return ContentRequest(
        url=_graph_url(path),
        headers={"Authorization": f"Bearer {token}", "User-Agent": USER_AGENT},
    )


async def _resolve_shared_url(
    source: SharedUrlSource, token_provider: TokenProvider
) -> ContentRequest:
    token = await token_provider(graph_token_service.READ_SCOPES)
    return ContentRequest(
        url=_graph_url(f"shares/{encode_share_id(source.url)}/driveItem/content"),
        headers={"Authorization": f"Bearer {token}", "User-Agent": USER_AGENT},
    )


_RESOLVERS = {
    LocalSource: _resolve_local,
    DriveItemSource: _resolve_drive_item,
    SharedUrlSource: _resolve_shared_url,
}


async def resolve(
    source: ContentSource,
    token_provider: TokenProvider | None = None,
) -> ContentRequest:
    """
    Turn a content source into a concrete HTTP request.

    Remote variants acquire a read token; token errors propagate as
    graph_token_service.GraphAuthError.
    """
    resolver = _RESOLVERS[type(source)]
    return await resolver(source, token_provider or _default_token_provider)


async def _check_outbound(request: httpx.Request) -> None:
    """Request hook: every hop, redirects included, must target a public host."""
    url = str(request.url)
    try:
        await asyncio.to_thread(validate_outbound_url, url)
    except UnsafeURLError as exc:
        raise ContentFetchError(f"Refusing to fetch {safe_url(url)}: {exc}") from exc


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=settings.HTTP_TIMEOUT_SECONDS,
        follow_redirects=True,
        max_redirects=settings.PROXY_MAX_REDIRECTS,
        event_hooks={"request": [_check_outbound]},
    )


def _content_type(response: httpx.Response) -> str:
    return response.headers.get("content-type") or DEFAULT_CONTENT_TYPE


async def fetch_content(request: ContentRequest) -> FetchedContent:
    """Download the full body for a resolved request."""
    async with _client() as client:
        response = await client.get(request.url, headers=request.headers)
        if response.status_code >= 400:
            raise ContentFetchError(
                f"Upstream returned {response.status_code} for {safe_url(request.url)}",
                status_code=response.status_code,
            )
        return FetchedContent(body=response.content, content_type=_content_type(response))


async def open_stream(request: ContentRequest) -> tuple[httpx.AsyncClient, httpx.Response]:
    """
    Open a streaming response for the proxy endpoints.

    The caller owns both objects and must close the response, then the client.
    """
    client = _client()
    try:
        response = await client.send(
            client.build_request("GET", request.url, headers=request.headers), stream=True
        )
    except Exception:
        await client.aclose()
        raise
    if response.status_code >= 400:
        status_code = response.status_code
        await response.aclose()
        await client.aclose()
        raise ContentFetchError(
            f"Upstream returned {status_code} for {safe_url(request.url)}",
            status_code=status_code,
        )
    return client, response


def response_content_type(response: httpx.Response) -> str:
    return _content_type(response)
