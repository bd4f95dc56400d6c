"""Microsoft Graph access tokens.

Tokens are acquired with the app registration's client credentials and
cached in-process until shortly before they expire. Callers ask for the
delegated-style scopes they need (e.g. Files.Read.All); app credentials are
always granted through the resource's .default scope, so the requested
scopes are recorded for logging and cache partitioning only.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from ackportal.core.config import settings

logger = logging.getLogger(__name__)

GRAPH_DEFAULT_SCOPE = "https://graph.microsoft.com/.default"
READ_SCOPES = ("Files.Read.All", "Sites.Read.All")
MAIL_SCOPES = ("Mail.Send",)

# Refresh this many seconds before the token actually expires
EXPIRY_SKEW_SECONDS = 60


class GraphAuthError(Exception):
    """Base class for token acquisition failures."""


class GraphNotConfiguredError(GraphAuthError):
    """No Graph credentials are configured (nobody to act as)."""


class GraphTokenError(GraphAuthError):
    """The identity platform refused or failed to issue a token."""


@dataclass
class _CachedToken:
    access_token: str
    expires_at: float


_cache: dict[tuple[str, ...], _CachedToken] = {}


def clear_cache() -> None:
    _cache.clear()


def _token_url() -> str:
    authority = settings.GRAPH_AUTHORITY_URL.rstrip("/")
    return f"{authority}/{settings.GRAPH_TENANT_ID}/oauth2/v2.0/token"


async def _request_token() -> dict[str, Any]:
    """POST the client-credentials grant and return the JSON body."""
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
        response = await client.post(
            _token_url(),
            data={
                "client_id": settings.GRAPH_CLIENT_ID,
                "client_secret": settings.GRAPH_CLIENT_SECRET,
                "scope": GRAPH_DEFAULT_SCOPE,
                "grant_type": "client_credentials",
            },
        )
        response.raise_for_status()
        return response.json()


async def get_token(scopes: list[str] | tuple[str, ...]) -> str:
    """
    Return a bearer token good for the requested scopes.

    Raises:
        GraphNotConfiguredError: credentials are missing
        GraphTokenError: the token request failed or returned no token
    """
    if not settings.graph_configured:
        raise GraphNotConfiguredError("Graph credentials are not configured")

    key = tuple(sorted(scopes))
    cached = _cache.get(key)
    if cached and cached.expires_at > time.monotonic():
        return cached.access_token

    try:
        data = await _request_token()
    except httpx.HTTPStatusError as exc:
        raise GraphTokenError(
            f"Token request rejected: {exc.response.status_code}"
        ) from exc
    except httpx.HTTPError as exc:
        raise GraphTokenError(f"Token request failed: {exc.__class__.__name__}") from exc
    except ValueError as exc:
        # 2xx with a non-JSON body (e.g. an intercepting proxy page)
        raise GraphTokenError("Token response was not valid JSON") from exc

    access_token = data.get("access_token") if isinstance(data, dict) else None
    if not access_token:
        raise GraphTokenError("Token response did not include an access_token")

    try:
        expires_in = int(data.get("expires_in", 3600))
    except (TypeError, ValueError):
        expires_in = 3600
    _cache[key] = _CachedToken(
        access_token=access_token,
        expires_at=time.monotonic() + max(expires_in - EXPIRY_SKEW_SECONDS, 0),
    )
    logger.info("Acquired Graph token for scopes=%s", ",".join(key))
    return access_token
