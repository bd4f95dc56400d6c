"""Tests for Graph token acquisition."""

import httpx
import pytest

from ackportal.core.config import settings
from ackportal.services import graph_token_service
from ackportal.services.graph_token_service import GraphNotConfiguredError, GraphTokenError


@pytest.fixture
def graph_configured(monkeypatch):
    monkeypatch.setattr(settings, "GRAPH_TENANT_ID", "tenant")
    monkeypatch.setattr(settings, "GRAPH_CLIENT_ID", "client")
    monkeypatch.setattr(settings, "GRAPH_CLIENT_SECRET", "secret")


@pytest.mark.asyncio
async def test_not_configured():
    with pytest.raises(GraphNotConfiguredError):
        await graph_token_service.get_token(graph_token_service.READ_SCOPES)


@pytest.mark.asyncio
async def test_token_is_cached_per_scope_set(graph_configured, monkeypatch):
    calls = []

    async def fake_request():
        calls.append(1)
        return {"access_token": f"token-{len(calls)}", "expires_in": 3600}

    monkeypatch.setattr(graph_token_service, "_request_token", fake_request)

    first = await graph_token_service.get_token(["Sites.Read.All", "Files.Read.All"])
    second = await graph_token_service.get_token(graph_token_service.READ_SCOPES)
    mail = await graph_token_service.get_token(graph_token_service.MAIL_SCOPES)

    assert first == second == "token-1"
    assert mail == "token-2"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_short_lived_token_is_not_reused(graph_configured, monkeypatch):
    calls = []

    async def fake_request():
        calls.append(1)
        return {"access_token": "t", "expires_in": 30}

    monkeypatch.setattr(graph_token_service, "_request_token", fake_request)

    await graph_token_service.get_token(graph_token_service.READ_SCOPES)
    await graph_token_service.get_token(graph_token_service.READ_SCOPES)

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_transport_error_becomes_token_error(graph_configured, monkeypatch):
    async def fake_request():
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(graph_token_service, "_request_token", fake_request)

    with pytest.raises(GraphTokenError):
        await graph_token_service.get_token(graph_token_service.READ_SCOPES)


@pytest.mark.asyncio
async def test_rejected_request_becomes_token_error(graph_configured, monkeypatch):
    async def fake_request():
        request = httpx.Request("POST", "https://login.example.com/token")
        response = httpx.Response(401, request=request)
        raise httpx.HTTPStatusError("unauthorized", request=request, response=response)

    monkeypatch.setattr(graph_token_service, "_request_token", fake_request)

    with pytest.raises(GraphTokenError, match="401"):
        await graph_token_service.get_token(graph_token_service.READ_SCOPES)


@pytest.mark.asyncio
async def test_response_without_token(graph_configured, monkeypatch):
    async def fake_request():
        return {"error": "invalid_client"}

    monkeypatch.setattr(graph_token_service, "_request_token", fake_request)

    with pytest.raises(GraphTokenError):
        await graph_token_service.get_token(graph_token_service.READ_SCOPES)


@pytest.mark.asyncio
async def test_non_json_response_becomes_token_error(graph_configured, monkeypatch):
    async def fake_request():
        return httpx.Response(200, text="<html>login</html>").json()

    monkeypatch.setattr(graph_token_service, "_request_token", fake_request)

    with pytest.raises(GraphTokenError, match="JSON"):
        await graph_token_service.get_token(graph_token_service.READ_SCOPES)
