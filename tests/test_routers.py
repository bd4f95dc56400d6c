"""API tests for the portal routers."""

import ipaddress

import httpx
import pytest

from ackportal.core import url_validation
from ackportal.core.config import settings
from ackportal.services import batch_service, content_sources, graph_token_service


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_batch_lifecycle(client):
    response = await client.post(
        "/batches",
        json={"name": "Q4 Policies", "start_date": "2026-10-01", "due_date": "2026-10-31"},
    )
    assert response.status_code == 201
    batch_id = response.json()["id"]

    response = await client.post(
        f"/batches/{batch_id}/documents",
        json=[
            {"title": "Handbook", "url": "https://files.example.com/handbook.pdf"},
            {"title": "IT Policy", "drive_id": "d1", "item_id": "i1", "source": "sharepoint"},
        ],
    )
    assert response.status_code == 201
    assert [d["source"] for d in response.json()] == [None, "sharepoint"]

    response = await client.post(
        f"/batches/{batch_id}/recipients",
        json=[{"email": "Alice@Example.com"}, {"email": "alice@example.com"}],
    )
    assert response.status_code == 201
    assert [r["email"] for r in response.json()] == ["alice@example.com"]

    listed = (await client.get("/batches")).json()
    assert [b["id"] for b in listed] == [batch_id]
    assert len((await client.get(f"/batches/{batch_id}/documents")).json()) == 2

    response = await client.delete(f"/batches/{batch_id}")
    assert response.status_code == 204
    assert (await client.get(f"/batches/{batch_id}")).status_code == 404


@pytest.mark.asyncio
async def test_unknown_batch_is_404(client):
    assert (await client.get("/batches/999/documents")).status_code == 404
    assert (await client.get("/batches/999/progress")).status_code == 404
    assert (await client.delete("/batches/999")).status_code == 404


@pytest.mark.asyncio
async def test_ack_progress_and_acks(client, db, make_batch):
    batch = make_batch(documents=2)
    first = batch_service.list_documents(db, batch.id)[0]

    response = await client.post(
        "/ack", json={"batchId": batch.id, "documentId": first.id, "email": "Alice@example.com"}
    )
    assert response.status_code == 200
    assert response.json() == {"ok": True}

    response = await client.get(f"/batches/{batch.id}/acks", params={"email": "alice@example.com"})
    assert response.json() == {"ids": [first.id]}

    response = await client.get(f"/batches/{batch.id}/progress", params={"email": "alice@example.com"})
    assert response.json() == {"acknowledged": 1, "total": 2, "percent": 50}


@pytest.mark.asyncio
async def test_ack_errors(client, db, make_batch):
    batch = make_batch(documents=1)
    document = batch_service.list_documents(db, batch.id)[0]

    response = await client.post("/ack", json={"batchId": 999, "documentId": document.id, "email": "a@example.com"})
    assert response.status_code == 404

    response = await client.post("/ack", json={"batchId": batch.id, "documentId": 999, "email": "a@example.com"})
    assert response.status_code == 404

    response = await client.post("/ack", json={"batchId": batch.id, "documentId": document.id, "email": " "})
    assert response.status_code == 400

    response = await client.post("/ack", json={"batchId": batch.id})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_ack_triggers_completion_notifications(client, db, make_batch, sent_messages, document_bytes):
    response = await client.post("/notification-emails", json={"emails": ["Compliance@Example.com"]})
    assert response.json() == {"emails": ["compliance@example.com"]}
    batch = make_batch(documents=1, recipients=("alice@example.com",))
    document = batch_service.list_documents(db, batch.id)[0]

    payload = {"batchId": batch.id, "documentId": document.id, "email": "alice@example.com"}
    assert (await client.post("/ack", json=payload)).status_code == 200
    assert (await client.post("/ack", json=payload)).status_code == 200

    assert len(sent_messages) == 2
    milestones = (await client.get(f"/batches/{batch.id}/milestones")).json()
    assert {(m["kind"], m["state"], m["dispatch_status"]) for m in milestones} == {
        ("user_completed", "notified", "sent"),
        ("batch_completed", "notified", "sent"),
    }


@pytest.mark.asyncio
async def test_notification_emails_validation(client):
    response = await client.post("/notification-emails", json={"emails": ["not-an-email"]})

    assert response.status_code == 422
    assert (await client.get("/notification-emails")).json() == {"emails": []}


@pytest.mark.asyncio
async def test_notify_assignment(client, make_batch, sent_messages, document_bytes):
    batch = make_batch(documents=1, recipients=("a@example.com", "b@example.com"))

    response = await client.post(f"/batches/{batch.id}/notify-assignment", json={"emails": ["a@example.com"]})

    assert response.status_code == 200
    assert response.json() == {"attempted": 1, "sent": 1, "failed": 0, "status": "sent"}
    assert len(sent_messages) == 1


@pytest.mark.asyncio
async def test_businesses(client):
    response = await client.post("/businesses", json={"name": "Retail", "code": "RTL"})
    assert response.status_code == 201

    businesses = (await client.get("/businesses")).json()
    assert [(b["name"], b["code"], b["is_active"]) for b in businesses] == [("Retail", "RTL", True)]


# =============================================================================
# Proxy
# =============================================================================


def _fake_stream(monkeypatch, seen):
    async def fake_open_stream(request):
        seen.append(request)
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda r: httpx.Response(200, content=b"%PDF-1.4", headers={"content-type": "application/pdf"})
            )
        )
        response = await client.send(client.build_request("GET", request.url), stream=True)
        return client, response

    monkeypatch.setattr(content_sources, "open_stream", fake_open_stream)


@pytest.mark.asyncio
async def test_proxy_streams_url(client, monkeypatch):
    seen = []
    _fake_stream(monkeypatch, seen)

    response = await client.get("/proxy", params={"url": "https://files.example.com/a.pdf"})

    assert response.status_code == 200
    assert response.content == b"%PDF-1.4"
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["cache-control"] == "no-store"
    assert seen[0].url == "https://files.example.com/a.pdf"


@pytest.mark.asyncio
async def test_proxy_rejects_unsupported_url(client):
    response = await client.get("/proxy", params={"url": "ftp://files.example.com/a.pdf"})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_proxy_graph_uses_caller_token(client, monkeypatch):
    seen = []
    _fake_stream(monkeypatch, seen)

    response = await client.get(
        "/proxy/graph",
        params={"driveId": "d1", "itemId": "i1"},
        headers={"Authorization": "Bearer user-token"},
    )

    assert response.status_code == 200
    assert seen[0].url.endswith("/drives/d1/items/i1/content")
    assert seen[0].headers["Authorization"] == "Bearer user-token"


@pytest.mark.asyncio
async def test_proxy_graph_shared_url_with_query_token(client, monkeypatch):
    seen = []
    _fake_stream(monkeypatch, seen)

    response = await client.get(
        "/proxy/graph",
        params={"url": "https://contoso.sharepoint.com/a.pdf", "token": "query-token"},
    )

    assert response.status_code == 200
    assert "/shares/u!" in seen[0].url
    assert seen[0].headers["Authorization"] == "Bearer query-token"


@pytest.mark.asyncio
async def test_proxy_graph_without_token_or_credentials(client):
    response = await client.get("/proxy/graph", params={"driveId": "d1", "itemId": "i1"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_proxy_graph_requires_locator(client):
    response = await client.get(
        "/proxy/graph",
        params={"driveId": "d1"},
        headers={"Authorization": "Bearer user-token"},
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_proxy_upstream_not_found(client, monkeypatch):
    async def missing(request):
        raise content_sources.ContentFetchError("Upstream returned 404", status_code=404)

    monkeypatch.setattr(content_sources, "open_stream", missing)

    response = await client.get("/proxy", params={"url": "https://files.example.com/gone.pdf"})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_proxy_graph_never_lends_service_token(client, monkeypatch):
    seen = []
    _fake_stream(monkeypatch, seen)

    async def service_token(scopes):
        return "service-token"

    monkeypatch.setattr(graph_token_service, "get_token", service_token)
    monkeypatch.setattr(settings, "GRAPH_TENANT_ID", "tenant")
    monkeypatch.setattr(settings, "GRAPH_CLIENT_ID", "client")
    monkeypatch.setattr(settings, "GRAPH_CLIENT_SECRET", "secret")

    response = await client.get("/proxy/graph", params={"driveId": "d1", "itemId": "i1"})

    assert response.status_code == 401
    assert response.json()["detail"] == "token_required"
    assert seen == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "url",
    [
        "http://127.0.0.1/",
        "http://169.254.169.254/latest/meta-data/",
        "http://10.0.0.5/policy.pdf",
        "http://[::1]/policy.pdf",
    ],
)
async def test_proxy_rejects_internal_addresses(client, monkeypatch, url):
    seen = []
    _fake_stream(monkeypatch, seen)

    response = await client.get("/proxy", params={"url": url})

    assert response.status_code == 400
    assert seen == []


@pytest.mark.asyncio
async def test_proxy_rejects_hostname_resolving_internally(client, monkeypatch):
    seen = []
    _fake_stream(monkeypatch, seen)
    monkeypatch.setattr(
        url_validation, "_resolve_host", lambda host, port: {ipaddress.ip_address("192.168.1.20")}
    )

    response = await client.get("/proxy", params={"url": "https://intranet.example.com/a.pdf"})

    assert response.status_code == 400
    assert seen == []
