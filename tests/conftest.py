"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, rebuilt for each test
- Data factories for batches, documents, recipients
- HTTPX AsyncClient with get_db / get_session_factory overridden
- Captured outbound mail and stubbed document downloads
"""
import ipaddress
import os
from typing import AsyncGenerator, Generator

# Must be set before the application modules read settings
os.environ["TESTING"] = "1"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["GRAPH_TENANT_ID"] = ""
os.environ["GRAPH_CLIENT_ID"] = ""
os.environ["GRAPH_CLIENT_SECRET"] = ""
os.environ["MAIL_SENDER"] = ""
os.environ["ADMIN_NOTIFICATION_EMAILS"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ackportal.core import url_validation
from ackportal.core.deps import get_db, get_session_factory
from ackportal.db.base import Base
from ackportal.db import models  # noqa: F401
from ackportal.main import app
from ackportal.services import (
    batch_service,
    content_sources,
    graph_token_service,
    mail_service,
    notification_email_service,
    progress_events,
)
from ackportal.services.content_sources import FetchedContent


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def session_factory() -> Generator[sessionmaker, None, None]:
    """Session factory bound to a fresh in-memory database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def _public_dns(monkeypatch):
    """Hostnames resolve to a public address; tests never hit real DNS."""
    monkeypatch.setattr(
        url_validation, "_resolve_host", lambda host, port: {ipaddress.ip_address("93.184.216.34")}
    )


@pytest.fixture(autouse=True)
def _reset_process_state():
    """Token cache and progress listeners are process-global."""
    graph_token_service.clear_cache()
    yield
    graph_token_service.clear_cache()
    progress_events._listeners.clear()


# =============================================================================
# Data Factories
# =============================================================================

@pytest.fixture
def make_batch(db: Session):
    """
    Create a batch with `documents` documents and the given recipients.

    Returns the Batch; documents and recipients are reachable through the
    batch service.
    """
    def _make(
        documents: int = 2,
        recipients: tuple[str, ...] = ("alice@example.com",),
        name: str = "Code of Conduct 2026",
        **batch_fields,
    ):
        batch = batch_service.create_batch(db, name=name, **batch_fields)
        if documents:
            batch_service.add_documents(
                db,
                batch.id,
                [
                    {"title": f"Policy {i + 1}", "url": f"https://files.example.com/policy-{i + 1}.pdf"}
                    for i in range(documents)
                ],
            )
        if recipients:
            batch_service.add_recipients(
                db, batch.id, [{"email": e, "display_name": e.split("@")[0].title()} for e in recipients]
            )
        return batch

    return _make


@pytest.fixture
def admin_emails(db: Session) -> list[str]:
    return notification_email_service.replace_notification_emails(
        db, ["compliance@example.com", "hr@example.com"]
    )


# =============================================================================
# Network Stubs
# =============================================================================

@pytest.fixture
def sent_messages(monkeypatch) -> list[dict]:
    """Capture every physical sendMail payload instead of calling Graph."""
    captured: list[dict] = []

    async def fake_send(payload):
        captured.append(payload)

    monkeypatch.setattr(mail_service, "send_graph_message", fake_send)
    return captured


@pytest.fixture
def document_bytes(monkeypatch) -> dict[str, bytes]:
    """Serve document downloads from a dict keyed by URL."""
    files: dict[str, bytes] = {}

    async def fake_fetch(request):
        body = files.get(request.url, b"%PDF-1.4 test document")
        return FetchedContent(body=body, content_type="application/pdf")

    monkeypatch.setattr(content_sources, "fetch_content", fake_fetch)
    return files


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient against the app, sharing the test database."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
