"""Structured logging helpers (PII-safe)."""

from typing import Any
from urllib.parse import urlsplit


def mask_email(email: str | None) -> str:
    if not email:
        return ""
    local, _, domain = email.partition("@")
    prefix = local[:3] if local else ""
    return f"{prefix}...@{domain}" if domain else f"{prefix}..."


def safe_url(url: str | None) -> str:
    """Strip query strings (tokens, share ids) before logging a URL."""
    if not url:
        return ""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


def build_log_context(
    *,
    batch_id: int | None = None,
    email: str | None = None,
    milestone: str | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict."""
    context: dict[str, Any] = {}
    if batch_id is not None:
        context["batch_id"] = batch_id
    if email:
        context["email"] = mask_email(email)
    if milestone:
        context["milestone"] = milestone
    if request_id:
        context["request_id"] = request_id
    return context
