"""Rate limiting configuration for the portal API."""

import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from ackportal.core.config import settings

IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
DEFAULT_LIMITS = (
    []
    if IS_TESTING or settings.RATE_LIMIT_API <= 0
    else [f"{settings.RATE_LIMIT_API}/minute"]
)

# In-memory storage: the portal runs as a single API process
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    default_limits=DEFAULT_LIMITS,
    enabled=not IS_TESTING,
)


def ack_limit() -> str:
    """Per-client limit for acknowledgement submissions."""
    if settings.RATE_LIMIT_ACK <= 0:
        return "1000000/minute"
    return f"{settings.RATE_LIMIT_ACK}/minute"
