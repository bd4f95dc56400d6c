"""API routers."""

from ackportal.routers.acks import router as acks_router
from ackportal.routers.batches import router as batches_router
from ackportal.routers.businesses import router as businesses_router
from ackportal.routers.notifications import router as notifications_router
from ackportal.routers.proxy import router as proxy_router

__all__ = [
    "acks_router",
    "batches_router",
    "businesses_router",
    "notifications_router",
    "proxy_router",
]
