"""Progress events facade.

Acknowledgement writes emit a ProgressChanged event; listeners (progress
widgets polling caches, audit hooks) subscribe here so the recorder does not
depend on them. The notification pipeline is scheduled by the ack router and
does not rely on these events.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressChanged:
    batch_id: int
    document_id: int
    email: str


Listener = Callable[[ProgressChanged], None]

_listeners: list[Listener] = []


def subscribe(listener: Listener) -> Callable[[], None]:
    """Register a listener. Returns a callable that unsubscribes it."""
    _listeners.append(listener)

    def _unsubscribe() -> None:
        if listener in _listeners:
            _listeners.remove(listener)

    return _unsubscribe


def emit(event: ProgressChanged) -> None:
    """Notify listeners; a failing listener never affects the ack write."""
    for listener in list(_listeners):
        try:
            listener(event)
        except Exception:
            logger.exception("Progress listener failed for batch=%s", event.batch_id)
