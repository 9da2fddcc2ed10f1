"""
In-process event bus.

Controllers emit ``<resource>-<created|updated|deleted>`` events after a
successful commit; incoming webhooks emit their own custom trigger names.
Listeners run synchronously in registration order; a failing listener is
logged and does not affect the others or the request that emitted.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

ALL_EVENTS = "*"


@dataclass(frozen=True)
class EventContext:
    """Where an event happened; ids are namespaced and None above the event's level."""
    db: Session
    organization_id: Optional[str] = None
    project_id: Optional[str] = None
    branch_id: Optional[str] = None
    actor: Optional[str] = None


Listener = Callable[[str, Any, EventContext], None]

_listeners: Dict[str, List[Listener]] = defaultdict(list)


def on(event: str, listener: Listener) -> None:
    """Register ``listener`` for ``event`` (or ``"*"`` for every event)."""
    if listener not in _listeners[event]:
        _listeners[event].append(listener)


def off(event: str, listener: Listener) -> None:
    if listener in _listeners.get(event, []):
        _listeners[event].remove(listener)


def emit(event: str, payload: Any, context: EventContext) -> int:
    """Call every listener for ``event``; returns how many ran."""
    listeners = list(_listeners.get(event, [])) + list(_listeners.get(ALL_EVENTS, []))
    logger.debug("event_emit: event=%s listeners=%d", event, len(listeners))
    for listener in listeners:
        try:
            listener(event, payload, context)
        except Exception:
            logger.exception("event_listener_failed: event=%s listener=%r", event, listener)
    return len(listeners)


def event_name(resource: str, action: str) -> str:
    return f"{resource}-{action}"
