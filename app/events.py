"""
In-process event bus.

A small observer registry with a fixed set of event kinds. Each FastAPI
application (and each CLI invocation) builds its own ``EventBus``, so tests
never share subscribers.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Union

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    REQUESTER_CREATED = "requester.created"
    REQUESTER_UPDATED = "requester.updated"
    SYNC_COMPLETED = "sync.completed"


@dataclass(frozen=True)
class Event:
    kind: EventKind
    payload: Dict[str, Any] = field(default_factory=dict)


Handler = Callable[[Event], Union[None, Awaitable[None]]]


class EventBus:
    """Publish/subscribe channel keyed by ``EventKind``."""

    def __init__(self):
        self._handlers: Dict[EventKind, List[Handler]] = {kind: [] for kind in EventKind}

    def subscribe(self, kind: EventKind, handler: Handler) -> None:
        if handler not in self._handlers[kind]:
            self._handlers[kind].append(handler)

    def unsubscribe(self, kind: EventKind, handler: Handler) -> None:
        try:
            self._handlers[kind].remove(handler)
        except ValueError:
            pass

    def handlers(self, kind: EventKind) -> List[Handler]:
        return list(self._handlers[kind])

    async def emit(self, kind: EventKind, payload: Dict[str, Any]) -> None:
        """
        Deliver an event to every subscriber of ``kind``.

        Handlers may be plain or async callables. A failing handler is logged
        and does not stop delivery to the remaining handlers or fail the
        emitter.
        """
        event = Event(kind=kind, payload=payload)
        for handler in self.handlers(kind):
            try:
                result = handler(event)
                if result is not None and hasattr(result, "__await__"):
                    await result
            except Exception as e:
                logger.error(f"Handler {handler!r} failed for {kind.value}: {e}", exc_info=True)
