# gradleflow/infra/flow/event_manager.py
"""
Event publication for graph runs.

Run lifecycle events are delivered to synchronous listeners, called inline as
each event is emitted. Listeners see every event of every run; the event's
``run_id`` tells runs apart.
"""
from __future__ import annotations

import logging
from typing import Callable, List

from gradleflow.infra.flow.models import ExecutionEvent

logger = logging.getLogger(__name__)

EventListener = Callable[[ExecutionEvent], None]


class EventManager:
    """
    Dispatches run events to the registered listeners.
    """

    def __init__(self):
        self._listeners: List[EventListener] = []

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """
        Register a listener called for every event of every run.

        Args:
            listener: Synchronous callable receiving each event

        Returns:
            A function removing the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def emit_event(self, event: ExecutionEvent) -> None:
        """
        Emit an event to every listener.

        A failing listener is logged and does not prevent delivery to the
        others.

        Args:
            event: Event to emit
        """
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                logger.error(
                    f"Event listener failed: run_id={event.run_id}, event={event.type}, "
                    f"error={exc.__class__.__name__}: {exc}"
                )

