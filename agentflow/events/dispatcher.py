import logging
from collections import defaultdict
from typing import Callable

from agentflow.events.types import AgentEvent, EventType

logger = logging.getLogger(__name__)

Listener = Callable[[AgentEvent], None]


class EventDispatcher:
    """Fire-and-forget event sink.

    Listeners subscribe to a single ``EventType`` or to every event (``None``).
    A failing listener is logged and never affects the emitting code path.
    """

    def __init__(self):
        self._listeners: dict[EventType | None, list[Listener]] = defaultdict(list)
        self._history: list[AgentEvent] | None = None

    def subscribe(self, event_type: EventType | None, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that removes it again."""
        self._listeners[event_type].append(listener)

        def unsubscribe():
            if listener in self._listeners[event_type]:
                self._listeners[event_type].remove(listener)
        return unsubscribe

    def record(self) -> list[AgentEvent]:
        """Start keeping every dispatched event; returns the live list."""
        if self._history is None:
            self._history = []
        return self._history

    def dispatch(self, event: AgentEvent) -> None:
        logger.debug("Dispatching %s for agent %s", event.type, event.agent_name)
        if self._history is not None:
            self._history.append(event)
        for listener in [*self._listeners[event.type], *self._listeners[None]]:
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener %r failed on %s", listener, event.type)


_default_dispatcher = EventDispatcher()


def get_dispatcher() -> EventDispatcher:
    """Return the process-wide default dispatcher."""
    return _default_dispatcher
