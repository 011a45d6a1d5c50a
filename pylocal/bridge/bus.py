"""Event bus for the execution bridge.

The runner publishes what happens during an invocation (diagnostic text from
the child, start/finish, failures) to an EventBus, and observers subscribe to
the event types they care about. This keeps the subprocess protocol free of
any knowledge about consoles, log files or host UIs.

Dispatch is synchronous: emit() returns only after every handler has run.
That is what guarantees diagnostic events are delivered, in order, before the
invocation that produced them returns its result.
"""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Type, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar('E')

EventHandler = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe dispatcher keyed by event class.

    A failing handler is logged and skipped; it never reaches the code that
    emitted the event.

    Example usage:
        bus = EventBus()
        bus.on(DiagnosticOutput, lambda event: sys.stderr.write(event.text))
        result = await PythonRunner(config, bus).run(script, context)
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type, List[EventHandler]] = defaultdict(list)

    def on(self, event_type: Type[E], handler: Callable[[E], None]) -> None:
        """Register handler for every future event of event_type."""
        self._handlers[event_type].append(handler)

    def off(self, event_type: Type[E], handler: Callable[[E], None]) -> None:
        """Remove a previously registered handler.

        Removing a handler that was never registered does nothing.
        """
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, event: Any) -> None:
        """Call every handler registered for the event's exact type.

        Args:
            event: The event instance to dispatch
        """
        event_type = type(event)

        # Copy so a handler may unsubscribe itself while being called
        for handler in list(self._handlers.get(event_type, [])):
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Event handler {getattr(handler, '__name__', handler)!r} raised "
                    f"exception for {event_type.__name__}: {e}",
                    exc_info=True
                )

    def has_handlers(self, event_type: Type) -> bool:
        """Return True if at least one handler is registered for event_type."""
        return bool(self._handlers.get(event_type))

    def clear(self) -> None:
        """Drop all handlers."""
        self._handlers.clear()
