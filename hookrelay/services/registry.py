import inspect
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from hookrelay.events import Event, EventType

logger = structlog.get_logger(__name__)

Handler = Callable[[Event], Awaitable[None] | None]


@dataclass(frozen=True)
class HandlerRegistration:
    event_type: EventType
    handler: Handler
    priority: int
    name: str
    sequence: int


def is_async_handler(handler: Any) -> bool:
    return inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
        getattr(handler, "__call__", None)
    )


def _handler_name(handler: Any) -> str:
    module = getattr(handler, "__module__", None) or ""
    qualname = getattr(handler, "__qualname__", None) or type(handler).__qualname__
    return f"{module}.{qualname}" if module else qualname


class HandlerRegistry:
    """
    Business-logic callbacks keyed by event type.

    Handlers are registered during startup; lookups return immutable snapshots
    so they are safe while deliveries are being dispatched concurrently.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._registrations: dict[EventType, tuple[HandlerRegistration, ...]] = {}
        self._sequence = 0
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(
        self,
        event_type: EventType | str,
        handler: Handler,
        priority: int = 0,
        name: str | None = None,
    ) -> HandlerRegistration:
        """
        Register a handler for an event type.

        Args:
            event_type: The EventType (or its value) the handler receives
            handler: A callable or coroutine function taking the event
            priority: Higher priorities run first; ties run in registration order
            name: Identifier recorded in delivery results, defaults to the
                handler's qualified name

        Plain functions run in a worker thread. A timeout marks such a handler
        failed but cannot stop its thread, which keeps running and holding an
        executor worker until the function returns.

        Returns:
            The stored registration
        """
        if not callable(handler):
            raise TypeError(f"Handler must be callable, got {type(handler).__name__}")

        event_type = EventType(event_type)
        name = name or _handler_name(handler)

        with self._lock:
            if self._frozen:
                raise RuntimeError("Handler registry is frozen")

            existing = self._registrations.get(event_type, ())
            if any(registration.name == name for registration in existing):
                raise ValueError(
                    f"Handler {name!r} is already registered for {event_type.value}"
                )

            registration = HandlerRegistration(
                event_type=event_type,
                handler=handler,
                priority=priority,
                name=name,
                sequence=self._sequence,
            )
            self._sequence += 1
            self._registrations[event_type] = tuple(
                sorted(
                    (*existing, registration),
                    key=lambda r: (-r.priority, r.sequence),
                )
            )

        if not is_async_handler(handler):
            logger.warning(
                "Sync handler cannot be interrupted on timeout",
                event_type=event_type.value,
                handler=name,
            )

        logger.debug(
            "Registered handler",
            event_type=event_type.value,
            handler=name,
            priority=priority,
        )
        return registration

    def on(
        self, event_type: EventType | str, priority: int = 0, name: str | None = None
    ) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.register(event_type, handler, priority=priority, name=name)
            return handler

        return decorator

    def handlers_for(self, event_type: EventType) -> tuple[HandlerRegistration, ...]:
        return self._registrations.get(event_type, ())

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    def clear(self) -> None:
        with self._lock:
            self._registrations = {}
            self._sequence = 0
            self._frozen = False
