"""Publish/subscribe channels between the poller and the presentation layer."""

import inspect
import logging
from typing import Any, Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventChannel(Generic[T]):
    """Named channel. Handlers may be plain functions or coroutines.

    A failing handler is logged and skipped; it never breaks the emitter
    or the other subscribers.
    """

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[Callable[[T], Any]] = []

    def subscribe(self, handler: Callable[[T], Any]) -> Callable[[], None]:
        """Register a handler. Returns a callable that unsubscribes it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    async def emit(self, payload: T = None) -> None:
        for handler in list(self._handlers):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Handler for '{self.name}' failed: {e}", exc_info=True)
