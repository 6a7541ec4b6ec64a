"""Event router for typed upstream events.

The session connection parses every inbound frame into a typed event and hands
it to the router, which dispatches it to the handlers registered for its type.
Events with no registered handler go to the fallback handler, so nothing is
dropped just because the relay does not interpret it.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from voicerelay.config.constants import LOGGER_NAME
from voicerelay.handlers.error_handler import ErrorContext, ErrorHandler, ErrorSeverity
from voicerelay.models.openai_api import ServerEventType

logger = logging.getLogger(LOGGER_NAME)


class EventRouter:
    """Router for typed upstream events.

    Features:
    - Multiple handlers per event type with priority ordering
    - A fallback handler for every type without a registered handler
    - Error isolation: a failing handler is reported and the rest still run

    Attributes:
        handlers (Dict[str, List[Tuple[int, Callable]]]): Priority-ordered handlers per event type
        fallback_handler (Optional[Callable]): Handler for unhandled event types
    """

    def __init__(self, error_handler: Optional[ErrorHandler] = None):
        self.handlers: Dict[str, List[Tuple[int, Callable]]] = {}
        self.fallback_handler: Optional[Callable] = None
        self.error_handler = error_handler or ErrorHandler()
        self._dispatched: Dict[str, int] = {}

    def register_handler(
        self, event_type: Any, handler: Callable, priority: int = 0
    ) -> None:
        """Register a handler for an event type.

        Args:
            event_type: A ``ServerEventType`` or the raw type string
            handler: Sync or async callable taking the typed event
            priority: Handler priority (higher numbers execute first)
        """
        key = self._key(event_type)
        self.handlers.setdefault(key, []).append((priority, handler))
        self.handlers[key].sort(key=lambda x: x[0], reverse=True)
        logger.debug(f"Registered handler for event type: {key} (priority: {priority})")

    def unregister_handler(self, event_type: Any, handler: Callable) -> bool:
        """Unregister an event handler.

        Returns:
            bool: True if handler was found and removed
        """
        handlers = self.handlers.get(self._key(event_type), [])
        for i, (_, h) in enumerate(handlers):
            if h == handler:
                handlers.pop(i)
                return True
        return False

    def set_fallback(self, handler: Optional[Callable]) -> None:
        """Set the handler for event types without registered handlers."""
        self.fallback_handler = handler

    async def dispatch(self, event: Any) -> None:
        """Dispatch one typed event.

        Args:
            event: A parsed server event; its ``type`` attribute selects the handlers
        """
        event_type = event.type
        self._dispatched[event_type] = self._dispatched.get(event_type, 0) + 1

        if event_type == ServerEventType.RESPONSE_AUDIO_DELTA.value:
            logger.debug(
                f"Received {event_type} for {event.response_id} - delta size: {len(event.delta)}"
            )
        else:
            logger.info(f"Received upstream event: {event_type}")

        handlers = self.handlers.get(event_type)
        if handlers:
            await self._execute_handlers(handlers, event, event_type)
        elif self.fallback_handler is not None:
            await self._execute_handlers(
                [(0, self.fallback_handler)], event, event_type
            )
        else:
            logger.warning(f"No handler for upstream event type: {event_type}")

    async def _execute_handlers(
        self, handlers: List[Tuple[int, Callable]], event: Any, event_type: str
    ) -> None:
        for priority, handler in handlers:
            try:
                if asyncio.iscoroutinefunction(handler):
                    await handler(event)
                else:
                    handler(event)
            except Exception as e:
                await self.error_handler.handle_error(
                    e,
                    context=ErrorContext.UPSTREAM,
                    severity=ErrorSeverity.HIGH,
                    operation=f"handle {event_type}",
                    priority=priority,
                )

    def get_handler_stats(self) -> Dict[str, Any]:
        """Get statistics about registered handlers and dispatched events."""
        return {
            "total": sum(len(handlers) for handlers in self.handlers.values()),
            "by_type": {
                event_type: len(handlers)
                for event_type, handlers in self.handlers.items()
            },
            "has_fallback": self.fallback_handler is not None,
            "dispatched": dict(self._dispatched),
        }

    @staticmethod
    def _key(event_type: Any) -> str:
        return event_type.value if isinstance(event_type, ServerEventType) else str(event_type)
