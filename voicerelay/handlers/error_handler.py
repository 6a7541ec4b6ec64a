"""
Categorised error bookkeeping for the relay.

Errors the relay swallows on purpose (malformed upstream messages, a failed
session.update follow-up, a receive loop that dies) still need to be visible.
The ``ErrorHandler`` records each one with a context and a severity, logs it
at a level matching the severity, counts it for ``/stats`` and hands it to any
registered callbacks.

Usage:
    handler = ErrorHandler()

    def alert(error_info: ErrorInfo):
        ...

    handler.register_handler(alert, ErrorContext.UPSTREAM)

    await handler.handle_error(
        exc,
        context=ErrorContext.UPSTREAM,
        severity=ErrorSeverity.LOW,
        operation="parse_server_event",
    )
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from voicerelay.config.constants import LOGGER_NAME


class ErrorContext(Enum):
    """Where in the relay an error happened."""

    UPSTREAM = "upstream"
    SESSION = "session"
    AUDIO = "audio"
    CLIENT = "client"
    SYSTEM = "system"


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_LOG_LEVELS = {
    ErrorSeverity.LOW: logging.DEBUG,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


@dataclass
class ErrorInfo:
    """A single recorded error."""

    error: Exception
    context: ErrorContext
    severity: ErrorSeverity
    operation: str
    metadata: Dict[str, Any]
    timestamp: datetime

    def summary(self) -> Dict[str, Any]:
        return {
            "context": self.context.value,
            "severity": self.severity.value,
            "operation": self.operation,
            "error": f"{type(self.error).__name__}: {self.error}",
            "timestamp": self.timestamp.isoformat(),
        }


class ErrorHandler:
    """
    Records, logs and counts errors, and fans them out to callbacks.

    Callbacks may be sync or async; a callback that raises is logged and
    skipped so it never affects the caller.
    """

    def __init__(
        self, logger: Optional[logging.Logger] = None, history_size: int = 20
    ):
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self._handlers: Dict[ErrorContext, List[Callable]] = {
            context: [] for context in ErrorContext
        }
        self._global_handlers: List[Callable] = []
        self._error_count: Dict[ErrorContext, int] = {
            context: 0 for context in ErrorContext
        }
        self._recent: Deque[ErrorInfo] = deque(maxlen=history_size)

    def register_handler(
        self,
        handler: Callable[[ErrorInfo], Any],
        context: Optional[ErrorContext] = None,
    ) -> None:
        """
        Register a callback for one context, or for every context when
        ``context`` is None.
        """
        if context is None:
            self._global_handlers.append(handler)
        else:
            self._handlers[context].append(handler)

    def unregister_handler(
        self, handler: Callable, context: Optional[ErrorContext] = None
    ) -> bool:
        target_list = (
            self._global_handlers if context is None else self._handlers[context]
        )
        if handler in target_list:
            target_list.remove(handler)
            return True
        return False

    async def handle_error(
        self,
        error: Exception,
        context: ErrorContext = ErrorContext.SYSTEM,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        operation: str = "unknown",
        **metadata,
    ) -> ErrorInfo:
        """
        Record an error and run the callbacks registered for it.

        Args:
            error: The exception that occurred
            context: Error context for categorization
            severity: Error severity level, which also picks the log level
            operation: Name of the operation that failed
            **metadata: Additional context-specific metadata

        Returns:
            ErrorInfo: The recorded entry
        """
        error_info = ErrorInfo(
            error=error,
            context=context,
            severity=severity,
            operation=operation,
            metadata=metadata,
            timestamp=datetime.now(),
        )

        self._error_count[context] += 1
        self._recent.append(error_info)

        self.logger.log(
            _LOG_LEVELS[severity], f"Error in {context.value} ({operation}): {error}"
        )

        await self._execute_handlers(self._handlers[context], error_info)
        await self._execute_handlers(self._global_handlers, error_info)
        return error_info

    async def _execute_handlers(
        self, handlers: List[Callable], error_info: ErrorInfo
    ) -> None:
        for handler in handlers:
            try:
                if asyncio.iscoroutinefunction(handler):
                    await handler(error_info)
                else:
                    handler(error_info)
            except Exception as handler_error:
                self.logger.error(f"Error in error handler: {handler_error}")

    def get_error_stats(self) -> Dict[str, Any]:
        """Get error counts per context and the most recent entries."""
        return {
            "error_counts": {
                ctx.value: count for ctx, count in self._error_count.items()
            },
            "total_errors": sum(self._error_count.values()),
            "recent": [info.summary() for info in self._recent],
        }

    def reset_stats(self) -> None:
        self._error_count = {context: 0 for context in ErrorContext}
        self._recent.clear()
