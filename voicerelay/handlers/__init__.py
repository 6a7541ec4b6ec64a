"""
Inbound event handling for the relay.

Components:
- EventRouter: Dispatches typed upstream events to priority-ordered handlers,
  with a fallback for event types nobody registered for
- ErrorHandler: Records, logs and counts the errors the relay swallows
"""

from .error_handler import ErrorContext, ErrorHandler, ErrorInfo, ErrorSeverity
from .event_router import EventRouter
