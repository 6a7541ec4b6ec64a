"""
Local stand-ins for external services, for development and testing.
"""

from .mock_upstream import MockRealtimeWebSocket, mock_connect
