"""
voicerelay - polling relay between a browser call simulator and a realtime
voice-agent service.

The server side (``voicerelay.main``) keeps one upstream session open and lets
clients poll for its events; the client side (``voicerelay.client``) plays the
trainee's part of a call against it.
"""

__version__ = "1.0.0"
