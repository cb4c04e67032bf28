"""relaybot - route chat questions to specialized handlers and stream the answers back."""

__version__ = "0.1.0"
