"""Terminal client for the freeCodeCamp Code Radio stream."""

__version__ = "0.1.0"
