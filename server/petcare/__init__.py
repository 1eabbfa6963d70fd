"""Pet-care booking conflict and notification delivery service."""

__version__ = "1.0.0"
