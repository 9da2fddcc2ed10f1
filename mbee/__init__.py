"""Model-based engineering environment service."""

__version__ = "0.3.0"
