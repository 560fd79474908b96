"""HTTP adapters for feed count and page endpoints."""

from .fetch import HttpCountSource, HttpPageSource

__all__ = ["HttpCountSource", "HttpPageSource"]
