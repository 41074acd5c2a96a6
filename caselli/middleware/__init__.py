"""HTTP middleware for the Caselli agent core."""

from .logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
