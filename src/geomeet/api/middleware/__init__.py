"""API middleware package."""

from src.geomeet.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
