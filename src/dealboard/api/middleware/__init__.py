"""API middleware package."""

from src.dealboard.api.middleware.identity import IdentityMiddleware
from src.dealboard.api.middleware.logging import LoggingMiddleware

__all__ = ["IdentityMiddleware", "LoggingMiddleware"]
