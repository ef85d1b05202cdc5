"""HTTP 미들웨어"""

from .logging import LoggingMiddleware, sanitize_data

__all__ = ["LoggingMiddleware", "sanitize_data"]
