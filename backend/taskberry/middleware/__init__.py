"""Middleware package."""

from taskberry.middleware.logging import LoggingMiddleware
from taskberry.middleware.request_id import RequestIDMiddleware

__all__ = ["LoggingMiddleware", "RequestIDMiddleware"]
