"""Middleware registration."""

from fastapi import FastAPI

from rada.config import Settings
from rada.middleware.cors import setup_cors
from rada.middleware.error_handler import setup_error_handlers
from rada.middleware.logging import setup_logging
from rada.middleware.rate_limit import RateLimitMiddleware
from rada.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register middleware. Starlette runs them in reverse-add order, so CORS goes last."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)  # outermost, so 429 responses carry CORS headers
