"""Operator access for admin endpoints."""

from __future__ import annotations

import hmac

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

from rada.config import get_settings

_admin_token = APIKeyHeader(name="X-Admin-Token", auto_error=False)


async def require_admin(token: str | None = Security(_admin_token)) -> None:
    """Reject the request unless it carries the configured operator token."""
    expected = get_settings().admin_token
    if not expected:
        raise HTTPException(status_code=503, detail="Admin access is not configured")
    if token is None or not hmac.compare_digest(token, expected):
        raise HTTPException(status_code=403, detail="Invalid admin token")
