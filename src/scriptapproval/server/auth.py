"""API key check for mutating approval endpoints."""

from __future__ import annotations

import secrets

from fastapi import HTTPException, Request, status

from scriptapproval.transport import API_KEY_HEADER


def verify_api_key(request: Request) -> None:
    """Verify ``X-API-Key`` against the configured key. No-op if none is set.

    A missing or stale key is answered with 403 so clients can tell an
    authorization lapse apart from other failures.
    """
    expected: str | None = request.app.state.api_key
    if expected is None:
        return
    provided = request.headers.get(API_KEY_HEADER, "")
    if not secrets.compare_digest(provided, expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing API key",
        )
