"""
Request identity for the reporting API.

Authentication itself happens upstream (the host app or gateway); it passes
the resolved user id in the X-User-Id header. Placeholder ids are rejected
so a demo session never reads or generates a real user's reports.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from quotedigest.client.identity import coerce_identity

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"


def _unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
    )


def get_current_user_id(request: Request) -> str:
    """FastAPI dependency: the caller's user id as a string."""
    raw = request.headers.get(USER_ID_HEADER)
    if raw is None:
        raise _unauthorized(f"Missing {USER_ID_HEADER} header")

    user_id = coerce_identity(raw)
    if user_id is None:
        logger.info(f"Rejected placeholder identity: {raw!r}")
        raise _unauthorized("A real user identity is required")

    return str(user_id)
