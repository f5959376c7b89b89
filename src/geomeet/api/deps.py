"""FastAPI dependency injection for the authenticated user and core services."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from src.geomeet.core.security import verify_token
from src.geomeet.meetings.service import MeetingLifecycleManager


async def get_current_user_id(request: Request) -> str:
    """Extract the user id (``sub`` claim) from the Bearer token.

    Raises:
        HTTPException(401): If no valid token is provided.
    """
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        payload = verify_token(auth_header[7:], token_type="access")
        return str(payload["sub"])

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_meeting_service(request: Request) -> MeetingLifecycleManager:
    """Retrieve MeetingLifecycleManager from app.state, 503 if not available."""
    service = getattr(request.app.state, "meeting_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Meeting service not initialized",
        )
    return service
