"""
Caller identity for API requests.

Sign-in and token verification happen upstream; requests reach this service
with the authenticated user's id in the ``X-User-Id`` header.
"""

from fastapi import Header, HTTPException, status


def get_current_user_id(x_user_id: str | None = Header(None)) -> str:
    """Dependency returning the calling user's id."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user identity")
    return x_user_id.strip()
