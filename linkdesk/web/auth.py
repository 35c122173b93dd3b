"""Session authentication for the LinkDesk API.

Sessions live in Redis when ``REDIS_URL`` is configured and in process memory
otherwise (or while Redis is unreachable). The session token travels in the
``session`` cookie.
"""

from __future__ import annotations

import json
import logging
import secrets
from datetime import datetime, timedelta
from uuid import UUID

import redis
from fastapi import Cookie, Depends, HTTPException

from linkdesk.config import get_config
from linkdesk.models import SessionUser, UserType

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"

# In-memory fallback for development when Redis is missing
_memory_sessions: dict[str, dict] = {}


def get_redis_client() -> redis.Redis | None:
    """Redis client for session storage, or None when not configured."""
    redis_url = get_config().auth.redis_url
    if not redis_url:
        return None
    return redis.from_url(redis_url, decode_responses=True)


def _session_key(token: str) -> str:
    return f"session:{token}"


def create_session(
    user_id: UUID | str,
    user_type: UserType | str,
    email: str | None = None,
    role: str | None = None,
) -> str:
    """Store a new session and return its token."""
    expiry_hours = get_config().auth.session_expiry_hours
    session_token = secrets.token_urlsafe(32)

    session_data = {
        "user_id": str(user_id),
        "user_type": UserType(user_type).value,
        "email": email,
        "role": role,
        "created_at": datetime.utcnow().isoformat(),
        "expires_at": (datetime.utcnow() + timedelta(hours=expiry_hours)).isoformat(),
    }

    redis_client = get_redis_client()
    if redis_client is not None:
        try:
            redis_client.setex(
                _session_key(session_token), expiry_hours * 3600, json.dumps(session_data)
            )
            return session_token
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
            logger.warning("Redis unavailable, using in-memory session storage")

    _memory_sessions[session_token] = session_data
    return session_token


def validate_session(session_token: str | None) -> dict | None:
    """Return the session data for a live token, else None."""
    if not session_token:
        return None

    session_data = None
    redis_client = get_redis_client()
    if redis_client is not None:
        try:
            raw = redis_client.get(_session_key(session_token))
            session_data = json.loads(raw) if raw else None
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
            session_data = _memory_sessions.get(session_token)
        except json.JSONDecodeError:
            redis_client.delete(_session_key(session_token))
            return None
    else:
        session_data = _memory_sessions.get(session_token)

    if not session_data:
        return None

    try:
        expires_at = datetime.fromisoformat(session_data["expires_at"])
    except (KeyError, ValueError):
        logout(session_token)
        return None
    if datetime.utcnow() > expires_at:
        logout(session_token)
        return None
    return session_data


def logout(session_token: str | None) -> None:
    """Invalidate a session token wherever it is stored."""
    if not session_token:
        return
    _memory_sessions.pop(session_token, None)
    redis_client = get_redis_client()
    if redis_client is not None:
        try:
            redis_client.delete(_session_key(session_token))
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
            pass


def get_current_user(session: str | None = Cookie(default=None)) -> SessionUser:
    """Dependency resolving the session cookie to the calling user.

    Raises:
        HTTPException: 401 if there is no valid session
    """
    if get_config().auth.auth_disabled:
        return SessionUser(
            user_id=UUID(int=0), user_type=UserType.INTERNAL, email="default_user", role="admin"
        )

    session_data = validate_session(session)
    if not session_data:
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        return SessionUser(
            user_id=UUID(session_data["user_id"]),
            user_type=UserType(session_data["user_type"]),
            email=session_data.get("email"),
            role=session_data.get("role"),
        )
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Unauthorized") from None


def require_internal(user: SessionUser = Depends(get_current_user)) -> SessionUser:
    """Dependency restricting a route to internal staff.

    Raises:
        HTTPException: 401 without a session, 403 for account users
    """
    if not user.is_internal:
        raise HTTPException(status_code=403, detail="Internal access required")
    return user
