"""Authentication utilities: Redis-backed sessions and request guards."""
from typing import Callable, Optional
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session
import logging
import redis

from config import SESSION_TTL_SECONDS
from database import get_db
from models import User, UserRole
from monitoring import auth_failures_counter, auth_attempts_counter
from security import generate_session_token

logger = logging.getLogger(__name__)


class SessionStore:
    """Maps opaque bearer tokens to user ids in Redis."""

    def __init__(self, redis_client: redis.Redis, ttl_seconds: int = SESSION_TTL_SECONDS):
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _session_key(token: str) -> str:
        return f"session:{token}"

    @staticmethod
    def _user_sessions_key(user_id: int) -> str:
        return f"user_sessions:{user_id}"

    def create(self, user_id: int) -> str:
        """Open a session for a user and return its token."""
        token = generate_session_token()
        self.redis_client.setex(self._session_key(token), self.ttl_seconds, str(user_id))
        self.redis_client.sadd(self._user_sessions_key(user_id), token)
        self.redis_client.expire(self._user_sessions_key(user_id), self.ttl_seconds)
        return token

    def get_user_id(self, token: str) -> Optional[int]:
        value = self.redis_client.get(self._session_key(token))
        if value is None:
            return None
        if isinstance(value, bytes):
            value = value.decode()
        return int(value)

    def revoke(self, token: str) -> None:
        user_id = self.get_user_id(token)
        self.redis_client.delete(self._session_key(token))
        if user_id is not None:
            self.redis_client.srem(self._user_sessions_key(user_id), token)

    def revoke_all(self, user_id: int) -> None:
        """End every session a user holds."""
        key = self._user_sessions_key(user_id)
        for token in self.redis_client.smembers(key):
            if isinstance(token, bytes):
                token = token.decode()
            self.redis_client.delete(self._session_key(token))
        self.redis_client.delete(key)


def get_session_store(request: Request) -> SessionStore:
    """Get the session store backed by the app's Redis client."""
    return SessionStore(request.app.state.redis_client)


def verify_token(authorization: Optional[str] = Header(None)) -> str:
    """
    Extract the bearer token from the Authorization header.

    Args:
        authorization: Authorization header value

    Returns:
        Bearer token

    Raises:
        HTTPException: If the header is missing or malformed
    """
    auth_attempts_counter.add(1, {"type": "bearer_token"})

    if authorization is None:
        auth_failures_counter.add(1, {"reason": "missing_header"})
        logger.warning("Authentication failed: Missing authorization header")
        raise HTTPException(status_code=401, detail="Missing authorization header")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        auth_failures_counter.add(1, {"reason": "invalid_format"})
        logger.warning("Authentication failed: Invalid authorization header format", extra={
            "auth_header": authorization[:20] + "..." if len(authorization) > 20 else authorization
        })
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    return parts[1]


def get_current_user(
    token: str = Depends(verify_token),
    db: Session = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store)
) -> User:
    """Resolve the authenticated user for the request."""
    try:
        user_id = sessions.get_user_id(token)
    except redis.RedisError as e:
        logger.error("Session lookup failed", extra={"error": str(e)})
        raise HTTPException(status_code=503, detail="Session store unavailable")

    if user_id is None:
        auth_failures_counter.add(1, {"reason": "invalid_token"})
        logger.warning("Authentication failed: Invalid token", extra={
            "token_prefix": token[:8] + "..."
        })
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        auth_failures_counter.add(1, {"reason": "unknown_user"})
        raise HTTPException(status_code=401, detail="Invalid token")

    logger.debug("Authentication successful", extra={"user_id": user.id})
    return user


def require_roles(*roles: UserRole) -> Callable[..., User]:
    """Build a dependency that admits users holding any of the given roles."""

    def guard(user: User = Depends(get_current_user)) -> User:
        if not user.has_role(*roles):
            auth_failures_counter.add(1, {"reason": "missing_role"})
            logger.warning("Authorization failed: Missing role", extra={
                "user_id": user.id,
                "required_roles": [role.value for role in roles]
            })
            raise HTTPException(status_code=403, detail="You are not allowed to access this resource")
        return user

    return guard
