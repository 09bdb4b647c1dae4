"""Authentication utilities for the PeerAssist backend."""

from datetime import datetime, timedelta, timezone
from typing import Annotated

import bcrypt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import Settings, get_settings
from .errors import InvalidInputError, UnauthorizedError

# bcrypt only accepts up to 72 bytes of password input
MAX_PASSWORD_BYTES = 72

# Bearer token scheme; optional unless session tokens are required
security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    if len(password.encode()) > MAX_PASSWORD_BYTES:
        raise InvalidInputError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a password against its hash."""
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        # Malformed stored hash
        return False


def create_access_token(
    email: str,
    settings: Settings,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT session token for a user."""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)

    to_encode = {
        "sub": email,
        "email": email,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "type": "access",
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        raise UnauthorizedError("Invalid or expired token") from e


async def get_session_email(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> str | None:
    """Email of the bearer-token holder, or None when session tokens are off.

    With ``require_session_token`` disabled, callers are authenticated by the
    existence check on the acting user alone.
    """
    if not settings.require_session_token:
        return None

    if not credentials:
        raise UnauthorizedError("Not authenticated - provide Authorization header")

    payload = decode_token(credentials.credentials, settings)
    email = payload.get("sub")
    if not email:
        raise UnauthorizedError("Invalid token payload")
    return email


SessionEmail = Annotated[str | None, Depends(get_session_email)]


def ensure_acting_user(email: str, session_email: str | None) -> None:
    """Check that the path's acting user is the token holder (if any)."""
    if session_email is not None and session_email != email:
        raise UnauthorizedError("Token does not match the acting user")
