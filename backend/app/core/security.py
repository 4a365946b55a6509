"""
Password hashing (bcrypt) and JWT access/refresh tokens (PyJWT).

Access and refresh tokens are signed with different secrets and carry a
`type` claim, so a refresh token is never accepted as an access token.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import get_settings
from app.core.exceptions import InvalidToken

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

# auto_error=False: a missing header becomes our 401, not FastAPI's default
bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    rounds = get_settings().BCRYPT_ROUNDS
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def _secret_for(token_type: str) -> str:
    settings = get_settings()
    if token_type == REFRESH_TOKEN:
        return settings.REFRESH_TOKEN_SECRET
    return settings.ACCESS_TOKEN_SECRET


def create_token(user_id: uuid.UUID, email: str, token_type: str = ACCESS_TOKEN) -> str:
    settings = get_settings()
    if token_type == REFRESH_TOKEN:
        lifetime = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    else:
        lifetime = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "type": token_type,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, _secret_for(token_type), algorithm=settings.ALGORITHM)


def create_token_pair(user_id: uuid.UUID, email: str) -> dict:
    return {
        "access_token": create_token(user_id, email, ACCESS_TOKEN),
        "refresh_token": create_token(user_id, email, REFRESH_TOKEN),
    }


def decode_token(token: str, token_type: str = ACCESS_TOKEN) -> uuid.UUID:
    """Verify signature, expiry and type; return the subject's user id."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, _secret_for(token_type), algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError as exc:
        raise InvalidToken() from exc

    if payload.get("type") != token_type:
        raise InvalidToken()
    try:
        return uuid.UUID(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidToken() from exc


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> uuid.UUID:
    """FastAPI dependency: resolve the bearer access token to a user id."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise InvalidToken("Not authenticated")
    return decode_token(credentials.credentials, ACCESS_TOKEN)
