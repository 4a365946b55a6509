"""
Authentication service: registration, login and token refresh.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.schemas.user import UserCreate, UserLogin
from app.core.exceptions import EmailAlreadyRegistered, InactiveAccount, InvalidCredentials, InvalidToken
from app.core.security import (
    REFRESH_TOKEN,
    create_token_pair,
    decode_token,
    hash_password,
    verify_password,
)
from app.core.logging import get_logger

logger = get_logger(__name__)


def _auth_payload(user: User) -> dict:
    return {
        "user": {"id": user.id, "email": user.email, "name": user.name},
        **create_token_pair(user.id, user.email),
    }


async def register_user(db: AsyncSession, user_data: UserCreate) -> dict:
    """
    Register a new user and sign them in.
    Raises EmailAlreadyRegistered if the email is taken.
    """
    email = user_data.email.lower()
    result = await db.execute(select(User.id).where(User.email == email))
    if result.scalar_one_or_none() is not None:
        logger.warning("registration_failed", reason="email_exists", email=email)
        raise EmailAlreadyRegistered()

    user = User(
        email=email,
        name=user_data.name,
        hashed_password=hash_password(user_data.password),
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as exc:
        # Lost a race with a concurrent registration of the same email
        await db.rollback()
        logger.warning("registration_failed", reason="email_exists", email=email)
        raise EmailAlreadyRegistered() from exc

    logger.info("user_registered", user_id=str(user.id), email=user.email)
    return _auth_payload(user)


async def authenticate_user(db: AsyncSession, login_data: UserLogin) -> dict:
    """
    Check credentials and issue an access/refresh token pair.
    Raises InvalidCredentials for an unknown email or wrong password.
    """
    result = await db.execute(select(User).where(User.email == login_data.email.lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.warning("login_failed", email=login_data.email)
        raise InvalidCredentials()

    if not user.is_active:
        raise InactiveAccount()

    logger.info("user_logged_in", user_id=str(user.id))
    return _auth_payload(user)


async def refresh_tokens(db: AsyncSession, refresh_token: str) -> dict:
    """Exchange a valid refresh token for a new token pair."""
    user_id = decode_token(refresh_token, REFRESH_TOKEN)

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        logger.warning("token_refresh_failed", user_id=str(user_id))
        raise InvalidToken()

    logger.info("token_refreshed", user_id=str(user.id))
    return _auth_payload(user)
