# auth service - jwt token management and password hashing
# issues access/refresh pairs for journal owners and resolves tokens back to user ids

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from jose import JWTError, jwt
from passlib.context import CryptContext
from journal_api.config import settings
from journal_api.errors import Unauthorized

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """hash a plaintext password using bcrypt"""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _encode(user_id: str, token_type: str, expires_delta: timedelta) -> str:
    payload = {
        "sub": user_id,
        "type": token_type,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """short-lived token sent as the bearer credential"""
    return _encode(
        user_id,
        "access",
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(user_id: str) -> str:
    return _encode(user_id, "refresh", timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))


def issue_tokens(user_id: str) -> dict:
    return {
        "accessToken": create_access_token(user_id),
        "refreshToken": create_refresh_token(user_id),
    }


def decode_token(token: str) -> Optional[dict]:
    """decode and validate a jwt token, returns payload or none"""
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"Token decode failed: {e}")
        return None


def user_id_from_token(token: str, token_type: str = "access") -> Optional[str]:
    """subject of a valid token of the expected type, else none"""
    payload = decode_token(token)
    if payload is None or payload.get("type") != token_type:
        return None
    return payload.get("sub") or None


async def resolve_user(db, token: str, token_type: str = "access") -> dict:
    """load the user a token belongs to, with _id converted to an "id" string.
    raises Unauthorized for a bad token or a user that no longer exists."""
    user_id = user_id_from_token(token, token_type)
    if not user_id:
        raise Unauthorized(f"Invalid or expired {token_type} token")

    try:
        user = await db.users.find_one({"_id": ObjectId(user_id)})
    except InvalidId:
        user = None
    if not user:
        raise Unauthorized("User not found")

    user = dict(user)
    user["id"] = str(user.pop("_id"))
    return user
