"""
Authentication utilities and dependencies

Tokens are issued by the identity provider that fronts the site; we only
verify them to attach an owner to new records. Anonymous requests are fine.
"""
import jwt
from datetime import datetime, timedelta, timezone
from fastapi import Header
from typing import Optional
from .config import settings
from .logger import logger

ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7  # 7 days

def create_access_token(user_id: str) -> str:
    """Create a JWT access token"""
    now = datetime.now(timezone.utc)
    to_encode = {
        "sub": user_id,
        "exp": now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
        "iat": now,
    }
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

def decode_access_token(token: str) -> Optional[str]:
    """Decode a JWT access token and return user_id"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected access token: {e}")
        return None
    user_id = payload.get("sub")
    return str(user_id) if user_id else None

async def get_current_user_id_optional(
    authorization: Optional[str] = Header(None),
) -> Optional[str]:
    """
    Optional authentication - returns the user id if authenticated, None otherwise
    """
    if not authorization or not authorization.startswith("Bearer "):
        return None

    token = authorization.split(" ", 1)[1]
    return decode_access_token(token)
