from typing import Optional

import jwt

from app.core.config import settings


def decode_access_token(token: str) -> Optional[dict]:
    """
    Decode a bearer token issued by the identity service.

    Returns the payload, or None when the token is malformed, expired or
    signed with another key.
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except jwt.PyJWTError:
        return None
