import uuid
from typing import Optional
from fastapi import Depends, Request, Response
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from motor.motor_asyncio import AsyncIOMotorDatabase
from app.core.config import settings
from app.core.database import get_database
from app.core.exceptions import AuthenticationError
from app.core.security import decode_access_token
from app.models.identity import GuestIdentity, Owner, UserIdentity

# Security scheme; guests have no token
security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncIOMotorDatabase:
    """Dependency to get database instance."""
    return get_database()


def _user_from_credentials(credentials: HTTPAuthorizationCredentials) -> UserIdentity:
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError()

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError()

    return UserIdentity(id=str(user_id))


def read_guest_id(request: Request) -> Optional[str]:
    """Guest id from the guest cookie, or the guest header for non-browser clients."""
    return request.cookies.get(settings.GUEST_COOKIE_NAME) or request.headers.get(settings.GUEST_HEADER_NAME)


async def get_identity(
    request: Request,
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Owner:
    """
    Dependency to resolve who is shopping.

    A bearer token identifies a user; a token that does not decode is an
    error rather than a silent fallback to guest. Without a token the guest
    cookie (or header) is used, and a new guest id is issued when neither
    is present.
    """
    if credentials:
        return _user_from_credentials(credentials)

    guest_id = read_guest_id(request)
    if not guest_id:
        guest_id = uuid.uuid4().hex
        response.set_cookie(
            key=settings.GUEST_COOKIE_NAME,
            value=guest_id,
            max_age=settings.GUEST_COOKIE_MAX_AGE_DAYS * 24 * 60 * 60,
            httponly=True,
            samesite="lax"
        )
    return GuestIdentity(id=guest_id)


async def get_current_user_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> UserIdentity:
    """
    Dependency to require an authenticated user.

    Raises:
        AuthenticationError: If no token is given or it is invalid
    """
    if not credentials:
        raise AuthenticationError("Not authenticated")
    return _user_from_credentials(credentials)
