from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.deps import get_db, get_current_user_identity, read_guest_id
from app.core.config import settings
from app.models.identity import UserIdentity
from app.schemas.address import MergeGuestResponse
from app.services.identity_service import IdentityService

router = APIRouter()


@router.post("/merge-guest", response_model=MergeGuestResponse)
async def merge_guest(
    request: Request,
    response: Response,
    user: UserIdentity = Depends(get_current_user_identity),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Move the guest session's cart and addresses to the signed-in user.

    Call after login with both the bearer token and the guest cookie (or
    guest header). Safe to repeat.
    """
    guest_id = read_guest_id(request)
    if not guest_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No guest session to merge"
        )

    result = await IdentityService.merge_guest_into_user(guest_id, user.id, db)
    response.delete_cookie(settings.GUEST_COOKIE_NAME)
    return MergeGuestResponse(**result.model_dump())
