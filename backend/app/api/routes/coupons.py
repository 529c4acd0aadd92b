from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.deps import get_db
from app.schemas.coupon import ValidateCouponRequest, CouponValidationResponse
from app.services.coupon_service import CouponService
from app.utils.helpers import to_decimal

router = APIRouter()


@router.post("/validate", response_model=CouponValidationResponse)
async def validate_coupon(
    request: ValidateCouponRequest,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Check whether a coupon applies to an order amount.

    ``order_amount`` is the amount after promotions. Nothing is redeemed;
    a rejected coupon is a normal response with ``is_valid`` false and the
    reason.
    """
    result = await CouponService.validate(request.code, to_decimal(request.order_amount), db)
    return CouponValidationResponse.from_result(result)
