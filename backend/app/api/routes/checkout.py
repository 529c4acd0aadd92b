from fastapi import APIRouter, Depends, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.deps import get_db, get_identity
from app.models.identity import Owner
from app.schemas.order import CheckoutRequest, ReceiptResponse
from app.services.checkout_service import CheckoutService

router = APIRouter()


@router.post("", response_model=ReceiptResponse, status_code=status.HTTP_201_CREATED)
async def checkout(
    request: CheckoutRequest,
    identity: Owner = Depends(get_identity),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Confirm the caller's cart as an order.

    The cart is repriced at confirmation. Send ``expected_total`` with the
    total the customer saw; if it no longer matches, the response is a 409
    carrying the fresh quote and nothing is ordered. The coupon use, the
    order and the emptied cart are saved together or not at all.
    """
    return await CheckoutService.checkout(
        identity,
        db,
        payment_method=request.payment_method,
        shipping_address=request.shipping_address,
        saved_address_id=request.saved_address_id,
        coupon_code=request.coupon_code,
        expected_total=request.expected_total,
        save_address=request.save_address,
        order_notes=request.order_notes
    )
