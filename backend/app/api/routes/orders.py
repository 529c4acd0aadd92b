from typing import List
from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.deps import get_db, get_identity
from app.models.identity import Owner
from app.schemas.order import ReceiptResponse
from app.services.order_service import OrderService

router = APIRouter()


@router.get("", response_model=List[ReceiptResponse])
async def list_orders(
    identity: Owner = Depends(get_identity),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    List the caller's orders, newest first.
    """
    return await OrderService.list_orders(identity, db)


@router.get("/{order_id}", response_model=ReceiptResponse)
async def get_order(
    order_id: str,
    identity: Owner = Depends(get_identity),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Get the receipt for one of the caller's orders.

    The total is re-added from the stored components before it is returned.
    """
    return await OrderService.get_receipt(order_id, identity, db)
