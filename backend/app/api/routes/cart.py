from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.deps import get_db, get_identity
from app.models.identity import Owner
from app.schemas.cart import (
    AddToCartRequest,
    UpdateCartItemRequest,
    QuoteResponse
)
from app.services.cart_service import CartService

router = APIRouter()


async def _quote(identity, db, coupon_code: Optional[str] = None) -> QuoteResponse:
    quote, coupon_result = await CartService.get_quote(identity, db, coupon_code=coupon_code)
    return QuoteResponse.from_quote(quote, coupon_result)


@router.get("", response_model=QuoteResponse)
async def get_cart(
    coupon_code: Optional[str] = Query(None, max_length=50),
    identity: Owner = Depends(get_identity),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Get the caller's cart priced against current prices and promotions.

    Pass ``coupon_code`` to preview a coupon; an inapplicable coupon is
    reported in ``coupon`` and leaves the totals untouched.
    """
    return await _quote(identity, db, coupon_code)


@router.post("/items", response_model=QuoteResponse, status_code=status.HTTP_201_CREATED)
async def add_to_cart(
    request: AddToCartRequest,
    identity: Owner = Depends(get_identity),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Add a product to the cart.

    Validates:
    - Product exists
    - Sufficient stock available
    - At most 100 of a product per line

    If the product is already in the cart with the same gift wrapping,
    increases quantity.
    """
    await CartService.add_item(
        identity,
        product_id=request.product_id,
        quantity=request.quantity,
        db=db,
        is_gift_wrapped=request.is_gift_wrapped,
        gift_message=request.gift_message
    )
    return await _quote(identity, db)


@router.put("/items/{line_id}", response_model=QuoteResponse)
async def update_cart_item(
    line_id: str,
    request: UpdateCartItemRequest,
    identity: Owner = Depends(get_identity),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Update the quantity of a cart line.

    Validates stock availability before updating.
    """
    await CartService.update_item_quantity(identity, line_id, request.quantity, db)
    return await _quote(identity, db)


@router.delete("/items/{line_id}", response_model=QuoteResponse)
async def remove_from_cart(
    line_id: str,
    identity: Owner = Depends(get_identity),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Remove a line from the cart.
    """
    await CartService.remove_item(identity, line_id, db)
    return await _quote(identity, db)


@router.delete("", response_model=QuoteResponse)
async def clear_cart(
    identity: Owner = Depends(get_identity),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Clear all items from the cart.
    """
    await CartService.clear_cart(identity, db)
    return await _quote(identity, db)
