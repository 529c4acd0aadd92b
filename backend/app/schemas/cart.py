from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from app.models.cart import MAX_GIFT_MESSAGE_LENGTH, MAX_LINE_QUANTITY
from app.models.coupon import CouponValidationResult
from app.models.order import OrderQuote
from app.schemas.coupon import CouponValidationResponse


class AddToCartRequest(BaseModel):
    """Schema for adding a product to cart."""
    product_id: str
    quantity: int = Field(gt=0, le=MAX_LINE_QUANTITY)
    is_gift_wrapped: bool = False
    gift_message: Optional[str] = Field(None, max_length=MAX_GIFT_MESSAGE_LENGTH)

    class Config:
        json_schema_extra = {
            "example": {
                "product_id": "prod123",
                "quantity": 2,
                "is_gift_wrapped": True,
                "gift_message": "Happy birthday!"
            }
        }


class UpdateCartItemRequest(BaseModel):
    """Schema for updating cart line quantity."""
    quantity: int = Field(gt=0, le=MAX_LINE_QUANTITY)

    class Config:
        json_schema_extra = {
            "example": {
                "quantity": 3
            }
        }


class CartLineResponse(BaseModel):
    """Schema for a priced cart line."""
    line_id: str
    product_id: str
    product_name: str
    quantity: int
    is_gift_wrapped: bool = False
    gift_message: Optional[str] = None
    unit_original_price: float
    unit_discounted_price: float
    promotion_applied_id: Optional[str] = None
    promotion_name: Optional[str] = None
    line_subtotal: float


class QuoteResponse(BaseModel):
    """Schema for a priced cart."""
    lines: List[CartLineResponse]
    subtotal: float
    promotion_discount_total: float
    discounted_subtotal: float
    coupon_code: Optional[str] = None
    coupon_discount_total: float
    tax: float
    shipping_cost: float
    grand_total: float
    total_items: int
    priced_at: datetime
    coupon: Optional[CouponValidationResponse] = None

    @classmethod
    def from_quote(
        cls,
        quote: OrderQuote,
        coupon_result: Optional[CouponValidationResult] = None
    ) -> "QuoteResponse":
        document = quote.to_document()
        return cls(
            total_items=sum(line.quantity for line in quote.lines),
            coupon=CouponValidationResponse.from_result(coupon_result) if coupon_result else None,
            **document
        )
