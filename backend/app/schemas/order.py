from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from app.models.address import AddressFields


class CheckoutRequest(BaseModel):
    """Schema for confirming the cart as an order."""
    shipping_address: Optional[AddressFields] = None
    saved_address_id: Optional[str] = None
    coupon_code: Optional[str] = Field(None, max_length=50)
    payment_method: str = Field(min_length=1, max_length=50)
    expected_total: Optional[float] = Field(None, ge=0)  # Total the customer last saw
    save_address: bool = False
    order_notes: Optional[str] = Field(None, max_length=500)

    class Config:
        json_schema_extra = {
            "example": {
                "saved_address_id": "65d0c0ffee0000000000abcd",
                "coupon_code": "SAVE10",
                "payment_method": "card",
                "expected_total": 22.50
            }
        }


class OrderLineResponse(BaseModel):
    """Schema for a line on a receipt."""
    product_id: str
    product_name: str
    quantity: int
    is_gift_wrapped: bool = False
    gift_message: Optional[str] = None
    unit_original_price: float
    unit_discounted_price: float
    promotion_applied_id: Optional[str] = None
    line_subtotal: float


class StatusHistoryResponse(BaseModel):
    status: str
    changed_at: datetime
    note: Optional[str] = None


class ReceiptResponse(BaseModel):
    """Schema for an order receipt."""
    id: str
    order_number: str
    lines: List[OrderLineResponse]
    subtotal: float
    promotion_discount: float
    coupon_code: Optional[str] = None
    coupon_discount: float
    tax: float
    shipping_cost: float
    grand_total: float
    calculated_total: float
    shipping_address: AddressFields
    status: str
    payment_method: str
    payment_status: str
    order_notes: Optional[str] = None
    status_history: List[StatusHistoryResponse] = []
    created_at: datetime

    class Config:
        from_attributes = True
