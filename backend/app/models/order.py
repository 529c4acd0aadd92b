from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, Field

from app.models.address import AddressFields
from app.utils.helpers import get_current_timestamp, money_to_float


class OrderStatus(str, Enum):
    """Order status enumeration."""
    CONFIRMED = "confirmed"  # Priced, coupon redeemed, awaiting payment capture
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment status enumeration for orders."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class CheckoutState(str, Enum):
    """States a checkout request moves through."""
    CART_REVIEW = "cart_review"
    ADDRESS_SELECTED = "address_selected"
    COUPON_APPLIED = "coupon_applied"
    CONFIRMED = "confirmed"
    ORDER_PERSISTED = "order_persisted"


class StatusHistory(BaseModel):
    """Status history entry for tracking checkout state changes."""
    status: str
    changed_at: datetime = Field(default_factory=get_current_timestamp)
    note: Optional[str] = None


class QuoteLine(BaseModel):
    """A priced cart line."""
    line_id: str
    product_id: str
    product_name: str
    quantity: int
    is_gift_wrapped: bool = False
    gift_message: Optional[str] = None
    unit_original_price: Decimal
    unit_discounted_price: Decimal
    promotion_applied_id: Optional[str] = None
    promotion_name: Optional[str] = None
    line_subtotal: Decimal

    @property
    def line_original_total(self) -> Decimal:
        return self.unit_original_price * self.quantity

    @property
    def line_promotion_discount(self) -> Decimal:
        return (self.unit_original_price - self.unit_discounted_price) * self.quantity


class PartialQuote(BaseModel):
    """Result of the promotion pass, before coupon, tax and shipping."""
    lines: List[QuoteLine] = Field(default_factory=list)
    subtotal: Decimal = Decimal("0.00")
    promotion_discount_total: Decimal = Decimal("0.00")
    discounted_subtotal: Decimal = Decimal("0.00")
    priced_at: datetime


class OrderQuote(PartialQuote):
    """Fully priced view of a cart. Never authoritative until confirmed."""
    coupon_code: Optional[str] = None
    coupon_discount_total: Decimal = Decimal("0.00")
    tax: Decimal = Decimal("0.00")
    shipping_cost: Decimal = Decimal("0.00")
    grand_total: Decimal = Decimal("0.00")

    def to_document(self) -> dict:
        """Plain-number snapshot used for responses and order storage."""
        return {
            "lines": [
                {
                    "line_id": line.line_id,
                    "product_id": line.product_id,
                    "product_name": line.product_name,
                    "quantity": line.quantity,
                    "is_gift_wrapped": line.is_gift_wrapped,
                    "gift_message": line.gift_message,
                    "unit_original_price": money_to_float(line.unit_original_price),
                    "unit_discounted_price": money_to_float(line.unit_discounted_price),
                    "promotion_applied_id": line.promotion_applied_id,
                    "promotion_name": line.promotion_name,
                    "line_subtotal": money_to_float(line.line_subtotal),
                }
                for line in self.lines
            ],
            "subtotal": money_to_float(self.subtotal),
            "promotion_discount_total": money_to_float(self.promotion_discount_total),
            "discounted_subtotal": money_to_float(self.discounted_subtotal),
            "coupon_code": self.coupon_code,
            "coupon_discount_total": money_to_float(self.coupon_discount_total),
            "tax": money_to_float(self.tax),
            "shipping_cost": money_to_float(self.shipping_cost),
            "grand_total": money_to_float(self.grand_total),
            "priced_at": self.priced_at,
        }


class OrderLine(BaseModel):
    """Immutable copy of a priced line stored on an order."""
    product_id: str
    product_name: str
    quantity: int = Field(gt=0)
    is_gift_wrapped: bool = False
    gift_message: Optional[str] = None
    unit_original_price: float
    unit_discounted_price: float
    promotion_applied_id: Optional[str] = None
    line_subtotal: float


class Order(BaseModel):
    """Order model for MongoDB."""
    id: Optional[str] = Field(None, alias="_id")
    order_number: str
    owner_type: str
    owner_id: str
    lines: List[OrderLine]
    subtotal: float
    promotion_discount: float
    coupon_code: Optional[str] = None
    coupon_discount: float
    tax: float
    shipping_cost: float
    grand_total: float = Field(ge=0)
    shipping_address: AddressFields
    status: OrderStatus = OrderStatus.CONFIRMED
    payment_method: str
    payment_status: PaymentStatus = PaymentStatus.PENDING
    order_notes: Optional[str] = None
    status_history: List[StatusHistory] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=get_current_timestamp)

    class Config:
        populate_by_name = True
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "order_number": "ORD-20260214-7K2Q9D",
                "owner_type": "user",
                "owner_id": "user123",
                "lines": [
                    {
                        "product_id": "prod123",
                        "product_name": "Dark Truffle Box",
                        "quantity": 3,
                        "unit_original_price": 7.99,
                        "unit_discounted_price": 5.59,
                        "promotion_applied_id": "promo1",
                        "line_subtotal": 16.77
                    }
                ],
                "subtotal": 23.97,
                "promotion_discount": 7.20,
                "coupon_discount": 0.0,
                "tax": 1.92,
                "shipping_cost": 0.0,
                "grand_total": 18.69,
                "payment_method": "card"
            }
        }
