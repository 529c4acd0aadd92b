from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, Field, field_validator

from app.utils.helpers import ensure_utc, round_money, to_decimal


class CouponRejection(str, Enum):
    """Why a coupon was not applied, in validation order."""
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    NOT_YET_STARTED = "not_yet_started"
    EXPIRED = "expired"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    BELOW_MINIMUM = "below_minimum"


class PercentageDiscount(BaseModel):
    kind: Literal["percentage"] = "percentage"
    percentage: Decimal = Field(ge=0, le=100)

    class Config:
        frozen = True

    def apply(self, base_amount: Decimal) -> Decimal:
        return round_money(base_amount * self.percentage / Decimal(100))


class FixedAmountDiscount(BaseModel):
    kind: Literal["fixed_amount"] = "fixed_amount"
    amount: Decimal = Field(ge=0)

    class Config:
        frozen = True

    def apply(self, base_amount: Decimal) -> Decimal:
        return round_money(min(self.amount, base_amount))


Discount = Annotated[Union[PercentageDiscount, FixedAmountDiscount], Field(discriminator="kind")]

# Admin tooling has written both spellings over time
_DISCOUNT_KINDS = {
    "percentage": "percentage",
    "percent": "percentage",
    "fixed_amount": "fixed_amount",
    "fixedamount": "fixed_amount",
    "fixed": "fixed_amount",
}


def parse_discount(discount_type: str, discount_amount) -> Union[PercentageDiscount, FixedAmountDiscount]:
    """Build the discount variant from the stored type tag and amount."""
    kind = _DISCOUNT_KINDS.get(discount_type.strip().lower())
    if kind == "percentage":
        return PercentageDiscount(percentage=to_decimal(discount_amount))
    if kind == "fixed_amount":
        return FixedAmountDiscount(amount=to_decimal(discount_amount))
    raise ValueError(f"Unknown discount type: {discount_type}")


def normalize_code(code: Optional[str]) -> str:
    """Coupon codes are stored upper-case and compared case-insensitively."""
    return (code or "").strip().upper()


class Coupon(BaseModel):
    """Coupon model for MongoDB."""
    id: Optional[str] = Field(None, alias="_id")
    code: str
    description: Optional[str] = None
    discount: Discount
    minimum_order_amount: Decimal = Decimal("0")
    start_date: datetime
    end_date: datetime
    usage_limit: Optional[int] = Field(None, ge=0)
    times_used: int = Field(default=0, ge=0)
    is_active: bool = True

    class Config:
        populate_by_name = True

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc(cls, value):
        return ensure_utc(value)

    @classmethod
    def from_document(cls, document: dict) -> "Coupon":
        return cls(
            _id=str(document["_id"]),
            code=document["code"],
            description=document.get("description"),
            discount=parse_discount(document["discount_type"], document["discount_amount"]),
            minimum_order_amount=to_decimal(document.get("minimum_order_amount") or 0),
            start_date=document["start_date"],
            end_date=document["end_date"],
            usage_limit=document.get("usage_limit"),
            times_used=document.get("times_used", 0),
            is_active=document.get("is_active", False)
        )

    def has_uses_left(self) -> bool:
        return self.usage_limit is None or self.times_used < self.usage_limit


class CouponValidationResult(BaseModel):
    """Outcome of validating a coupon against an order amount."""
    is_valid: bool
    reason: Optional[CouponRejection] = None
    message: str
    coupon_code: Optional[str] = None
    discount_amount: Decimal = Decimal("0.00")
    final_amount: Decimal
