from typing import Optional
from pydantic import BaseModel, Field

from app.models.coupon import CouponValidationResult
from app.utils.helpers import money_to_float


class ValidateCouponRequest(BaseModel):
    """Schema for checking a coupon against an order amount."""
    code: str = Field(max_length=50)
    order_amount: float = Field(ge=0)

    class Config:
        json_schema_extra = {
            "example": {
                "code": "SAVE10",
                "order_amount": 25.00
            }
        }


class CouponValidationResponse(BaseModel):
    """Schema for a coupon validation result."""
    is_valid: bool
    reason: Optional[str] = None
    message: str
    coupon_code: Optional[str] = None
    discount_amount: float
    final_amount: float

    @classmethod
    def from_result(cls, result: CouponValidationResult) -> "CouponValidationResponse":
        return cls(
            is_valid=result.is_valid,
            reason=result.reason.value if result.reason else None,
            message=result.message,
            coupon_code=result.coupon_code,
            discount_amount=money_to_float(result.discount_amount),
            final_amount=money_to_float(result.final_amount)
        )
