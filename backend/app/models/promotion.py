from datetime import datetime
from decimal import Decimal
from typing import Optional, Set
from pydantic import BaseModel, Field, field_validator

from app.utils.helpers import ensure_utc


class Promotion(BaseModel):
    """Admin-defined percentage discount on a set of products."""
    id: str = Field(alias="_id")
    name: str
    description: Optional[str] = None
    discount_percentage: Decimal = Field(ge=0, le=100)
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    product_ids: Set[str] = Field(default_factory=set)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "name": "Valentine's Truffles",
                "discount_percentage": 30,
                "start_date": "2026-02-01T00:00:00Z",
                "end_date": "2026-02-15T00:00:00Z",
                "is_active": True,
                "product_ids": ["prod123", "prod456"]
            }
        }

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return str(value)

    @field_validator("discount_percentage", mode="before")
    @classmethod
    def _exact_percentage(cls, value):
        return Decimal(str(value))

    @field_validator("product_ids", mode="before")
    @classmethod
    def _stringify_product_ids(cls, value):
        return {str(product_id) for product_id in value or []}

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc(cls, value):
        return ensure_utc(value)

    def is_eligible(self, product_id: str, now: datetime) -> bool:
        """Active, inside its window and covering the product."""
        return (
            self.is_active
            and self.start_date <= now <= self.end_date
            and product_id in self.product_ids
        )
