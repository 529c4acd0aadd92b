from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from app.utils.helpers import get_current_timestamp


class AddressFields(BaseModel):
    """Postal fields shared by saved addresses and order snapshots."""
    full_name: str = Field(min_length=1, max_length=100)
    address_line1: str = Field(min_length=1, max_length=200)
    address_line2: Optional[str] = Field(None, max_length=200)
    city: str = Field(min_length=1, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    zip_code: str = Field(min_length=1, max_length=20)
    country: str = Field(min_length=1, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=20)

    def duplicate_key(self) -> tuple:
        """Fields compared case-insensitively to spot a re-entered address."""
        return tuple(
            (value or "").strip().lower()
            for value in (self.full_name, self.address_line1, self.city, self.zip_code, self.country)
        )


class ShippingAddress(AddressFields):
    """Shipping address model for MongoDB."""
    id: Optional[str] = Field(None, alias="_id")
    owner_type: str
    owner_id: str
    is_default: bool = False
    use_count: int = Field(default=1, ge=0)
    created_at: datetime = Field(default_factory=get_current_timestamp)
    last_used: datetime = Field(default_factory=get_current_timestamp)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "owner_type": "user",
                "owner_id": "user123",
                "full_name": "Ada Cocoa",
                "address_line1": "12 Praline Street",
                "city": "Brussels",
                "zip_code": "1000",
                "country": "Belgium",
                "is_default": True,
                "use_count": 3
            }
        }
