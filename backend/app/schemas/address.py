from datetime import datetime
from pydantic import BaseModel

from app.models.address import AddressFields, ShippingAddress


class AddressCreate(AddressFields):
    """Schema for saving an address to the address book."""
    is_default: bool = False

    def to_fields(self) -> AddressFields:
        return AddressFields.model_validate(self.model_dump(exclude={"is_default"}))


class AddressResponse(AddressFields):
    """Schema for a saved address."""
    id: str
    is_default: bool
    use_count: int
    created_at: datetime
    last_used: datetime

    @classmethod
    def from_model(cls, address: ShippingAddress) -> "AddressResponse":
        return cls.model_validate(address.model_dump())


class MergeGuestResponse(BaseModel):
    """Schema for the result of merging a guest session into an account."""
    guest_id: str
    user_id: str
    addresses_moved: int
    cart_lines_merged: int
