from datetime import datetime
from typing import List, Optional
from uuid import uuid4
from pydantic import BaseModel, Field

from app.utils.helpers import get_current_timestamp

MAX_LINE_QUANTITY = 100
MAX_GIFT_MESSAGE_LENGTH = 200


def new_line_id() -> str:
    return uuid4().hex


class CartLine(BaseModel):
    """Line in a shopping cart."""
    line_id: str = Field(default_factory=new_line_id)
    product_id: str
    quantity: int = Field(ge=1, le=MAX_LINE_QUANTITY)
    is_gift_wrapped: bool = False
    gift_message: Optional[str] = Field(None, max_length=MAX_GIFT_MESSAGE_LENGTH)
    added_at: datetime = Field(default_factory=get_current_timestamp)

    def merge_key(self) -> tuple:
        """Lines sharing this key are folded into one."""
        return (self.product_id, self.is_gift_wrapped)


class Cart(BaseModel):
    """Shopping cart model for MongoDB."""
    id: Optional[str] = Field(None, alias="_id")
    owner_type: str  # "guest" or "user"
    owner_id: str
    items: List[CartLine] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=get_current_timestamp)
    updated_at: datetime = Field(default_factory=get_current_timestamp)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "owner_type": "guest",
                "owner_id": "3f1c9a0b2d4e4f6a8b7c6d5e4f3a2b1c",
                "items": [
                    {
                        "line_id": "a1b2c3",
                        "product_id": "prod123",
                        "quantity": 2,
                        "is_gift_wrapped": True,
                        "gift_message": "Happy birthday!"
                    }
                ]
            }
        }

    def find_line(self, line_id: str) -> Optional[CartLine]:
        for line in self.items:
            if line.line_id == line_id:
                return line
        return None

    def find_matching_line(self, product_id: str, is_gift_wrapped: bool) -> Optional[CartLine]:
        for line in self.items:
            if line.merge_key() == (product_id, is_gift_wrapped):
                return line
        return None
