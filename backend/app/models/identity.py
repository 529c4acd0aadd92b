from typing import Literal, Union
from pydantic import BaseModel, Field


class GuestIdentity(BaseModel):
    """Anonymous shopper identified by the guest cookie."""
    kind: Literal["guest"] = "guest"
    id: str = Field(min_length=1)

    class Config:
        frozen = True

    def owner_filter(self) -> dict:
        return {"owner_type": self.kind, "owner_id": self.id}


class UserIdentity(BaseModel):
    """Authenticated shopper identified by the token subject."""
    kind: Literal["user"] = "user"
    id: str = Field(min_length=1)

    class Config:
        frozen = True

    def owner_filter(self) -> dict:
        return {"owner_type": self.kind, "owner_id": self.id}


# Carts, addresses and orders belong to exactly one of these
Owner = Union[GuestIdentity, UserIdentity]
