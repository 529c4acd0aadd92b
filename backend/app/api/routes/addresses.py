from typing import List
from fastapi import APIRouter, Depends, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.api.deps import get_db, get_identity
from app.models.identity import Owner
from app.schemas.address import AddressCreate, AddressResponse
from app.services.address_service import ShippingAddressService

router = APIRouter()


@router.get("", response_model=List[AddressResponse])
async def list_addresses(
    identity: Owner = Depends(get_identity),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    List saved addresses, default first, then most used.
    """
    addresses = await ShippingAddressService.list_addresses(identity, db)
    return [AddressResponse.from_model(address) for address in addresses]


@router.post("", response_model=AddressResponse, status_code=status.HTTP_201_CREATED)
async def save_address(
    request: AddressCreate,
    identity: Owner = Depends(get_identity),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Save an address.

    An address already in the book (compared ignoring case) is reused
    rather than duplicated.
    """
    address = await ShippingAddressService.save_address(
        identity, request.to_fields(), db, is_default=request.is_default
    )
    return AddressResponse.from_model(address)


@router.put("/{address_id}/default", response_model=AddressResponse)
async def set_default_address(
    address_id: str,
    identity: Owner = Depends(get_identity),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Make an address the default.
    """
    address = await ShippingAddressService.set_default(identity, address_id, db)
    return AddressResponse.from_model(address)


@router.delete("/{address_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_address(
    address_id: str,
    identity: Owner = Depends(get_identity),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Delete an address.
    """
    await ShippingAddressService.delete_address(identity, address_id, db)
