import logging
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.core.exceptions import AddressNotFoundError, CollaboratorUnavailable
from app.models.address import AddressFields, ShippingAddress
from app.models.identity import Owner
from app.utils.helpers import get_current_timestamp, id_filter

logger = logging.getLogger(__name__)


def _to_model(document: dict) -> ShippingAddress:
    document["_id"] = str(document["_id"])
    return ShippingAddress.model_validate(document)


def _unavailable(action: str, error: PyMongoError) -> CollaboratorUnavailable:
    logger.error(f"Address book {action} failed: {error}")
    return CollaboratorUnavailable("Saved addresses are unavailable")


class ShippingAddressService:
    """Service for an owner's saved shipping addresses."""

    @staticmethod
    async def list_addresses(identity: Owner, db: AsyncIOMotorDatabase) -> List[ShippingAddress]:
        """Owner's addresses, default first, then most used."""
        try:
            documents = await db.shipping_addresses.find(identity.owner_filter()).to_list(length=None)
        except PyMongoError as e:
            raise _unavailable(f"listing for {identity.kind}:{identity.id}", e) from e
        addresses = [_to_model(document) for document in documents]
        addresses.sort(key=lambda a: (not a.is_default, -a.use_count))
        return addresses

    @staticmethod
    async def get_address(identity: Owner, address_id: str, db: AsyncIOMotorDatabase) -> ShippingAddress:
        """
        Get one of the owner's addresses.

        Addresses are owner scoped: another guest's or user's address is
        reported as not found.
        """
        query = {**id_filter(address_id), **identity.owner_filter()}
        try:
            document = await db.shipping_addresses.find_one(query)
        except PyMongoError as e:
            raise _unavailable(f"lookup of {address_id}", e) from e
        if not document:
            raise AddressNotFoundError("The selected address was not found", address_id=address_id)
        return _to_model(document)

    @staticmethod
    async def _clear_default(identity: Owner, db: AsyncIOMotorDatabase):
        await db.shipping_addresses.update_many(
            {**identity.owner_filter(), "is_default": True},
            {"$set": {"is_default": False}}
        )

    @staticmethod
    async def save_address(
        identity: Owner,
        fields: AddressFields,
        db: AsyncIOMotorDatabase,
        is_default: bool = False
    ) -> ShippingAddress:
        """
        Save an address to the owner's book.

        Re-entering an address already in the book counts as another use of
        it. The owner's first address becomes the default.
        """
        now = get_current_timestamp()
        existing = await ShippingAddressService.list_addresses(identity, db)

        try:
            for address in existing:
                if address.duplicate_key() == fields.duplicate_key():
                    update = {"last_used": now}
                    if is_default and not address.is_default:
                        await ShippingAddressService._clear_default(identity, db)
                        update["is_default"] = True
                    await db.shipping_addresses.update_one(
                        id_filter(address.id),
                        {"$set": update, "$inc": {"use_count": 1}}
                    )
                    return await ShippingAddressService.get_address(identity, address.id, db)

            make_default = is_default or not existing
            if make_default:
                await ShippingAddressService._clear_default(identity, db)

            address = ShippingAddress(
                owner_type=identity.kind,
                owner_id=identity.id,
                is_default=make_default,
                created_at=now,
                last_used=now,
                **fields.model_dump()
            )
            document = address.model_dump(exclude={"id"})
            result = await db.shipping_addresses.insert_one(document)
        except PyMongoError as e:
            raise _unavailable(f"save for {identity.kind}:{identity.id}", e) from e

        address.id = str(result.inserted_id)
        logger.info(f"Saved address {address.id} for {identity.kind}:{identity.id}")
        return address

    @staticmethod
    async def set_default(identity: Owner, address_id: str, db: AsyncIOMotorDatabase) -> ShippingAddress:
        """Make one address the owner's only default."""
        address = await ShippingAddressService.get_address(identity, address_id, db)
        try:
            await ShippingAddressService._clear_default(identity, db)
            await db.shipping_addresses.update_one(id_filter(address.id), {"$set": {"is_default": True}})
        except PyMongoError as e:
            raise _unavailable(f"default change to {address_id}", e) from e
        address.is_default = True
        return address

    @staticmethod
    async def delete_address(identity: Owner, address_id: str, db: AsyncIOMotorDatabase) -> bool:
        """Delete an address; a deleted default passes to the most used remaining one."""
        address = await ShippingAddressService.get_address(identity, address_id, db)
        try:
            await db.shipping_addresses.delete_one(id_filter(address.id))
        except PyMongoError as e:
            raise _unavailable(f"delete of {address_id}", e) from e

        if address.is_default:
            remaining = await ShippingAddressService.list_addresses(identity, db)
            if remaining:
                successor = max(remaining, key=lambda a: a.use_count)
                try:
                    await db.shipping_addresses.update_one(
                        id_filter(successor.id),
                        {"$set": {"is_default": True}}
                    )
                except PyMongoError as e:
                    raise _unavailable(f"default handover to {successor.id}", e) from e
        return True

    @staticmethod
    async def record_usage(address_id: str, db: AsyncIOMotorDatabase):
        """Count a checkout against a saved address."""
        try:
            await db.shipping_addresses.update_one(
                id_filter(address_id),
                {"$inc": {"use_count": 1}, "$set": {"last_used": get_current_timestamp()}}
            )
        except PyMongoError as e:
            raise _unavailable(f"usage count of {address_id}", e) from e

    @staticmethod
    async def find_default(identity: Owner, db: AsyncIOMotorDatabase) -> Optional[ShippingAddress]:
        addresses = await ShippingAddressService.list_addresses(identity, db)
        for address in addresses:
            if address.is_default:
                return address
        return None
