"""
Guest to user reconciliation.

When a guest signs in, whatever they built up anonymously moves to their
account: saved addresses are re-owned (not copied) and cart lines are folded
into the user's cart, after which the guest cart is dropped. The moves share
one transaction. Running the merge again for the same guest finds nothing
left to move.
"""
import logging

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel
from pymongo.errors import PyMongoError

from app.core.database import run_in_transaction
from app.core.exceptions import CollaboratorUnavailable
from app.models.cart import MAX_LINE_QUANTITY, CartLine
from app.models.identity import GuestIdentity, UserIdentity
from app.services.cart_service import CartService

logger = logging.getLogger(__name__)


class MergeResult(BaseModel):
    """What a guest merge moved."""
    guest_id: str
    user_id: str
    addresses_moved: int = 0
    cart_lines_merged: int = 0

    @property
    def was_noop(self) -> bool:
        return self.addresses_moved == 0 and self.cart_lines_merged == 0


class IdentityService:
    """Service for reconciling guest activity into a user account."""

    @staticmethod
    async def merge_guest_into_user(guest_id: str, user_id: str, db: AsyncIOMotorDatabase) -> MergeResult:
        """
        Move a guest's addresses and cart to a user.

        All writes commit together, so a failed merge leaves the guest's
        things where they were and can simply be retried.

        Raises:
            CollaboratorUnavailable: The store failed; nothing was moved
        """
        guest = GuestIdentity(id=guest_id)
        user = UserIdentity(id=user_id)

        async def merge(session) -> MergeResult:
            result = MergeResult(guest_id=guest_id, user_id=user_id)
            result.addresses_moved = await IdentityService._move_addresses(guest, user, db, session)
            result.cart_lines_merged = await IdentityService._merge_cart(guest, user, db, session)
            return result

        try:
            result = await run_in_transaction(db, merge)
        except PyMongoError as e:
            logger.error(f"Merge of guest {guest_id} into user {user_id} failed: {e}")
            raise CollaboratorUnavailable("Your guest session could not be merged, please try again") from e

        if result.was_noop:
            logger.info(f"Nothing to merge from guest {guest_id} into user {user_id}")
        else:
            logger.info(
                f"Merged guest {guest_id} into user {user_id}: "
                f"{result.addresses_moved} addresses, {result.cart_lines_merged} cart lines"
            )
        return result

    @staticmethod
    async def _move_addresses(guest: GuestIdentity, user: UserIdentity, db: AsyncIOMotorDatabase, session) -> int:
        guest_count = await db.shipping_addresses.count_documents(guest.owner_filter(), session=session)
        if guest_count == 0:
            return 0

        # The user's existing default wins over the guest's
        user_has_addresses = await db.shipping_addresses.count_documents(user.owner_filter(), session=session) > 0
        if user_has_addresses:
            await db.shipping_addresses.update_many(
                {**guest.owner_filter(), "is_default": True},
                {"$set": {"is_default": False}},
                session=session
            )

        result = await db.shipping_addresses.update_many(
            guest.owner_filter(),
            {"$set": {"owner_type": user.kind, "owner_id": user.id}},
            session=session
        )
        return result.modified_count

    @staticmethod
    async def _merge_cart(guest: GuestIdentity, user: UserIdentity, db: AsyncIOMotorDatabase, session) -> int:
        guest_cart = await CartService.get_cart(guest, db, session=session)
        if guest_cart is None:
            return 0

        merged = 0
        if guest_cart.items:
            user_cart = await CartService.get_or_create_cart(user, db, session=session)
            for guest_line in guest_cart.items:
                line = user_cart.find_matching_line(guest_line.product_id, guest_line.is_gift_wrapped)
                if line is None:
                    user_cart.items.append(CartLine(
                        product_id=guest_line.product_id,
                        quantity=guest_line.quantity,
                        is_gift_wrapped=guest_line.is_gift_wrapped,
                        gift_message=guest_line.gift_message
                    ))
                else:
                    total = line.quantity + guest_line.quantity
                    if total > MAX_LINE_QUANTITY:
                        logger.warning(
                            f"Capped merged quantity of {guest_line.product_id} at {MAX_LINE_QUANTITY} "
                            f"(guest {guest.id} had {guest_line.quantity}, user had {line.quantity})"
                        )
                        total = MAX_LINE_QUANTITY
                    line.quantity = total
                    if guest_line.gift_message:
                        line.gift_message = guest_line.gift_message
                merged += 1
            await CartService.save_cart(user_cart, db, session=session)

        await db.carts.delete_one(guest.owner_filter(), session=session)
        return merged
