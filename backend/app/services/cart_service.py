import logging
from datetime import datetime
from typing import Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.core.exceptions import (
    CartLineNotFoundError,
    CartQuantityError,
    CollaboratorUnavailable,
    InsufficientStockError,
)
from app.models.cart import Cart, CartLine, MAX_LINE_QUANTITY
from app.models.coupon import CouponValidationResult
from app.models.identity import Owner
from app.models.order import OrderQuote
from app.services.catalog_service import CatalogService
from app.services.pricing_service import PricingService
from app.utils.helpers import get_current_timestamp

logger = logging.getLogger(__name__)


class CartService:
    """Service for cart operations."""

    @staticmethod
    async def get_cart(identity: Owner, db: AsyncIOMotorDatabase, session=None) -> Optional[Cart]:
        """Get the identity's cart, if it has one."""
        try:
            document = await db.carts.find_one(identity.owner_filter(), session=session)
        except PyMongoError as e:
            if session is not None:
                raise
            logger.error(f"Cart lookup failed for {identity.kind}:{identity.id}: {e}")
            raise CollaboratorUnavailable("Carts are unavailable") from e

        if not document:
            return None
        document["_id"] = str(document["_id"])
        return Cart.model_validate(document)

    @staticmethod
    async def get_or_create_cart(identity: Owner, db: AsyncIOMotorDatabase, session=None) -> Cart:
        """Get or create a cart for a guest or user."""
        cart = await CartService.get_cart(identity, db, session=session)
        if cart:
            return cart

        cart = Cart(owner_type=identity.kind, owner_id=identity.id)
        cart_data = cart.model_dump(exclude={"id"})
        try:
            result = await db.carts.insert_one(cart_data, session=session)
        except PyMongoError as e:
            if session is not None:
                raise
            logger.error(f"Cart creation failed for {identity.kind}:{identity.id}: {e}")
            raise CollaboratorUnavailable("Carts are unavailable") from e
        cart.id = str(result.inserted_id)
        logger.info(f"Created cart {cart.id} for {identity.kind}:{identity.id}")
        return cart

    @staticmethod
    async def save_cart(cart: Cart, db: AsyncIOMotorDatabase, session=None):
        """Persist cart lines."""
        cart.updated_at = get_current_timestamp()
        try:
            await db.carts.update_one(
                {"owner_type": cart.owner_type, "owner_id": cart.owner_id},
                {"$set": {
                    "items": [item.model_dump() for item in cart.items],
                    "updated_at": cart.updated_at
                }},
                session=session
            )
        except PyMongoError as e:
            if session is not None:
                raise
            logger.error(f"Cart save failed for {cart.owner_type}:{cart.owner_id}: {e}")
            raise CollaboratorUnavailable("Carts are unavailable") from e

    @staticmethod
    async def add_item(
        identity: Owner,
        product_id: str,
        quantity: int,
        db: AsyncIOMotorDatabase,
        is_gift_wrapped: bool = False,
        gift_message: Optional[str] = None
    ) -> Cart:
        """
        Add a product to the cart.

        A line for the same product and gift-wrap choice is topped up instead
        of duplicated.
        """
        product = await CatalogService.get_product(product_id, db)
        cart = await CartService.get_or_create_cart(identity, db)

        line = cart.find_matching_line(product.product_id, is_gift_wrapped)
        new_quantity = quantity + (line.quantity if line else 0)

        if new_quantity > MAX_LINE_QUANTITY:
            raise CartQuantityError(
                f"At most {MAX_LINE_QUANTITY} of one product per line. In cart: {line.quantity if line else 0}",
                max_quantity=MAX_LINE_QUANTITY
            )

        if product.stock < new_quantity:
            raise InsufficientStockError(
                f"Insufficient stock. Available: {product.stock}",
                available=product.stock
            )

        if line:
            line.quantity = new_quantity
            if gift_message is not None:
                line.gift_message = gift_message
        else:
            cart.items.append(CartLine(
                product_id=product.product_id,
                quantity=quantity,
                is_gift_wrapped=is_gift_wrapped,
                gift_message=gift_message
            ))

        await CartService.save_cart(cart, db)
        return cart

    @staticmethod
    async def update_item_quantity(
        identity: Owner,
        line_id: str,
        quantity: int,
        db: AsyncIOMotorDatabase
    ) -> Cart:
        """Update line quantity in cart."""
        cart = await CartService.get_or_create_cart(identity, db)

        line = cart.find_line(line_id)
        if not line:
            raise CartLineNotFoundError("Item not found in cart", line_id=line_id)

        stock = await CatalogService.get_stock(line.product_id, db)
        if stock < quantity:
            raise InsufficientStockError(f"Insufficient stock. Available: {stock}", available=stock)

        line.quantity = quantity
        await CartService.save_cart(cart, db)
        return cart

    @staticmethod
    async def remove_item(identity: Owner, line_id: str, db: AsyncIOMotorDatabase) -> Cart:
        """Remove a line from cart."""
        cart = await CartService.get_or_create_cart(identity, db)

        original_length = len(cart.items)
        cart.items = [item for item in cart.items if item.line_id != line_id]

        if len(cart.items) == original_length:
            raise CartLineNotFoundError("Item not found in cart", line_id=line_id)

        await CartService.save_cart(cart, db)
        return cart

    @staticmethod
    async def clear_cart(identity: Owner, db: AsyncIOMotorDatabase, session=None):
        """Clear all items from cart."""
        try:
            await db.carts.update_one(
                identity.owner_filter(),
                {"$set": {"items": [], "updated_at": get_current_timestamp()}},
                session=session
            )
        except PyMongoError as e:
            if session is not None:
                raise
            logger.error(f"Cart clear failed for {identity.kind}:{identity.id}: {e}")
            raise CollaboratorUnavailable("Carts are unavailable") from e

    @staticmethod
    async def get_quote(
        identity: Owner,
        db: AsyncIOMotorDatabase,
        coupon_code: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Tuple[OrderQuote, Optional[CouponValidationResult]]:
        """Price the identity's current cart."""
        cart = await CartService.get_cart(identity, db)
        if cart is None:
            cart = Cart(owner_type=identity.kind, owner_id=identity.id)
        return await PricingService.quote_cart(cart, db, now=now, coupon_code=coupon_code)
