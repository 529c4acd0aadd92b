"""
Order service for persisting confirmed quotes and reading receipts back.
"""
import logging
import secrets
import string
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.core.exceptions import CollaboratorUnavailable, OrderIntegrityError, OrderNotFoundError
from app.models.address import AddressFields
from app.models.identity import Owner
from app.models.order import (
    Order,
    OrderLine,
    OrderQuote,
    OrderStatus,
    PaymentStatus,
    StatusHistory,
)
from app.utils.helpers import (
    format_document,
    get_current_timestamp,
    id_filter,
    money_to_float,
    round_money,
    to_decimal,
)

logger = logging.getLogger(__name__)

ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number(now: Optional[datetime] = None) -> str:
    """Human readable order number, e.g. ORD-20260214-7K2Q9D."""
    now = now or get_current_timestamp()
    suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(6))
    return f"ORD-{now:%Y%m%d}-{suffix}"


def calculate_order_total(order: dict) -> Decimal:
    """Recompute the grand total from an order's stored components."""
    total = (
        to_decimal(order["subtotal"])
        + to_decimal(order["tax"])
        + to_decimal(order["shipping_cost"])
        - to_decimal(order["promotion_discount"])
        - to_decimal(order["coupon_discount"])
    )
    return max(Decimal("0.00"), round_money(total))


class OrderService:
    """Service class for order persistence and receipts."""

    @staticmethod
    def build_order_document(
        identity: Owner,
        quote: OrderQuote,
        shipping_address: AddressFields,
        payment_method: str,
        order_notes: Optional[str] = None,
        status_history: Optional[List[StatusHistory]] = None,
        now: Optional[datetime] = None
    ) -> dict:
        """Freeze a confirmed quote into an order document."""
        now = now or get_current_timestamp()
        snapshot = quote.to_document()
        order = Order(
            order_number=generate_order_number(now),
            owner_type=identity.kind,
            owner_id=identity.id,
            lines=[
                OrderLine(**{field: line[field] for field in OrderLine.model_fields})
                for line in snapshot["lines"]
            ],
            subtotal=snapshot["subtotal"],
            promotion_discount=snapshot["promotion_discount_total"],
            coupon_code=snapshot["coupon_code"],
            coupon_discount=snapshot["coupon_discount_total"],
            tax=snapshot["tax"],
            shipping_cost=snapshot["shipping_cost"],
            grand_total=snapshot["grand_total"],
            shipping_address=shipping_address,
            status=OrderStatus.CONFIRMED,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING,
            order_notes=order_notes,
            status_history=status_history or [],
            created_at=now
        )
        return order.model_dump(exclude={"id"})

    @staticmethod
    async def create_order(order_document: dict, db: AsyncIOMotorDatabase, session=None) -> str:
        try:
            result = await db.orders.insert_one(order_document, session=session)
        except PyMongoError as e:
            if session is not None:
                raise
            logger.error(f"Order insert failed for {order_document.get('order_number')}: {e}")
            raise CollaboratorUnavailable("Orders are unavailable") from e
        return str(result.inserted_id)

    @staticmethod
    def to_receipt(order: dict) -> dict:
        """
        Format a stored order as a receipt.

        The total is recomputed from the stored components; a receipt that
        does not add up is never handed out.
        """
        calculated_total = calculate_order_total(order)
        stored_total = round_money(to_decimal(order["grand_total"]))
        if calculated_total != stored_total:
            raise OrderIntegrityError(
                "Order totals do not add up",
                order_number=order.get("order_number"),
                stored_total=money_to_float(stored_total),
                calculated_total=money_to_float(calculated_total)
            )

        receipt = format_document(dict(order))
        receipt["calculated_total"] = money_to_float(calculated_total)
        return receipt

    @staticmethod
    async def get_receipt(order_id: str, identity: Owner, db: AsyncIOMotorDatabase) -> dict:
        """Get a receipt for one of the identity's orders."""
        try:
            order = await db.orders.find_one({**id_filter(order_id), **identity.owner_filter()})
        except PyMongoError as e:
            logger.error(f"Order lookup failed for {order_id}: {e}")
            raise CollaboratorUnavailable("Orders are unavailable") from e
        if not order:
            raise OrderNotFoundError("Order not found", order_id=order_id)
        return OrderService.to_receipt(order)

    @staticmethod
    async def list_orders(identity: Owner, db: AsyncIOMotorDatabase) -> List[dict]:
        """Receipts for the identity's orders, newest first."""
        try:
            orders = await db.orders.find(identity.owner_filter()).sort("created_at", -1).to_list(length=None)
        except PyMongoError as e:
            logger.error(f"Order listing failed for {identity.kind}:{identity.id}: {e}")
            raise CollaboratorUnavailable("Orders are unavailable") from e
        return [OrderService.to_receipt(order) for order in orders]
