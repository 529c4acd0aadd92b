"""
Checkout orchestration.

A checkout request walks a fixed set of states:

    cart_review -> address_selected -> [coupon_applied] -> confirmed -> order_persisted

The cart is repriced from live catalog and promotion state at confirmation,
and the coupon redemption, order insert and cart clear commit together in
one transaction. If the coupon can no longer be redeemed nothing is written.
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.core.database import run_in_transaction
from app.core.exceptions import (
    AddressNotFoundError,
    CheckoutStateError,
    CollaboratorUnavailable,
    CouponValidationError,
    EmptyCartError,
    StaleQuoteError,
)
from app.models.address import AddressFields
from app.models.identity import Owner
from app.models.order import CheckoutState, StatusHistory
from app.services.address_service import ShippingAddressService
from app.services.cart_service import CartService
from app.services.coupon_service import CouponService
from app.services.order_service import OrderService
from app.services.pricing_service import PricingService
from app.utils.helpers import get_current_timestamp, round_money, to_decimal

logger = logging.getLogger(__name__)


class CheckoutFlow:
    """Tracks one checkout's state and the transitions it went through."""

    def __init__(self):
        self.state = CheckoutState.CART_REVIEW
        self.history: List[StatusHistory] = [StatusHistory(status=self.state.value)]

    def advance(self, new_state: CheckoutState, note: Optional[str] = None):
        is_valid, error_msg = CheckoutService.validate_transition(self.state.value, new_state.value)
        if not is_valid:
            raise CheckoutStateError(error_msg, state=self.state.value)
        self.state = new_state
        self.history.append(StatusHistory(status=new_state.value, note=note))


class CheckoutService:
    """Service class for turning a cart into an order."""

    # Valid checkout state transitions
    STATE_TRANSITIONS = {
        "cart_review": ["address_selected"],
        "address_selected": ["coupon_applied", "confirmed"],
        "coupon_applied": ["confirmed"],
        "confirmed": ["order_persisted"],
        "order_persisted": []  # Final state
    }

    @staticmethod
    def validate_transition(current_state: str, new_state: str) -> Tuple[bool, Optional[str]]:
        """
        Validate if a checkout state transition is allowed.
        Returns (is_valid, error_message)
        """
        if current_state not in CheckoutService.STATE_TRANSITIONS:
            return False, f"Invalid current state: {current_state}"

        valid_next_states = CheckoutService.STATE_TRANSITIONS[current_state]

        if new_state not in valid_next_states:
            if not valid_next_states:
                return False, f"Checkout is in final state '{current_state}' and cannot be modified"
            return False, f"Cannot transition from '{current_state}' to '{new_state}'. Valid transitions: {', '.join(valid_next_states)}"

        return True, None

    @staticmethod
    async def select_address(
        identity: Owner,
        db: AsyncIOMotorDatabase,
        shipping_address: Optional[AddressFields] = None,
        saved_address_id: Optional[str] = None
    ) -> Tuple[AddressFields, Optional[str]]:
        """
        Resolve the shipping address for a checkout.

        Returns the address and, when it came from the address book, its id.
        A saved address must belong to the caller; with neither a saved id
        nor an inline address the owner's default is used.
        """
        if saved_address_id:
            saved = await ShippingAddressService.get_address(identity, saved_address_id, db)
            return AddressFields.model_validate(saved.model_dump()), saved.id

        if shipping_address is not None:
            return shipping_address, None

        default = await ShippingAddressService.find_default(identity, db)
        if default is None:
            raise AddressNotFoundError("A shipping address is required to check out")
        return AddressFields.model_validate(default.model_dump()), default.id

    @staticmethod
    async def checkout(
        identity: Owner,
        db: AsyncIOMotorDatabase,
        payment_method: str,
        shipping_address: Optional[AddressFields] = None,
        saved_address_id: Optional[str] = None,
        coupon_code: Optional[str] = None,
        expected_total: Optional[float] = None,
        save_address: bool = False,
        order_notes: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> dict:
        """
        Confirm the identity's cart as an order and return its receipt.

        Raises:
            EmptyCartError: Nothing to check out
            AddressNotFoundError: No usable shipping address
            CouponValidationError: The coupon does not apply (at review or at confirmation)
            StaleQuoteError: The confirmed total differs from ``expected_total``
            CollaboratorUnavailable: The store failed while persisting
        """
        flow = CheckoutFlow()

        cart = await CartService.get_cart(identity, db)
        if cart is None or not cart.items:
            raise EmptyCartError("Your cart is empty")

        address, address_id = await CheckoutService.select_address(
            identity, db, shipping_address=shipping_address, saved_address_id=saved_address_id
        )
        flow.advance(CheckoutState.ADDRESS_SELECTED, note=f"saved address {address_id}" if address_id else None)

        if coupon_code:
            review_now = now or get_current_timestamp()
            partial = await PricingService.price_promotions(cart, db, review_now)
            review = await CouponService.validate(coupon_code, partial.discounted_subtotal, db, review_now)
            if not review.is_valid:
                raise CouponValidationError(review.reason, review.message, review.coupon_code)
            flow.advance(CheckoutState.COUPON_APPLIED, note=review.coupon_code)

        # Reprice from scratch; prices, promotions or the coupon may have moved
        confirm_now = now or get_current_timestamp()
        quote, coupon_result = await PricingService.quote_cart(
            cart, db, now=confirm_now, coupon_code=coupon_code
        )
        if coupon_result is not None and not coupon_result.is_valid:
            raise CouponValidationError(coupon_result.reason, coupon_result.message, coupon_result.coupon_code)

        if expected_total is not None and round_money(to_decimal(expected_total)) != quote.grand_total:
            logger.info(
                f"Stale quote for {identity.kind}:{identity.id}: "
                f"expected {expected_total}, now {quote.grand_total}"
            )
            raise StaleQuoteError(
                "Prices changed since your cart was reviewed",
                expected_total=expected_total,
                current_quote=quote.to_document()
            )
        flow.advance(CheckoutState.CONFIRMED)
        flow.advance(CheckoutState.ORDER_PERSISTED)

        async def persist(session) -> dict:
            # Runs again from the top if the transaction hits a write conflict
            if quote.coupon_code:
                await CouponService.redeem(
                    quote.coupon_code, quote.discounted_subtotal, db, now=confirm_now, session=session
                )
            order = OrderService.build_order_document(
                identity,
                quote,
                address,
                payment_method,
                order_notes=order_notes,
                status_history=flow.history,
                now=confirm_now
            )
            order["_id"] = await OrderService.create_order(order, db, session=session)
            await CartService.clear_cart(identity, db, session=session)
            return order

        try:
            order = await run_in_transaction(db, persist)
        except PyMongoError as e:
            logger.error(f"Checkout failed to persist for {identity.kind}:{identity.id}: {e}")
            raise CollaboratorUnavailable("Your order could not be saved, please try again") from e

        logger.info(
            f"Order {order['order_number']} placed by {identity.kind}:{identity.id}: "
            f"total {quote.grand_total}, coupon {quote.coupon_code or 'none'}"
        )

        await CheckoutService._remember_address(identity, db, address, address_id, save_address)
        return OrderService.to_receipt(order)

    @staticmethod
    async def _remember_address(
        identity: Owner,
        db: AsyncIOMotorDatabase,
        address: AddressFields,
        address_id: Optional[str],
        save_address: bool
    ):
        """Address book upkeep once the order is committed. Never fails the checkout."""
        try:
            if address_id:
                await ShippingAddressService.record_usage(address_id, db)
            elif save_address:
                await ShippingAddressService.save_address(identity, address, db)
        except CollaboratorUnavailable:
            logger.error(f"Could not update address book for {identity.kind}:{identity.id} after checkout")
