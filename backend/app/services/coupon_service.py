"""
Coupon ledger: validation and atomic redemption.

Validation is a read-only check that callers may repeat as often as they
like. Redemption is the only write, and it happens as one conditional update
so two checkouts racing for the last use of a limited coupon cannot both win.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from app.core.exceptions import (
    CollaboratorUnavailable,
    CouponConcurrencyConflict,
    CouponValidationError,
)
from app.models.coupon import (
    Coupon,
    CouponRejection,
    CouponValidationResult,
    normalize_code,
)
from app.utils.helpers import get_current_timestamp, money_to_float, round_money, to_decimal

logger = logging.getLogger(__name__)


def _rejection_message(reason: CouponRejection, coupon: Optional[Coupon]) -> str:
    if reason == CouponRejection.NOT_FOUND:
        return "Invalid coupon code"
    if reason == CouponRejection.INACTIVE:
        return "This coupon is no longer active"
    if reason == CouponRejection.NOT_YET_STARTED:
        return "This coupon is not valid yet"
    if reason == CouponRejection.EXPIRED:
        return "This coupon has expired"
    if reason == CouponRejection.USAGE_LIMIT_REACHED:
        return "This coupon has reached its usage limit"
    return f"This coupon requires a minimum order of ${coupon.minimum_order_amount:.2f}"


def check_coupon_rules(coupon: Optional[Coupon], order_amount: Decimal, now: datetime) -> Optional[CouponRejection]:
    """First failing rule, in the order customers are told about them."""
    if coupon is None:
        return CouponRejection.NOT_FOUND
    if not coupon.is_active:
        return CouponRejection.INACTIVE
    if now < coupon.start_date:
        return CouponRejection.NOT_YET_STARTED
    if now > coupon.end_date:
        return CouponRejection.EXPIRED
    if not coupon.has_uses_left():
        return CouponRejection.USAGE_LIMIT_REACHED
    if order_amount < coupon.minimum_order_amount:
        return CouponRejection.BELOW_MINIMUM
    return None


def evaluate_coupon(
    coupon: Optional[Coupon],
    order_amount: Decimal,
    now: datetime,
    requested_code: Optional[str] = None
) -> CouponValidationResult:
    """
    Apply the coupon rules to an amount that already has promotions taken off.

    Pure: the result depends only on the coupon state, the amount and ``now``.
    """
    amount = round_money(order_amount)
    code = coupon.code if coupon else normalize_code(requested_code) or None

    reason = check_coupon_rules(coupon, amount, now)
    if reason is not None:
        message = _rejection_message(reason, coupon)
        if reason == CouponRejection.NOT_FOUND and not code:
            message = "Coupon code cannot be empty"
        return CouponValidationResult(
            is_valid=False,
            reason=reason,
            message=message,
            coupon_code=code,
            discount_amount=Decimal("0.00"),
            final_amount=amount
        )

    discount = coupon.discount.apply(amount)
    final_amount = max(Decimal("0.00"), amount - discount)
    return CouponValidationResult(
        is_valid=True,
        message="Coupon applied successfully",
        coupon_code=coupon.code,
        discount_amount=discount,
        final_amount=round_money(final_amount)
    )


class CouponService:
    """Service for coupon validation and redemption."""

    @staticmethod
    async def get_coupon(code: str, db: AsyncIOMotorDatabase, session=None) -> Optional[Coupon]:
        """Look up a coupon by code, ignoring case."""
        normalized = normalize_code(code)
        if not normalized:
            return None

        try:
            document = await db.coupons.find_one({"code": normalized}, session=session)
        except PyMongoError as e:
            if session is not None:
                raise
            logger.error(f"Coupon lookup failed for {normalized}: {e}")
            raise CollaboratorUnavailable("Coupons are unavailable") from e

        if not document:
            return None
        return Coupon.from_document(document)

    @staticmethod
    async def validate(
        code: str,
        order_amount: Decimal,
        db: AsyncIOMotorDatabase,
        now: Optional[datetime] = None
    ) -> CouponValidationResult:
        """Validate ``code`` against the order amount after promotions. No writes."""
        now = now or get_current_timestamp()
        coupon = await CouponService.get_coupon(code, db)
        result = evaluate_coupon(coupon, to_decimal(order_amount), now, requested_code=code)

        if result.is_valid:
            logger.info(
                f"Coupon {result.coupon_code} valid for {result.final_amount + result.discount_amount}: "
                f"discount {result.discount_amount}, final {result.final_amount}"
            )
        else:
            logger.info(f"Coupon {normalize_code(code) or '<empty>'} rejected: {result.reason.value}")
        return result

    @staticmethod
    async def redeem(
        code: str,
        order_amount: Decimal,
        db: AsyncIOMotorDatabase,
        now: Optional[datetime] = None,
        session=None
    ) -> Coupon:
        """
        Consume one use of a coupon.

        The eligibility rules and the increment are a single conditional
        update, so ``times_used`` can never pass ``usage_limit``. Raises
        CouponValidationError when the coupon is not redeemable and
        CouponConcurrencyConflict when another checkout took the last use.
        """
        now = now or get_current_timestamp()
        amount = round_money(to_decimal(order_amount))
        coupon = await CouponService.get_coupon(code, db, session=session)

        reason = check_coupon_rules(coupon, amount, now)
        if reason is not None:
            raise CouponValidationError(reason, _rejection_message(reason, coupon), normalize_code(code))

        condition = {
            "code": coupon.code,
            "is_active": True,
            "start_date": {"$lte": now},
            "end_date": {"$gte": now},
            # A missing or null minimum means no minimum
            "$or": [
                {"minimum_order_amount": {"$lte": money_to_float(amount)}},
                {"minimum_order_amount": None},
            ],
        }
        if coupon.usage_limit is None:
            condition["usage_limit"] = None
        else:
            condition["usage_limit"] = coupon.usage_limit
            condition["times_used"] = {"$lt": coupon.usage_limit}

        try:
            updated = await db.coupons.find_one_and_update(
                condition,
                {"$inc": {"times_used": 1}, "$set": {"updated_at": now}},
                return_document=ReturnDocument.AFTER,
                session=session
            )
        except PyMongoError as e:
            if session is not None:
                # The transaction owner retries or reports it
                raise
            logger.error(f"Coupon redemption failed for {coupon.code}: {e}")
            raise CollaboratorUnavailable("Coupons are unavailable") from e

        if updated is None:
            # The coupon changed between the read and the update
            current = await CouponService.get_coupon(coupon.code, db, session=session)
            reason = check_coupon_rules(current, amount, now)
            logger.warning(f"Lost redemption of coupon {coupon.code}: {reason.value if reason else 'conflict'}")
            if reason is None or reason == CouponRejection.USAGE_LIMIT_REACHED:
                raise CouponConcurrencyConflict(coupon.code)
            raise CouponValidationError(reason, _rejection_message(reason, current), coupon.code)

        redeemed = Coupon.from_document(updated)
        logger.info(f"Redeemed coupon {redeemed.code} ({redeemed.times_used}/{redeemed.usage_limit or 'unlimited'})")
        return redeemed
