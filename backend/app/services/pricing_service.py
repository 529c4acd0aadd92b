"""
Pricing engine.

Turns a cart into an OrderQuote in two passes:

1. Promotion pass (``price_cart``): each line is priced from the catalog
   snapshot and the product's running promotion. The discounted unit price is
   rounded to cents once and the line subtotal is that unit price times the
   quantity, so pricing three units together or one at a time gives the
   same money.
2. Coupon pass (``finalize_quote``): the coupon is validated against the
   amount left after promotions, then tax and shipping are added.

Both passes are pure; ``PricingService.quote_cart`` does the reads.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.config import settings
from app.models.cart import Cart
from app.models.coupon import CouponValidationResult
from app.models.order import OrderQuote, PartialQuote, QuoteLine
from app.services.catalog_service import CatalogEntry, CatalogService
from app.services.coupon_service import CouponService
from app.services.promotion_service import PromotionIndex, PromotionService
from app.utils.helpers import get_current_timestamp, round_money, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
HUNDRED = Decimal(100)


def discounted_unit_price(unit_price: Decimal, percentage: Decimal) -> Decimal:
    """Unit price after a percentage promotion, rounded to cents."""
    return round_money(unit_price * (1 - percentage / HUNDRED))


def price_cart(
    cart: Cart,
    catalog: Dict[str, CatalogEntry],
    promotion_index: PromotionIndex,
    now: datetime
) -> PartialQuote:
    """Promotion pass. Stock is not checked here."""
    lines = []
    subtotal = ZERO
    promotion_discount_total = ZERO
    discounted_subtotal = ZERO

    for item in cart.items:
        entry = catalog[item.product_id]
        unit_original = round_money(entry.unit_price)
        promotion = promotion_index.resolve_active_promotion(item.product_id, now)

        if promotion is not None:
            unit_discounted = discounted_unit_price(unit_original, promotion.discount_percentage)
        else:
            unit_discounted = unit_original

        line = QuoteLine(
            line_id=item.line_id,
            product_id=item.product_id,
            product_name=entry.name,
            quantity=item.quantity,
            is_gift_wrapped=item.is_gift_wrapped,
            gift_message=item.gift_message,
            unit_original_price=unit_original,
            unit_discounted_price=unit_discounted,
            promotion_applied_id=promotion.id if promotion else None,
            promotion_name=promotion.name if promotion else None,
            line_subtotal=round_money(unit_discounted * item.quantity)
        )
        lines.append(line)

        subtotal += line.line_original_total
        promotion_discount_total += line.line_promotion_discount
        discounted_subtotal += line.line_subtotal

    return PartialQuote(
        lines=lines,
        subtotal=round_money(subtotal),
        promotion_discount_total=round_money(promotion_discount_total),
        discounted_subtotal=round_money(discounted_subtotal),
        priced_at=now
    )


def finalize_quote(
    partial: PartialQuote,
    coupon_result: Optional[CouponValidationResult] = None,
    tax_rate: Optional[Decimal] = None,
    shipping_cost: Optional[Decimal] = None
) -> OrderQuote:
    """
    Coupon pass and totals.

    ``grand_total = subtotal + tax + shipping - promotions - coupon``, floored
    at zero. Tax is charged on the pre-promotion subtotal. An empty cart
    ships for free.
    """
    tax_rate = to_decimal(settings.TAX_RATE if tax_rate is None else tax_rate)
    if not partial.lines:
        shipping = ZERO
    else:
        shipping = round_money(to_decimal(settings.SHIPPING_FLAT_RATE if shipping_cost is None else shipping_cost))

    coupon_code = None
    coupon_discount = ZERO
    if coupon_result is not None and coupon_result.is_valid:
        coupon_code = coupon_result.coupon_code
        coupon_discount = round_money(coupon_result.discount_amount)

    tax = round_money(partial.subtotal * tax_rate)
    grand_total = partial.subtotal + tax + shipping - partial.promotion_discount_total - coupon_discount

    return OrderQuote(
        lines=partial.lines,
        subtotal=partial.subtotal,
        promotion_discount_total=partial.promotion_discount_total,
        discounted_subtotal=partial.discounted_subtotal,
        priced_at=partial.priced_at,
        coupon_code=coupon_code,
        coupon_discount_total=coupon_discount,
        tax=tax,
        shipping_cost=shipping,
        grand_total=max(ZERO, round_money(grand_total))
    )


class PricingService:
    """Service for pricing carts against live catalog and promotion state."""

    @staticmethod
    async def price_promotions(cart: Cart, db: AsyncIOMotorDatabase, now: datetime) -> PartialQuote:
        """Read the catalog and running promotions, then run the promotion pass."""
        catalog = await CatalogService.get_products([item.product_id for item in cart.items], db)
        promotion_index = await PromotionService.load_index(db, now)
        return price_cart(cart, catalog, promotion_index, now)

    @staticmethod
    async def quote_cart(
        cart: Cart,
        db: AsyncIOMotorDatabase,
        now: Optional[datetime] = None,
        coupon_code: Optional[str] = None
    ) -> Tuple[OrderQuote, Optional[CouponValidationResult]]:
        """
        Price a cart from scratch.

        Returns the quote and, when a coupon code was given, its validation
        result so callers can tell the customer why a code did not apply.
        """
        now = now or get_current_timestamp()
        partial = await PricingService.price_promotions(cart, db, now)

        coupon_result = None
        if coupon_code:
            coupon_result = await CouponService.validate(coupon_code, partial.discounted_subtotal, db, now)

        quote = finalize_quote(partial, coupon_result)
        logger.info(
            f"Priced cart {cart.owner_type}:{cart.owner_id} with {len(quote.lines)} lines: "
            f"subtotal {quote.subtotal}, promotions -{quote.promotion_discount_total}, "
            f"coupon -{quote.coupon_discount_total}, total {quote.grand_total}"
        )
        return quote, coupon_result
