"""
Error taxonomy for the pricing, coupon and checkout paths.

Every error is an HTTPException so services can raise it directly and
FastAPI renders it; ``detail`` is always a dict with at least an ``error``
code and a human readable ``message``.
"""
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from fastapi.encoders import jsonable_encoder

from app.models.coupon import CouponRejection


class StorefrontError(HTTPException):
    """Base class for storefront errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "storefront_error"

    def __init__(self, message: str, **extra: Any):
        self.message = message
        detail: Dict[str, Any] = {"error": self.error_code, "message": message}
        detail.update(extra)
        super().__init__(status_code=self.status_code, detail=detail)


class CouponValidationError(StorefrontError):
    """A coupon was rejected. Always user facing, never retried."""

    error_code = "coupon_invalid"

    def __init__(self, reason: CouponRejection, message: str, code: Optional[str] = None):
        self.reason = reason
        super().__init__(message, reason=reason.value, coupon_code=code)


class CouponConcurrencyConflict(CouponValidationError):
    """Lost the race for the last redemption of a limited coupon."""

    def __init__(self, code: str):
        super().__init__(
            CouponRejection.USAGE_LIMIT_REACHED,
            "This coupon has reached its usage limit",
            code
        )


class StaleQuoteError(StorefrontError):
    """Prices or discounts changed between cart review and confirmation."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "quote_stale"

    def __init__(self, message: str, expected_total: float, current_quote: dict):
        current_quote = jsonable_encoder(current_quote)
        self.current_quote = current_quote
        super().__init__(
            message,
            expected_total=expected_total,
            current_total=current_quote["grand_total"],
            current_quote=current_quote
        )


class CollaboratorUnavailable(StorefrontError):
    """The catalog or the durable store could not be reached."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "collaborator_unavailable"


class ProductNotFoundError(StorefrontError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "product_not_found"


class InsufficientStockError(StorefrontError):
    error_code = "insufficient_stock"


class CartLineNotFoundError(StorefrontError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "cart_line_not_found"


class CartQuantityError(StorefrontError):
    error_code = "invalid_quantity"


class EmptyCartError(StorefrontError):
    error_code = "empty_cart"


class AddressNotFoundError(StorefrontError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "address_not_found"


class OrderNotFoundError(StorefrontError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "order_not_found"


class CheckoutStateError(StorefrontError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "invalid_checkout_transition"


class OrderIntegrityError(StorefrontError):
    """Stored order components no longer add up to the stored total."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "order_integrity"


class AuthenticationError(StorefrontError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "not_authenticated"

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(message)
        self.headers = {"WWW-Authenticate": "Bearer"}
