from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from bson import ObjectId

CENT = Decimal("0.01")


def id_filter(value: str) -> dict:
    """Build an ``_id`` filter for ids that may or may not be ObjectIds."""
    if ObjectId.is_valid(value):
        return {"_id": ObjectId(value)}
    return {"_id": value}


def format_document(document: dict) -> dict:
    """Format MongoDB document for API response."""
    if document and "_id" in document:
        document["id"] = str(document["_id"])
        del document["_id"]
    return document


def get_current_timestamp() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_decimal(value: Any) -> Decimal:
    """Convert a stored number to Decimal without picking up float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Decimal) -> Decimal:
    """Round half-up to cents."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_to_float(value: Decimal) -> float:
    """Cents-rounded float for storage and JSON responses."""
    return float(round_money(value))
