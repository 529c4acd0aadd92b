import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.core.exceptions import CollaboratorUnavailable
from app.models.promotion import Promotion

logger = logging.getLogger(__name__)


def _precedence(promotion: Promotion) -> tuple:
    # Biggest discount first, then lowest id
    return (-promotion.discount_percentage, promotion.id)


class PromotionIndex:
    """
    Product to promotion lookup over a fixed set of promotions.

    When several promotions are eligible for a product at the same instant
    the one with the highest ``discount_percentage`` wins; equal percentages
    fall back to the lowest promotion id. The index never mutates the
    promotions it was built from.
    """

    def __init__(self, promotions: Iterable[Promotion] = ()):
        self._by_product: Dict[str, List[Promotion]] = {}
        for promotion in promotions:
            for product_id in promotion.product_ids:
                self._by_product.setdefault(product_id, []).append(promotion)
        for candidates in self._by_product.values():
            candidates.sort(key=_precedence)

    def __len__(self) -> int:
        return len({p.id for candidates in self._by_product.values() for p in candidates})

    def resolve_active_promotion(self, product_id: str, now: datetime) -> Optional[Promotion]:
        """Return the promotion that prices ``product_id`` at ``now``, if any."""
        for promotion in self._by_product.get(product_id, ()):
            if promotion.is_eligible(product_id, now):
                return promotion
        return None


class PromotionService:
    """Service for promotion lookups."""

    @staticmethod
    async def load_index(db: AsyncIOMotorDatabase, now: datetime) -> PromotionIndex:
        """Build an index of the promotions running at ``now``."""
        try:
            documents = await db.promotions.find({
                "is_active": True,
                "start_date": {"$lte": now},
                "end_date": {"$gte": now}
            }).to_list(length=None)
        except PyMongoError as e:
            logger.error(f"Failed to load promotions: {e}")
            raise CollaboratorUnavailable("Promotions are unavailable") from e

        promotions = [Promotion.model_validate(document) for document in documents]
        return PromotionIndex(promotions)
