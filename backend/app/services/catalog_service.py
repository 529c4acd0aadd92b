"""
Catalog snapshot provider.

The product catalog is owned by the catalog team's service; this module only
reads the ``products`` collection for the price, name and stock of the
products in a cart at evaluation time.
"""
import logging
from decimal import Decimal
from typing import Dict, Iterable

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel
from pymongo.errors import PyMongoError

from app.core.exceptions import CollaboratorUnavailable, ProductNotFoundError
from app.utils.helpers import id_filter, to_decimal

logger = logging.getLogger(__name__)


class CatalogEntry(BaseModel):
    """Price and stock of a product at evaluation time."""
    product_id: str
    name: str
    unit_price: Decimal
    stock: int


def _entry_from_document(product: dict) -> CatalogEntry:
    return CatalogEntry(
        product_id=str(product["_id"]),
        name=product.get("name") or product.get("title", ""),
        unit_price=to_decimal(product["price"]),
        stock=product.get("stock", 0)
    )


class CatalogService:
    """Read-only access to the catalog."""

    @staticmethod
    async def get_product(product_id: str, db: AsyncIOMotorDatabase) -> CatalogEntry:
        """Get a single product or raise ProductNotFoundError."""
        try:
            product = await db.products.find_one(id_filter(product_id))
        except PyMongoError as e:
            logger.error(f"Catalog lookup failed for product {product_id}: {e}")
            raise CollaboratorUnavailable("The product catalog is unavailable") from e

        if not product:
            raise ProductNotFoundError(f"Product not found: {product_id}", product_id=product_id)

        return _entry_from_document(product)

    @staticmethod
    async def get_stock(product_id: str, db: AsyncIOMotorDatabase) -> int:
        entry = await CatalogService.get_product(product_id, db)
        return entry.stock

    @staticmethod
    async def get_products(product_ids: Iterable[str], db: AsyncIOMotorDatabase) -> Dict[str, CatalogEntry]:
        """
        Snapshot several products in one round trip.

        Every requested product must exist; pricing never runs on a partial
        catalog.
        """
        wanted = list(dict.fromkeys(product_ids))
        if not wanted:
            return {}

        lookup_ids = [ObjectId(pid) if ObjectId.is_valid(pid) else pid for pid in wanted]
        try:
            products = await db.products.find({"_id": {"$in": lookup_ids}}).to_list(length=None)
        except PyMongoError as e:
            logger.error(f"Catalog snapshot failed for {len(wanted)} products: {e}")
            raise CollaboratorUnavailable("The product catalog is unavailable") from e

        entries = {}
        for product in products:
            entry = _entry_from_document(product)
            entries[entry.product_id] = entry

        missing = [pid for pid in wanted if pid not in entries]
        if missing:
            raise ProductNotFoundError(
                f"Product not found: {', '.join(missing)}",
                product_ids=missing
            )

        return entries
