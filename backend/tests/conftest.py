"""
Shared fixtures.

``FakeDatabase`` is a small in-memory stand-in for a motor database: the
collections are awaited the same way and understand the handful of query
and update operators the services use. Every operation yields to the event
loop first so concurrent tasks interleave between operations, while each
single operation (``find_one_and_update`` included) stays atomic, as it is
on a real server.
"""
import asyncio
import copy
import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from bson import ObjectId
from pymongo import ReturnDocument

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

MISSING = object()


def _compare(value, operator, operand) -> bool:
    if operator == "$in":
        if isinstance(value, list):
            return any(v in operand for v in value)
        return value in operand
    if operator == "$ne":
        return (None if value is MISSING else value) != operand
    if value is MISSING or value is None:
        return False
    if operator == "$lt":
        return value < operand
    if operator == "$lte":
        return value <= operand
    if operator == "$gt":
        return value > operand
    if operator == "$gte":
        return value >= operand
    raise NotImplementedError(operator)


def matches(document: dict, query: dict) -> bool:
    for key, condition in (query or {}).items():
        if key == "$or":
            if not any(matches(document, sub) for sub in condition):
                return False
            continue

        value = document.get(key, MISSING)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            if not all(_compare(value, op, operand) for op, operand in condition.items()):
                return False
        elif condition is None:
            if value is not MISSING and value is not None:
                return False
        elif isinstance(value, list) and not isinstance(condition, list):
            if condition not in value:
                return False
        elif value is MISSING or value != condition:
            return False
    return True


def apply_update(document: dict, update: dict):
    for operator, fields in update.items():
        for key, value in fields.items():
            if operator == "$set":
                document[key] = copy.deepcopy(value)
            elif operator == "$inc":
                document[key] = document.get(key, 0) + value
            elif operator == "$unset":
                document.pop(key, None)
            elif operator == "$push":
                document.setdefault(key, []).append(copy.deepcopy(value))
            else:
                raise NotImplementedError(operator)


class FakeCursor:
    def __init__(self, documents):
        self._documents = documents

    def sort(self, key, direction=1):
        self._documents.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return self

    async def to_list(self, length=None):
        await asyncio.sleep(0)
        return self._documents if length is None else self._documents[:length]


class FakeCollection:
    def __init__(self, name: str):
        self.name = name
        self.documents = []

    def seed(self, *documents) -> list:
        """Insert synchronously, for test setup."""
        ids = []
        for document in documents:
            document = copy.deepcopy(document)
            document.setdefault("_id", ObjectId())
            self.documents.append(document)
            ids.append(document["_id"])
        return ids

    def _matching(self, query):
        return [d for d in self.documents if matches(d, query)]

    async def find_one(self, query=None, session=None, **kwargs):
        await asyncio.sleep(0)
        found = self._matching(query)
        return copy.deepcopy(found[0]) if found else None

    def find(self, query=None, session=None, **kwargs):
        return FakeCursor([copy.deepcopy(d) for d in self._matching(query)])

    async def count_documents(self, query, session=None, **kwargs):
        await asyncio.sleep(0)
        return len(self._matching(query))

    def _update(self, document, update, session):
        if session is not None:
            before = copy.deepcopy(document)
            session.record(lambda: (document.clear(), document.update(before)))
        apply_update(document, update)

    def _remove(self, document, session):
        self.documents.remove(document)
        if session is not None:
            session.record(lambda: self.documents.append(document))

    async def insert_one(self, document, session=None, **kwargs):
        await asyncio.sleep(0)
        document.setdefault("_id", ObjectId())
        stored = copy.deepcopy(document)
        self.documents.append(stored)
        if session is not None:
            session.record(lambda: self.documents.remove(stored))
        return SimpleNamespace(inserted_id=document["_id"])

    async def update_one(self, query, update, upsert=False, session=None, **kwargs):
        await asyncio.sleep(0)
        found = self._matching(query)
        if found:
            self._update(found[0], update, session)
        return SimpleNamespace(matched_count=len(found[:1]), modified_count=len(found[:1]))

    async def update_many(self, query, update, session=None, **kwargs):
        await asyncio.sleep(0)
        found = self._matching(query)
        for document in found:
            self._update(document, update, session)
        return SimpleNamespace(matched_count=len(found), modified_count=len(found))

    async def find_one_and_update(self, query, update, return_document=ReturnDocument.BEFORE, session=None, **kwargs):
        await asyncio.sleep(0)
        found = self._matching(query)
        if not found:
            return None
        before = copy.deepcopy(found[0])
        self._update(found[0], update, session)
        return copy.deepcopy(found[0]) if return_document == ReturnDocument.AFTER else before

    async def delete_one(self, query, session=None, **kwargs):
        await asyncio.sleep(0)
        found = self._matching(query)
        if found:
            self._remove(found[0], session)
        return SimpleNamespace(deleted_count=len(found[:1]))

    async def delete_many(self, query, session=None, **kwargs):
        await asyncio.sleep(0)
        found = self._matching(query)
        for document in found:
            self._remove(document, session)
        return SimpleNamespace(deleted_count=len(found))

    async def create_index(self, keys, **kwargs):
        return "_".join(f"{k}_{d}" for k, d in keys)


class FakeTransaction:
    """Undoes the session's own writes, newest first, if the block raises."""

    def __init__(self, session: "FakeSession"):
        self._session = session

    async def __aenter__(self):
        self._session.journal = []
        return self

    async def __aexit__(self, exc_type, exc, tb):
        journal, self._session.journal = self._session.journal, None
        if exc_type is not None:
            for undo in reversed(journal):
                undo()
        return False


class FakeSession:
    def __init__(self):
        self.journal = None

    def record(self, undo):
        if self.journal is not None:
            self.journal.append(undo)

    def start_transaction(self):
        return FakeTransaction(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeClient:
    def __init__(self, database: "FakeDatabase"):
        self._database = database

    async def start_session(self):
        return FakeSession()


class FakeDatabase:
    def __init__(self):
        self.collections = {}
        self.client = FakeClient(self)

    def __getattr__(self, name):
        if name.startswith("__"):
            raise AttributeError(name)
        return self[name]

    def __getitem__(self, name):
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    async def command(self, name, **kwargs):
        await asyncio.sleep(0)
        if name == "ping":
            return {"ok": 1.0}
        raise NotImplementedError(name)


NOW = datetime(2026, 2, 10, 12, 0, tzinfo=timezone.utc)
# Default windows stay open so HTTP tests priced at wall-clock time see them
FAR_FUTURE = datetime(2100, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db():
    return FakeDatabase()


class Seeder:
    """Builds catalog, promotion and coupon documents for a FakeDatabase."""

    def __init__(self, database: FakeDatabase):
        self.db = database

    def product(self, product_id: str, price: float, stock: int = 50, name: str = None):
        self.db.products.seed({
            "_id": product_id,
            "name": name or product_id.replace("-", " ").title(),
            "price": price,
            "stock": stock
        })
        return product_id

    def promotion(self, promotion_id: str, percentage: float, product_ids, start=None, end=None, is_active=True):
        self.db.promotions.seed({
            "_id": promotion_id,
            "name": f"Promotion {promotion_id}",
            "discount_percentage": percentage,
            "start_date": start or NOW - timedelta(days=7),
            "end_date": end or FAR_FUTURE,
            "is_active": is_active,
            "product_ids": list(product_ids)
        })
        return promotion_id

    def coupon(
        self,
        code: str,
        discount_type: str = "percentage",
        amount: float = 10,
        minimum: float = 0,
        usage_limit=None,
        times_used: int = 0,
        start=None,
        end=None,
        is_active=True
    ):
        self.db.coupons.seed({
            "code": code,
            "discount_type": discount_type,
            "discount_amount": amount,
            "minimum_order_amount": minimum,
            "start_date": start or NOW - timedelta(days=30),
            "end_date": end or FAR_FUTURE,
            "usage_limit": usage_limit,
            "times_used": times_used,
            "is_active": is_active
        })
        return code

    def cart(self, owner_type: str, owner_id: str, *lines):
        self.db.carts.seed({
            "owner_type": owner_type,
            "owner_id": owner_id,
            "items": [
                {
                    "line_id": f"line-{index}",
                    "product_id": product_id,
                    "quantity": quantity,
                    "is_gift_wrapped": gift_wrapped,
                    "gift_message": None,
                    "added_at": NOW
                }
                for index, (product_id, quantity, gift_wrapped) in enumerate(lines)
            ],
            "created_at": NOW,
            "updated_at": NOW
        })

    def address(self, owner_type: str, owner_id: str, full_name: str = "Ada Cocoa", is_default=False, use_count=1, **fields):
        document = {
            "owner_type": owner_type,
            "owner_id": owner_id,
            "full_name": full_name,
            "address_line1": fields.get("address_line1", "12 Praline Street"),
            "address_line2": None,
            "city": fields.get("city", "Brussels"),
            "state": None,
            "zip_code": fields.get("zip_code", "1000"),
            "country": fields.get("country", "Belgium"),
            "phone_number": None,
            "is_default": is_default,
            "use_count": use_count,
            "created_at": NOW,
            "last_used": NOW
        }
        return str(self.db.shipping_addresses.seed(document)[0])


@pytest.fixture
def seed(db):
    return Seeder(db)
