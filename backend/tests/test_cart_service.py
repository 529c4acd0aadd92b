"""
Tests for cart operations.
"""
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from pymongo.errors import NetworkTimeout

from app.core.exceptions import (
    CartLineNotFoundError,
    CartQuantityError,
    CollaboratorUnavailable,
    InsufficientStockError,
    ProductNotFoundError,
)
from app.models.identity import GuestIdentity, UserIdentity
from app.services.cart_service import CartService

GUEST = GuestIdentity(id="g1")


class TestAddItem:
    """Test adding products to a cart."""

    @pytest.mark.asyncio
    async def test_first_add_creates_cart(self, db, seed):
        """Test adding to a missing cart creates it for the identity."""
        seed.product("truffles", 7.99)

        cart = await CartService.add_item(GUEST, "truffles", 2, db)

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 2
        assert await db.carts.count_documents({"owner_type": "guest", "owner_id": "g1"}) == 1

    @pytest.mark.asyncio
    async def test_same_product_tops_up_line(self, db, seed):
        """Test adding the same product twice keeps one line."""
        seed.product("truffles", 7.99)

        await CartService.add_item(GUEST, "truffles", 2, db)
        cart = await CartService.add_item(GUEST, "truffles", 3, db)

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 5

    @pytest.mark.asyncio
    async def test_gift_wrapped_is_a_separate_line(self, db, seed):
        """Test the same product with gift wrapping gets its own line."""
        seed.product("truffles", 7.99)

        await CartService.add_item(GUEST, "truffles", 1, db)
        cart = await CartService.add_item(GUEST, "truffles", 1, db, is_gift_wrapped=True, gift_message="For you")

        assert len(cart.items) == 2
        wrapped = cart.find_matching_line("truffles", True)
        assert wrapped.gift_message == "For you"

    @pytest.mark.asyncio
    async def test_unknown_product(self, db):
        """Test adding an unknown product fails."""
        with pytest.raises(ProductNotFoundError):
            await CartService.add_item(GUEST, "ghost", 1, db)

    @pytest.mark.asyncio
    async def test_insufficient_stock(self, db, seed):
        """Test adding more than the stock fails."""
        seed.product("truffles", 7.99, stock=3)
        await CartService.add_item(GUEST, "truffles", 2, db)

        with pytest.raises(InsufficientStockError) as exc_info:
            await CartService.add_item(GUEST, "truffles", 2, db)

        assert exc_info.value.detail["available"] == 3

    @pytest.mark.asyncio
    async def test_line_quantity_capped_at_100(self, db, seed):
        """Test topping a line up beyond 100 units is rejected."""
        seed.product("truffles", 7.99, stock=500)
        await CartService.add_item(GUEST, "truffles", 99, db)

        with pytest.raises(CartQuantityError):
            await CartService.add_item(GUEST, "truffles", 2, db)

        cart = await CartService.get_cart(GUEST, db)
        assert cart.items[0].quantity == 99

    @pytest.mark.asyncio
    async def test_store_failure_is_collaborator_unavailable(self):
        """Test a database error reading the cart surfaces as CollaboratorUnavailable."""
        mock_db = MagicMock()
        mock_db.carts.find_one = AsyncMock(side_effect=NetworkTimeout("timed out"))

        with pytest.raises(CollaboratorUnavailable):
            await CartService.get_cart(GUEST, mock_db)


class TestUpdateAndRemove:
    """Test changing cart lines."""

    @pytest.mark.asyncio
    async def test_update_quantity(self, db, seed):
        """Test a line quantity can be set."""
        seed.product("truffles", 7.99)
        cart = await CartService.add_item(GUEST, "truffles", 1, db)

        cart = await CartService.update_item_quantity(GUEST, cart.items[0].line_id, 4, db)

        assert cart.items[0].quantity == 4

    @pytest.mark.asyncio
    async def test_update_beyond_stock(self, db, seed):
        """Test setting a quantity above stock fails."""
        seed.product("truffles", 7.99, stock=2)
        cart = await CartService.add_item(GUEST, "truffles", 1, db)

        with pytest.raises(InsufficientStockError):
            await CartService.update_item_quantity(GUEST, cart.items[0].line_id, 3, db)

    @pytest.mark.asyncio
    async def test_update_unknown_line(self, db, seed):
        """Test updating a line that is not in the cart fails."""
        with pytest.raises(CartLineNotFoundError):
            await CartService.update_item_quantity(GUEST, "nope", 1, db)

    @pytest.mark.asyncio
    async def test_remove_line(self, db, seed):
        """Test removing a line leaves the others."""
        seed.product("truffles", 7.99)
        seed.product("bars", 3.25)
        await CartService.add_item(GUEST, "truffles", 1, db)
        cart = await CartService.add_item(GUEST, "bars", 1, db)

        cart = await CartService.remove_item(GUEST, cart.find_matching_line("truffles", False).line_id, db)

        assert [line.product_id for line in cart.items] == ["bars"]

    @pytest.mark.asyncio
    async def test_remove_unknown_line(self, db):
        """Test removing a line that is not in the cart fails."""
        with pytest.raises(CartLineNotFoundError):
            await CartService.remove_item(GUEST, "nope", db)

    @pytest.mark.asyncio
    async def test_clear_cart(self, db, seed):
        """Test clearing empties the cart."""
        seed.product("truffles", 7.99)
        await CartService.add_item(GUEST, "truffles", 1, db)

        await CartService.clear_cart(GUEST, db)

        cart = await CartService.get_cart(GUEST, db)
        assert cart.items == []

    @pytest.mark.asyncio
    async def test_save_failure_is_collaborator_unavailable(self, db, seed):
        """Test a database error saving the cart surfaces as CollaboratorUnavailable."""
        seed.product("truffles", 7.99)
        await CartService.add_item(GUEST, "truffles", 1, db)
        db.carts.update_one = AsyncMock(side_effect=NetworkTimeout("timed out"))

        with pytest.raises(CollaboratorUnavailable) as exc_info:
            await CartService.add_item(GUEST, "truffles", 1, db)

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_clear_failure_is_collaborator_unavailable(self):
        """Test a database error clearing the cart surfaces as CollaboratorUnavailable."""
        mock_db = MagicMock()
        mock_db.carts.update_one = AsyncMock(side_effect=NetworkTimeout("timed out"))

        with pytest.raises(CollaboratorUnavailable):
            await CartService.clear_cart(GUEST, mock_db)

    @pytest.mark.asyncio
    async def test_store_failure_inside_transaction_propagates(self):
        """Test a database error inside a caller's transaction is left to the caller."""
        mock_db = MagicMock()
        mock_db.carts.update_one = AsyncMock(side_effect=NetworkTimeout("timed out"))

        with pytest.raises(NetworkTimeout):
            await CartService.clear_cart(GUEST, mock_db, session=MagicMock())


class TestGetQuote:
    """Test pricing the identity's cart."""

    @pytest.mark.asyncio
    async def test_quote_for_identity_without_cart(self, db):
        """Test an identity with no cart gets an empty quote."""
        quote, coupon_result = await CartService.get_quote(UserIdentity(id="u1"), db)
        assert quote.lines == []
        assert quote.grand_total == Decimal("0.00")
        assert coupon_result is None

    @pytest.mark.asyncio
    async def test_carts_are_per_identity(self, db, seed, now):
        """Test a guest and a user with the same id do not share a cart."""
        seed.product("truffles", 7.99)
        await CartService.add_item(GuestIdentity(id="same"), "truffles", 1, db)

        quote, _ = await CartService.get_quote(UserIdentity(id="same"), db, now=now)

        assert quote.lines == []
