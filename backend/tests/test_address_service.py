"""
Tests for the shipping address book.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock
from pymongo.errors import AutoReconnect

from app.core.exceptions import AddressNotFoundError, CollaboratorUnavailable
from app.models.address import AddressFields
from app.models.identity import GuestIdentity, UserIdentity
from app.services.address_service import ShippingAddressService

USER = UserIdentity(id="u1")


def fields(full_name="Ada Cocoa", address_line1="12 Praline Street", city="Brussels"):
    return AddressFields(
        full_name=full_name,
        address_line1=address_line1,
        city=city,
        zip_code="1000",
        country="Belgium"
    )


class TestSaveAddress:
    """Test saving addresses."""

    @pytest.mark.asyncio
    async def test_first_address_becomes_default(self, db):
        """Test the first saved address is the default."""
        address = await ShippingAddressService.save_address(USER, fields(), db)
        assert address.is_default is True
        assert address.use_count == 1

    @pytest.mark.asyncio
    async def test_second_address_is_not_default(self, db):
        """Test later addresses do not take the default unless asked."""
        await ShippingAddressService.save_address(USER, fields(), db)
        second = await ShippingAddressService.save_address(USER, fields(address_line1="1 Ganache Road"), db)
        assert second.is_default is False

    @pytest.mark.asyncio
    async def test_duplicate_ignoring_case_bumps_use_count(self, db):
        """Test re-entering an address with different casing reuses it."""
        first = await ShippingAddressService.save_address(USER, fields(), db)
        again = await ShippingAddressService.save_address(
            USER, fields(full_name="ADA COCOA", address_line1="12 praline street", city="brussels"), db
        )

        assert again.id == first.id
        assert again.use_count == 2
        assert len(await ShippingAddressService.list_addresses(USER, db)) == 1

    @pytest.mark.asyncio
    async def test_explicit_default_replaces_old_default(self, db):
        """Test saving with is_default leaves exactly one default."""
        await ShippingAddressService.save_address(USER, fields(), db)
        await ShippingAddressService.save_address(USER, fields(address_line1="1 Ganache Road"), db, is_default=True)

        addresses = await ShippingAddressService.list_addresses(USER, db)
        defaults = [a for a in addresses if a.is_default]
        assert len(defaults) == 1
        assert defaults[0].address_line1 == "1 Ganache Road"


class TestAddressBook:
    """Test listing, defaults and deletion."""

    @pytest.mark.asyncio
    async def test_list_orders_default_first_then_use_count(self, db, seed):
        """Test the default comes first and the rest by use count."""
        seed.address("user", "u1", full_name="Rarely", use_count=1)
        seed.address("user", "u1", full_name="Often", use_count=9)
        seed.address("user", "u1", full_name="Home", is_default=True, use_count=2)

        addresses = await ShippingAddressService.list_addresses(USER, db)

        assert [a.full_name for a in addresses] == ["Home", "Often", "Rarely"]

    @pytest.mark.asyncio
    async def test_other_owners_address_is_not_found(self, db, seed):
        """Test a guest cannot reach another owner's address by id."""
        address_id = seed.address("user", "u1")

        with pytest.raises(AddressNotFoundError):
            await ShippingAddressService.get_address(GuestIdentity(id="g1"), address_id, db)

    @pytest.mark.asyncio
    async def test_set_default(self, db, seed):
        """Test setting a default clears the previous one."""
        seed.address("user", "u1", full_name="Home", is_default=True)
        work_id = seed.address("user", "u1", full_name="Work")

        await ShippingAddressService.set_default(USER, work_id, db)

        default = await ShippingAddressService.find_default(USER, db)
        assert default.id == work_id
        assert await db.shipping_addresses.count_documents({"owner_id": "u1", "is_default": True}) == 1

    @pytest.mark.asyncio
    async def test_deleting_default_promotes_most_used(self, db, seed):
        """Test the default passes to the most used remaining address."""
        home_id = seed.address("user", "u1", full_name="Home", is_default=True, use_count=5)
        seed.address("user", "u1", full_name="Rarely", use_count=1)
        often_id = seed.address("user", "u1", full_name="Often", use_count=4)

        await ShippingAddressService.delete_address(USER, home_id, db)

        default = await ShippingAddressService.find_default(USER, db)
        assert default.id == often_id

    @pytest.mark.asyncio
    async def test_record_usage(self, db, seed):
        """Test a checkout against an address counts as a use."""
        address_id = seed.address("user", "u1", use_count=2)

        await ShippingAddressService.record_usage(address_id, db)

        address = await ShippingAddressService.get_address(USER, address_id, db)
        assert address.use_count == 3


class TestAddressBookOutage:
    """Test store failures in the address book."""

    @pytest.mark.asyncio
    async def test_list_failure_is_collaborator_unavailable(self):
        """Test a database error listing addresses surfaces as CollaboratorUnavailable."""
        mock_cursor = MagicMock()
        mock_cursor.to_list = AsyncMock(side_effect=AutoReconnect("primary stepped down"))
        mock_db = MagicMock()
        mock_db.shipping_addresses.find = MagicMock(return_value=mock_cursor)

        with pytest.raises(CollaboratorUnavailable) as exc_info:
            await ShippingAddressService.list_addresses(USER, mock_db)

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_save_failure_is_collaborator_unavailable(self, db):
        """Test a database error saving an address surfaces as CollaboratorUnavailable."""
        db.shipping_addresses.insert_one = AsyncMock(side_effect=AutoReconnect("connection reset"))

        with pytest.raises(CollaboratorUnavailable):
            await ShippingAddressService.save_address(USER, fields(), db)

    @pytest.mark.asyncio
    async def test_record_usage_failure_is_collaborator_unavailable(self):
        """Test a database error counting a use surfaces as CollaboratorUnavailable."""
        mock_db = MagicMock()
        mock_db.shipping_addresses.update_one = AsyncMock(side_effect=AutoReconnect("connection reset"))

        with pytest.raises(CollaboratorUnavailable):
            await ShippingAddressService.record_usage("65c7a1f2e4b0a1b2c3d4e5f6", mock_db)
