"""
Unit Tests for the Catalog and Redemption Services

Tests cover:
1. Catalog validation and availability
2. Balance checks on request, including the exact-balance boundary
3. Holds preventing double spending
4. Fulfilment round-trip and double-fulfil rejection
5. Cancellation
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from conftest import PARTNER_ID
from core.exceptions import (
    CatalogItemNotFoundError,
    InsufficientBalanceError,
    InvalidStateTransitionError,
    PermissionDeniedError,
    ValidationError,
)
from ledger.models import CurrencyType, EntryType, NewLedgerEntry
from redemptions.models import CreateCatalogItemRequest, RedemptionStatus


def add_item(catalog, admin_ctx, cost, name="Yard Sign Printing Credit"):
    return catalog.create_item(admin_ctx, CreateCatalogItemRequest(name=name, points_cost=Decimal(cost)))


def earn(ledger, amount, entry_type=EntryType.EARNED):
    ledger.append(NewLedgerEntry(
        user_id=PARTNER_ID,
        entry_type=entry_type,
        currency_type=CurrencyType.POINTS,
        amount=Decimal(amount),
    ))


class TestCatalog:
    """Tests for catalog management."""

    def test_name_required(self, catalog, admin_ctx):
        with pytest.raises(ValidationError, match="Catalog name required."):
            catalog.create_item(admin_ctx, CreateCatalogItemRequest(name="   ", points_cost=Decimal("250")))

    def test_cost_must_be_positive(self, catalog, admin_ctx):
        with pytest.raises(ValidationError):
            add_item(catalog, admin_ctx, "0")

    def test_cost_must_be_whole_points(self, catalog, admin_ctx):
        with pytest.raises(ValidationError, match="whole number"):
            add_item(catalog, admin_ctx, "0.5")

        assert catalog.list_all(admin_ctx) == []

    def test_only_admins_manage_catalog(self, catalog, partner_ctx):
        with pytest.raises(PermissionDeniedError):
            add_item(catalog, partner_ctx, "100")

    def test_active_listing_sorted_by_cost(self, catalog, admin_ctx):
        pricey = add_item(catalog, admin_ctx, "500", name="Open House Catering")
        cheap = add_item(catalog, admin_ctx, "100", name="Business Cards")
        retired = add_item(catalog, admin_ctx, "50", name="Old Item")
        catalog.set_active(admin_ctx, retired.id, False)

        assert [i.id for i in catalog.list_active()] == [cheap.id, pricey.id]
        assert len(catalog.list_all(admin_ctx)) == 3


class TestRequestRedemption:
    """Tests for redemption requests."""

    def test_insufficient_points_rejected(self, redemptions, ledger, catalog, admin_ctx, partner_ctx):
        """+100, +150, -80 leaves 170 points; a 200-point item is rejected."""
        earn(ledger, "100")
        earn(ledger, "150")
        earn(ledger, "-80", entry_type=EntryType.REDEEMED)
        item = add_item(catalog, admin_ctx, "200")

        with pytest.raises(InsufficientBalanceError):
            redemptions.request(partner_ctx, item.id)
        assert redemptions.list_for_user(partner_ctx) == []

    def test_exact_balance_accepted(self, redemptions, ledger, catalog, admin_ctx, partner_ctx):
        earn(ledger, "250")
        item = add_item(catalog, admin_ctx, "250")

        request = redemptions.request(partner_ctx, item.id)

        assert request.status == RedemptionStatus.REQUESTED
        assert request.points_cost == Decimal("250")
        balance = ledger.get_balance(PARTNER_ID, CurrencyType.POINTS)
        assert balance.held == Decimal("250")
        assert balance.available == Decimal("0")

    def test_hold_blocks_second_request(self, redemptions, ledger, catalog, admin_ctx, partner_ctx):
        """Two requests cannot both spend the same balance."""
        earn(ledger, "300")
        item = add_item(catalog, admin_ctx, "200")

        redemptions.request(partner_ctx, item.id)
        with pytest.raises(InsufficientBalanceError):
            redemptions.request(partner_ctx, item.id)

    def test_snapshot_survives_catalog_changes(self, redemptions, ledger, catalog, admin_ctx, partner_ctx):
        earn(ledger, "300")
        item = add_item(catalog, admin_ctx, "200")
        request = redemptions.request(partner_ctx, item.id)

        catalog.set_active(admin_ctx, item.id, False)

        stored = redemptions.get_request(request.id)
        assert stored.points_cost == Decimal("200")
        assert stored.catalog_item_name == item.name

    def test_inactive_item_rejected(self, redemptions, ledger, catalog, admin_ctx, partner_ctx):
        earn(ledger, "300")
        item = add_item(catalog, admin_ctx, "200")
        catalog.set_active(admin_ctx, item.id, False)

        with pytest.raises(ValidationError):
            redemptions.request(partner_ctx, item.id)

    def test_unknown_item(self, redemptions, partner_ctx):
        with pytest.raises(CatalogItemNotFoundError):
            redemptions.request(partner_ctx, uuid4())

    def test_customers_cannot_redeem(self, redemptions, catalog, admin_ctx, customer_ctx):
        item = add_item(catalog, admin_ctx, "100")

        with pytest.raises(PermissionDeniedError):
            redemptions.request(customer_ctx, item.id)


class TestFulfillRedemption:
    """Tests for admin fulfilment."""

    def test_fulfil_deducts_once(self, redemptions, ledger, catalog, admin_ctx, partner_ctx):
        """Fulfilment writes exactly one -P entry and moves Requested -> Fulfilled."""
        earn(ledger, "300")
        item = add_item(catalog, admin_ctx, "200")
        request = redemptions.request(partner_ctx, item.id)

        result = redemptions.fulfill(admin_ctx, request.id, "Receipt #42")

        assert result.redemption.status == RedemptionStatus.FULFILLED
        assert result.redemption.fulfillment_reference == "Receipt #42"
        assert result.redemption.fulfilled_at is not None
        assert result.ledger_entry.amount == Decimal("-200")
        assert result.ledger_entry.entry_type == EntryType.REDEEMED
        assert result.ledger_entry.redemption_request_id == request.id

        balance = ledger.get_balance(PARTNER_ID, CurrencyType.POINTS)
        assert balance.balance == Decimal("100")
        assert balance.held == Decimal("0")
        redeemed = [e for e in ledger.list_entries(PARTNER_ID) if e.redemption_request_id == request.id]
        assert len(redeemed) == 1

    def test_second_fulfil_rejected(self, redemptions, ledger, catalog, admin_ctx, partner_ctx):
        earn(ledger, "300")
        item = add_item(catalog, admin_ctx, "200")
        request = redemptions.request(partner_ctx, item.id)
        redemptions.fulfill(admin_ctx, request.id)

        with pytest.raises(InvalidStateTransitionError):
            redemptions.fulfill(admin_ctx, request.id)
        assert ledger.get_balance(PARTNER_ID, CurrencyType.POINTS).balance == Decimal("100")

    def test_blank_reference_stored_as_none(self, redemptions, ledger, catalog, admin_ctx, partner_ctx):
        earn(ledger, "300")
        request = redemptions.request(partner_ctx, add_item(catalog, admin_ctx, "200").id)

        result = redemptions.fulfill(admin_ctx, request.id, "  ")

        assert result.redemption.fulfillment_reference is None

    def test_only_admins_fulfil(self, redemptions, ledger, catalog, admin_ctx, partner_ctx):
        earn(ledger, "300")
        request = redemptions.request(partner_ctx, add_item(catalog, admin_ctx, "200").id)

        with pytest.raises(PermissionDeniedError):
            redemptions.fulfill(partner_ctx, request.id)

    def test_failed_status_update_rolls_back_deduction(
        self, redemptions, ledger, storage, catalog, admin_ctx, partner_ctx, monkeypatch,
    ):
        earn(ledger, "300")
        request = redemptions.request(partner_ctx, add_item(catalog, admin_ctx, "200").id)
        original_update = storage.update

        def failing_update(table, key, changes):
            if table == "redemption_requests":
                raise RuntimeError("store unavailable")
            return original_update(table, key, changes)

        monkeypatch.setattr(storage, "update", failing_update)
        with pytest.raises(RuntimeError):
            redemptions.fulfill(admin_ctx, request.id)
        monkeypatch.undo()

        balance = ledger.get_balance(PARTNER_ID, CurrencyType.POINTS)
        assert balance.balance == Decimal("300")
        assert balance.held == Decimal("200")
        assert redemptions.get_request(request.id).status == RedemptionStatus.REQUESTED


class TestCancelRedemption:
    """Tests for cancelling open requests."""

    def test_cancel_releases_hold(self, redemptions, ledger, catalog, admin_ctx, partner_ctx):
        earn(ledger, "300")
        request = redemptions.request(partner_ctx, add_item(catalog, admin_ctx, "200").id)

        cancelled = redemptions.cancel(partner_ctx, request.id)

        assert cancelled.status == RedemptionStatus.CANCELLED
        balance = ledger.get_balance(PARTNER_ID, CurrencyType.POINTS)
        assert balance.available == Decimal("300")
        assert balance.entry_count == 1

    def test_cannot_fulfil_cancelled(self, redemptions, ledger, catalog, admin_ctx, partner_ctx):
        earn(ledger, "300")
        request = redemptions.request(partner_ctx, add_item(catalog, admin_ctx, "200").id)
        redemptions.cancel(partner_ctx, request.id)

        with pytest.raises(InvalidStateTransitionError):
            redemptions.fulfill(admin_ctx, request.id)

    def test_other_users_cannot_cancel(self, redemptions, ledger, catalog, admin_ctx, partner_ctx, customer_ctx):
        earn(ledger, "300")
        request = redemptions.request(partner_ctx, add_item(catalog, admin_ctx, "200").id)

        with pytest.raises(PermissionDeniedError):
            redemptions.cancel(customer_ctx, request.id)


class TestRedemptionAdminView:
    def test_admin_view_shows_requester(self, redemptions, ledger, catalog, admin_ctx, partner_ctx):
        earn(ledger, "300")
        redemptions.request(partner_ctx, add_item(catalog, admin_ctx, "200").id)

        rows = redemptions.list_admin_view(admin_ctx)

        assert len(rows) == 1
        assert rows[0].user_display == "Pat Partner"
        assert rows[0].catalog_item_name == "Yard Sign Printing Credit"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
