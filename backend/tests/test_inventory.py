"""
Stock aggregation tests: stock is always the sum of ledger entries.
"""

from decimal import Decimal

import pytest

from dealerp.extensions import db
from dealerp.models import Location, Product, TrackingMode
from dealerp.services import inventory_service, ledger_service
from dealerp.validation import NotFoundError


def _product(name, reorder_level, *, active=True, tracking_mode=TrackingMode.BATCH):
    product = Product(
        sku=name.upper().replace(" ", "-"),
        name=name,
        category="Parts",
        unit_price=Decimal("5.00"),
        reorder_level=reorder_level,
        tracking_mode=tracking_mode,
        is_active=active,
    )
    db.session.add(product)
    db.session.commit()
    return product


def _receive(actor, product, location, quantity):
    ledger_service.record_movement(
        actor=actor, product_id=product.id, location_id=location.id,
        quantity=quantity, direction="IN", reason="PURCHASE",
    )


class TestCurrentStock:
    def test_no_entries_means_zero(self, oil):
        assert inventory_service.get_current_stock(oil.id) == 0

    def test_unknown_product_raises_not_found(self, app):
        with pytest.raises(NotFoundError):
            inventory_service.get_current_stock(9999)

    def test_reads_are_idempotent(self, stocked_oil):
        first = inventory_service.get_current_stock(stocked_oil.id)
        second = inventory_service.get_current_stock(stocked_oil.id)
        assert first == second == 17

    def test_stock_levels_grouped(self, stocked_oil, location, actor):
        filters = _product("Air Filter", 2)
        _receive(actor, filters, location, 3)

        levels = inventory_service.get_stock_levels()
        assert levels == {stocked_oil.id: 17, filters.id: 3}
        assert inventory_service.get_stock_levels([]) == {}


class TestLowStock:
    def test_at_or_below_reorder_level_only(self, location, actor):
        wipers = _product("Wiper Blade", 5)
        _receive(actor, wipers, location, 5)
        bulbs = _product("Head Bulb", 5)
        _receive(actor, bulbs, location, 2)
        plugs = _product("Spark Plug", 5)
        _receive(actor, plugs, location, 6)
        empty = _product("Brake Pad", 1)

        rows = inventory_service.list_low_stock()

        assert [(p.name, stock) for p, stock in rows] == [
            ("Brake Pad", 0),
            ("Head Bulb", 2),
            ("Wiper Blade", 5),
        ]
        assert plugs.id not in {p.id for p, _ in rows}
        assert empty.id in {p.id for p, _ in rows}
        assert inventory_service.count_low_stock() == 3

    def test_inactive_products_are_excluded(self, app):
        _product("Retired Part", 10, active=False)
        assert inventory_service.list_low_stock() == []

    def test_zero_reorder_level_flags_only_empty_stock(self, location, actor):
        mats = _product("Floor Mat", 0)
        assert [p.id for p, _ in inventory_service.list_low_stock()] == [mats.id]

        _receive(actor, mats, location, 1)
        assert inventory_service.list_low_stock() == []

    def test_stock_status_labels(self):
        assert inventory_service.stock_status(0, 5) == "OUT_OF_STOCK"
        assert inventory_service.stock_status(5, 5) == "LOW_STOCK"
        assert inventory_service.stock_status(6, 5) == "IN_STOCK"


class TestSnapshotAndSummary:
    def test_snapshot_lists_active_products_by_name(self, stocked_oil, sedan):
        snapshot = inventory_service.get_stock_snapshot()
        assert [row["name"] for row in snapshot] == ["Engine Oil 5W-30", "Sedan LX"]
        assert snapshot[0]["current_stock"] == 17
        assert snapshot[0]["status"] == "IN_STOCK"
        assert snapshot[1]["status"] == "OUT_OF_STOCK"

    def test_summary_breaks_stock_down_by_location(self, stocked_oil, location, actor):
        yard = Location(name="Back Yard", is_active=True)
        db.session.add(yard)
        db.session.commit()
        _receive(actor, stocked_oil, yard, 4)

        summary = inventory_service.get_inventory_summary(stocked_oil.id)

        assert summary["current_stock"] == 21
        assert summary["by_location"] == [
            {"location_id": yard.id, "location_name": "Back Yard", "stock": 4},
            {"location_id": location.id, "location_name": "Main Showroom", "stock": 17},
        ]
        assert "available_units" not in summary


def test_reorder_scenario_enters_low_stock_at_threshold(oil, location, actor):
    _receive(actor, oil, location, 20)
    ledger_service.record_movement(
        actor=actor, product_id=oil.id, location_id=location.id,
        quantity=-3, direction="OUT", reason="SALE",
    )
    assert inventory_service.get_current_stock(oil.id) == 17
    assert oil.id not in {p.id for p, _ in inventory_service.list_low_stock()}

    ledger_service.record_movement(
        actor=actor, product_id=oil.id, location_id=location.id,
        quantity=-11, direction="OUT", reason="ADJUSTMENT",
    )
    assert inventory_service.get_current_stock(oil.id) == 6
    assert oil.id not in {p.id for p, _ in inventory_service.list_low_stock()}

    ledger_service.record_movement(
        actor=actor, product_id=oil.id, location_id=location.id,
        quantity=-1, direction="OUT", reason="DAMAGE",
    )
    assert [(p.id, stock) for p, stock in inventory_service.list_low_stock()] == [(oil.id, 5)]
