"""
Movement ledger tests.

Entries are append-only, signed and the sole source of stock.
"""

import pytest
from sqlalchemy import event

from dealerp.extensions import db
from dealerp.models import Customer, Location, MovementEntry, Sale, SaleItem
from dealerp.services import inventory_service, ledger_service, sales_service, serial_unit_service
from dealerp.services.session_service import Actor
from dealerp.validation import (
    ConflictError,
    ImmutabilityViolationError,
    InsufficientStockError,
    ValidationError,
)


def _move(actor, product, location, quantity, direction, reason, **kwargs):
    return ledger_service.record_movement(
        actor=actor,
        product_id=product.id,
        location_id=location.id,
        quantity=quantity,
        direction=direction,
        reason=reason,
        **kwargs,
    )


class TestRecordMovement:
    def test_purchase_then_damage_leaves_seventeen(self, stocked_oil):
        assert inventory_service.get_current_stock(stocked_oil.id) == 17

    def test_entry_is_attributed_and_timestamped(self, oil, location, actor):
        entry = _move(actor, oil, location, 4, "IN", "PURCHASE", reference_id="PO-77", note="first delivery")

        assert entry.id is not None
        assert entry.performed_by_user_id == actor.user_id
        assert entry.reference_type == "MANUAL"
        assert entry.reference_id == "PO-77"
        assert entry.created_at is not None
        assert entry.to_dict()["created_at"].endswith("Z")

    def test_adjustment_in_both_directions(self, stocked_oil, location, actor):
        _move(actor, stocked_oil, location, 2, "IN", "ADJUSTMENT")
        _move(actor, stocked_oil, location, -1, "OUT", "ADJUSTMENT")
        assert inventory_service.get_current_stock(stocked_oil.id) == 18

    @pytest.mark.parametrize("quantity,direction,reason", [
        (0, "IN", "PURCHASE"),
        (-5, "IN", "PURCHASE"),
        (5, "OUT", "DAMAGE"),
        (5, "IN", "SALE"),
        (-5, "OUT", "PURCHASE"),
        (5, "SIDEWAYS", "PURCHASE"),
        (5, "IN", "GIFT"),
    ])
    def test_rejects_malformed_movement(self, oil, location, actor, quantity, direction, reason):
        with pytest.raises(ValidationError):
            _move(actor, oil, location, quantity, direction, reason)
        assert db.session.query(MovementEntry).count() == 0

    def test_rejects_missing_product(self, location, actor):
        with pytest.raises(ValidationError):
            ledger_service.record_movement(
                actor=actor, product_id=9999, location_id=location.id,
                quantity=1, direction="IN", reason="PURCHASE",
            )

    def test_rejects_missing_location(self, oil, actor):
        with pytest.raises(ValidationError):
            ledger_service.record_movement(
                actor=actor, product_id=oil.id, location_id=9999,
                quantity=1, direction="IN", reason="PURCHASE",
            )

    def test_rejects_unknown_user(self, oil, location):
        with pytest.raises(ValidationError):
            _move(Actor(user_id=4242), oil, location, 1, "IN", "PURCHASE")

    def test_serial_product_requires_unit(self, sedan, location, actor):
        with pytest.raises(ValidationError, match="serial_unit_id is required"):
            _move(actor, sedan, location, 1, "IN", "PURCHASE")

    def test_batch_product_rejects_unit(self, stocked_oil, location, actor, unit):
        with pytest.raises(ValidationError, match="not allowed"):
            _move(actor, stocked_oil, location, -1, "OUT", "DAMAGE", serial_unit_id=unit.id)

    def test_out_below_zero_is_insufficient_stock(self, stocked_oil, location, actor):
        with pytest.raises(InsufficientStockError) as exc_info:
            _move(actor, stocked_oil, location, -18, "OUT", "DAMAGE")

        assert exc_info.value.available == 17
        assert exc_info.value.requested == 18
        assert inventory_service.get_current_stock(stocked_oil.id) == 17

    def test_quantity_out_of_range_is_rejected(self, oil, location, actor):
        with pytest.raises(ValidationError, match="out of range"):
            _move(actor, oil, location, 10 ** 20, "IN", "PURCHASE")
        assert db.session.query(MovementEntry).count() == 0


@pytest.fixture
def unit(sedan, location, actor):
    return serial_unit_service.register_unit(
        actor=actor, product_id=sedan.id, location_id=location.id, vin="1HGCM82633A004352",
    )


class TestSerialUnitMovements:
    def test_damage_writes_off_unit(self, sedan, location, actor, unit):
        entry = _move(actor, sedan, location, -1, "OUT", "DAMAGE", serial_unit_id=unit.id, note="hail")

        assert entry.serial_unit_id == unit.id
        assert inventory_service.get_unit_stock(unit.id) == 0
        assert inventory_service.get_current_stock(sedan.id) == 0
        assert unit.status == "AVAILABLE"
        assert serial_unit_service.list_available(sedan.id) == []

    def test_written_off_unit_cannot_be_sold(self, sedan, location, actor, unit):
        _move(actor, sedan, location, -1, "OUT", "DAMAGE", serial_unit_id=unit.id)

        with pytest.raises(ConflictError, match="not in stock"):
            sales_service.create_sale(
                actor=actor,
                customer={"full_name": "Ada Obi", "phone": "+2348035550101"},
                items=[{"product_id": sedan.id, "serial_unit_id": unit.id}],
                notify=False,
            )
        assert db.session.query(Sale).count() == 0
        assert db.session.query(Customer).count() == 0

    def test_adjustment_restores_written_off_unit(self, sedan, location, actor, unit):
        _move(actor, sedan, location, -1, "OUT", "DAMAGE", serial_unit_id=unit.id)
        _move(actor, sedan, location, 1, "IN", "ADJUSTMENT", serial_unit_id=unit.id)

        assert inventory_service.get_unit_stock(unit.id) == 1
        assert [u.id for u in serial_unit_service.list_available(sedan.id)] == [unit.id]

    def test_unit_cannot_go_below_zero(self, sedan, location, actor, unit):
        _move(actor, sedan, location, -1, "OUT", "DAMAGE", serial_unit_id=unit.id)
        with pytest.raises(InsufficientStockError):
            _move(actor, sedan, location, -1, "OUT", "ADJUSTMENT", serial_unit_id=unit.id)

    def test_unit_on_hand_cannot_be_received_again(self, sedan, location, actor, unit):
        with pytest.raises(ConflictError, match="already in stock"):
            _move(actor, sedan, location, 1, "IN", "ADJUSTMENT", serial_unit_id=unit.id)

    @pytest.mark.parametrize("quantity,direction,reason", [
        (-2, "OUT", "DAMAGE"),
        (-1, "OUT", "SALE"),
    ])
    def test_rejects_bad_unit_movement(self, sedan, location, actor, unit, quantity, direction, reason):
        with pytest.raises(ValidationError):
            _move(actor, sedan, location, quantity, direction, reason, serial_unit_id=unit.id)
        assert inventory_service.get_unit_stock(unit.id) == 1

    def test_unit_must_be_at_location(self, sedan, actor, unit):
        yard = Location(name="Back Yard", is_active=True)
        db.session.add(yard)
        db.session.commit()

        with pytest.raises(ValidationError, match="held at location"):
            _move(actor, sedan, yard, -1, "OUT", "DAMAGE", serial_unit_id=unit.id)

    def test_unknown_unit_is_rejected(self, sedan, location, actor):
        with pytest.raises(ValidationError, match="does not exist"):
            _move(actor, sedan, location, -1, "OUT", "DAMAGE", serial_unit_id=9999)

    def test_sold_unit_is_conflict(self, sedan, location, actor, unit):
        sales_service.create_sale(
            actor=actor,
            customer={"full_name": "Ada Obi", "phone": "+2348035550101"},
            items=[{"product_id": sedan.id, "serial_unit_id": unit.id}],
            notify=False,
        )
        with pytest.raises(ConflictError, match="has been sold"):
            _move(actor, sedan, location, -1, "OUT", "DAMAGE", serial_unit_id=unit.id)


class TestImmutability:
    def test_entries_cannot_be_updated(self, stocked_oil):
        entry = db.session.query(MovementEntry).first()
        entry.quantity = 1000
        with pytest.raises(ImmutabilityViolationError):
            db.session.flush()
        db.session.rollback()

        assert inventory_service.get_current_stock(stocked_oil.id) == 17

    def test_entries_cannot_be_deleted(self, stocked_oil):
        entry = db.session.query(MovementEntry).first()
        db.session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            db.session.flush()
        db.session.rollback()

        assert db.session.query(MovementEntry).count() == 2

    def test_listeners_register_once(self, app):
        ledger_service.register_immutability_listeners()
        ledger_service.register_immutability_listeners()

        assert event.contains(MovementEntry, "before_update", ledger_service._reject_update)
        assert event.contains(SaleItem, "before_delete", ledger_service._reject_delete)


class TestListMovements:
    def test_newest_first_with_filters(self, stocked_oil):
        movements = ledger_service.list_movements(product_id=stocked_oil.id)
        assert [m.quantity for m in movements] == [-3, 20]

        damage = ledger_service.list_movements(reason="DAMAGE")
        assert len(damage) == 1
        assert damage[0].direction == "OUT"

    def test_replaying_entries_reproduces_stock(self, stocked_oil, location, actor):
        _move(actor, stocked_oil, location, 6, "IN", "ADJUSTMENT")
        _move(actor, stocked_oil, location, -2, "OUT", "DAMAGE")

        replayed = sum(m.quantity for m in ledger_service.list_movements(product_id=stocked_oil.id))
        assert replayed == inventory_service.get_current_stock(stocked_oil.id) == 21
