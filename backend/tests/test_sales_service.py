"""
Sale transaction tests.

A sale either commits with its header, items, ledger entries and unit
transitions together, or leaves no trace at all.
"""

import re
from decimal import Decimal

import pytest

from dealerp.extensions import db
from dealerp.models import Customer, MovementEntry, Sale, SaleItem, SerialUnit
from dealerp.services import (
    inventory_service,
    notification_service,
    products_service,
    sales_service,
    serial_unit_service,
)
from dealerp.services.notification_service import NotificationError
from dealerp.services.sales_service import CustomerRef, SaleLineRequest
from dealerp.time_utils import date_stamp, utcnow
from dealerp.validation import (
    ConflictError,
    ImmutabilityViolationError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)

SALE_NUMBER_RE = re.compile(r"^SALE-\d{8}-\d{3,}$")

WALK_IN = {"full_name": "Dana Reyes", "phone": "+1 (555) 010-2000", "email": "dana@example.com"}


@pytest.fixture
def unit(sedan, location, actor):
    return serial_unit_service.register_unit(
        actor=actor, product_id=sedan.id, location_id=location.id, vin="1FTFW1ET5DFC10312",
    )


def _sale_entries():
    return db.session.query(MovementEntry).filter_by(reason="SALE").all()


class TestBatchSale:
    def test_sale_reduces_stock_and_records_everything(self, stocked_oil, actor, location):
        sale = sales_service.create_sale(
            actor=actor,
            customer=WALK_IN,
            items=[{"product_id": stocked_oil.id, "quantity": 2}],
        )

        assert SALE_NUMBER_RE.match(sale.sale_number)
        assert sale.sale_number.startswith(f"SALE-{date_stamp(utcnow())}-")
        assert sale.status == "COMPLETED"
        assert sale.created_by_user_id == actor.user_id
        assert sale.total_amount == Decimal("25.00")

        assert len(sale.items) == 1
        item = sale.items[0]
        assert item.unit_price == Decimal("12.50")
        assert item.line_total == Decimal("25.00")

        entries = _sale_entries()
        assert len(entries) == 1
        assert entries[0].quantity == -2
        assert entries[0].direction == "OUT"
        assert entries[0].reference_type == "SALE"
        assert entries[0].reference_id == str(sale.id)
        assert entries[0].location_id == location.id
        assert item.movement_entry_id == entries[0].id

        assert inventory_service.get_current_stock(stocked_oil.id) == 15

    def test_sale_numbers_increase_within_a_day(self, stocked_oil, actor):
        numbers = [
            sales_service.create_sale(
                actor=actor, customer=WALK_IN, items=[{"product_id": stocked_oil.id}],
            ).sale_number
            for _ in range(3)
        ]
        suffixes = [int(n.rsplit("-", 1)[1]) for n in numbers]
        assert suffixes == [1, 2, 3]
        assert numbers[0].endswith("-001")

    def test_price_is_copied_not_referenced(self, stocked_oil, actor):
        sale = sales_service.create_sale(
            actor=actor, customer=WALK_IN, items=[{"product_id": stocked_oil.id, "quantity": 1}],
        )
        products_service.update_product(product_id=stocked_oil.id, patch={"unit_price": Decimal("99.00")})

        db.session.expire_all()
        item = db.session.query(SaleItem).filter_by(sale_id=sale.id).one()
        assert item.unit_price == Decimal("12.50")
        assert sales_service.get_sale(sale.id).total_amount == Decimal("12.50")

    def test_insufficient_stock_writes_nothing(self, stocked_oil, actor):
        with pytest.raises(InsufficientStockError) as exc_info:
            sales_service.create_sale(
                actor=actor, customer=WALK_IN, items=[{"product_id": stocked_oil.id, "quantity": 18}],
            )

        assert exc_info.value.details == {"product_id": stocked_oil.id, "requested": 18, "available": 17}
        assert _sale_entries() == []
        assert db.session.query(Sale).count() == 0
        assert db.session.query(Customer).count() == 0
        assert inventory_service.get_current_stock(stocked_oil.id) == 17

    def test_lines_of_one_product_are_checked_together(self, stocked_oil, actor):
        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(
                actor=actor,
                customer=WALK_IN,
                items=[
                    {"product_id": stocked_oil.id, "quantity": 10},
                    {"product_id": stocked_oil.id, "quantity": 8},
                ],
            )
        assert inventory_service.get_current_stock(stocked_oil.id) == 17

    def test_inactive_product_is_rejected(self, stocked_oil, actor):
        products_service.update_product(product_id=stocked_oil.id, patch={"is_active": False})
        with pytest.raises(ValidationError, match="inactive"):
            sales_service.create_sale(actor=actor, customer=WALK_IN, items=[{"product_id": stocked_oil.id}])

    def test_unknown_product_is_not_found(self, location, actor):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(actor=actor, customer=WALK_IN, items=[{"product_id": 9999}])


class TestCustomerResolution:
    def test_same_phone_reuses_customer(self, stocked_oil, actor):
        first = sales_service.create_sale(actor=actor, customer=WALK_IN, items=[{"product_id": stocked_oil.id}])
        second = sales_service.create_sale(
            actor=actor,
            customer={"full_name": "D. Reyes", "phone": "+15550102000"},
            items=[{"product_id": stocked_oil.id}],
        )

        assert first.customer_id == second.customer_id
        assert db.session.query(Customer).count() == 1
        # details on file are not overwritten by a later sale
        assert db.session.get(Customer, first.customer_id).full_name == "Dana Reyes"

    def test_existing_customer_by_id(self, stocked_oil, actor):
        first = sales_service.create_sale(actor=actor, customer=WALK_IN, items=[{"product_id": stocked_oil.id}])
        again = sales_service.create_sale(
            actor=actor,
            customer=CustomerRef(customer_id=first.customer_id),
            items=[SaleLineRequest(product_id=stocked_oil.id)],
        )
        assert again.customer_id == first.customer_id

    def test_unknown_customer_id_is_not_found(self, stocked_oil, actor):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(actor=actor, customer={"customer_id": 404}, items=[{"product_id": stocked_oil.id}])

    @pytest.mark.parametrize("customer", [
        None,
        {},
        {"full_name": "No Phone"},
        {"phone": "+15550100000"},
        {"full_name": "Bad Phone", "phone": "12ab"},
    ])
    def test_incomplete_customer_is_rejected(self, stocked_oil, actor, customer):
        with pytest.raises(ValidationError):
            sales_service.create_sale(actor=actor, customer=customer, items=[{"product_id": stocked_oil.id}])
        assert db.session.query(Sale).count() == 0

    def test_empty_items_are_rejected(self, location, actor):
        with pytest.raises(ValidationError):
            sales_service.create_sale(actor=actor, customer=WALK_IN, items=[])


class TestSerialSale:
    def test_unit_is_sold_with_the_sale(self, unit, actor):
        sale = sales_service.create_sale(
            actor=actor,
            customer=WALK_IN,
            items=[{"product_id": unit.product_id, "serial_unit_id": unit.id}],
        )

        db.session.expire_all()
        sold = db.session.get(SerialUnit, unit.id)
        assert sold.status == "SOLD"
        assert sold.sale_id == sale.id
        assert sold.sold_at is not None
        assert inventory_service.get_unit_stock(unit.id) == 0
        assert inventory_service.get_current_stock(unit.product_id) == 0
        assert sale.total_amount == Decimal("24999.99")
        assert serial_unit_service.list_available() == []

        sale_entries = [e for e in _sale_entries() if e.serial_unit_id == unit.id]
        assert len(sale_entries) == 1
        assert sale_entries[0].reference_id == str(sale.id)

    def test_unit_cannot_be_sold_twice(self, unit, actor):
        line = {"product_id": unit.product_id, "serial_unit_id": unit.id}
        sales_service.create_sale(actor=actor, customer=WALK_IN, items=[line])

        with pytest.raises(ConflictError, match="already been sold"):
            sales_service.create_sale(
                actor=actor, customer={"full_name": "Late Buyer", "phone": "5550109999"}, items=[line],
            )

        assert db.session.query(Sale).count() == 1
        assert len(_sale_entries()) == 1
        assert db.session.query(Customer).filter_by(phone="5550109999").first() is None

    def test_serial_line_requires_unit(self, unit, actor):
        with pytest.raises(ValidationError, match="serial_unit_id is required"):
            sales_service.create_sale(actor=actor, customer=WALK_IN, items=[{"product_id": unit.product_id}])

    def test_serial_line_quantity_must_be_one(self, unit, actor):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                actor=actor,
                customer=WALK_IN,
                items=[{"product_id": unit.product_id, "serial_unit_id": unit.id, "quantity": 2}],
            )

    def test_unit_of_another_product_is_rejected(self, unit, stocked_oil, actor):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                actor=actor,
                customer=WALK_IN,
                items=[{"product_id": stocked_oil.id, "serial_unit_id": unit.id}],
            )

    def test_failure_mid_sale_rolls_everything_back(self, unit, stocked_oil, actor, monkeypatch):
        def explode(unit_id, *, sale_id):
            raise RuntimeError("disk unplugged")

        monkeypatch.setattr(serial_unit_service, "mark_sold", explode)

        with pytest.raises(RuntimeError):
            sales_service.create_sale(
                actor=actor,
                customer=WALK_IN,
                items=[
                    {"product_id": stocked_oil.id, "quantity": 3},
                    {"product_id": unit.product_id, "serial_unit_id": unit.id},
                ],
            )

        db.session.expire_all()
        assert db.session.query(Sale).count() == 0
        assert db.session.query(SaleItem).count() == 0
        assert _sale_entries() == []
        assert db.session.query(Customer).count() == 0
        assert db.session.get(SerialUnit, unit.id).status == "AVAILABLE"
        assert inventory_service.get_current_stock(stocked_oil.id) == 17
        assert inventory_service.get_unit_stock(unit.id) == 1

    def test_sale_items_are_append_only(self, unit, actor):
        sale = sales_service.create_sale(
            actor=actor, customer=WALK_IN, items=[{"product_id": unit.product_id, "serial_unit_id": unit.id}],
        )
        item = sale.items[0]
        item.unit_price = Decimal("1.00")
        with pytest.raises(ImmutabilityViolationError):
            db.session.flush()
        db.session.rollback()


class TestAfterCommit:
    def test_notification_failure_does_not_undo_sale(self, app, stocked_oil, actor, monkeypatch):
        app.config["NOTIFICATIONS_ENABLED"] = True
        calls = []

        def failing(sale):
            calls.append(sale.sale_number)
            raise NotificationError("provider down")

        monkeypatch.setattr(notification_service, "notify_sale_completed", failing)

        sale = sales_service.create_sale(actor=actor, customer=WALK_IN, items=[{"product_id": stocked_oil.id}])

        assert calls == [sale.sale_number]
        assert db.session.query(Sale).count() == 1
        assert inventory_service.get_current_stock(stocked_oil.id) == 16

    def test_notify_false_skips_delivery(self, stocked_oil, actor, monkeypatch):
        monkeypatch.setattr(
            notification_service, "notify_sale_completed",
            lambda sale: pytest.fail("delivery attempted"),
        )
        sales_service.create_sale(
            actor=actor, customer=WALK_IN, items=[{"product_id": stocked_oil.id}], notify=False,
        )


class TestSaleQueries:
    def test_lookup_and_listing(self, stocked_oil, actor):
        first = sales_service.create_sale(actor=actor, customer=WALK_IN, items=[{"product_id": stocked_oil.id}])
        second = sales_service.create_sale(
            actor=actor,
            customer={"full_name": "Sam Ito", "phone": "555 010 3000"},
            items=[{"product_id": stocked_oil.id}],
        )

        assert sales_service.get_sale_by_number(first.sale_number.lower()).id == first.id

        items, total = sales_service.list_sales()
        assert total == 2
        assert [s.id for s in items] == [second.id, first.id]

        items, total = sales_service.list_sales(customer_id=first.customer_id)
        assert total == 1

        with pytest.raises(NotFoundError):
            sales_service.get_sale(9999)


def test_first_sale_for_new_phone_creates_one_customer(stocked_oil, actor):
    buyer = {"full_name": "Tunde Bello", "phone": "08011111111"}

    first = sales_service.create_sale(actor=actor, customer=buyer, items=[{"product_id": stocked_oil.id}])
    assert db.session.query(Customer).count() == 1
    assert db.session.query(Sale).count() == 1

    second = sales_service.create_sale(actor=actor, customer=buyer, items=[{"product_id": stocked_oil.id}])
    assert second.customer_id == first.customer_id
    assert db.session.query(Customer).filter_by(phone="08011111111").count() == 1
