"""
Concurrency tests against a file-backed SQLite database.

Each worker thread runs in its own app context, so each holds its own
session and connection, just like concurrent requests.
"""

import os
import tempfile
import threading
from decimal import Decimal

import pytest

from dealerp import create_app
from dealerp.extensions import db
from dealerp.models import Location, Product, Sale, SerialUnit, TrackingMode
from dealerp.services import (
    auth_service,
    inventory_service,
    ledger_service,
    permission_service,
    sales_service,
    serial_unit_service,
)
from dealerp.services.session_service import Actor
from dealerp.validation import ConflictError, InsufficientStockError


@pytest.fixture
def file_app():
    tmpdir = tempfile.TemporaryDirectory()
    db_path = os.path.join(tmpdir.name, "concurrency.db")
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
        'BCRYPT_ROUNDS': 4,
        'NOTIFICATIONS_ENABLED': False,
    })

    with app.app_context():
        db.create_all()
        permission_service.bootstrap_rbac()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()
    tmpdir.cleanup()


@pytest.fixture
def seeded(file_app):
    """One salesperson, one location, 10 units of a part and one vehicle."""
    with file_app.app_context():
        user = auth_service.create_user("Concurrent Seller", "seller@example.com", "Password123!", "editor")
        actor = Actor(user_id=user.id, email=user.email)

        location = Location(name="Main Showroom", is_active=True)
        part = Product(
            sku="CONCUR-1", name="Concurrent Part", category="Parts",
            unit_price=Decimal("10.00"), tracking_mode=TrackingMode.BATCH,
        )
        car = Product(
            sku="CONCUR-CAR", name="Concurrent Car", category="Vehicles",
            unit_price=Decimal("20000.00"), tracking_mode=TrackingMode.SERIAL,
        )
        db.session.add_all([location, part, car])
        db.session.commit()

        ledger_service.record_movement(
            actor=actor, product_id=part.id, location_id=location.id,
            quantity=10, direction="IN", reason="PURCHASE",
        )
        unit = serial_unit_service.register_unit(
            actor=actor, product_id=car.id, location_id=location.id, vin="CONCURRENTVIN0001",
        )
        seed = {
            "actor": actor,
            "part_id": part.id,
            "car_id": car.id,
            "unit_id": unit.id,
        }
        db.session.remove()
    return seed


def _run_concurrently(app, payloads):
    """Start one create_sale per payload behind a barrier; collect sales or exceptions."""
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(len(payloads))

    def worker(kwargs):
        with app.app_context():
            try:
                barrier.wait()
                sale = sales_service.create_sale(**kwargs)
                with lock:
                    results.append(sale.sale_number)
            except Exception as exc:
                with lock:
                    results.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(kwargs,)) for kwargs in payloads]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def test_same_vehicle_sold_once(file_app, seeded):
    line = {"product_id": seeded["car_id"], "serial_unit_id": seeded["unit_id"]}
    payloads = [
        {
            "actor": seeded["actor"],
            "customer": {"full_name": f"Buyer {n}", "phone": f"+1555010{n:04d}"},
            "items": [line],
        }
        for n in range(2)
    ]

    results = _run_concurrently(file_app, payloads)

    successes = [r for r in results if isinstance(r, str)]
    failures = [r for r in results if not isinstance(r, str)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], ConflictError)

    with file_app.app_context():
        unit = db.session.get(SerialUnit, seeded["unit_id"])
        assert unit.status == "SOLD"
        assert db.session.query(Sale).count() == 1
        assert inventory_service.get_unit_stock(unit.id) == 0


def test_batch_oversell_is_prevented(file_app, seeded):
    payloads = [
        {
            "actor": seeded["actor"],
            "customer": {"full_name": "Walk In", "phone": "+15550100001"},
            "items": [{"product_id": seeded["part_id"], "quantity": 6}],
        }
        for _ in range(2)
    ]

    results = _run_concurrently(file_app, payloads)

    successes = [r for r in results if isinstance(r, str)]
    failures = [r for r in results if not isinstance(r, str)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientStockError)

    with file_app.app_context():
        assert inventory_service.get_current_stock(seeded["part_id"]) == 4


def test_concurrent_sale_numbers_are_unique(file_app, seeded):
    payloads = [
        {
            "actor": seeded["actor"],
            "customer": {"full_name": f"Buyer {n}", "phone": f"+1555020{n:04d}"},
            "items": [{"product_id": seeded["part_id"], "quantity": 1}],
        }
        for n in range(5)
    ]

    results = _run_concurrently(file_app, payloads)

    assert all(isinstance(r, str) for r in results), results
    assert len(set(results)) == 5

    with file_app.app_context():
        assert inventory_service.get_current_stock(seeded["part_id"]) == 5
