"""
Pytest fixtures for dealerp backend tests.

Provides an isolated in-memory database per test, default roles, users of
each role with bearer tokens, a location and a couple of products.
"""

from decimal import Decimal

import pytest
from sqlalchemy.pool import StaticPool

from dealerp import create_app
from dealerp.extensions import db
from dealerp.models import Location, Product, TrackingMode
from dealerp.services import auth_service, ledger_service, permission_service
from dealerp.services.session_service import Actor

PASSWORD = "Password123!"


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SQLALCHEMY_ENGINE_OPTIONS': {
            'connect_args': {'check_same_thread': False},
            'poolclass': StaticPool,
        },
        'BCRYPT_ROUNDS': 4,
        'NOTIFICATIONS_ENABLED': False,
        'DEFAULT_LOCATION_NAME': 'Main Showroom',
    })

    with app.app_context():
        db.create_all()
        permission_service.bootstrap_rbac()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


def make_user(role_name: str, email: str):
    return auth_service.create_user(
        full_name=f"{role_name.title()} User",
        email=email,
        password=PASSWORD,
        role_name=role_name,
    )


@pytest.fixture(scope='function')
def admin_user(app):
    return make_user("admin", "admin@example.com")


@pytest.fixture(scope='function')
def editor_user(app):
    return make_user("editor", "editor@example.com")


@pytest.fixture(scope='function')
def viewer_user(app):
    return make_user("viewer", "viewer@example.com")


@pytest.fixture(scope='function')
def actor(editor_user):
    """Service-level acting user (the salesperson)."""
    return Actor(user_id=editor_user.id, email=editor_user.email)


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password,
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.email))


@pytest.fixture(scope='function')
def editor_headers(client, editor_user):
    return auth_headers(get_auth_token(client, editor_user.email))


@pytest.fixture(scope='function')
def viewer_headers(client, viewer_user):
    return auth_headers(get_auth_token(client, viewer_user.email))


@pytest.fixture(scope='function')
def location(app):
    loc = Location(name="Main Showroom", is_active=True)
    db.session.add(loc)
    db.session.commit()
    return loc


@pytest.fixture(scope='function')
def oil(app):
    """A batch-tracked part priced at 12.50 with reorder level 5."""
    product = Product(
        sku="OIL-5W30",
        name="Engine Oil 5W-30",
        category="Parts",
        unit_price=Decimal("12.50"),
        reorder_level=5,
        tracking_mode=TrackingMode.BATCH,
    )
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture(scope='function')
def sedan(app):
    """A serial-tracked vehicle model."""
    product = Product(
        sku="CAR-SEDAN",
        name="Sedan LX",
        category="Vehicles",
        unit_price=Decimal("24999.99"),
        reorder_level=1,
        tracking_mode=TrackingMode.SERIAL,
    )
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture(scope='function')
def stocked_oil(oil, location, actor):
    """oil with 20 received and 3 damaged: 17 on hand."""
    ledger_service.record_movement(
        actor=actor, product_id=oil.id, location_id=location.id,
        quantity=20, direction="IN", reason="PURCHASE",
    )
    ledger_service.record_movement(
        actor=actor, product_id=oil.id, location_id=location.id,
        quantity=-3, direction="OUT", reason="DAMAGE",
    )
    return oil
