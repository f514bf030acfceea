# Overview: Service-layer operations for customers.

from __future__ import annotations

import re
from typing import Optional

from sqlalchemy import or_

from ..extensions import db
from ..models import Customer
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import run_in_transaction

PHONE_RE = re.compile(r"^\+?\d{7,20}$")


def normalize_phone(phone) -> str:
    """Strip spaces, dashes, dots and parentheses; keep a leading '+'."""
    if phone is None:
        raise ValidationError("phone is required")
    normalized = re.sub(r"[\s\-().]", "", str(phone))
    if not normalized:
        raise ValidationError("phone is required")
    if not PHONE_RE.match(normalized):
        raise ValidationError("phone must contain 7 to 20 digits")
    return normalized


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def find_by_phone(phone: str) -> Optional[Customer]:
    return db.session.query(Customer).filter_by(phone=normalize_phone(phone)).first()


def upsert_customer_by_phone(
    *,
    full_name: str,
    phone: str,
    email: Optional[str] = None,
    address: Optional[str] = None,
) -> Customer:
    """
    Find a customer by normalized phone, or create one. NO COMMIT.

    An existing customer is returned unchanged; contact details on file are
    never overwritten by a sale.
    """
    normalized = normalize_phone(phone)
    existing = db.session.query(Customer).filter_by(phone=normalized).first()
    if existing:
        return existing

    full_name = _clean(full_name)
    if not full_name:
        raise ValidationError("customer full_name is required")

    customer = Customer(
        full_name=full_name,
        phone=normalized,
        email=_clean(email),
        address=_clean(address),
    )
    db.session.add(customer)
    db.session.flush()
    return customer


def create_customer(
    *,
    full_name: str,
    phone: str,
    email: Optional[str] = None,
    address: Optional[str] = None,
) -> Customer:
    """Create a customer; a phone already on file raises ConflictError."""
    normalized = normalize_phone(phone)

    def _op() -> Customer:
        if db.session.query(Customer.id).filter_by(phone=normalized).first():
            raise ConflictError(f"Customer with phone {normalized} already exists")
        return upsert_customer_by_phone(
            full_name=full_name, phone=normalized, email=email, address=address
        )

    return run_in_transaction(_op)


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def list_customers(*, search: Optional[str] = None, limit: int = 100) -> list[Customer]:
    q = db.session.query(Customer)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Customer.full_name.ilike(like), Customer.phone.ilike(like)))
    return q.order_by(Customer.full_name, Customer.id).limit(limit).all()
