# Overview: Service-layer operations for document numbering.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import date_stamp

SALE_DOCUMENT_TYPE = "SALE"


def next_document_number(*, document_type: str, period: str) -> int:
    """
    Atomically allocate the next number of a (document_type, period) sequence.
    NO COMMIT: the number belongs to the caller's transaction and is released
    if it rolls back.

    The row is bumped with a single UPDATE; the first allocation of a period
    inserts it. Two first allocations racing on the insert surface as an
    IntegrityError, which run_in_transaction reports as a ConflictError.
    """
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type, period=period)
            .scalar()
        )
        return current - 1

    db.session.add(DocumentSequence(document_type=document_type, period=period, next_number=2))
    db.session.flush()
    return 1


def format_sale_number(period: str, number: int) -> str:
    """SALE-YYYYMMDD-NNN; NNN is zero-padded to three digits and may grow past 999."""
    return f"{SALE_DOCUMENT_TYPE}-{period}-{number:03d}"


def next_sale_number(now: datetime) -> str:
    period = date_stamp(now)
    return format_sale_number(period, next_document_number(document_type=SALE_DOCUMENT_TYPE, period=period))
