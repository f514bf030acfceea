# Overview: Dashboard statistics and recent activity feed.

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, MovementEntry, Product, Sale, SaleStatus
from ..money import money_str, to_money
from ..time_utils import to_utc_naive, to_utc_z, utcnow
from .inventory_service import count_low_stock

REVENUE_WINDOW = timedelta(days=30)
RECENT_ACTIVITY_LIMIT = 5


def _revenue_between(start: datetime, end: datetime) -> Decimal:
    total = db.session.query(func.coalesce(func.sum(Sale.total_amount), 0)).filter(
        Sale.status == SaleStatus.COMPLETED,
        Sale.created_at >= start,
        Sale.created_at < end,
    ).scalar()
    return to_money(Decimal(str(total or 0)))


def revenue_growth(current: Decimal, previous: Decimal) -> Optional[float]:
    """Percentage change; None when there is nothing to compare against."""
    if previous == 0:
        return None
    return round(float((current - previous) / previous * 100), 2)


def recent_activity(limit: int = RECENT_ACTIVITY_LIMIT) -> list[dict]:
    sales = db.session.query(Sale).order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()
    movements = (
        db.session.query(MovementEntry)
        .order_by(MovementEntry.created_at.desc(), MovementEntry.id.desc())
        .limit(limit)
        .all()
    )

    activity = [
        {
            "id": s.id,
            "type": "SALE",
            "title": f"Sale to {s.customer.full_name}",
            "description": f"Order #{s.sale_number}",
            "time": to_utc_naive(s.created_at),
        }
        for s in sales
    ]
    activity += [
        {
            "id": m.id,
            "type": "MOVEMENT",
            "title": f"{m.direction} Movement: {m.product.name}",
            "description": f"{abs(m.quantity)} units {'added' if m.quantity > 0 else 'removed'} ({m.reason})",
            "time": to_utc_naive(m.created_at),
        }
        for m in movements
    ]
    activity.sort(key=lambda a: a["time"], reverse=True)

    for a in activity:
        a["time"] = to_utc_z(a["time"])
    return activity[:limit]


def get_dashboard_stats(now: Optional[datetime] = None) -> dict:
    now = to_utc_naive(now) if now is not None else utcnow()
    window_start = now - REVENUE_WINDOW
    prior_start = window_start - REVENUE_WINDOW

    revenue = _revenue_between(window_start, now + timedelta(seconds=1))
    prior_revenue = _revenue_between(prior_start, window_start)

    return {
        "stats": {
            "total_products": db.session.query(func.count(Product.id)).filter(Product.is_active.is_(True)).scalar(),
            "total_customers": db.session.query(func.count(Customer.id)).scalar(),
            "total_revenue": money_str(revenue),
            "previous_revenue": money_str(prior_revenue),
            "revenue_growth": revenue_growth(revenue, prior_revenue),
            "low_stock_items": count_low_stock(),
        },
        "recent_activity": recent_activity(),
    }
