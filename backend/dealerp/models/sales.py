from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class SaleStatus:
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Sale(db.Model):
    """
    Sale header. Created only by services/sales_service.create_sale, in the
    same transaction as its items, ledger deductions and unit transitions.

    sale_number: SALE-YYYYMMDD-NNN (UTC day + per-day sequence).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created_at", "created_at"),
        db.Index("ix_sales_customer", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SaleStatus.COMPLETED, index=True)

    # Sum of item line totals, fixed at creation
    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    created_by = db.relationship("User")

    def __repr__(self) -> str:
        return f"<Sale id={self.id} sale_number={self.sale_number!r} status={self.status}>"

    def to_dict(self, *, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "sale_number": self.sale_number,
            "customer_id": self.customer_id,
            "created_by_user_id": self.created_by_user_id,
            "status": self.status,
            "total_amount": money_str(self.total_amount),
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["customer"] = self.customer.to_dict() if self.customer else None
            data["created_by"] = (
                {"id": self.created_by.id, "full_name": self.created_by.full_name}
                if self.created_by else None
            )
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Line item. unit_price is COPIED from the product at sale time and never
    changes afterwards (rows are append-only, like the ledger).
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        db.UniqueConstraint("serial_unit_id", name="uq_sale_items_serial_unit"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    serial_unit_id = db.Column(db.Integer, db.ForeignKey("serial_units.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    line_total = db.Column(db.Numeric(14, 2), nullable=False)

    movement_entry_id = db.Column(db.Integer, db.ForeignKey("movement_entries.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship(
        "Sale",
        backref=db.backref("items", lazy=True, order_by="SaleItem.id"),
    )
    product = db.relationship("Product")
    serial_unit = db.relationship("SerialUnit")
    movement_entry = db.relationship("MovementEntry")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "serial_unit_id": self.serial_unit_id,
            "vin": self.serial_unit.vin if self.serial_unit else None,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "line_total": money_str(self.line_total),
            "movement_entry_id": self.movement_entry_id,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-period document sequences.

    WHY: sale numbers are "SALE-<day>-<n>"; counting existing rows would race.
    The (document_type, period) row is bumped with a single UPDATE inside the
    sale transaction.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "period", name="uq_doc_sequences_type_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    period = db.Column(db.String(16), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "period": self.period,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
