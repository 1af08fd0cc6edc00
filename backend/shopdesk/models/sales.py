from __future__ import annotations

import re

from ..extensions import db
from shopdesk.time_utils import to_utc_z, to_iso_date

# Immediate payment methods. "money" is physical cash and is the only one
# that takes a tendered amount (and gives change).
METHOD_MONEY = "money"
PAYMENT_METHOD_LABELS = {
    "money": "Cash",
    "pix": "PIX",
    "debit": "Debit",
    "credit": "Credit",
}

_INSTALLMENT_TAG = re.compile(r"^credit_card_(\d+)x$")

INSTALLMENT_PENDING = "pending"
INSTALLMENT_PAID = "paid"
INSTALLMENT_OVERDUE = "overdue"
INSTALLMENT_STATUSES = (INSTALLMENT_PENDING, INSTALLMENT_PAID, INSTALLMENT_OVERDUE)


def installment_tag(count: int) -> str:
    """Composite payment-method tag stored on installment sales."""
    return f"credit_card_{count}x"


def parse_installment_tag(tag: str | None) -> int | None:
    """Installment count encoded in a tag, or None for immediate methods."""
    if not tag:
        return None
    match = _INSTALLMENT_TAG.match(tag)
    return int(match.group(1)) if match else None


def payment_method_label(tag: str | None) -> str | None:
    if tag is None:
        return None
    count = parse_installment_tag(tag)
    if count is not None:
        return f"Credit ({count}x)"
    return PAYMENT_METHOD_LABELS.get(tag, tag)


class Sale(db.Model):
    """
    Completed sale.

    IMMUTABLE: created once by checkout together with its lines, its
    installments and stock decrements; there is no update or delete path.
    total_cents is authoritative and equals the sum of line totals.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    total_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    client = db.relationship("Client", backref=db.backref("sales", lazy=True))
    user = db.relationship("User", backref=db.backref("sales", lazy=True))
    lines = db.relationship(
        "SaleLine",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
    )
    installments = db.relationship(
        "Installment",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Installment.installment_number",
    )

    @property
    def reference(self) -> str:
        """Short human-readable reference used in ledger descriptions."""
        return f"{self.id:06d}"

    @property
    def installment_count(self) -> int | None:
        return parse_installment_tag(self.payment_method)

    def to_dict(self, *, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "reference": self.reference,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "user_id": self.user_id,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "payment_method_label": payment_method_label(self.payment_method),
            "installment_count": self.installment_count,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["installments"] = [inst.to_dict() for inst in self.installments]
        return data


class SaleLine(db.Model):
    """
    Line item. unit_price_cents is the price captured when the product was
    put in the cart, decoupled from later catalog price changes.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_code": self.product.code if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class Installment(db.Model):
    """
    One scheduled payment of an installment sale.

    LIFECYCLE:
    - pending: created with the sale
    - paid: set by the installment tracker (mark paid)
    - overdue: set by an external job for due-but-unpaid installments;
      the tracker only displays it
    """
    __tablename__ = "installments"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "installment_number", name="uq_installments_sale_number"),
        db.CheckConstraint(
            "status IN ('pending', 'paid', 'overdue')",
            name="ck_installments_status",
        ),
        db.Index("ix_installments_status_due", "status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)

    installment_number = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.Date, nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=INSTALLMENT_PENDING)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "installment_number": self.installment_number,
            "due_date": to_iso_date(self.due_date),
            "amount_cents": self.amount_cents,
            "status": self.status,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "payment_method": self.payment_method,
        }
