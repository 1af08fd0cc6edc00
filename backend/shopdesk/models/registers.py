from __future__ import annotations

from ..extensions import db
from shopdesk.time_utils import to_utc_z

REGISTER_OPEN = "open"
REGISTER_CLOSED = "closed"

TX_SALE = "sale"
TX_INSTALLMENT_PAYMENT = "installment_payment"
TX_OPENING = "opening"
TX_CLOSING = "closing"
TX_WITHDRAWAL = "withdrawal"
TX_DEPOSIT = "deposit"
TRANSACTION_TYPES = (
    TX_SALE,
    TX_INSTALLMENT_PAYMENT,
    TX_OPENING,
    TX_CLOSING,
    TX_WITHDRAWAL,
    TX_DEPOSIT,
)

TRANSACTION_TYPE_LABELS = {
    TX_SALE: "Sale",
    TX_INSTALLMENT_PAYMENT: "Installment payment",
    TX_OPENING: "Opening",
    TX_CLOSING: "Closing",
    TX_WITHDRAWAL: "Withdrawal",
    TX_DEPOSIT: "Deposit",
}


class CashRegister(db.Model):
    """
    Per-operator cash drawer session (one shift).

    LIFECYCLE:
    - open: transactions can be recorded
    - closed: final_balance_cents holds the balance computed at close

    At most one open register per operator. The service checks it before
    inserting; the partial unique index catches two concurrent opens.
    """
    __tablename__ = "cash_registers"
    __table_args__ = (
        db.Index(
            "uq_cash_registers_user_open",
            "user_id",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
        db.CheckConstraint("status IN ('open', 'closed')", name="ck_cash_registers_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=REGISTER_OPEN, index=True)

    initial_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    final_balance_cents = db.Column(db.Integer, nullable=True)  # Set when closing

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", backref=db.backref("cash_registers", lazy=True))
    transactions = db.relationship(
        "CashTransaction",
        backref="register",
        lazy=True,
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status == REGISTER_OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "initial_balance_cents": self.initial_balance_cents,
            "final_balance_cents": self.final_balance_cents,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "version_id": self.version_id,
        }


class CashTransaction(db.Model):
    """
    Ledger entry of a cash register.

    APPEND-ONLY: never updated after insert, except by the one-off
    zero-amount sale backfill in maintenance_service.

    SIGN: amount_cents is stored as entered (>= 0). Balancing subtracts
    withdrawals and adds every other type, closing included.
    """
    __tablename__ = "cash_transactions"
    __table_args__ = (
        db.Index("ix_cash_transactions_register_created", "register_id", "created_at"),
        db.CheckConstraint(
            "type IN ('sale', 'installment_payment', 'opening', 'closing', 'withdrawal', 'deposit')",
            name="ck_cash_transactions_type",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    register_id = db.Column(
        db.Integer,
        db.ForeignKey("cash_registers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Lookup-only back-references
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    installment_id = db.Column(db.Integer, db.ForeignKey("installments.id"), nullable=True, index=True)

    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(32), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale")
    installment = db.relationship("Installment")

    @property
    def signed_amount_cents(self) -> int:
        return -self.amount_cents if self.type == TX_WITHDRAWAL else self.amount_cents

    def to_dict(self) -> dict:
        from .sales import payment_method_label

        return {
            "id": self.id,
            "register_id": self.register_id,
            "sale_id": self.sale_id,
            "installment_id": self.installment_id,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "signed_amount_cents": self.signed_amount_cents,
            "type": self.type,
            "type_label": TRANSACTION_TYPE_LABELS.get(self.type, self.type),
            "payment_method_label": payment_method_label(self.sale.payment_method) if self.sale else None,
            "created_at": to_utc_z(self.created_at),
        }
