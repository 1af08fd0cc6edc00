"""
Cash Register Ledger Service

WHY: Each operator accounts for the money that passed through their drawer
during a shift. The balance is never stored while the register is open; it
is always recomputed from the ledger.

DESIGN PRINCIPLES:
- At most one open register per operator (precondition check + partial
  unique index for two concurrent opens)
- Transactions are append-only
- Balance = sum(amount) with withdrawals subtracted; the closing entry is
  stored as a positive amount like everything else
- The operator is always an explicit argument
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CashRegister, CashTransaction, User
from ..models.registers import (
    REGISTER_OPEN,
    REGISTER_CLOSED,
    TRANSACTION_TYPES,
    TX_OPENING,
    TX_CLOSING,
    TX_DEPOSIT,
    TX_WITHDRAWAL,
)
from shopdesk.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .permission_service import require_permission, require_owner_or_permission, user_has_permission


class CashRegisterError(Exception):
    """Raised for register lifecycle and ledger errors."""

    def __init__(self, message: str, *, conflict: bool = False):
        super().__init__(message)
        self.conflict = conflict


# =============================================================================
# LIFECYCLE
# =============================================================================

def get_open_register(user_id: int) -> CashRegister | None:
    return db.session.query(CashRegister).filter_by(
        user_id=user_id,
        status=REGISTER_OPEN,
    ).first()


def get_register(register_id: int) -> CashRegister:
    register = db.session.get(CashRegister, register_id)
    if not register:
        raise CashRegisterError("Register not found")
    return register


def open_register(operator: User, initial_balance_cents: int) -> CashRegister:
    """
    Open a register for the operator with an opening transaction.

    Raises:
        CashRegisterError: negative balance, or the operator already has an
            open register (conflict=True)
    """
    require_permission(operator, "OPERATE_REGISTER", resource="registers.open")

    if initial_balance_cents < 0:
        raise CashRegisterError("Initial balance cannot be negative")

    existing = get_open_register(operator.id)
    if existing:
        raise CashRegisterError(
            f"You already have an open register (register {existing.id})",
            conflict=True,
        )

    now = utcnow()
    register = CashRegister(
        user_id=operator.id,
        status=REGISTER_OPEN,
        initial_balance_cents=initial_balance_cents,
        opened_at=now,
    )
    db.session.add(register)

    try:
        db.session.flush()
    except IntegrityError:
        # Lost the race against a concurrent open
        db.session.rollback()
        raise CashRegisterError("You already have an open register", conflict=True)

    db.session.add(CashTransaction(
        register_id=register.id,
        description="Register opening",
        amount_cents=initial_balance_cents,
        type=TX_OPENING,
        created_at=now,
    ))

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise CashRegisterError("You already have an open register", conflict=True)

    return register


def close_register(operator: User, register_id: int | None = None) -> CashRegister:
    """
    Close a register.

    Computes the balance, appends a closing transaction of that amount and
    stores it as final_balance_cents. Owner, or anyone who may view all
    registers (admin), may close.

    Args:
        operator: acting user
        register_id: register to close; defaults to the operator's open one
    """
    def _op():
        if register_id is None:
            target = get_open_register(operator.id)
            if not target:
                raise CashRegisterError("No open register")
            target_id = target.id
        else:
            target_id = register_id

        register = lock_for_update(db.session.query(CashRegister).filter_by(id=target_id)).first()
        if not register:
            raise CashRegisterError("Register not found")

        require_owner_or_permission(
            operator,
            register.user_id,
            "VIEW_ALL_REGISTERS",
            resource=f"registers/{register.id}",
        )

        if register.status != REGISTER_OPEN:
            raise CashRegisterError("Register already closed")

        balance = current_balance(register.id)
        now = utcnow()

        db.session.add(CashTransaction(
            register_id=register.id,
            description="Register closing",
            amount_cents=balance,
            type=TX_CLOSING,
            created_at=now,
        ))

        register.status = REGISTER_CLOSED
        register.final_balance_cents = balance
        register.closed_at = now

        db.session.commit()
        return register

    return run_with_retry(_op)


# =============================================================================
# LEDGER
# =============================================================================

def current_balance(register_id: int) -> int:
    """Sum of the register's transactions, withdrawals subtracted."""
    signed = case(
        (CashTransaction.type == TX_WITHDRAWAL, -CashTransaction.amount_cents),
        else_=CashTransaction.amount_cents,
    )
    total = db.session.query(func.coalesce(func.sum(signed), 0)).filter(
        CashTransaction.register_id == register_id
    ).scalar()
    return int(total or 0)


def record_transaction(
    register_id: int,
    description: str,
    amount_cents: int,
    type: str,
    *,
    sale_id: int | None = None,
    installment_id: int | None = None,
    occurred_at: datetime | None = None,
    commit: bool = True,
) -> CashTransaction:
    """
    Append a ledger entry to an open register.

    commit=False lets checkout and installment payment fold the entry into
    their own transaction.
    """
    if type not in TRANSACTION_TYPES:
        raise CashRegisterError(f"Unknown transaction type: {type}")
    if amount_cents < 0:
        raise CashRegisterError("Amount cannot be negative")
    if not description or not description.strip():
        raise CashRegisterError("Description is required")

    register = db.session.get(CashRegister, register_id)
    if not register:
        raise CashRegisterError("Register not found")
    if register.status != REGISTER_OPEN:
        raise CashRegisterError("Register is closed")

    tx = CashTransaction(
        register_id=register_id,
        sale_id=sale_id,
        installment_id=installment_id,
        description=description.strip(),
        amount_cents=amount_cents,
        type=type,
        created_at=occurred_at or utcnow(),
    )
    db.session.add(tx)

    if commit:
        db.session.commit()
    else:
        db.session.flush()

    return tx


def _record_manual(operator: User, amount_cents: int, description: str, tx_type: str) -> CashTransaction:
    require_permission(operator, "OPERATE_REGISTER", resource=f"registers.{tx_type}")

    if amount_cents <= 0:
        raise CashRegisterError("Amount must be greater than zero")

    register = get_open_register(operator.id)
    if not register:
        raise CashRegisterError("No open register")

    return record_transaction(register.id, description, amount_cents, tx_type)


def record_deposit(operator: User, amount_cents: int, description: str) -> CashTransaction:
    """Cash put into the drawer outside of a sale (e.g. change float top-up)."""
    return _record_manual(operator, amount_cents, description, TX_DEPOSIT)


def record_withdrawal(operator: User, amount_cents: int, description: str) -> CashTransaction:
    """Cash taken out of the drawer (bank drop, petty expense)."""
    return _record_manual(operator, amount_cents, description, TX_WITHDRAWAL)


# =============================================================================
# QUERIES
# =============================================================================

def list_transactions(register_id: int) -> list[CashTransaction]:
    """Register transactions, newest first."""
    return (
        db.session.query(CashTransaction)
        .filter(CashTransaction.register_id == register_id)
        .order_by(CashTransaction.created_at.desc(), CashTransaction.id.desc())
        .all()
    )


def get_register_summary(register: CashRegister) -> dict:
    """Register plus live balance and its transactions (newest first)."""
    data = register.to_dict()
    data["current_balance_cents"] = (
        current_balance(register.id) if register.is_open else register.final_balance_cents
    )
    data["transactions"] = [tx.to_dict() for tx in list_transactions(register.id)]
    return data


def list_registers(operator: User, status: str | None = None, limit: int = 100) -> list[CashRegister]:
    """Register history. Admins see every operator's registers, users their own."""
    query = db.session.query(CashRegister)

    if not user_has_permission(operator, "VIEW_ALL_REGISTERS"):
        query = query.filter(CashRegister.user_id == operator.id)

    if status:
        if status not in (REGISTER_OPEN, REGISTER_CLOSED):
            raise CashRegisterError(f"Unknown register status: {status}")
        query = query.filter(CashRegister.status == status)

    return query.order_by(CashRegister.opened_at.desc(), CashRegister.id.desc()).limit(limit).all()


def get_register_for_viewer(operator: User, register_id: int) -> CashRegister:
    """Fetch a register the operator may see (own, or all with VIEW_ALL_REGISTERS)."""
    register = get_register(register_id)
    require_owner_or_permission(
        operator,
        register.user_id,
        "VIEW_ALL_REGISTERS",
        resource=f"registers/{register_id}",
    )
    return register
