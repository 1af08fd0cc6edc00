"""
Installment Tracker

WHY: Installment sales are paid over months; the shop needs to see who owes
what and record each payment as it arrives.

RULES:
- A sale of N installments has exactly N rows numbered 1..N, due 30, 60,
  ..., 30N days after the checkout date.
- Amounts are the floor of total / N, and the remainder cents go to the last
  installment so the schedule sums to the sale total.
- The tracker only moves pending/overdue -> paid. Moving pending -> overdue
  belongs to maintenance_service.mark_overdue_installments.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from ..extensions import db
from ..models import Client, Installment, Sale, User
from ..models.registers import TX_INSTALLMENT_PAYMENT
from ..models.sales import (
    INSTALLMENT_OVERDUE,
    INSTALLMENT_PAID,
    INSTALLMENT_PENDING,
    INSTALLMENT_STATUSES,
    PAYMENT_METHOD_LABELS,
    payment_method_label,
)
from shopdesk.time_utils import add_days, combine_with_current_time, today as current_day
from .permission_service import require_permission
from .register_service import get_open_register, record_transaction

logger = logging.getLogger(__name__)

INSTALLMENT_INTERVAL_DAYS = 30
MIN_INSTALLMENTS = 2

STATUS_ALL = "all"
FILTER_STATUSES = (STATUS_ALL,) + INSTALLMENT_STATUSES


class InstallmentError(Exception):
    """Raised for installment tracker errors."""

    def __init__(self, message: str, *, not_found: bool = False):
        super().__init__(message)
        self.not_found = not_found


def split_amount(total_cents: int, n: int) -> list[int]:
    """
    Equal split with the remainder on the last installment.

    split_amount(2500, 3) == [833, 833, 834]
    """
    if n < 1:
        raise InstallmentError("Installment count must be at least 1")
    if total_cents < 0:
        raise InstallmentError("Total cannot be negative")

    base = total_cents // n
    amounts = [base] * n
    amounts[-1] += total_cents - base * n
    return amounts


def build_schedule(sale: Sale, n: int, start: date) -> list[Installment]:
    """Installment rows for a sale (not added to the session)."""
    amounts = split_amount(sale.total_cents, n)
    return [
        Installment(
            sale_id=sale.id,
            installment_number=k,
            due_date=add_days(start, INSTALLMENT_INTERVAL_DAYS * k),
            amount_cents=amount,
            status=INSTALLMENT_PENDING,
        )
        for k, amount in enumerate(amounts, start=1)
    ]


# =============================================================================
# LISTING
# =============================================================================

@dataclass
class InstallmentFilter:
    search: str | None = None
    status: str = STATUS_ALL
    due_today: bool = False
    today: date | None = None


@dataclass
class ClientInstallmentGroup:
    client_id: int
    client_name: str
    installments: list = field(default_factory=list)
    total_pending_cents: int = 0
    total_overdue_cents: int = 0

    def to_dict(self) -> dict:
        return {
            "client_id": self.client_id,
            "client_name": self.client_name,
            "installments": self.installments,
            "total_pending_cents": self.total_pending_cents,
            "total_overdue_cents": self.total_overdue_cents,
        }


def list_grouped_by_client(filters: InstallmentFilter | None = None) -> list[ClientInstallmentGroup]:
    """
    Installments grouped by the buying client.

    Recomputed on every call. Groups are ordered by client name, the
    installments inside by due date.
    """
    filters = filters or InstallmentFilter()

    if filters.status not in FILTER_STATUSES:
        raise InstallmentError(f"status must be one of: {', '.join(FILTER_STATUSES)}")

    query = (
        db.session.query(Installment, Sale, Client)
        .join(Sale, Installment.sale_id == Sale.id)
        .join(Client, Sale.client_id == Client.id)
    )

    if filters.search:
        query = query.filter(Client.name.ilike(f"%{filters.search.strip()}%"))

    if filters.status != STATUS_ALL:
        query = query.filter(Installment.status == filters.status)

    if filters.due_today:
        query = query.filter(Installment.due_date == (filters.today or current_day()))

    rows = query.order_by(Installment.due_date.asc(), Installment.id.asc()).all()

    groups: dict[int, ClientInstallmentGroup] = {}
    for inst, sale, client in rows:
        group = groups.get(client.id)
        if group is None:
            group = groups[client.id] = ClientInstallmentGroup(client_id=client.id, client_name=client.name)

        item = inst.to_dict()
        item["sale_reference"] = sale.reference
        item["sale_payment_method_label"] = payment_method_label(sale.payment_method)
        item["installment_count"] = sale.installment_count
        group.installments.append(item)

        if inst.status == INSTALLMENT_PENDING:
            group.total_pending_cents += inst.amount_cents
        elif inst.status == INSTALLMENT_OVERDUE:
            group.total_overdue_cents += inst.amount_cents

    return sorted(groups.values(), key=lambda g: (g.client_name.lower(), g.client_id))


# =============================================================================
# PAYMENT
# =============================================================================

def mark_paid(
    operator: User,
    installment_id: int,
    payment_date: date,
    payment_method: str,
) -> Installment:
    """
    Record payment of one installment.

    If the operator has an open register, an installment_payment entry is
    appended timestamped on payment_date at the current time of day. The
    status change and the ledger entry commit together.

    Raises:
        PermissionDeniedError: operator may not receive installments
        InstallmentError: unknown installment (not_found=True), already
            paid, or unknown payment method
    """
    require_permission(operator, "RECEIVE_INSTALLMENT", resource=f"installments/{installment_id}")

    if payment_method not in PAYMENT_METHOD_LABELS:
        raise InstallmentError(f"Unknown payment method: {payment_method}")

    inst = db.session.get(Installment, installment_id)
    if not inst:
        raise InstallmentError("Installment not found", not_found=True)
    if inst.status == INSTALLMENT_PAID:
        raise InstallmentError("Installment already paid")

    paid_at = combine_with_current_time(payment_date)

    inst.status = INSTALLMENT_PAID
    inst.paid_at = paid_at
    inst.payment_method = payment_method

    try:
        register = get_open_register(operator.id)
        if register:
            client_name = inst.sale.client.name if inst.sale and inst.sale.client else "Unknown client"
            record_transaction(
                register.id,
                f"Installment payment - {client_name} - {payment_method_label(payment_method)}",
                inst.amount_cents,
                TX_INSTALLMENT_PAYMENT,
                installment_id=inst.id,
                occurred_at=paid_at,
                commit=False,
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Installment %s of sale %s paid via %s", inst.installment_number, inst.sale_id, payment_method)
    return inst
