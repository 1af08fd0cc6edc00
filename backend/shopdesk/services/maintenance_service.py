# Overview: One-off data repairs and scheduled housekeeping jobs; run from the CLI, never implicitly.

from __future__ import annotations

import logging
from datetime import date, timedelta

from ..extensions import db
from ..models import CashTransaction, Installment, Sale, SecurityEvent
from ..models.registers import TX_SALE
from ..models.sales import INSTALLMENT_OVERDUE, INSTALLMENT_PENDING
from shopdesk.time_utils import utcnow, today as current_day

logger = logging.getLogger(__name__)


def backfill_zero_sale_transactions() -> int:
    """
    Give zero-amount sale ledger entries the total of the sale they reference.

    Older data recorded some sale entries with amount 0. Entries without a
    sale reference are left alone. Returns the number of rows fixed.
    """
    rows = (
        db.session.query(CashTransaction, Sale)
        .join(Sale, CashTransaction.sale_id == Sale.id)
        .filter(
            CashTransaction.type == TX_SALE,
            CashTransaction.amount_cents == 0,
        )
        .all()
    )

    fixed = 0
    for tx, sale in rows:
        if sale.total_cents == 0:
            continue
        tx.amount_cents = sale.total_cents
        fixed += 1

    db.session.commit()

    if fixed:
        logger.info("Backfilled %s zero-amount sale transactions", fixed)
    return fixed


def mark_overdue_installments(today: date | None = None) -> int:
    """Pending installments due before `today` become overdue."""
    today = today or current_day()
    updated = (
        db.session.query(Installment)
        .filter(
            Installment.status == INSTALLMENT_PENDING,
            Installment.due_date < today,
        )
        .update({Installment.status: INSTALLMENT_OVERDUE}, synchronize_session=False)
    )
    db.session.commit()

    if updated:
        logger.info("Marked %s installments overdue as of %s", updated, today.isoformat())
    return updated


def cleanup_security_events(*, retention_days: int = 90) -> int:
    """Delete security events older than retention_days."""
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SecurityEvent).filter(
        SecurityEvent.occurred_at < cutoff
    ).delete()
    db.session.commit()
    return deleted
