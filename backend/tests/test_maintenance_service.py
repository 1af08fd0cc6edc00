"""
Maintenance job tests.
"""

from datetime import date, timedelta

from shopdesk.models import CashRegister, CashTransaction, Installment, Sale, SecurityEvent
from shopdesk.models.registers import TX_SALE
from shopdesk.services import maintenance_service
from shopdesk.time_utils import utcnow


def _sale(db_session, client, user, total):
    sale = Sale(client_id=client.id, user_id=user.id, total_cents=total, payment_method="money")
    db_session.add(sale)
    db_session.flush()
    return sale


def test_backfill_zero_sale_transactions(db_session, operator, shop_client):
    register = CashRegister(user_id=operator.id, status="open", initial_balance_cents=0)
    db_session.add(register)
    db_session.flush()

    broken = _sale(db_session, shop_client, operator, 4200)
    fine = _sale(db_session, shop_client, operator, 1500)

    db_session.add_all([
        CashTransaction(register_id=register.id, sale_id=broken.id, description="Sale", amount_cents=0, type=TX_SALE),
        CashTransaction(register_id=register.id, sale_id=fine.id, description="Sale", amount_cents=1500, type=TX_SALE),
        CashTransaction(register_id=register.id, sale_id=None, description="Orphan", amount_cents=0, type=TX_SALE),
    ])
    db_session.commit()

    assert maintenance_service.backfill_zero_sale_transactions() == 1

    amounts = {tx.description + str(tx.sale_id): tx.amount_cents for tx in db_session.query(CashTransaction)}
    assert amounts[f"Sale{broken.id}"] == 4200
    assert amounts[f"Sale{fine.id}"] == 1500
    assert amounts["OrphanNone"] == 0

    # Idempotent
    assert maintenance_service.backfill_zero_sale_transactions() == 0


def test_mark_overdue_installments(db_session, operator, shop_client):
    sale = _sale(db_session, shop_client, operator, 3000)
    today = date(2024, 6, 1)
    db_session.add_all([
        Installment(sale_id=sale.id, installment_number=1, due_date=today - timedelta(days=1),
                    amount_cents=1000, status="pending"),
        Installment(sale_id=sale.id, installment_number=2, due_date=today,
                    amount_cents=1000, status="pending"),
        Installment(sale_id=sale.id, installment_number=3, due_date=today - timedelta(days=10),
                    amount_cents=1000, status="paid"),
    ])
    db_session.commit()

    assert maintenance_service.mark_overdue_installments(today) == 1

    statuses = {i.installment_number: i.status for i in db_session.query(Installment)}
    assert statuses == {1: "overdue", 2: "pending", 3: "paid"}


def test_cleanup_security_events(db_session):
    db_session.add_all([
        SecurityEvent(event_type="LOGIN_FAILED", success=False, occurred_at=utcnow() - timedelta(days=120)),
        SecurityEvent(event_type="LOGIN_FAILED", success=False, occurred_at=utcnow()),
    ])
    db_session.commit()

    assert maintenance_service.cleanup_security_events(retention_days=90) == 1
    assert db_session.query(SecurityEvent).count() == 1
