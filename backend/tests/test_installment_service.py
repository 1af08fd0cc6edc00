"""
Installment tracker tests.

Verifies:
- Equal split with the remainder on the last installment
- Grouped listing: search, status filter, due today, totals
- mark_paid: permission, ledger entry, already-paid rejection
"""

from datetime import date, datetime, time, timedelta

import pytest

from shopdesk.models import CashTransaction, Client, Installment, Sale
from shopdesk.models.registers import TX_INSTALLMENT_PAYMENT
from shopdesk.services import register_service
from shopdesk.services.installment_service import (
    InstallmentError,
    InstallmentFilter,
    list_grouped_by_client,
    mark_paid,
    split_amount,
)
from shopdesk.services.permission_service import PermissionDeniedError
from shopdesk.time_utils import combine_with_current_time


@pytest.mark.parametrize(
    "total,n,expected",
    [
        (2500, 3, [833, 833, 834]),
        (1000, 2, [500, 500]),
        (1001, 4, [250, 250, 250, 251]),
        (5, 12, [0] * 11 + [5]),
    ],
)
def test_split_amount(total, n, expected):
    assert split_amount(total, n) == expected
    assert sum(split_amount(total, n)) == total


def test_split_amount_rejects_zero_count():
    with pytest.raises(InstallmentError):
        split_amount(1000, 0)


def _installment_sale(db_session, client, user, amounts, due_dates, statuses=None):
    sale = Sale(
        client_id=client.id,
        user_id=user.id,
        total_cents=sum(amounts),
        payment_method=f"credit_card_{len(amounts)}x",
    )
    db_session.add(sale)
    db_session.flush()

    statuses = statuses or ["pending"] * len(amounts)
    for k, (amount, due, status) in enumerate(zip(amounts, due_dates, statuses), start=1):
        db_session.add(Installment(
            sale_id=sale.id,
            installment_number=k,
            due_date=due,
            amount_cents=amount,
            status=status,
        ))
    db_session.commit()
    return sale


@pytest.fixture
def two_clients(db_session, operator):
    bruno = Client(name="Bruno Costa")
    alice = Client(name="alice Souza")
    db_session.add_all([bruno, alice])
    db_session.commit()

    today = date(2024, 6, 1)
    _installment_sale(
        db_session, bruno, operator,
        [1000, 1000],
        [today, today + timedelta(days=30)],
        ["overdue", "pending"],
    )
    _installment_sale(
        db_session, alice, operator,
        [300, 300, 400],
        [today - timedelta(days=30), today, today + timedelta(days=30)],
        ["paid", "pending", "pending"],
    )
    return alice, bruno, today


def test_payment_timestamp_keeps_time_of_day():
    now = datetime(2024, 7, 9, 14, 35, 12, 987654)

    paid_at = combine_with_current_time(date(2024, 7, 2), now=now)

    assert paid_at.date() == date(2024, 7, 2)
    assert paid_at.time() == time(14, 35, 12)


class TestGroupedListing:

    def test_groups_sorted_by_client_name(self, db_session, two_clients):
        groups = list_grouped_by_client()
        assert [g.client_name for g in groups] == ["alice Souza", "Bruno Costa"]

    def test_totals(self, db_session, two_clients):
        alice, bruno, _ = two_clients
        groups = {g.client_id: g for g in list_grouped_by_client()}

        assert groups[alice.id].total_pending_cents == 700
        assert groups[alice.id].total_overdue_cents == 0
        assert groups[bruno.id].total_pending_cents == 1000
        assert groups[bruno.id].total_overdue_cents == 1000

    def test_installments_ordered_by_due_date(self, db_session, two_clients):
        alice, _, _ = two_clients
        group = next(g for g in list_grouped_by_client() if g.client_id == alice.id)
        due = [i["due_date"] for i in group.installments]
        assert due == sorted(due)

    def test_search_is_case_insensitive(self, db_session, two_clients):
        groups = list_grouped_by_client(InstallmentFilter(search="BRUNO"))
        assert [g.client_name for g in groups] == ["Bruno Costa"]

    def test_status_filter(self, db_session, two_clients):
        groups = list_grouped_by_client(InstallmentFilter(status="overdue"))
        assert len(groups) == 1
        assert all(i["status"] == "overdue" for i in groups[0].installments)

    def test_due_today(self, db_session, two_clients):
        _, _, today = two_clients
        groups = list_grouped_by_client(InstallmentFilter(due_today=True, today=today))
        due = [i["due_date"] for g in groups for i in g.installments]
        assert due == [today.isoformat(), today.isoformat()]

    def test_unknown_status_rejected(self, db_session):
        with pytest.raises(InstallmentError):
            list_grouped_by_client(InstallmentFilter(status="late"))


class TestMarkPaid:

    def _pending(self, db_session, client, user):
        sale = _installment_sale(db_session, client, user, [833, 833, 834],
                                 [date(2024, 7, 1), date(2024, 7, 31), date(2024, 8, 30)])
        return sale.installments[0]

    def test_marks_paid_without_register(self, db_session, admin_user, shop_client):
        inst = self._pending(db_session, shop_client, admin_user)

        paid = mark_paid(admin_user, inst.id, date(2024, 7, 2), "pix")

        assert paid.status == "paid"
        assert paid.payment_method == "pix"
        assert paid.paid_at.date() == date(2024, 7, 2)
        assert db_session.query(CashTransaction).count() == 0

    def test_appends_ledger_entry_when_register_open(self, db_session, admin_user, shop_client):
        inst = self._pending(db_session, shop_client, admin_user)
        register = register_service.open_register(admin_user, 1000)

        mark_paid(admin_user, inst.id, date(2024, 7, 2), "money")

        tx = db_session.query(CashTransaction).filter_by(type=TX_INSTALLMENT_PAYMENT).one()
        assert tx.register_id == register.id
        assert tx.installment_id == inst.id
        assert tx.amount_cents == 833
        assert tx.created_at.date() == date(2024, 7, 2)
        assert tx.description == "Installment payment - Maria Silva - Cash"
        assert register_service.current_balance(register.id) == 1833

    def test_already_paid_rejected(self, db_session, admin_user, shop_client):
        inst = self._pending(db_session, shop_client, admin_user)
        mark_paid(admin_user, inst.id, date(2024, 7, 2), "pix")

        with pytest.raises(InstallmentError):
            mark_paid(admin_user, inst.id, date(2024, 7, 3), "pix")

    def test_overdue_can_be_paid(self, db_session, admin_user, shop_client):
        inst = self._pending(db_session, shop_client, admin_user)
        inst.status = "overdue"
        db_session.commit()

        assert mark_paid(admin_user, inst.id, date(2024, 9, 1), "debit").status == "paid"

    def test_regular_user_denied(self, db_session, operator, shop_client):
        inst = self._pending(db_session, shop_client, operator)

        with pytest.raises(PermissionDeniedError):
            mark_paid(operator, inst.id, date(2024, 7, 2), "pix")
        assert db_session.get(Installment, inst.id).status == "pending"

    def test_unknown_installment(self, db_session, admin_user):
        with pytest.raises(InstallmentError) as exc:
            mark_paid(admin_user, 999, date(2024, 7, 2), "pix")
        assert exc.value.not_found

    def test_unknown_method(self, db_session, admin_user, shop_client):
        inst = self._pending(db_session, shop_client, admin_user)
        with pytest.raises(InstallmentError):
            mark_paid(admin_user, inst.id, date(2024, 7, 2), "barter")
