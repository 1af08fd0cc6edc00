"""
Checkout orchestrator tests.

Verifies:
- Cash and installment sales persist sale, lines, stock and ledger together
- Installment schedule: count, numbering, due dates, remainder on the last
- Failures roll everything back and name the failing stage
"""

from datetime import timedelta

import pytest

from shopdesk.models import CashTransaction, Installment, Product, Sale, SaleLine
from shopdesk.models.registers import TX_SALE
from shopdesk.services import register_service
from shopdesk.services.cart import Cart
from shopdesk.services.checkout_service import CheckoutError, PaymentChoice, checkout
from shopdesk.services.permission_service import PermissionDeniedError


def _cart(*items):
    """items: (product, quantity) pairs."""
    cart = Cart()
    for product, quantity in items:
        cart.add_item(product)
        if quantity > 1:
            cart.change_quantity(product.id, quantity - 1)
    return cart


def _money(tendered):
    return PaymentChoice(kind="cash", method="money", amount_tendered_cents=tendered)


class TestCashCheckout:

    def test_persists_sale_lines_and_stock(self, db_session, operator, shop_client, product_a, product_b):
        cart = _cart((product_a, 2), (product_b, 1))

        result = checkout(cart, shop_client.id, _money(3000), operator)

        sale = db_session.get(Sale, result.sale.id)
        assert sale.total_cents == 2500
        assert sale.payment_method == "money"
        assert sale.user_id == operator.id
        assert len(sale.lines) == 2
        assert db_session.get(Product, product_a.id).stock_quantity == 8
        assert db_session.get(Product, product_b.id).stock_quantity == 3
        assert db_session.query(Installment).count() == 0

    def test_receipt_change(self, db_session, operator, shop_client, product_a):
        result = checkout(_cart((product_a, 1)), shop_client.id, _money(2000), operator)

        receipt = result.receipt
        assert receipt["total_cents"] == 1000
        assert receipt["amount_tendered_cents"] == 2000
        assert receipt["change_cents"] == 1000
        assert receipt["payment_method_label"] == "Cash"
        assert receipt["reference"] == f"{result.sale.id:06d}"

    def test_ledger_entry_when_register_open(self, db_session, operator, shop_client, product_a):
        register = register_service.open_register(operator, 10000)

        result = checkout(_cart((product_a, 1)), shop_client.id, _money(5000), operator)

        tx = db_session.query(CashTransaction).filter_by(type=TX_SALE).one()
        assert tx.register_id == register.id
        assert tx.sale_id == result.sale.id
        # Change handed back is not kept in the drawer
        assert tx.amount_cents == 1000
        assert tx.description == f"Sale #{result.sale.id:06d} - Maria Silva"
        assert register_service.current_balance(register.id) == 11000

    def test_non_money_method_records_total(self, db_session, operator, shop_client, product_a):
        register_service.open_register(operator, 0)

        checkout(_cart((product_a, 3)), shop_client.id, PaymentChoice(kind="cash", method="pix"), operator)

        tx = db_session.query(CashTransaction).filter_by(type=TX_SALE).one()
        assert tx.amount_cents == 3000

    def test_no_ledger_entry_without_open_register(self, db_session, operator, shop_client, product_a):
        checkout(_cart((product_a, 1)), shop_client.id, _money(1000), operator)
        assert db_session.query(CashTransaction).count() == 0

    def test_insufficient_tender_persists_nothing(self, db_session, operator, shop_client, product_a, product_b):
        # 15.00 due, 10.00 tendered
        cart = _cart((product_a, 1), (product_b, 1))

        with pytest.raises(CheckoutError) as exc:
            checkout(cart, shop_client.id, _money(1000), operator)

        assert exc.value.stage == "validate"
        assert db_session.query(Sale).count() == 0
        assert db_session.get(Product, product_a.id).stock_quantity == 10


class TestInstallmentCheckout:

    def test_three_installments_of_25(self, db_session, operator, shop_client, product_a, product_b):
        cart = _cart((product_a, 2), (product_b, 1))

        result = checkout(cart, shop_client.id, PaymentChoice(kind="installment", installments=3), operator)

        sale = db_session.get(Sale, result.sale.id)
        assert sale.total_cents == 2500
        assert sale.payment_method == "credit_card_3x"

        installments = sorted(sale.installments, key=lambda i: i.installment_number)
        assert [i.installment_number for i in installments] == [1, 2, 3]
        assert [i.amount_cents for i in installments] == [833, 833, 834]
        assert sum(i.amount_cents for i in installments) == 2500
        assert all(i.status == "pending" for i in installments)

        sale_day = sale.created_at.date()
        assert [i.due_date for i in installments] == [
            sale_day + timedelta(days=30),
            sale_day + timedelta(days=60),
            sale_day + timedelta(days=90),
        ]

        assert result.receipt["installment_count"] == 3
        assert result.receipt["payment_method_label"] == "Credit (3x)"

    def test_installment_sale_skips_ledger(self, db_session, operator, shop_client, product_a):
        register_service.open_register(operator, 0)

        checkout(_cart((product_a, 1)), shop_client.id, PaymentChoice(kind="installment", installments=2), operator)

        assert db_session.query(CashTransaction).filter_by(type=TX_SALE).count() == 0

    @pytest.mark.parametrize("n", [1, 13, None])
    def test_installment_count_out_of_range(self, db_session, operator, shop_client, product_a, n):
        with pytest.raises(CheckoutError) as exc:
            checkout(_cart((product_a, 1)), shop_client.id, PaymentChoice(kind="installment", installments=n), operator)
        assert exc.value.stage == "validate"


class TestPreconditions:

    def test_missing_client(self, db_session, operator, product_a):
        with pytest.raises(CheckoutError) as exc:
            checkout(_cart((product_a, 1)), None, _money(1000), operator)
        assert exc.value.stage == "validate"

    def test_unknown_client(self, db_session, operator, product_a):
        with pytest.raises(CheckoutError):
            checkout(_cart((product_a, 1)), 999, _money(1000), operator)

    def test_empty_cart(self, db_session, operator, shop_client):
        with pytest.raises(CheckoutError):
            checkout(Cart(), shop_client.id, _money(1000), operator)

    def test_unknown_method(self, db_session, operator, shop_client, product_a):
        with pytest.raises(CheckoutError):
            checkout(_cart((product_a, 1)), shop_client.id, PaymentChoice(kind="cash", method="cheque"), operator)

    def test_inactive_operator_denied(self, db_session, operator, shop_client, product_a):
        operator.is_active = False
        db_session.commit()
        with pytest.raises(PermissionDeniedError):
            checkout(_cart((product_a, 1)), shop_client.id, _money(1000), operator)


class TestAtomicity:

    def test_stock_race_rolls_back_everything(self, db_session, operator, shop_client, product_a, product_b):
        register_service.open_register(operator, 0)
        cart = _cart((product_a, 2), (product_b, 3))

        # Stock sold elsewhere after the cart was built
        db_session.query(Product).filter_by(id=product_b.id).update({"stock_quantity": 1})
        db_session.commit()

        with pytest.raises(CheckoutError) as exc:
            checkout(cart, shop_client.id, _money(10000), operator)

        assert exc.value.stage == "stock"
        assert exc.value.details["product_id"] == product_b.id
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleLine).count() == 0
        assert db_session.query(CashTransaction).filter_by(type=TX_SALE).count() == 0
        assert db_session.get(Product, product_a.id).stock_quantity == 10
        assert db_session.get(Product, product_b.id).stock_quantity == 1

    def test_installment_failure_leaves_no_installments(self, db_session, operator, shop_client, product_a):
        cart = _cart((product_a, 5))
        db_session.query(Product).filter_by(id=product_a.id).update({"stock_quantity": 2})
        db_session.commit()

        with pytest.raises(CheckoutError):
            checkout(cart, shop_client.id, PaymentChoice(kind="installment", installments=4), operator)

        assert db_session.query(Installment).count() == 0
        assert db_session.query(Sale).count() == 0
