"""
Checkout Orchestrator

WHY: Turning a cart into a sale touches five tables (sales, sale_lines,
installments, products, cash_transactions). Either all of it happens or
none of it does.

FLOW (one database transaction):
    validate -> sale -> line_items -> installments -> stock
             -> cash_transaction -> commit
Any failure rolls the whole transaction back and raises CheckoutError
tagged with the stage that failed. The receipt is built after commit from
the committed rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import Client, Sale, SaleLine, User
from ..models.registers import TX_SALE
from ..models.sales import METHOD_MONEY, PAYMENT_METHOD_LABELS, installment_tag, payment_method_label
from shopdesk.time_utils import utcnow
from .cart import Cart
from .installment_service import MIN_INSTALLMENTS, build_schedule
from .permission_service import require_permission
from .register_service import get_open_register, record_transaction
from .stock_service import InsufficientStockError, decrement_stock

logger = logging.getLogger(__name__)

KIND_CASH = "cash"
KIND_INSTALLMENT = "installment"
PAYMENT_KINDS = (KIND_CASH, KIND_INSTALLMENT)

STAGE_VALIDATE = "validate"
STAGE_SALE = "sale"
STAGE_LINE_ITEMS = "line_items"
STAGE_INSTALLMENTS = "installments"
STAGE_STOCK = "stock"
STAGE_CASH_TRANSACTION = "cash_transaction"
STAGE_COMMIT = "commit"

DEFAULT_MAX_INSTALLMENTS = 12


class CheckoutError(Exception):
    """Raised when checkout fails. Nothing was persisted."""

    def __init__(self, stage: str, message: str, details: dict | None = None):
        super().__init__(message)
        self.stage = stage
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "stage": self.stage, "details": self.details}


@dataclass
class PaymentChoice:
    """
    kind="cash": paid now with `method` (money/pix/debit/credit);
        amount_tendered_cents is required for money.
    kind="installment": credit card in `installments` monthly payments.
    """
    kind: str
    method: str | None = None
    installments: int | None = None
    amount_tendered_cents: int | None = None

    @property
    def is_installment(self) -> bool:
        return self.kind == KIND_INSTALLMENT

    @property
    def tag(self) -> str:
        if self.is_installment:
            return installment_tag(self.installments)
        return self.method


@dataclass
class CheckoutResult:
    sale: Sale
    receipt: dict


def _max_installments() -> int:
    return current_app.config.get("MAX_INSTALLMENTS", DEFAULT_MAX_INSTALLMENTS)


def _validate(cart: Cart, client_id: int | None, payment: PaymentChoice) -> Client:
    if client_id is None:
        raise CheckoutError(STAGE_VALIDATE, "Select a client")

    client = db.session.get(Client, client_id)
    if not client:
        raise CheckoutError(STAGE_VALIDATE, "Client not found", {"client_id": client_id})

    if cart.is_empty():
        raise CheckoutError(STAGE_VALIDATE, "Cart is empty")

    if payment.kind not in PAYMENT_KINDS:
        raise CheckoutError(STAGE_VALIDATE, f"Unknown payment kind: {payment.kind}")

    total = cart.total()

    if payment.is_installment:
        n = payment.installments
        max_n = _max_installments()
        if not isinstance(n, int) or n < MIN_INSTALLMENTS or n > max_n:
            raise CheckoutError(
                STAGE_VALIDATE,
                f"Installments must be between {MIN_INSTALLMENTS} and {max_n}",
                {"installments": n},
            )
        return client

    if payment.method not in PAYMENT_METHOD_LABELS:
        raise CheckoutError(STAGE_VALIDATE, f"Unknown payment method: {payment.method}")

    if payment.method == METHOD_MONEY:
        tendered = payment.amount_tendered_cents
        if tendered is None:
            raise CheckoutError(STAGE_VALIDATE, "Amount tendered is required for cash payments")
        if tendered < total:
            raise CheckoutError(
                STAGE_VALIDATE,
                "Insufficient payment",
                {"total_cents": total, "amount_tendered_cents": tendered},
            )

    return client


def checkout(cart: Cart, client_id: int | None, payment: PaymentChoice, operator: User) -> CheckoutResult:
    """
    Persist a sale for the cart.

    Postconditions on success:
    - stock of every line decreased by its quantity
    - pending installments exist iff the payment is an installment plan
    - a sale ledger entry exists iff payment is cash and the operator has
      an open register

    Raises:
        PermissionDeniedError: operator may not create sales
        CheckoutError: any failure, with .stage naming where it happened
    """
    require_permission(operator, "CREATE_SALE", resource="sales.checkout")

    client = _validate(cart, client_id, payment)
    total = cart.total()

    stage = STAGE_SALE
    try:
        now = utcnow()
        sale = Sale(
            client_id=client.id,
            user_id=operator.id,
            total_cents=total,
            payment_method=payment.tag,
            created_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        stage = STAGE_LINE_ITEMS
        for line in cart:
            db.session.add(SaleLine(
                sale_id=sale.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                line_total_cents=line.line_total_cents,
                created_at=now,
            ))
        db.session.flush()

        if payment.is_installment:
            stage = STAGE_INSTALLMENTS
            for inst in build_schedule(sale, payment.installments, now.date()):
                db.session.add(inst)
            db.session.flush()

        stage = STAGE_STOCK
        for line in cart:
            decrement_stock(line.product_id, line.quantity)

        if not payment.is_installment:
            register = get_open_register(operator.id)
            if register:
                stage = STAGE_CASH_TRANSACTION
                amount = total
                if payment.method == METHOD_MONEY:
                    amount = min(payment.amount_tendered_cents, total)
                record_transaction(
                    register.id,
                    f"Sale #{sale.reference} - {client.name}",
                    amount,
                    TX_SALE,
                    sale_id=sale.id,
                    occurred_at=now,
                    commit=False,
                )

        stage = STAGE_COMMIT
        db.session.commit()
    except InsufficientStockError as exc:
        db.session.rollback()
        logger.warning("Checkout failed at stage %s: %s", stage, exc)
        raise CheckoutError(stage, str(exc), exc.to_dict())
    except Exception as exc:
        db.session.rollback()
        logger.exception("Checkout failed at stage %s", stage)
        raise CheckoutError(stage, f"Checkout failed at stage '{stage}'", {"reason": str(exc)}) from exc

    logger.info("Sale %s completed by user %s: %s cents via %s", sale.id, operator.id, total, sale.payment_method)
    return CheckoutResult(sale=sale, receipt=build_receipt(sale, payment))


def build_receipt(sale: Sale, payment: PaymentChoice | None = None) -> dict:
    """Structured receipt of a committed sale."""
    receipt = {
        "sale_id": sale.id,
        "reference": sale.reference,
        "created_at": sale.to_dict()["created_at"],
        "client_name": sale.client.name if sale.client else None,
        "operator_name": (sale.user.full_name or sale.user.email) if sale.user else None,
        "lines": [line.to_dict() for line in sale.lines],
        "total_cents": sale.total_cents,
        "payment_method": sale.payment_method,
        "payment_method_label": payment_method_label(sale.payment_method),
        "amount_tendered_cents": None,
        "change_cents": None,
        "installment_count": None,
        "installment_amount_cents": None,
    }

    if payment is not None and payment.kind == KIND_CASH and payment.method == METHOD_MONEY:
        tendered = payment.amount_tendered_cents or 0
        receipt["amount_tendered_cents"] = tendered
        receipt["change_cents"] = max(0, tendered - sale.total_cents)

    if sale.installments:
        receipt["installment_count"] = len(sale.installments)
        receipt["installment_amount_cents"] = sale.installments[0].amount_cents
        receipt["installments"] = [inst.to_dict() for inst in sale.installments]

    return receipt
