# Overview: Stock movements: manual adjustments, purchases (restocking) and the checkout decrement.

"""
Stock Invariants (authoritative)

- Product.stock_quantity is the on-hand count and never goes negative.
- Every decrement is a single conditional UPDATE:
      stock_quantity = stock_quantity - q  WHERE id = ? AND stock_quantity >= q
  Zero affected rows means the stock was not there; no read-then-write gap
  exists for two concurrent sales to slip through.
- Increments (purchases, positive adjustments) are relative UPDATEs too, so
  a concurrent sale is never overwritten by a stale value.
- A purchase row and its stock increment commit together.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import update

from ..extensions import db
from ..models import Product, Purchase, User
from ..validation import ValidationError
from shopdesk.time_utils import today
from .concurrency import run_with_retry
from .permission_service import require_permission

DIRECTION_ADD = "add"
DIRECTION_REMOVE = "remove"
DIRECTIONS = (DIRECTION_ADD, DIRECTION_REMOVE)


class InsufficientStockError(Exception):
    """Raised when a conditional decrement matched no row."""

    def __init__(self, product_id: int, requested: int, available: int | None = None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        message = f"Insufficient stock for product {product_id}: requested {requested}"
        if available is not None:
            message += f", available {available}"
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "requested": self.requested,
            "available": self.available,
        }


class StockError(Exception):
    """Raised for invalid stock operations (unknown product, bad quantity)."""
    pass


def _require_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise StockError("Product not found")
    return product


def _increment_stock(product_id: int, quantity: int) -> None:
    db.session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock_quantity=Product.stock_quantity + quantity)
        .execution_options(synchronize_session=False)
    )


def decrement_stock(product_id: int, quantity: int) -> None:
    """
    Compare-and-decrement. Does not commit.

    Raises:
        InsufficientStockError: stock_quantity < quantity (or unknown product)
    """
    if quantity <= 0:
        raise StockError("quantity must be positive")

    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock_quantity >= quantity)
        .values(stock_quantity=Product.stock_quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        available = db.session.query(Product.stock_quantity).filter(Product.id == product_id).scalar()
        raise InsufficientStockError(product_id, quantity, available)


def adjust_stock(
    operator: User,
    product_id: int,
    quantity: int,
    direction: str,
) -> Product:
    """
    Manual add/remove of stock (counts, breakage, returns to supplier).

    Removing more than is on hand is rejected with ValidationError.
    """
    require_permission(operator, "ADJUST_STOCK", resource="stock.adjust")

    if direction not in DIRECTIONS:
        raise ValidationError(f"direction must be one of: {', '.join(DIRECTIONS)}")
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")

    def _op():
        product = _require_product(product_id)

        if direction == DIRECTION_ADD:
            _increment_stock(product_id, quantity)
        else:
            try:
                decrement_stock(product_id, quantity)
            except InsufficientStockError as exc:
                db.session.rollback()
                raise ValidationError(
                    f"Stock cannot go negative (on hand {exc.available}, removing {quantity})"
                )

        db.session.commit()
        db.session.refresh(product)
        return product

    return run_with_retry(_op)


def record_purchase(
    operator: User,
    product_id: int,
    quantity: int,
    purchase_date: date | None = None,
    file_url: str | None = None,
) -> Purchase:
    """
    Record a restocking purchase and increment the product's stock.

    WHY one transaction: a purchase row without its stock increment (or the
    other way around) would make the purchase history disagree with the
    shelves.
    """
    require_permission(operator, "RECORD_PURCHASE", resource="stock.purchases")

    if quantity <= 0:
        raise ValidationError("quantity must be > 0")

    def _op():
        _require_product(product_id)

        purchase = Purchase(
            product_id=product_id,
            quantity=quantity,
            purchase_date=purchase_date or today(),
            file_url=file_url,
            created_by_user_id=operator.id,
        )
        db.session.add(purchase)
        _increment_stock(product_id, quantity)

        db.session.commit()
        return purchase

    return run_with_retry(_op)


def list_purchases(limit: int = 200) -> list[Purchase]:
    """Purchases newest first."""
    return (
        db.session.query(Purchase)
        .order_by(Purchase.purchase_date.desc(), Purchase.id.desc())
        .limit(limit)
        .all()
    )
