# Overview: In-memory cart built before checkout; no database writes.

"""
Cart Builder

RULES:
- A line's quantity always lies in [1, product stock at the time it was added].
- unit_price_cents is captured when the product is first added; later catalog
  price changes do not reprice the cart.
- Out-of-range additions and quantity changes are silent no-ops at the UI
  level. from_requested_lines() is the strict variant used by the API: it
  raises CartError when a requested quantity could not be honored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from ..models import Product


class CartError(Exception):
    """Raised when a requested cart cannot be built as asked."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass
class CartLine:
    product_id: int
    name: str
    code: str
    unit_price_cents: int
    quantity: int
    stock_quantity: int

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "code": self.code,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
        }


class Cart:
    def __init__(self):
        self._lines: dict[int, CartLine] = {}

    def __iter__(self) -> Iterator[CartLine]:
        return iter(list(self._lines.values()))

    def __len__(self) -> int:
        return len(self._lines)

    def get(self, product_id: int) -> CartLine | None:
        return self._lines.get(product_id)

    def is_empty(self) -> bool:
        return not self._lines

    def add_item(self, product: Product) -> None:
        """+1 for a product already in the cart, else a new line of 1 at the current price."""
        line = self._lines.get(product.id)
        if line is not None:
            line.stock_quantity = product.stock_quantity
            if line.quantity + 1 <= line.stock_quantity:
                line.quantity += 1
            return

        if product.stock_quantity < 1:
            return

        self._lines[product.id] = CartLine(
            product_id=product.id,
            name=product.name,
            code=product.code,
            unit_price_cents=product.price_cents,
            quantity=1,
            stock_quantity=product.stock_quantity,
        )

    def change_quantity(self, product_id: int, delta: int) -> None:
        """Applied only if the new quantity stays within [1, stock]. Never removes."""
        line = self._lines.get(product_id)
        if line is None:
            return
        new_quantity = line.quantity + delta
        if 1 <= new_quantity <= line.stock_quantity:
            line.quantity = new_quantity

    def remove_item(self, product_id: int) -> None:
        self._lines.pop(product_id, None)

    def total(self) -> int:
        return sum(line.line_total_cents for line in self._lines.values())

    def to_dict(self) -> dict:
        return {
            "lines": [line.to_dict() for line in self],
            "total_cents": self.total(),
        }

    @classmethod
    def from_requested_lines(cls, products: Iterable[Product], lines: Iterable[dict]) -> "Cart":
        """
        Build a cart from API input [{"product_id": .., "quantity": ..}, ...].

        Replays add_item / change_quantity, then checks every requested
        quantity landed exactly.
        """
        by_id = {p.id: p for p in products}
        requested: dict[int, int] = {}

        for raw in lines:
            product_id = raw.get("product_id")
            quantity = raw.get("quantity")
            if not isinstance(product_id, int) or isinstance(product_id, bool):
                raise CartError("product_id must be an integer")
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
                raise CartError("quantity must be a positive integer", {"product_id": product_id})
            if product_id not in by_id:
                raise CartError("Product not found", {"product_id": product_id})
            requested[product_id] = requested.get(product_id, 0) + quantity

        cart = cls()
        for product_id, quantity in requested.items():
            product = by_id[product_id]
            cart.add_item(product)
            if quantity > 1:
                cart.change_quantity(product_id, quantity - 1)

            line = cart.get(product_id)
            if line is None or line.quantity != quantity:
                raise CartError(
                    f"Requested quantity not available for {product.name}",
                    {
                        "product_id": product_id,
                        "requested": quantity,
                        "available": product.stock_quantity,
                    },
                )

        return cart
