# backend/shopdesk/services/products_service.py
"""
Products Service

- Product codes are unique; when the caller leaves the code out, one is
  generated: "PROD" + last six digits of the millisecond clock + two random
  digits.
- Stock is not writable here. Quantities only move through
  stock_service (adjustments, purchases) and checkout.
"""
from __future__ import annotations

import random
import time

from ..extensions import db
from ..models import Product, SaleLine, Purchase
from ..validation import ConflictError

PRODUCT_MUTABLE_FIELDS = {"name", "code", "price_cents", "category", "unit", "min_stock_threshold"}

CODE_GENERATION_ATTEMPTS = 5


class ProductNotFoundError(LookupError):
    pass


def generate_product_code(now_ms: int | None = None, rng: random.Random | None = None) -> str:
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    rng = rng or random
    return f"PROD{str(now_ms)[-6:]}{rng.randint(0, 98):02d}"


def _code_taken(code: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Product.id).filter(Product.code == code)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


def _unique_generated_code() -> str:
    for _ in range(CODE_GENERATION_ATTEMPTS):
        code = generate_product_code()
        if not _code_taken(code):
            return code
    raise ConflictError("Could not generate a unique product code, supply one explicitly")


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise ProductNotFoundError("Product not found")
    return product


def list_products(
    search: str | None = None,
    in_stock_only: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing ordered by name, with optional pagination.

    Args:
        search: case-insensitive match on name, code or category
        in_stock_only: only products with stock_quantity > 0 (what checkout offers)
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product)

    if search:
        pattern = f"%{search.strip()}%"
        base_query = base_query.filter(db.or_(
            Product.name.ilike(pattern),
            Product.code.ilike(pattern),
            Product.category.ilike(pattern),
        ))

    if in_stock_only:
        base_query = base_query.filter(Product.stock_quantity > 0)

    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def low_stock_products(limit: int | None = None) -> list[Product]:
    """Products at or below their minimum threshold, lowest stock first."""
    query = (
        db.session.query(Product)
        .filter(Product.stock_quantity <= Product.min_stock_threshold)
        .order_by(Product.stock_quantity.asc(), Product.name.asc())
    )
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def create_product(*, patch: dict) -> Product:
    """
    Create product from a validated patch dict.

    Raises:
        ConflictError: If the code already exists
    """
    code = patch.get("code")
    if code:
        if _code_taken(code):
            raise ConflictError(f"Product code '{code}' already exists")
    else:
        patch = {**patch, "code": _unique_generated_code()}

    product = Product(stock_quantity=0)
    apply_product_patch(product, patch)

    db.session.add(product)
    db.session.commit()
    return product


def update_product(product_id: int, *, patch: dict) -> Product:
    product = get_product(product_id)

    code = patch.get("code")
    if code and _code_taken(code, exclude_id=product_id):
        raise ConflictError(f"Product code '{code}' already exists")

    apply_product_patch(product, patch)
    db.session.commit()
    return product


def delete_product(product_id: int) -> None:
    """Delete a product that never appeared on a sale or purchase."""
    product = get_product(product_id)

    sold = db.session.query(SaleLine.id).filter_by(product_id=product_id).first() is not None
    purchased = db.session.query(Purchase.id).filter_by(product_id=product_id).first() is not None
    if sold or purchased:
        raise ConflictError("Product has sales or purchases and cannot be deleted")

    db.session.delete(product)
    db.session.commit()
