# Overview: Read-only aggregates for the dashboard and the sales history screen.

from __future__ import annotations

from datetime import date

from sqlalchemy import func
from sqlalchemy.orm import joinedload, selectinload

from shopdesk.extensions import db
from shopdesk.models import Product, Sale, SaleLine
from shopdesk.services.client_service import count_clients
from shopdesk.time_utils import day_bounds, today as current_day

DASHBOARD_LOW_STOCK_LIMIT = 5


class ReportError(Exception):
    """Raised when report parameters are invalid."""
    pass


def dashboard_stats(today: date | None = None) -> dict:
    """
    Headline numbers: today's sales total, client count, and the products
    running low (count plus the five with the least stock).
    """
    today = today or current_day()
    start_dt, end_dt = day_bounds(today)

    sales_today_cents = db.session.query(func.coalesce(func.sum(Sale.total_cents), 0)).filter(
        Sale.created_at >= start_dt,
        Sale.created_at <= end_dt,
    ).scalar()

    sales_today_count = db.session.query(func.count(Sale.id)).filter(
        Sale.created_at >= start_dt,
        Sale.created_at <= end_dt,
    ).scalar()

    client_count = count_clients()

    low_stock_filter = Product.stock_quantity <= Product.min_stock_threshold
    low_stock_count = db.session.query(func.count(Product.id)).filter(low_stock_filter).scalar()
    low_stock = (
        db.session.query(Product)
        .filter(low_stock_filter)
        .order_by(Product.stock_quantity.asc(), Product.name.asc())
        .limit(DASHBOARD_LOW_STOCK_LIMIT)
        .all()
    )

    return {
        "date": today.isoformat(),
        "sales_today_cents": int(sales_today_cents or 0),
        "sales_today_count": int(sales_today_count or 0),
        "client_count": int(client_count or 0),
        "low_stock_count": int(low_stock_count or 0),
        "low_stock_products": [p.to_dict() for p in low_stock],
    }


def sales_history(start_date: date, end_date: date) -> list[dict]:
    """
    Sales from the start of start_date to the end of end_date (inclusive),
    newest first, each with its line items.
    """
    if end_date < start_date:
        raise ReportError("end_date must be on or after start_date")

    start_dt, end_dt = day_bounds(start_date, end_date)

    sales = (
        db.session.query(Sale)
        .options(
            joinedload(Sale.client),
            selectinload(Sale.lines).joinedload(SaleLine.product),
        )
        .filter(Sale.created_at >= start_dt, Sale.created_at <= end_dt)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .all()
    )

    return [sale.to_dict(include_lines=True) for sale in sales]
