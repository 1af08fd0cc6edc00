"""
Reporting tests: dashboard aggregates and sales history ranges.
"""

from datetime import date, datetime

import pytest

from shopdesk.models import Sale, SaleLine
from shopdesk.services import reporting_service
from shopdesk.services.reporting_service import ReportError

from conftest import make_product


def _sale_at(db_session, client, user, product, when, quantity=1):
    sale = Sale(
        client_id=client.id,
        user_id=user.id,
        total_cents=product.price_cents * quantity,
        payment_method="pix",
        created_at=when,
    )
    db_session.add(sale)
    db_session.flush()
    db_session.add(SaleLine(
        sale_id=sale.id,
        product_id=product.id,
        quantity=quantity,
        unit_price_cents=product.price_cents,
        line_total_cents=product.price_cents * quantity,
    ))
    db_session.commit()
    return sale


def test_dashboard_stats(db_session, operator, shop_client, product_a, product_b):
    day = date(2024, 6, 1)
    _sale_at(db_session, shop_client, operator, product_a, datetime(2024, 6, 1, 9, 0), quantity=2)
    _sale_at(db_session, shop_client, operator, product_b, datetime(2024, 6, 1, 23, 59, 59))
    _sale_at(db_session, shop_client, operator, product_a, datetime(2024, 5, 31, 23, 0))

    for i in range(6):
        make_product(db_session, name=f"Low {i}", code=f"LOW-{i}", price_cents=100, stock=i, min_stock=5)

    stats = reporting_service.dashboard_stats(day)

    assert stats["sales_today_cents"] == 2500
    assert stats["sales_today_count"] == 2
    assert stats["client_count"] == 1
    # product_b (4 <= 5) plus LOW-0..LOW-5
    assert stats["low_stock_count"] == 7
    assert len(stats["low_stock_products"]) == 5
    assert stats["low_stock_products"][0]["stock_quantity"] == 0


def test_sales_history_range_inclusive(db_session, operator, shop_client, product_a):
    _sale_at(db_session, shop_client, operator, product_a, datetime(2024, 6, 1, 0, 0))
    _sale_at(db_session, shop_client, operator, product_a, datetime(2024, 6, 2, 23, 59, 59))
    _sale_at(db_session, shop_client, operator, product_a, datetime(2024, 6, 3, 0, 0, 1))

    history = reporting_service.sales_history(date(2024, 6, 1), date(2024, 6, 2))

    assert len(history) == 2
    assert history[0]["created_at"] > history[1]["created_at"]
    assert history[0]["client_name"] == "Maria Silva"
    assert history[0]["payment_method_label"] == "PIX"
    assert history[0]["lines"][0]["product_code"] == "PROD-A"


def test_sales_history_rejects_inverted_range(db_session):
    with pytest.raises(ReportError):
        reporting_service.sales_history(date(2024, 6, 2), date(2024, 6, 1))
