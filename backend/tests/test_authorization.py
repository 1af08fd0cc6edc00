"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Regular users are denied admin-only operations (403) and the denial is logged
- Admins can perform privileged operations
- Login, logout and token revocation
"""

import pytest

from shopdesk.models import SecurityEvent

from conftest import get_auth_token, auth_headers


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/clients"),
            ("POST", "/api/clients"),
            ("GET", "/api/products"),
            ("GET", "/api/products/low-stock"),
            ("POST", "/api/stock/adjust"),
            ("GET", "/api/stock/purchases"),
            ("POST", "/api/sales/checkout"),
            ("GET", "/api/sales"),
            ("GET", "/api/installments"),
            ("POST", "/api/installments/1/pay"),
            ("GET", "/api/registers/current"),
            ("POST", "/api/registers/open"),
            ("GET", "/api/reports/dashboard"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token_rejected(self, client, db_session):
        resp = client.get("/api/clients", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401

    def test_health_is_public(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] in ("healthy", "degraded")


# =============================================================================
# REGULAR USER DENIED ADMIN OPERATIONS (403)
# =============================================================================


class TestUserDeniedAdminOperations:

    def test_cannot_create_client(self, client, operator_headers):
        resp = client.post("/api/clients", json={"name": "X"}, headers=operator_headers)
        assert resp.status_code == 403

    def test_cannot_create_product(self, client, operator_headers):
        resp = client.post("/api/products", json={"name": "X", "price_cents": 1}, headers=operator_headers)
        assert resp.status_code == 403

    def test_cannot_adjust_stock(self, client, operator_headers, product_a):
        resp = client.post(
            "/api/stock/adjust",
            json={"product_id": product_a.id, "quantity": 1, "direction": "add"},
            headers=operator_headers,
        )
        assert resp.status_code == 403

    def test_cannot_receive_installment(self, client, operator_headers):
        resp = client.post("/api/installments/1/pay", json={"payment_method": "pix"}, headers=operator_headers)
        assert resp.status_code == 403

    def test_cannot_view_dashboard(self, client, operator_headers):
        resp = client.get("/api/reports/dashboard", headers=operator_headers)
        assert resp.status_code == 403

    def test_denial_is_logged(self, client, db_session, operator, operator_headers):
        client.get("/api/reports/dashboard", headers=operator_headers)

        event = db_session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").one()
        assert event.user_id == operator.id
        assert event.action == "VIEW_REPORTS"
        assert event.success is False

    def test_can_record_purchase(self, client, operator_headers, product_a):
        resp = client.post(
            "/api/stock/purchases",
            json={"product_id": product_a.id, "quantity": 3},
            headers=operator_headers,
        )
        assert resp.status_code == 201


# =============================================================================
# ADMIN ALLOWED
# =============================================================================


class TestAdminAllowed:

    def test_admin_creates_client(self, client, admin_headers):
        resp = client.post("/api/clients", json={"name": "New Client", "email": "n@example.com"}, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.json["name"] == "New Client"

    def test_admin_views_dashboard(self, client, admin_headers):
        resp = client.get("/api/reports/dashboard", headers=admin_headers)
        assert resp.status_code == 200
        assert "sales_today_cents" in resp.json


# =============================================================================
# SESSIONS
# =============================================================================


class TestSessions:

    def test_login_wrong_password(self, client, operator):
        resp = client.post("/api/auth/login", json={"email": operator.email, "password": "Wrong123!"})
        assert resp.status_code == 401

    def test_me_returns_permissions(self, client, operator_headers):
        resp = client.get("/api/auth/me", headers=operator_headers)
        assert resp.status_code == 200
        assert "CREATE_SALE" in resp.json["permissions"]
        assert "RECEIVE_INSTALLMENT" not in resp.json["permissions"]

    def test_logout_revokes_token(self, client, operator):
        token = get_auth_token(client, operator.email)
        headers = auth_headers(token)

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_deactivated_user_token_rejected(self, client, db_session, operator, operator_headers):
        operator.is_active = False
        db_session.commit()
        assert client.get("/api/auth/me", headers=operator_headers).status_code == 401
