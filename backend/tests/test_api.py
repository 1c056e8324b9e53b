# Overview: HTTP-level tests for the JSON API: auth, error mapping and the till flow.

"""
API tests.

Verifies:
- Unauthenticated requests return 401
- Service errors map to their HTTP status codes
- A full till flow (open shift, checkout, close) works over HTTP
"""

import pytest

from conftest import ADMIN_PIN, PASSWORD, auth_headers


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout"),
            ("GET", "/api/products"),
            ("POST", "/api/inventory/movements"),
            ("POST", "/api/sales"),
            ("POST", "/api/sales/checkout"),
            ("GET", "/api/shifts/current"),
            ("GET", "/api/registers"),
            ("GET", "/api/customers"),
            ("GET", "/api/reports/sales"),
            ("GET", "/api/reports/audit"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid or expired token"


# =============================================================================
# AUTH
# =============================================================================


class TestAuthRoutes:

    def test_register_business_and_login(self, client, db_session):
        resp = client.post("/api/auth/register-business", json={
            "business_name": "Papeleria Sol",
            "location": "Sur 3",
            "business_phone": "5557000000",
            "first_name": "Sol",
            "paternal_last_name": "Diaz",
            "email": "sol@example.com",
            "phone": "5557000001",
            "password": PASSWORD,
        })
        assert resp.status_code == 201
        assert resp.get_json()["user"]["type"] == "owner"

        resp = client.post("/api/auth/login", json={"email": "sol@example.com", "password": PASSWORD})
        assert resp.status_code == 200
        body = resp.get_json()
        assert len(body["token"]) == 64
        assert "users.delete" in body["permissions"]

    def test_register_business_validation_is_400(self, client, db_session):
        resp = client.post("/api/auth/register-business", json={"business_name": ""})
        assert resp.status_code == 400
        assert len(resp.get_json()["details"]["errors"]) >= 3

    def test_bad_login_is_401(self, client, owner):
        resp = client.post("/api/auth/login", json={"email": owner.email, "password": "Nope123!"})
        assert resp.status_code == 401

    def test_login_requires_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"email": "x@y.z"})
        assert resp.status_code == 400

    def test_me_and_logout(self, client, cashier):
        headers = auth_headers(cashier)

        resp = client.get("/api/auth/me", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["user"]["email"] == "cashier@a.test"
        assert "sales.cancel" not in resp.get_json()["permissions"]

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_cashier_cannot_register_users(self, client, cashier):
        resp = client.post("/api/auth/users", headers=auth_headers(cashier), json={
            "first_name": "X", "paternal_last_name": "Y", "email": "x@a.test",
            "phone": "5551999999", "password": PASSWORD,
        })
        assert resp.status_code == 403

    def test_owner_registers_admin(self, client, owner):
        resp = client.post("/api/auth/users", headers=auth_headers(owner), json={
            "first_name": "Ana", "paternal_last_name": "Admin", "email": "ana@a.test",
            "phone": "5551999998", "password": PASSWORD, "type": "admin",
        })
        assert resp.status_code == 201
        assert resp.get_json()["user"]["type"] == "admin"

    def test_grant_permission_over_http(self, client, owner, cashier):
        resp = client.post(
            f"/api/auth/users/{cashier.id}/permissions",
            headers=auth_headers(owner),
            json={"permission": "reports.sales"},
        )
        assert resp.status_code == 201

        resp = client.get(f"/api/auth/users/{cashier.id}/permissions", headers=auth_headers(owner))
        assert "reports.sales" in resp.get_json()["permissions"]


# =============================================================================
# ERROR MAPPING
# =============================================================================


class TestErrorMapping:

    def test_permission_denied_is_403(self, client, cashier, product):
        resp = client.put(
            f"/api/products/{product.id}/price",
            headers=auth_headers(cashier),
            json={"price_cents": 1},
        )
        assert resp.status_code == 403
        assert resp.get_json()["details"]["required_permission"] == "products.adjust_price"

    def test_cross_tenant_is_404(self, client, other_owner, product):
        resp = client.get(f"/api/products/{product.id}", headers=auth_headers(other_owner))
        assert resp.status_code == 404

    def test_duplicate_barcode_is_409(self, client, owner, product):
        resp = client.post("/api/products", headers=auth_headers(owner), json={
            "name": "Dup", "barcode": product.barcode, "price_cents": 100,
        })
        assert resp.status_code == 409

    def test_validation_is_400(self, client, owner, product):
        resp = client.put(
            f"/api/products/{product.id}/tax",
            headers=auth_headers(owner),
            json={"tax_type": "EXENTO", "tax_rate": 5},
        )
        assert resp.status_code == 400
        assert resp.get_json()["details"]["errors"] == ["EXENTO tax rate must be 0%"]

    def test_nan_tax_rate_is_400(self, client, owner):
        resp = client.post(
            "/api/products",
            headers=auth_headers(owner),
            data='{"name": "Soda", "price_cents": 1500, "tax_rate": NaN}',
            content_type="application/json",
        )
        assert resp.status_code == 400
        assert "Tax rate must be a finite number" in resp.get_json()["details"]["errors"]

    def test_non_object_body_is_400(self, client, owner):
        resp = client.post("/api/products", headers=auth_headers(owner), json=[1, 2])
        assert resp.status_code == 400

    def test_bad_datetime_query_is_400(self, client, owner):
        resp = client.get("/api/reports/sales?start=yesterday", headers=auth_headers(owner))
        assert resp.status_code == 400

    def test_unknown_route_is_json_404(self, client, db_session):
        resp = client.get("/api/does-not-exist")
        assert resp.status_code == 404
        assert "error" in resp.get_json()


# =============================================================================
# TILL FLOW
# =============================================================================


class TestTillFlow:

    def test_open_checkout_close(self, client, cashier, register, product):
        headers = auth_headers(cashier)

        resp = client.post(f"/api/registers/{register.id}/shifts", headers=headers, json={"opening_cash_cents": 10000})
        assert resp.status_code == 201
        shift_id = resp.get_json()["shift"]["id"]

        resp = client.post(f"/api/registers/{register.id}/shifts", headers=headers, json={"opening_cash_cents": 0})
        assert resp.status_code == 409

        resp = client.post("/api/sales/checkout", headers=headers, json={
            "items": [{"product_id": product.id, "quantity": 1}],
            "payments": [{"method": "cash", "amount_cents": 10000}],
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["change_cents"] == 4200
        assert body["sale"]["fiscal_number"] == "VENTA-000001"
        assert body["sale"]["payment_status"] == "completed"
        assert len(body["sale"]["items"]) == 1

        resp = client.get(f"/api/inventory/products/{product.id}/stock", headers=headers)
        assert resp.get_json()["current_stock"] == 9

        resp = client.post(f"/api/shifts/{shift_id}/close", headers=headers, json={"actual_cash_cents": 15800})
        assert resp.status_code == 200
        summary = resp.get_json()["summary"]
        assert summary["expected_cash_cents"] == 15800
        assert summary["difference_cents"] == 0

    def test_insufficient_payment_is_402(self, client, cashier, cashier_shift, product):
        resp = client.post("/api/sales/checkout", headers=auth_headers(cashier), json={
            "items": [{"product_id": product.id, "quantity": 1}],
            "payments": [{"method": "cash", "amount_cents": 100}],
        })
        assert resp.status_code == 402
        assert resp.get_json()["details"]["missing_cents"] == 5700

    def test_cancel_needs_pin_over_http(self, client, admin, cashier, cashier_shift, product):
        resp = client.post("/api/sales/checkout", headers=auth_headers(cashier), json={
            "items": [{"product_id": product.id, "quantity": 1}],
            "payments": [{"method": "cash", "amount_cents": 5800}],
        })
        sale_id = resp.get_json()["sale"]["id"]
        admin_headers = auth_headers(admin)

        resp = client.post(f"/api/sales/{sale_id}/cancel", headers=admin_headers, json={"reason": "Oops"})
        assert resp.status_code == 403

        resp = client.post(f"/api/sales/{sale_id}/cancel", headers=admin_headers,
                           json={"reason": "Oops", "pin": ADMIN_PIN})
        assert resp.status_code == 200
        assert resp.get_json()["sale"]["payment_status"] == "cancelled"

        resp = client.get(f"/api/inventory/products/{product.id}/stock", headers=admin_headers)
        assert resp.get_json()["current_stock"] == 10

    def test_fiscal_lookup_and_reports(self, client, owner, cashier, cashier_shift, product):
        client.post("/api/sales/checkout", headers=auth_headers(cashier), json={
            "items": [{"product_id": product.id, "quantity": 1}],
            "payments": [{"method": "card", "amount_cents": 5800}],
        })
        headers = auth_headers(owner)

        resp = client.get("/api/sales/fiscal/VENTA-000001", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["sale"]["total_cents"] == 5800

        report = client.get("/api/reports/sales", headers=headers).get_json()["report"]
        assert report["total_sales"] == 1
        assert report["total_revenue_cents"] == 5800

        tax = client.get("/api/reports/tax", headers=headers).get_json()["report"]
        assert tax["total_tax_collected_cents"] == 800

        logs = client.get("/api/reports/audit?action=sale.completed", headers=headers).get_json()["logs"]
        assert len(logs) == 1


# =============================================================================
# CORS
# =============================================================================


class TestCors:

    def test_allowed_origin_echoed(self, client, db_session):
        resp = client.get("/api/auth/me", headers={"Origin": "http://localhost:5173"})
        assert resp.headers.get("Access-Control-Allow-Origin") == "http://localhost:5173"

    def test_unknown_origin_ignored(self, client, db_session):
        resp = client.get("/api/auth/me", headers={"Origin": "http://evil.test"})
        assert "Access-Control-Allow-Origin" not in resp.headers
