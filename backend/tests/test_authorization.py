"""
Authorization tests for Fashion Mart.

Verifies:
- Unauthenticated requests return 401
- Each role is denied the other roles' endpoints (403)
- Deactivated users and bad tokens are rejected
- Public catalog and health endpoints need no token
"""

import pytest

from fashionmart.extensions import db
from fashionmart.models import User
from fashionmart.services import session_service

from conftest import auth_headers


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/session"),
            ("GET", "/api/notifications"),
            ("GET", "/api/customer/profile"),
            ("GET", "/api/customer/orders"),
            ("POST", "/api/customer/orders"),
            ("POST", "/api/customer/returns"),
            ("GET", "/api/designer/designs"),
            ("POST", "/api/designer/designs"),
            ("GET", "/api/staff/orders"),
            ("GET", "/api/staff/returns/pending"),
            ("GET", "/api/inventory/products"),
            ("POST", "/api/inventory/categories"),
            ("GET", "/api/inventory/stock/low"),
            ("GET", "/api/admin/dashboard/stats"),
            ("GET", "/api/admin/users"),
            ("POST", "/api/admin/reports/monthly"),
        ],
    )
    def test_requires_auth(self, client, users, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.json["success"] is False
        assert resp.json["error"]["code"] == "UNAUTHENTICATED"

    def test_malformed_token_rejected(self, client, users):
        resp = client.get("/api/auth/session", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    def test_non_bearer_scheme_rejected(self, client, users):
        resp = client.get("/api/auth/session", headers={"Authorization": "Basic abc"})
        assert resp.status_code == 401

    def test_expired_token_rejected(self, client, users):
        token = session_service.issue_token("customer_1", ttl_seconds=-10)
        resp = client.get("/api/auth/session", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_deactivated_user_rejected(self, client, users):
        headers = auth_headers("customer_1")
        db.session.get(User, "customer_1").active = False
        db.session.commit()
        resp = client.get("/api/customer/profile", headers=headers)
        assert resp.status_code == 401


# =============================================================================
# ROLE GATES - 403
# =============================================================================


ROLE_USERS = {
    "admin": "admin_1",
    "customer": "customer_1",
    "designer": "designer_1",
    "staff": "staff_1",
    "inventory_manager": "inventory_1",
}

PUBLIC_API_RULES = {
    "/api/health",
    "/api/version",
    "/api/auth/session",
    "/api/auth/webhook",
    "/api/payments/webhook",
    "/api/products",
    "/api/products/featured",
    "/api/products/<int:product_id>",
    "/api/products/<int:product_id>/availability",
    "/api/products/<int:product_id>/related",
    "/api/categories",
    "/api/categories/<int:category_id>",
}


def _required_roles(app, rule):
    return getattr(app.view_functions[rule.endpoint], "required_roles", None)


def _sample_values(rule) -> dict:
    return {arg: "customer_2" if arg == "user_id" else 1 for arg in rule.arguments}


class TestRoleGates:
    """Every role outside a route's accepted set gets 403."""

    def test_every_api_route_is_public_or_role_gated(self, app):
        ungated = {
            rule.rule
            for rule in app.url_map.iter_rules()
            if rule.rule.startswith("/api/") and _required_roles(app, rule) is None
        }
        assert ungated == PUBLIC_API_RULES

    def test_every_gated_route_denies_excluded_roles(self, app, client, users):
        adapter = app.url_map.bind("localhost")
        checked = 0
        failures = []

        for rule in app.url_map.iter_rules():
            accepted = _required_roles(app, rule)
            if accepted is None:
                continue
            for method in sorted(rule.methods - {"HEAD", "OPTIONS"}):
                url = adapter.build(rule.endpoint, _sample_values(rule), method=method)
                for role, user_id in ROLE_USERS.items():
                    if role in accepted:
                        continue
                    resp = client.open(url, method=method, headers=auth_headers(user_id), json={})
                    checked += 1
                    if resp.status_code != 403 or resp.json["error"]["code"] != "FORBIDDEN":
                        failures.append(f"{role} {method} {url} -> {resp.status_code}")

        assert failures == []
        assert checked > 100

    def test_denied_call_changes_nothing(self, client, users, customer_headers):
        resp = client.patch("/api/admin/users/customer_2/role", json={"role": "admin"}, headers=customer_headers)
        assert resp.status_code == 403
        assert resp.json["error"]["details"]["requiredRoles"] == ["admin"]
        assert db.session.get(User, "customer_2").role == "customer"

    def test_admin_can_list_all_orders(self, client, admin_headers):
        assert client.get("/api/staff/orders", headers=admin_headers).status_code == 200

    def test_admin_can_use_inventory_routes(self, client, admin_headers):
        assert client.get("/api/inventory/products", headers=admin_headers).status_code == 200

    def test_admin_cannot_create_product(self, client, admin_headers, make_design):
        design = make_design()
        resp = client.post(
            "/api/inventory/products",
            json={"designId": design.id, "price": "10.00"},
            headers=admin_headers,
        )
        assert resp.status_code == 403


# =============================================================================
# SESSION & PROVISIONING
# =============================================================================


class TestSession:
    def test_session_returns_caller(self, client, customer_headers):
        resp = client.get("/api/auth/session", headers=customer_headers)
        assert resp.status_code == 200
        data = resp.json["data"]
        assert data["user"]["id"] == "customer_1"
        assert data["user"]["role"] == "customer"
        assert data["unreadNotifications"] == 0

    def test_first_contact_provisions_customer(self, client, app, users):
        token = session_service.issue_token("new_user_9", email="new9@example.com")
        resp = client.get("/api/auth/session", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json["data"]["user"]["role"] == "customer"
        assert db.session.get(User, "new_user_9") is not None

    def test_first_contact_email_is_normalized(self, client, users):
        token = session_service.issue_token("new_user_10", email="  Mixed.Case@Example.COM ")
        resp = client.get("/api/auth/session", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert db.session.get(User, "new_user_10").email == "mixed.case@example.com"

    def test_first_contact_with_taken_email_in_other_case_rejected(self, client, users):
        token = session_service.issue_token("new_user_11", email="Customer@Example.com")
        resp = client.get("/api/auth/session", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert db.session.get(User, "new_user_11") is None

    def test_unknown_user_without_email_rejected(self, client, users):
        token = session_service.issue_token("ghost")
        resp = client.get("/api/auth/session", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


# =============================================================================
# PUBLIC ENDPOINTS
# =============================================================================


class TestPublicAccess:
    @pytest.mark.parametrize(
        "path",
        ["/api/health", "/api/version", "/api/products", "/api/products/featured", "/api/categories"],
    )
    def test_no_token_needed(self, client, users, path):
        assert client.get(path).status_code == 200
