"""
Pytest fixtures for Fashion Mart backend tests.

Provides an in-memory app per test, one user per role, bearer headers and
small builders for the catalog/order/payment flows.
"""

import pytest

from fashionmart import create_app
from fashionmart.extensions import db
from fashionmart.services import (
    category_service,
    design_service,
    products_service,
    session_service,
    user_service,
)


IDENTITY_WEBHOOK_SECRET = "identity-test-secret"

SHIPPING_ADDRESS = {
    "street": "1 Runway Road",
    "city": "Milan",
    "country": "IT",
    "postalCode": "20121",
}


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'UPLOAD_FOLDER': str(tmp_path / "uploads"),
        'PAYMENT_PROVIDER': 'fake',
        'STRIPE_WEBHOOK_SECRET': '',
        'IDENTITY_WEBHOOK_SECRET': IDENTITY_WEBHOOK_SECRET,
        'AUTO_PROVISION_USERS': True,
        'RESTOCK_ON_RETURN_APPROVAL': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


def auth_headers(user_id: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {session_service.issue_token(user_id)}'}


# =============================================================================
# USERS
# =============================================================================

@pytest.fixture
def users(app):
    """One active user per role, plus a second customer and staff member."""
    created = {}
    for user_id, email, role in [
        ("admin_1", "admin@example.com", "admin"),
        ("customer_1", "customer@example.com", "customer"),
        ("customer_2", "other@example.com", "customer"),
        ("designer_1", "designer@example.com", "designer"),
        ("staff_1", "staff@example.com", "staff"),
        ("staff_2", "staff2@example.com", "staff"),
        ("inventory_1", "inventory@example.com", "inventory_manager"),
    ]:
        created[user_id] = user_service.create_user(user_id, email, role=role)
    return created


@pytest.fixture
def admin_headers(users):
    return auth_headers("admin_1")


@pytest.fixture
def customer_headers(users):
    return auth_headers("customer_1")


@pytest.fixture
def other_customer_headers(users):
    return auth_headers("customer_2")


@pytest.fixture
def designer_headers(users):
    return auth_headers("designer_1")


@pytest.fixture
def staff_headers(users):
    return auth_headers("staff_1")


@pytest.fixture
def other_staff_headers(users):
    return auth_headers("staff_2")


@pytest.fixture
def inventory_headers(users):
    return auth_headers("inventory_1")


# =============================================================================
# CATALOG BUILDERS
# =============================================================================

@pytest.fixture
def category(users):
    return category_service.create_category({"name": "Dresses", "description": "All dresses"})


@pytest.fixture
def make_design(users, category):
    """Build a design in the requested lifecycle status."""
    def _make(name="Summer Dress", status="approved", category_id=None):
        designer = users["designer_1"]
        design = design_service.create_design(
            designer,
            {"name": name, "description": f"{name} description", "categoryId": category_id or category.id},
        )
        if status == "draft":
            return design
        design = design_service.submit_design(design.id, designer)
        if status == "pending":
            return design
        reason = "Not on trend" if status == "rejected" else None
        return design_service.review_design(design.id, users["inventory_1"], status, reason)
    return _make


@pytest.fixture
def make_product(make_design):
    """Build an active product with one stock variant from a fresh approved design."""
    def _make(name="Summer Dress", price="99.99", quantity=10, size="M", color="black",
              threshold=2, category_id=None):
        design = make_design(name=name, category_id=category_id)
        return products_service.create_product({
            "designId": design.id,
            "price": price,
            "stocks": [{"size": size, "color": color, "quantity": quantity, "lowStockThreshold": threshold}],
        })
    return _make


@pytest.fixture
def product(make_product):
    return make_product()


# =============================================================================
# ORDER FLOW BUILDERS
# =============================================================================

@pytest.fixture
def place_order(client, customer_headers):
    """POST an order for one stock line; returns the response."""
    def _place(product, quantity=1, headers=None):
        return client.post(
            "/api/customer/orders",
            json={
                "items": [{"productId": product.id, "stockId": product.stocks[0].id, "quantity": quantity}],
                "shippingAddress": SHIPPING_ADDRESS,
            },
            headers=headers or customer_headers,
        )
    return _place


@pytest.fixture
def paid_order(client, customer_headers, place_order):
    """Place, create intent and confirm; returns the order id."""
    def _paid(product, quantity=1):
        resp = place_order(product, quantity)
        assert resp.status_code == 201, resp.json
        order_id = resp.json["data"]["order"]["id"]

        resp = client.post(f"/api/customer/orders/{order_id}/payment", headers=customer_headers)
        assert resp.status_code == 201, resp.json
        resp = client.post(
            f"/api/customer/orders/{order_id}/payment/confirm",
            json={"paymentMethodId": "pm_card_visa"},
            headers=customer_headers,
        )
        assert resp.status_code == 200, resp.json
        return order_id
    return _paid


@pytest.fixture
def delivered_order(client, staff_headers, paid_order):
    """Paid order taken through assign -> shipped -> delivered by staff_1."""
    def _delivered(product, quantity=1):
        order_id = paid_order(product, quantity)
        assert client.post(f"/api/staff/orders/{order_id}/assign", headers=staff_headers).status_code == 200
        for status in ("shipped", "delivered"):
            resp = client.put(
                f"/api/staff/orders/{order_id}/status", json={"status": status}, headers=staff_headers
            )
            assert resp.status_code == 200, resp.json
        return order_id
    return _delivered
