"""
Order tests: checkout, stock integrity, cancellation and staff fulfillment.
"""

import pytest

from fashionmart.extensions import db
from fashionmart.models import Notification, Order, Stock
from fashionmart.services import inventory_service

from conftest import SHIPPING_ADDRESS


def _stock_quantity(stock_id: int) -> int:
    db.session.expire_all()
    return db.session.get(Stock, stock_id).quantity


# =============================================================================
# CHECKOUT
# =============================================================================


class TestCheckout:
    def test_order_totals_and_decrements_stock(self, client, product, place_order):
        stock_id = product.stocks[0].id
        resp = place_order(product, quantity=3)
        assert resp.status_code == 201

        order = resp.json["data"]["order"]
        assert order["status"] == "pending"
        assert order["paymentStatus"] == "pending"
        assert order["totalAmount"] == 299.97
        assert order["totalCents"] == 29997
        assert order["items"][0]["unitPrice"] == 99.99
        assert order["items"][0]["quantity"] == 3
        assert order["shippingAddress"]["city"] == "Milan"
        assert _stock_quantity(stock_id) == 7

    def test_line_by_size_and_color(self, client, product, customer_headers):
        resp = client.post(
            "/api/customer/orders",
            json={
                "items": [{"productId": product.id, "size": "M", "color": "black", "quantity": 2}],
                "shippingAddress": SHIPPING_ADDRESS,
            },
            headers=customer_headers,
        )
        assert resp.status_code == 201
        assert resp.json["data"]["order"]["items"][0]["stockId"] == product.stocks[0].id

    def test_unit_price_is_captured(self, client, product, place_order, inventory_headers, customer_headers):
        order_id = place_order(product, quantity=1).json["data"]["order"]["id"]
        client.put(f"/api/inventory/products/{product.id}", json={"price": "120.00"}, headers=inventory_headers)

        order = client.get(f"/api/customer/orders/{order_id}", headers=customer_headers).json["data"]["order"]
        assert order["items"][0]["unitPrice"] == 99.99
        assert order["totalAmount"] == 99.99

    def test_oversubscription_leaves_stock_untouched(self, client, product, place_order):
        stock_id = product.stocks[0].id
        assert place_order(product, quantity=6).status_code == 201

        resp = place_order(product, quantity=6)
        assert resp.status_code == 400
        assert resp.json["error"]["code"] == "INSUFFICIENT_STOCK"
        assert resp.json["error"]["details"] == {"stockId": stock_id, "requested": 6, "available": 4}

        assert _stock_quantity(stock_id) == 4
        assert db.session.query(Order).count() == 1

    def test_multi_line_failure_rolls_back_every_line(self, client, make_product, customer_headers):
        plenty = make_product(name="Plenty", quantity=10)
        scarce = make_product(name="Scarce", quantity=1)
        resp = client.post(
            "/api/customer/orders",
            json={
                "items": [
                    {"productId": plenty.id, "stockId": plenty.stocks[0].id, "quantity": 5},
                    {"productId": scarce.id, "stockId": scarce.stocks[0].id, "quantity": 2},
                ],
                "shippingAddress": SHIPPING_ADDRESS,
            },
            headers=customer_headers,
        )
        assert resp.status_code == 400
        assert _stock_quantity(plenty.stocks[0].id) == 10
        assert _stock_quantity(scarce.stocks[0].id) == 1

    def test_guarded_decrement_refuses_shortfall(self, product):
        stock_id = product.stocks[0].id
        assert inventory_service.decrement_stock(stock_id, 11) is False
        assert inventory_service.decrement_stock(stock_id, 10) is True
        db.session.commit()
        assert _stock_quantity(stock_id) == 0
        assert inventory_service.decrement_stock(stock_id, 1) is False

    @pytest.mark.parametrize(
        "payload",
        [
            {"items": [], "shippingAddress": SHIPPING_ADDRESS},
            {"items": [{"productId": 1, "stockId": 1, "quantity": 0}], "shippingAddress": SHIPPING_ADDRESS},
            {"items": [{"productId": 1, "stockId": 1, "quantity": 1}]},
            {"items": [{"productId": 1, "stockId": 1, "quantity": 1}], "shippingAddress": {"city": "Milan"}},
            {"items": [{"productId": 1, "quantity": 1}], "shippingAddress": SHIPPING_ADDRESS},
        ],
    )
    def test_invalid_payload_is_400(self, client, product, customer_headers, payload):
        resp = client.post("/api/customer/orders", json=payload, headers=customer_headers)
        assert resp.status_code == 400

    def test_inactive_product_cannot_be_ordered(self, client, product, place_order):
        product.active = False
        db.session.commit()
        assert place_order(product).status_code == 400

    def test_low_stock_alerts_inventory_managers(self, client, product, place_order):
        assert place_order(product, quantity=8).status_code == 201
        alerts = db.session.query(Notification).filter_by(user_id="inventory_1", type="stock_alert").all()
        assert len(alerts) == 1
        assert alerts[0].data["quantity"] == 2

    def test_order_placed_notifies_customer(self, client, product, place_order, customer_headers):
        place_order(product)
        data = client.get("/api/notifications", headers=customer_headers).json["data"]
        assert data["unreadCount"] == 1
        assert data["notifications"][0]["type"] == "order_status"


# =============================================================================
# CUSTOMER VIEWS & CANCELLATION
# =============================================================================


class TestCustomerOrders:
    def test_lists_own_orders_only(self, client, product, place_order, customer_headers, other_customer_headers):
        place_order(product)
        place_order(product, headers=other_customer_headers)

        data = client.get("/api/customer/orders", headers=customer_headers).json["data"]
        assert data["total"] == 1
        assert all(o["customerId"] == "customer_1" for o in data["orders"])

    def test_foreign_order_is_404(self, client, product, place_order, other_customer_headers):
        order_id = place_order(product).json["data"]["order"]["id"]
        assert client.get(f"/api/customer/orders/{order_id}", headers=other_customer_headers).status_code == 404
        resp = client.post(f"/api/customer/orders/{order_id}/cancel", headers=other_customer_headers)
        assert resp.status_code == 404

    def test_status_filter(self, client, product, place_order, customer_headers):
        place_order(product)
        assert client.get("/api/customer/orders?status=shipped", headers=customer_headers).json["data"]["total"] == 0
        assert client.get("/api/customer/orders?status=bogus", headers=customer_headers).status_code == 400

    def test_cancel_pending_restores_stock(self, client, product, place_order, customer_headers):
        stock_id = product.stocks[0].id
        order_id = place_order(product, quantity=4).json["data"]["order"]["id"]
        assert _stock_quantity(stock_id) == 6

        resp = client.post(f"/api/customer/orders/{order_id}/cancel", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["order"]["status"] == "cancelled"
        assert _stock_quantity(stock_id) == 10

        again = client.post(f"/api/customer/orders/{order_id}/cancel", headers=customer_headers)
        assert again.status_code == 400
        assert _stock_quantity(stock_id) == 10

    def test_customer_cannot_cancel_paid_order(self, client, product, paid_order, customer_headers):
        order_id = paid_order(product)
        resp = client.post(f"/api/customer/orders/{order_id}/cancel", headers=customer_headers)
        assert resp.status_code == 400
        assert resp.json["error"]["code"] == "INVALID_STATE"


# =============================================================================
# STAFF FULFILLMENT
# =============================================================================


class TestStaffFulfillment:
    def test_pending_queue_holds_paid_unassigned_orders(self, client, product, place_order, paid_order, staff_headers):
        place_order(product)
        paid_id = paid_order(product)

        queue = client.get("/api/staff/orders/pending", headers=staff_headers).json["data"]["orders"]
        assert [o["id"] for o in queue] == [paid_id]

    def test_unpaid_order_cannot_be_assigned(self, client, product, place_order, staff_headers):
        order_id = place_order(product).json["data"]["order"]["id"]
        resp = client.post(f"/api/staff/orders/{order_id}/assign", headers=staff_headers)
        assert resp.status_code == 400

    def test_assignment_is_exclusive(self, client, product, paid_order, staff_headers, other_staff_headers):
        order_id = paid_order(product)
        assert client.post(f"/api/staff/orders/{order_id}/assign", headers=staff_headers).status_code == 200
        # repeat by the holder is a no-op
        assert client.post(f"/api/staff/orders/{order_id}/assign", headers=staff_headers).status_code == 200

        resp = client.post(f"/api/staff/orders/{order_id}/assign", headers=other_staff_headers)
        assert resp.status_code == 409

        assigned = client.get("/api/staff/orders/assigned", headers=staff_headers).json["data"]["orders"]
        assert [o["id"] for o in assigned] == [order_id]

    def test_forward_only_transitions(self, client, product, paid_order, staff_headers, customer_headers):
        order_id = paid_order(product)
        client.post(f"/api/staff/orders/{order_id}/assign", headers=staff_headers)

        def move(status):
            return client.put(f"/api/staff/orders/{order_id}/status", json={"status": status}, headers=staff_headers)

        assert move("delivered").status_code == 400
        assert move("shipped").status_code == 200
        assert move("processing").status_code == 400
        resp = move("delivered")
        assert resp.status_code == 200
        assert resp.json["data"]["order"]["deliveredAt"] is not None
        assert move("cancelled").status_code == 400

        titles = [
            n["title"]
            for n in client.get("/api/notifications", headers=customer_headers).json["data"]["notifications"]
        ]
        assert "Order shipped" in titles
        assert "Order delivered" in titles

    def test_only_assignee_moves_status(self, client, product, paid_order, staff_headers, other_staff_headers):
        order_id = paid_order(product)
        client.post(f"/api/staff/orders/{order_id}/assign", headers=staff_headers)
        resp = client.put(
            f"/api/staff/orders/{order_id}/status", json={"status": "shipped"}, headers=other_staff_headers
        )
        assert resp.status_code == 400

    def test_staff_cancel_refunds_and_restocks(self, client, product, paid_order, staff_headers, customer_headers):
        stock_id = product.stocks[0].id
        order_id = paid_order(product, quantity=2)
        client.post(f"/api/staff/orders/{order_id}/assign", headers=staff_headers)

        resp = client.put(
            f"/api/staff/orders/{order_id}/status", json={"status": "cancelled"}, headers=staff_headers
        )
        assert resp.status_code == 200
        order = resp.json["data"]["order"]
        assert order["status"] == "cancelled"
        assert order["paymentStatus"] == "refunded"
        assert order["payment"]["status"] == "refunded"
        assert _stock_quantity(stock_id) == 10

    def test_cancel_held_by_other_staff_is_409(self, client, product, paid_order, staff_headers, other_staff_headers):
        order_id = paid_order(product)
        client.post(f"/api/staff/orders/{order_id}/assign", headers=staff_headers)
        resp = client.put(
            f"/api/staff/orders/{order_id}/status", json={"status": "cancelled"}, headers=other_staff_headers
        )
        assert resp.status_code == 409

    def test_missing_status_is_400(self, client, product, paid_order, staff_headers):
        order_id = paid_order(product)
        assert client.put(f"/api/staff/orders/{order_id}/status", json={}, headers=staff_headers).status_code == 400

    def test_all_orders_listing(self, client, product, place_order, admin_headers):
        place_order(product)
        place_order(product)
        data = client.get("/api/staff/orders?limit=1", headers=admin_headers).json["data"]
        assert data["total"] == 2
        assert len(data["orders"]) == 1
