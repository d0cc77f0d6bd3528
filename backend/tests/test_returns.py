"""
Return tests: filing against delivered orders, staff assignment and processing.
"""

import io

import pytest

from fashionmart.extensions import db
from fashionmart.models import Notification, Order, OrderItem, Stock


def _item_id(order_id: int) -> int:
    return db.session.query(OrderItem.id).filter_by(order_id=order_id).scalar()


@pytest.fixture
def delivered(product, delivered_order):
    order_id = delivered_order(product, quantity=2)
    return order_id, _item_id(order_id)


@pytest.fixture
def filed_return(client, delivered, customer_headers):
    order_id, item_id = delivered
    resp = client.post(
        "/api/customer/returns",
        json={"orderId": order_id, "orderItemId": item_id, "reason": "Too small"},
        headers=customer_headers,
    )
    assert resp.status_code == 201, resp.json
    return resp.json["data"]["return"]["id"]


class TestFilingReturns:
    def test_file_return_for_delivered_item(self, client, delivered, customer_headers):
        order_id, item_id = delivered
        resp = client.post(
            "/api/customer/returns",
            data={
                "orderItemId": str(item_id),
                "reason": "Wrong colour",
                "returnImages": [(io.BytesIO(b"img"), "photo.jpg")],
            },
            headers=customer_headers,
            content_type="multipart/form-data",
        )
        assert resp.status_code == 201
        ret = resp.json["data"]["return"]
        assert ret["status"] == "pending"
        assert ret["orderId"] == order_id
        assert ret["images"][0].startswith("/uploads/returns/")

        staff_alerts = db.session.query(Notification).filter_by(type="return_status").count()
        assert staff_alerts == 2  # staff_1 and staff_2

        listed = client.get("/api/customer/returns", headers=customer_headers).json["data"]["returns"]
        assert [r["id"] for r in listed] == [ret["id"]]

    def test_undelivered_order_is_400(self, client, product, paid_order, customer_headers):
        order_id = paid_order(product)
        resp = client.post(
            "/api/customer/returns",
            json={"orderItemId": _item_id(order_id), "reason": "Changed my mind"},
            headers=customer_headers,
        )
        assert resp.status_code == 400
        assert resp.json["error"]["code"] == "INVALID_STATE"

    def test_second_return_for_item_is_409(self, client, delivered, filed_return, customer_headers):
        _, item_id = delivered
        resp = client.post(
            "/api/customer/returns", json={"orderItemId": item_id, "reason": "Again"}, headers=customer_headers
        )
        assert resp.status_code == 409

    def test_foreign_item_is_404(self, client, delivered, other_customer_headers):
        _, item_id = delivered
        resp = client.post(
            "/api/customer/returns", json={"orderItemId": item_id, "reason": "Not mine"}, headers=other_customer_headers
        )
        assert resp.status_code == 404

    def test_reason_required(self, client, delivered, customer_headers):
        _, item_id = delivered
        resp = client.post("/api/customer/returns", json={"orderItemId": item_id}, headers=customer_headers)
        assert resp.status_code == 400


class TestProcessingReturns:
    def test_assign_and_approve(self, client, delivered, filed_return, staff_headers, customer_headers):
        order_id, _ = delivered
        pending = client.get("/api/staff/returns/pending", headers=staff_headers).json["data"]["returns"]
        assert [r["id"] for r in pending] == [filed_return]

        assert client.post(f"/api/staff/returns/{filed_return}/assign", headers=staff_headers).status_code == 200
        assigned = client.get("/api/staff/returns/assigned", headers=staff_headers).json["data"]["returns"]
        assert [r["id"] for r in assigned] == [filed_return]

        resp = client.put(
            f"/api/staff/returns/{filed_return}/process",
            json={"status": "approved", "notes": "Refund in 5 days"},
            headers=staff_headers,
        )
        assert resp.status_code == 200
        assert resp.json["data"]["return"]["status"] == "approved"
        assert resp.json["data"]["return"]["restocked"] is False

        # the order's only item is now returned
        order = client.get(f"/api/customer/orders/{order_id}", headers=customer_headers).json["data"]["order"]
        assert order["status"] == "returned"

        titles = [
            n["title"]
            for n in client.get("/api/notifications", headers=customer_headers).json["data"]["notifications"]
        ]
        assert "Return approved" in titles

    def test_approval_restocks_when_enabled(self, client, app, product, filed_return, staff_headers):
        app.config["RESTOCK_ON_RETURN_APPROVAL"] = True
        client.post(f"/api/staff/returns/{filed_return}/assign", headers=staff_headers)
        resp = client.put(
            f"/api/staff/returns/{filed_return}/process", json={"status": "approved"}, headers=staff_headers
        )
        assert resp.json["data"]["return"]["restocked"] is True

        db.session.expire_all()
        assert db.session.get(Stock, product.stocks[0].id).quantity == 10

    def test_reject_keeps_order_delivered(self, client, delivered, filed_return, staff_headers):
        order_id, _ = delivered
        client.post(f"/api/staff/returns/{filed_return}/assign", headers=staff_headers)
        resp = client.put(
            f"/api/staff/returns/{filed_return}/process",
            json={"status": "rejected", "notes": "Worn"},
            headers=staff_headers,
        )
        assert resp.json["data"]["return"]["status"] == "rejected"
        db.session.expire_all()
        assert db.session.get(Order, order_id).status == "delivered"

    def test_unassigned_return_cannot_be_processed(self, client, filed_return, staff_headers):
        resp = client.put(
            f"/api/staff/returns/{filed_return}/process", json={"status": "approved"}, headers=staff_headers
        )
        assert resp.status_code == 400

    def test_assignment_is_exclusive(self, client, filed_return, staff_headers, other_staff_headers):
        client.post(f"/api/staff/returns/{filed_return}/assign", headers=staff_headers)
        assert client.post(f"/api/staff/returns/{filed_return}/assign", headers=other_staff_headers).status_code == 409
        resp = client.put(
            f"/api/staff/returns/{filed_return}/process", json={"status": "approved"}, headers=other_staff_headers
        )
        assert resp.status_code == 400

    def test_processing_twice_is_400(self, client, filed_return, staff_headers):
        client.post(f"/api/staff/returns/{filed_return}/assign", headers=staff_headers)
        url = f"/api/staff/returns/{filed_return}/process"
        assert client.put(url, json={"status": "approved"}, headers=staff_headers).status_code == 200
        assert client.put(url, json={"status": "rejected"}, headers=staff_headers).status_code == 400

    def test_bad_decision_is_400(self, client, filed_return, staff_headers):
        client.post(f"/api/staff/returns/{filed_return}/assign", headers=staff_headers)
        resp = client.put(
            f"/api/staff/returns/{filed_return}/process", json={"status": "pending"}, headers=staff_headers
        )
        assert resp.status_code == 400
