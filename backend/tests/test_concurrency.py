"""
Concurrent checkout against one stock row.

Runs on a file-backed SQLite database so worker threads each get their own
connection and session.
"""

import threading

import pytest

from fashionmart import create_app
from fashionmart.extensions import db
from fashionmart.models import Order, OrderItem, Stock
from fashionmart.services import user_service

from conftest import IDENTITY_WEBHOOK_SECRET, SHIPPING_ADDRESS, auth_headers


WORKERS = 8


@pytest.fixture
def app(tmp_path):
    """File-backed app; overrides the in-memory one for this module."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SQLALCHEMY_ENGINE_OPTIONS': {"connect_args": {"timeout": 30}},
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
        db.engine.dispose()


def test_parallel_orders_never_oversell(app, make_product):
    product = make_product(name="Last Pieces", quantity=3)
    stock_id = product.stocks[0].id
    product_id = product.id

    headers = []
    for i in range(WORKERS):
        user_service.create_user(f"buyer_{i}", f"buyer{i}@example.com")
        headers.append(auth_headers(f"buyer_{i}"))
    db.session.commit()

    statuses = []
    lock = threading.Lock()
    start = threading.Barrier(WORKERS)

    def worker(worker_headers):
        client = app.test_client()
        start.wait()
        resp = client.post(
            "/api/customer/orders",
            json={
                "items": [{"productId": product_id, "stockId": stock_id, "quantity": 2}],
                "shippingAddress": SHIPPING_ADDRESS,
            },
            headers=worker_headers,
        )
        with lock:
            statuses.append(resp.status_code)

    threads = [threading.Thread(target=worker, args=(h,)) for h in headers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    successes = statuses.count(201)
    assert len(statuses) == WORKERS
    assert successes <= 1

    db.session.expire_all()
    quantity = db.session.get(Stock, stock_id).quantity
    assert quantity >= 0
    assert quantity == 3 - 2 * successes
    assert db.session.query(Order).count() == successes
    assert db.session.query(OrderItem).count() == successes
