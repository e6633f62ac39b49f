import itertools

import pytest
from unittest.mock import patch

from errors import DuplicatePayment, PaymentVerificationFailed, RemoteUnavailable
from helpers import cart_action, get_cart, seed_cart_row, seed_products, signup
from schema import Order, Product
from services.normalizer import normalize
from services.orders import create_order
from services.pricing import compute_totals

ADDRESS = {
    "fullName": "Ava Laurent", "address": "12 Rue Cler", "city": "Mumbai",
    "state": "MH", "zipCode": "400001", "country": "India",
}
RP_ORDER_ID = "order_TEST123"
_payment_ids = itertools.count(1)


@pytest.fixture
def shopper(client, db_session):
    seed_products(db_session)
    user = signup(client).get_json()["user"]
    return user["id"]


def checkout(client):
    return client.post("/api/v1/checkout/payment-order")


def place(client, payment_id=None, order_id=RP_ORDER_ID):
    body = {
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id or f"pay_{next(_payment_ids)}",
        "razorpay_signature": "sig",
        "shipping_address": ADDRESS,
    }
    return client.post("/api/v1/orders", json=body)


def pay_and_place(client, **kwargs):
    assert checkout(client).status_code == 201
    return place(client, **kwargs)


def test_payment_order_requires_sign_in(client):
    assert checkout(client).status_code == 401


def test_payment_order_rejects_empty_cart(client, shopper):
    res = checkout(client)
    assert res.status_code == 400


def test_payment_order_amount_in_paise(client, shopper, _stub_razorpay):
    cart_action(client, "add", "aura-noir", 2, "100ml")
    cart_action(client, "add", "velvet-oud", 1, "100ml")
    cart_action(client, "add", "midnight-iris", 3, "20ml")

    res = checkout(client)

    assert res.status_code == 201
    data = res.get_json()
    assert data["order_id"] == RP_ORDER_ID
    assert data["amount"] == 264500
    assert data["key_id"] == "rzp_test_key"
    assert data["summary"]["shipping"] == "0.00"
    assert data["summary"]["grand_total"] == "2645.00"
    amount = _stub_razorpay.create_order.call_args.args[0]
    assert str(amount) == "2645"


def test_payment_provider_failure(client, shopper, _stub_razorpay):
    cart_action(client, "add", "aura-noir", 1)
    _stub_razorpay.create_order.side_effect = RuntimeError("razorpay down")
    assert checkout(client).status_code == 502


def test_place_order_records_lines_and_clears_cart(client, shopper, db_session):
    cart_action(client, "add", "aura-noir", 2, "100ml")
    cart_action(client, "add", "velvet-oud", 1, "50ml")

    res = pay_and_place(client)

    assert res.status_code == 201
    order = res.get_json()
    assert order["subtotal"] == "2197.00"
    assert order["discount"] == "799.00"
    assert order["total_amount"] == "1398.00"
    assert order["payment_status"] == "paid"
    assert order["status"] == "pending"
    assert order["razorpay_order_id"] == RP_ORDER_ID
    assert order["shipping_address"]["city"] == "Mumbai"
    assert sorted((i["product_id"], i["selected_size"], i["price"]) for i in order["order_items"]) == [
        ("aura-noir", "100ml", "799.00"),
        ("velvet-oud", "50ml", "599.00"),
    ]
    assert "cart_clear_error" not in order

    assert get_cart(client)["items"] == []
    db_session.expire_all()
    assert db_session.query(Product).filter_by(id="aura-noir").one().stock == 8


def test_place_order_rejects_bad_signature(client, shopper, _stub_razorpay, db_session):
    cart_action(client, "add", "aura-noir", 1)
    checkout(client)
    _stub_razorpay.verify_payment.side_effect = PaymentVerificationFailed("Payment signature verification failed")

    res = place(client)

    assert res.status_code == 400
    assert db_session.query(Order).count() == 0
    assert len(get_cart(client)["items"]) == 1


def test_place_order_without_payment_keys(client, shopper, db_session):
    cart_action(client, "add", "aura-noir", 1)
    checkout(client)
    with patch("routes.orders.RazorpayGateway", side_effect=RuntimeError("RAZORPAY_KEY_ID must be set")):
        res = place(client)

    assert res.status_code == 502
    assert db_session.query(Order).count() == 0


def test_place_order_with_empty_cart(client, shopper):
    res = place(client)
    assert res.status_code == 400
    assert res.get_json()["code"] == "EmptyCart"


def test_place_order_with_delisted_product(client, shopper, db_session):
    seed_cart_row(db_session, shopper, "discontinued", 1)
    res = pay_and_place(client)
    assert res.status_code == 409
    assert res.get_json()["code"] == "StaleProductReference"


def test_place_order_requires_a_pending_checkout(client, shopper, db_session):
    cart_action(client, "add", "aura-noir", 1)
    res = place(client)
    assert res.status_code == 409
    assert res.get_json()["code"] == "PaymentMismatch"
    assert db_session.query(Order).count() == 0


def test_payment_for_another_razorpay_order_is_rejected(client, shopper, db_session):
    cart_action(client, "add", "aura-noir", 1)
    checkout(client)
    res = place(client, order_id="order_OTHER")
    assert res.status_code == 409
    assert res.get_json()["code"] == "PaymentMismatch"


def test_cart_grown_after_checkout_is_rejected(client, shopper, db_session):
    cart_action(client, "add", "aura-noir", 1)
    checkout(client)
    cart_action(client, "add", "velvet-oud", 5)

    res = place(client)

    assert res.status_code == 409
    assert res.get_json()["code"] == "PaymentMismatch"
    assert db_session.query(Order).count() == 0
    assert len(get_cart(client)["items"]) == 2


def test_payment_cannot_be_replayed_into_a_second_order(client, shopper, db_session):
    cart_action(client, "add", "aura-noir", 1)
    assert pay_and_place(client, payment_id="pay_ONCE").status_code == 201

    cart_action(client, "add", "velvet-oud", 5)
    res = place(client, payment_id="pay_ONCE")
    assert res.status_code == 409
    assert db_session.query(Order).count() == 1

    # Even with a fresh payment order for the new cart, the old payment id is spent
    checkout(client)
    res = place(client, payment_id="pay_ONCE")
    assert res.status_code == 409
    assert res.get_json()["code"] == "DuplicatePayment"
    assert db_session.query(Order).count() == 1


def test_create_order_refuses_used_payment_id(db_session, shopper):
    items = normalize([{"product_id": "aura-noir", "size": "100ml", "quantity": 1, "product_name": "Aura Noir"}])
    totals = compute_totals(items)
    create_order(db_session, shopper, items, totals, 0, ADDRESS, razorpay_payment_id="pay_X")
    with pytest.raises(DuplicatePayment):
        create_order(db_session, shopper, items, totals, 0, ADDRESS, razorpay_payment_id="pay_X")
    assert db_session.query(Order).count() == 1


def test_failed_cart_clear_keeps_order(client, shopper, db_session):
    cart_action(client, "add", "aura-noir", 1)
    with patch("services.stores.SqlCartStore.clear", side_effect=RemoteUnavailable("Cart clear failed")):
        res = pay_and_place(client)

    assert res.status_code == 201
    assert res.get_json()["cart_clear_error"]["code"] == "RemoteUnavailable"
    assert db_session.query(Order).count() == 1


def test_history_is_paged_and_filtered(client, shopper, db_session):
    for _ in range(3):
        cart_action(client, "add", "aura-noir", 1)
        pay_and_place(client)

    page = client.get("/api/v1/orders?limit=2").get_json()
    assert page["total"] == 3
    assert page["totalPages"] == 2
    assert len(page["orders"]) == 2

    second = client.get("/api/v1/orders?limit=2&page=2").get_json()
    assert len(second["orders"]) == 1

    assert client.get("/api/v1/orders?status=shipped").get_json()["total"] == 0
    assert client.get("/api/v1/orders?status=teleported").status_code == 400
    assert client.get("/api/v1/orders?startDate=2999-01-01").get_json()["total"] == 0


def test_order_detail_and_cancel(client, shopper, db_session):
    cart_action(client, "add", "aura-noir", 1)
    order_id = pay_and_place(client).get_json()["id"]

    assert client.get(f"/api/v1/orders/{order_id}").status_code == 200
    assert client.get("/api/v1/orders/nope").status_code == 404

    res = client.post(f"/api/v1/orders/{order_id}/cancel")
    assert res.status_code == 200
    assert res.get_json()["status"] == "cancelled"


def test_shipped_order_cannot_be_cancelled(client, shopper, db_session):
    cart_action(client, "add", "aura-noir", 1)
    order_id = pay_and_place(client).get_json()["id"]
    db_session.query(Order).filter_by(id=order_id).update({"status": "shipped"})
    db_session.commit()

    res = client.post(f"/api/v1/orders/{order_id}/cancel")
    assert res.status_code == 409


def test_orders_are_private_to_their_account(client, shopper):
    cart_action(client, "add", "aura-noir", 1)
    order_id = pay_and_place(client).get_json()["id"]
    client.post("/api/v1/auth/logout")
    signup(client, email="noor@example.com")

    assert client.get(f"/api/v1/orders/{order_id}").status_code == 404
    assert client.get("/api/v1/orders").get_json()["total"] == 0
