import logging
import uuid
from datetime import datetime

from flask import Blueprint, request, jsonify, session

from config import config
from db import get_db
from errors import CartError, EmptyCart, OrderError, PaymentMismatch
from routes.cart import build_cart_service, error_response, require_account
from services.orders import (
    ORDER_STATUSES, cancel_order, create_order, get_order, list_orders, order_dict, update_payment_status,
)
from services.payments import RazorpayGateway
from services.pricing import format_money, shipping_for, to_minor_units
from services.stores import SessionLocalStore

logger = logging.getLogger(__name__)

orders_bp = Blueprint("orders", __name__)


def _parse_date(value):
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _checkout_amounts(service):
    totals = service.totals()
    shipping = shipping_for(totals.subtotal, config.FREE_SHIPPING_THRESHOLD, config.SHIPPING_FEE)
    return totals, shipping


CHECKOUT_KEY = "aura-checkout"


def _checkout_store():
    return SessionLocalStore(session)


def _check_pending_payment(account_id, rp_order_id, amount):
    """
    Matches a confirmed payment against the Razorpay order issued by
    /checkout/payment-order for this shopper.

    Raises:
        PaymentMismatch: if no checkout is pending, the order ids differ, or
            the cart total changed since the payment order was created.
    """
    pending = _checkout_store().get(CHECKOUT_KEY)
    if not pending or pending.get("account_id") != account_id:
        raise PaymentMismatch("No pending checkout for this payment")
    if pending.get("razorpay_order_id") != rp_order_id:
        raise PaymentMismatch("Payment does not belong to the current checkout")
    if pending.get("amount") != amount:
        logger.warning(
            f"Cart total for {account_id} changed after payment order {rp_order_id}: "
            f"paid {pending.get('amount')}, cart {amount}"
        )
        raise PaymentMismatch("Cart changed after payment was started; please check out again")


@orders_bp.route("/checkout/payment-order", methods=["POST"])
@require_account
def create_payment_order(account_id):
    """
    Creates a Razorpay order for the current cart total plus shipping.
    ---
    Output (201):
        - order_id (str): Razorpay order id for the checkout widget
        - amount (int): Amount in paise
        - currency (str)
        - key_id (str): Public Razorpay key
        - summary (dict): cart totals with shipping and grand_total
    Errors:
        - 400: Empty cart
        - 401: Not signed in
        - 502: Payment provider error
        - 503: Cart store unavailable
    """
    service = build_cart_service()
    try:
        service.load(account_id)
    except CartError as e:
        return error_response(e)
    if not service.items:
        return jsonify({"error": "Cart is empty"}), 400

    totals, shipping = _checkout_amounts(service)
    grand_total = totals.total + shipping
    try:
        gateway = RazorpayGateway()
        rp_order = gateway.create_order(grand_total, receipt=f"rcpt_{uuid.uuid4().hex[:12]}")
    except Exception as e:
        logger.error(f"Razorpay order creation failed for {account_id}: {e}")
        return jsonify({"error": "Failed to initialize payment"}), 502

    amount = to_minor_units(grand_total)
    _checkout_store().set(CHECKOUT_KEY, {
        "account_id": account_id,
        "razorpay_order_id": rp_order["id"],
        "amount": amount,
    })

    summary = totals.to_dict()
    summary.update({"shipping": format_money(shipping), "grand_total": format_money(grand_total)})
    return jsonify({
        "order_id": rp_order["id"],
        "amount": amount,
        "currency": rp_order.get("currency", config.CURRENCY),
        "key_id": gateway.key_id,
        "summary": summary,
    }), 201


@orders_bp.route("/orders", methods=["POST"])
@require_account
def place_order(account_id):
    """
    Persists an order after the checkout widget confirmed payment.
    ---
    Input (JSON):
        - razorpay_order_id, razorpay_payment_id, razorpay_signature (str)
        - shipping_address (dict): fullName, address, city, state, zipCode, country, phone?
    Output (201): the stored order with order_items
    Errors:
        - 400: Empty cart or failed signature verification
        - 409: Delisted products, payment already used, or payment not
          matching the pending checkout (order id or amount)
        - 502: Payment provider not configured
        - 503: Cart store unavailable
    """
    data = request.get_json(silent=True) or {}
    rp_order_id = data.get("razorpay_order_id")
    rp_payment_id = data.get("razorpay_payment_id")

    try:
        gateway = RazorpayGateway()
    except RuntimeError as e:
        logger.error(f"Payment verification unavailable for {account_id}: {e}")
        return jsonify({"error": "Failed to verify payment"}), 502

    service = build_cart_service()
    try:
        gateway.verify_payment(rp_order_id, rp_payment_id, data.get("razorpay_signature"))
        service.load(account_id)
        if not service.items:
            raise EmptyCart("Cannot place an order for an empty cart")
        totals, shipping = _checkout_amounts(service)
        _check_pending_payment(account_id, rp_order_id, to_minor_units(totals.total + shipping))
    except (CartError, OrderError) as e:
        return error_response(e)

    db = next(get_db())
    try:
        try:
            order = create_order(
                db,
                account_id,
                service.items,
                totals,
                shipping,
                data.get("shipping_address") or {},
                payment_method="razorpay",
                razorpay_order_id=rp_order_id,
                razorpay_payment_id=rp_payment_id,
            )
            order = update_payment_status(db, order.id, account_id, "paid")
        except (CartError, OrderError) as e:
            return error_response(e)
        payload = order_dict(db, order)
    finally:
        db.close()

    _checkout_store().remove(CHECKOUT_KEY)
    try:
        service.clear(account_id)
    except CartError as e:
        # The order stands; the shopper can clear the cart later.
        logger.error(f"Order {payload['id']} placed but cart clear failed: {e}")
        payload["cart_clear_error"] = e.to_dict()

    return jsonify(payload), 201


@orders_bp.route("/orders", methods=["GET"])
@require_account
def order_history(account_id):
    """
    Lists the shopper's orders, newest first.
    ---
    Query:
        - status (str, optional), startDate / endDate (ISO date, optional)
        - page (int, default 1), limit (int, default ORDERS_PAGE_SIZE)
    """
    status = request.args.get("status")
    if status and status not in ORDER_STATUSES:
        return jsonify({"error": f"Unknown status {status}"}), 400
    page = request.args.get("page", default=1, type=int)
    limit = request.args.get("limit", default=config.ORDERS_PAGE_SIZE, type=int)

    db = next(get_db())
    try:
        result = list_orders(
            db,
            account_id,
            status=status,
            start_date=_parse_date(request.args.get("startDate")),
            end_date=_parse_date(request.args.get("endDate")),
            page=page,
            limit=limit,
        )
    finally:
        db.close()
    return jsonify(result), 200


@orders_bp.route("/orders/<order_id>", methods=["GET"])
@require_account
def order_detail(order_id, account_id):
    db = next(get_db())
    try:
        try:
            order = get_order(db, order_id, account_id)
        except OrderError as e:
            return error_response(e)
        return jsonify(order_dict(db, order)), 200
    finally:
        db.close()


@orders_bp.route("/orders/<order_id>/cancel", methods=["POST"])
@require_account
def cancel(order_id, account_id):
    db = next(get_db())
    try:
        try:
            order = cancel_order(db, order_id, account_id)
        except OrderError as e:
            return error_response(e)
        return jsonify(order_dict(db, order)), 200
    finally:
        db.close()
