import json
import logging
import math
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from errors import DuplicatePayment, EmptyCart, OrderNotCancellable, OrderNotFound, StaleProductReference
from schema import Order, OrderItem, Product
from services.pricing import CartTotals

logger = logging.getLogger(__name__)

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
NON_CANCELLABLE = ("shipped", "delivered")


def order_dict(db, order: Order) -> Dict[str, Any]:
    data = order.to_dict()
    data["shipping_address"] = json.loads(order.shipping_address) if order.shipping_address else None
    items = db.query(OrderItem).filter_by(order_id=order.id).all()
    data["order_items"] = [i.to_dict() for i in items]
    return data


def create_order(db, account_id: str, items, totals: CartTotals, shipping: Decimal,
                 shipping_address: Dict[str, Any], payment_method: str = "razorpay",
                 razorpay_order_id: str = None, razorpay_payment_id: str = None,
                 payment_status: str = "pending") -> Order:
    """
    Persists an order and its line items from the canonical cart.

    Line prices are the size-table unit prices the totals were computed from.
    Product stock is decremented best-effort; a missing product row is logged
    and skipped since the payment has already been captured.

    Raises:
        EmptyCart: if there are no line items.
        StaleProductReference: if any line refers to a delisted product.
        DuplicatePayment: if razorpay_payment_id already paid for another order.
    """
    items = list(items)
    if not items:
        raise EmptyCart("Cannot place an order for an empty cart")
    stale = [i.product_id for i in items if i.stale]
    if stale:
        raise StaleProductReference(stale)
    if razorpay_payment_id and db.query(Order).filter_by(razorpay_payment_id=razorpay_payment_id).first():
        raise DuplicatePayment(f"Payment {razorpay_payment_id} was already used for an order")

    now = datetime.now(timezone.utc)
    order = Order(
        id=str(uuid.uuid4()),
        user_id=account_id,
        subtotal=totals.subtotal,
        discount=totals.discount,
        shipping=shipping,
        total_amount=totals.total + shipping,
        status="pending",
        payment_status=payment_status,
        payment_method=payment_method,
        shipping_address=json.dumps(shipping_address or {}),
        razorpay_order_id=razorpay_order_id,
        razorpay_payment_id=razorpay_payment_id,
        created_at=now,
        updated_at=now,
    )
    try:
        db.add(order)
        for item in items:
            db.add(OrderItem(
                id=str(uuid.uuid4()),
                order_id=order.id,
                product_id=item.product_id,
                product_name=item.name,
                selected_size=item.size,
                quantity=item.quantity,
                price=item.unit_price,
            ))
            product = db.query(Product).filter_by(id=item.product_id).first()
            if product is None:
                logger.error(f"Stock update skipped for missing product {item.product_id}")
                continue
            product.stock = max(0, (product.stock or 0) - item.quantity)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicatePayment(f"Payment {razorpay_payment_id} was already used for an order") from e
    except Exception:
        db.rollback()
        raise

    logger.info(f"Order {order.id} placed by {account_id} for {order.total_amount}")
    return order


def list_orders(db, account_id: str, status: Optional[str] = None, start_date: Optional[datetime] = None,
                end_date: Optional[datetime] = None, page: int = 1, limit: int = 10) -> Dict[str, Any]:
    """
    Returns one page of the account's order history, newest first.

    Returns:
        {"orders": [...], "total": int, "page": int, "totalPages": int}
    """
    page = max(1, page)
    limit = max(1, limit)
    query = db.query(Order).filter(Order.user_id == account_id)
    if status:
        query = query.filter(Order.status == status)
    if start_date:
        query = query.filter(Order.created_at >= start_date)
    if end_date:
        query = query.filter(Order.created_at <= end_date)

    total = query.count()
    rows = query.order_by(Order.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "orders": [order_dict(db, o) for o in rows],
        "total": total,
        "page": page,
        "totalPages": math.ceil(total / limit),
    }


def get_order(db, order_id: str, account_id: str) -> Order:
    order = db.query(Order).filter_by(id=order_id, user_id=account_id).first()
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found")
    return order


def cancel_order(db, order_id: str, account_id: str) -> Order:
    order = get_order(db, order_id, account_id)
    if order.status in NON_CANCELLABLE:
        raise OrderNotCancellable("Cannot cancel shipped or delivered orders")
    order.status = "cancelled"
    order.updated_at = datetime.now(timezone.utc)
    db.commit()
    return order


def update_payment_status(db, order_id: str, account_id: str, payment_status: str) -> Order:
    if payment_status not in PAYMENT_STATUSES:
        raise ValueError(f"Unknown payment status {payment_status!r}")
    order = get_order(db, order_id, account_id)
    order.payment_status = payment_status
    order.updated_at = datetime.now(timezone.utc)
    db.commit()
    return order
