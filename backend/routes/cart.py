import logging
from functools import wraps

from flask import Blueprint, request, jsonify, session

from config import config
from db import get_db
from errors import CartError
from services.cart import CartService, MutationQueue
from services.catalog import ProductCatalog
from services.identity import SessionIdentity
from services.pricing import DEFAULT_SIZE
from services.stores import SessionLocalStore, SqlCartStore
from services.supabase import SupabaseCartStore

logger = logging.getLogger(__name__)

cart_bp = Blueprint("cart", __name__)

# One queue per process so concurrent requests for an account apply in order
MUTATION_QUEUE = MutationQueue()

ACTIONS = ("add", "update", "remove", "clear", "change_size")


def access_token():
    """
    The shopper's hosted-store JWT, sent by the storefront as
    ``Authorization: Bearer <token>``. Row-level security on the hosted cart
    tables only admits calls made with it.
    """
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


def remote_store():
    """
    Builds the remote cart store selected by CART_BACKEND.
    """
    if config.CART_BACKEND == "supabase":
        return SupabaseCartStore(
            config.SUPABASE_URL,
            config.SUPABASE_KEY,
            timeout=config.REMOTE_TIMEOUT_SECONDS,
            access_token=access_token(),
        )
    return SqlCartStore(get_db)


def build_cart_service() -> CartService:
    return CartService(
        SessionLocalStore(session),
        remote_store(),
        queue=MUTATION_QUEUE,
        catalog=ProductCatalog(get_db),
    )


def current_identity() -> SessionIdentity:
    return SessionIdentity(SessionLocalStore(session))


def require_account(f):
    """
    Decorator that rejects guests with 401 and passes the signed-in
    account_id to the wrapped route.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        account_id = current_identity().current()
        if not account_id:
            return jsonify({"error": "User not authenticated", "authenticated": False}), 401
        return f(*args, account_id=account_id, **kwargs)
    return decorated


def error_response(err):
    return jsonify(err.to_dict()), err.status_code


def cart_payload(service: CartService, account_id):
    return {
        "items": [item.to_dict() for item in service.items],
        "summary": service.totals().to_dict(),
        "authenticated": account_id is not None,
    }


@cart_bp.route("/cart", methods=["GET"])
def get_cart():
    """
    Returns the canonical cart and its promotion-aware totals.
    ---
    Works for guests (session cart) and signed-in shoppers (stored cart).
    Output (200):
        - items (list): product_id, product_name, selected_size, quantity,
          product_price, total_price, stale
        - summary (dict): subtotal, discount, total, promotion_text, item_count
        - authenticated (bool)
    Errors:
        - 503: Cart store unavailable
    """
    account_id = current_identity().current()
    service = build_cart_service()
    try:
        service.load(account_id)
    except CartError as e:
        return error_response(e)
    return jsonify(cart_payload(service, account_id)), 200


@cart_bp.route("/cart", methods=["POST"])
def update_cart():
    """
    Applies one cart mutation and returns the reloaded cart.
    ---
    Input (JSON):
        - action (str): add | update | remove | clear | change_size
        - productId (str): required for every action except clear
        - quantity (int): add / update / change_size
        - selectedSize (str, optional): defaults to 100ml
        - newSize (str): change_size only
    Output (200): same shape as GET /cart
    Errors:
        - 400: Missing fields, invalid action or invalid quantity
        - 401: Stored cart session rejected
        - 409: Size change left half-applied
        - 503: Cart store unavailable
    """
    data = request.get_json(silent=True) or {}
    action = data.get("action")
    product_id = data.get("productId")
    # Stored cart rows key products by string id
    product_id = "" if product_id is None else str(product_id).strip()
    size = data.get("selectedSize") or DEFAULT_SIZE

    if action not in ACTIONS:
        return jsonify({"error": "Invalid action"}), 400
    if action != "clear" and not product_id:
        return jsonify({"error": "Missing required fields"}), 400
    if action == "change_size" and not data.get("newSize"):
        return jsonify({"error": "newSize is required"}), 400

    account_id = current_identity().current()
    service = build_cart_service()
    try:
        if action == "add":
            service.add_item(account_id, product_id, data.get("quantity", 1), size)
        elif action == "update":
            service.update_quantity(account_id, product_id, size, data.get("quantity"))
        elif action == "remove":
            service.remove_item(account_id, product_id, size)
        elif action == "clear":
            service.clear(account_id)
        else:
            service.change_size(account_id, product_id, size, data["newSize"], data.get("quantity"))
    except CartError as e:
        return error_response(e)

    return jsonify(cart_payload(service, account_id)), 200


@cart_bp.route("/cart/validate", methods=["GET"])
def validate_cart():
    """
    Checks every cart line against current product stock.
    ---
    Output (200):
        - valid (bool)
        - issues (list): productId, productName, issue, availableStock, requestedQuantity
    """
    account_id = current_identity().current()
    service = build_cart_service()
    try:
        service.load(account_id)
    except CartError as e:
        return error_response(e)
    issues = service.stock_issues()
    return jsonify({"valid": not issues, "issues": issues}), 200
