from flask import Blueprint, request, jsonify, session

from db import get_db
from services.catalog import ProductCatalog
from services.stores import SessionLocalStore
from services.wishlist import WishlistService

wishlist_bp = Blueprint("wishlist", __name__)

ACTIONS = ("add", "remove", "toggle", "clear")


def build_wishlist() -> WishlistService:
    return WishlistService(SessionLocalStore(session), ProductCatalog(get_db))


def wishlist_payload(wishlist: WishlistService):
    items = wishlist.items()
    return {"items": items, "count": len(items)}


@wishlist_bp.route("/wishlist", methods=["GET"])
def get_wishlist():
    """
    Returns the saved products of the current session.
    ---
    Output (200):
        - items (list): product dicts, in the order they were saved
        - count (int)
    """
    return jsonify(wishlist_payload(build_wishlist())), 200


@wishlist_bp.route("/wishlist", methods=["POST"])
def update_wishlist():
    """
    Applies one wishlist change.
    ---
    Input (JSON):
        - action (str): add | remove | toggle | clear
        - productId (str): required except for clear
    Output (200): same shape as GET /wishlist plus saved (bool) for the product
    Errors:
        - 400: Missing fields or invalid action
        - 404: Product not found
    """
    data = request.get_json(silent=True) or {}
    action = data.get("action")
    product_id = data.get("productId")
    product_id = "" if product_id is None else str(product_id).strip()

    if action not in ACTIONS:
        return jsonify({"error": "Invalid action"}), 400
    if action != "clear" and not product_id:
        return jsonify({"error": "Missing required fields"}), 400

    wishlist = build_wishlist()
    if action in ("add", "toggle") and not wishlist.contains(product_id):
        if ProductCatalog(get_db).get_product(product_id) is None:
            return jsonify({"error": "Product not found"}), 404

    if action == "add":
        wishlist.add(product_id)
    elif action == "remove":
        wishlist.remove(product_id)
    elif action == "toggle":
        wishlist.toggle(product_id)
    else:
        wishlist.clear()

    payload = wishlist_payload(wishlist)
    if product_id:
        payload["saved"] = wishlist.contains(product_id)
    return jsonify(payload), 200
