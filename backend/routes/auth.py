import logging
from flask import Blueprint, request, jsonify

from db import get_db
from errors import CartError
from routes.cart import build_cart_service, current_identity, require_account
from schema import Profile
from services.identity import authenticate, register_profile

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)

MIN_PASSWORD_LENGTH = 8


def _sign_in(profile):
    """
    Signs the shopper in and moves their guest cart into the account cart.

    Returns:
        The merge error as a dict, or None when the merge succeeded.
    """
    identity = current_identity()
    cart = build_cart_service()
    merge_error = {}

    def _merge(account_id):
        if account_id is None:
            return
        try:
            cart.merge_guest_cart(account_id)
        except CartError as e:
            merge_error.update(e.to_dict())

    identity.on_change(_merge)
    identity.sign_in(profile.id)
    return merge_error or None


@auth_bp.route("/auth/signup", methods=["POST"])
def signup():
    """
    Registers a shopper and signs them in.
    ---
    Input (JSON):
        - email (str)
        - password (str): at least 8 characters
        - fullName (str, optional)
    Output (201):
        - user (dict): id, email, full_name, created_at
        - cart_merge_error (dict | null)
    Errors:
        - 400: Missing fields, short password
        - 409: Email already registered
    """
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify({"error": "Email and password are required"}), 400
    if len(password) < MIN_PASSWORD_LENGTH:
        return jsonify({"error": f"Password must be at least {MIN_PASSWORD_LENGTH} characters"}), 400

    db = next(get_db())
    try:
        try:
            profile = register_profile(db, email, password, data.get("fullName") or "")
        except ValueError as e:
            return jsonify({"error": str(e)}), 409
        user = profile.to_dict()
    finally:
        db.close()

    merge_error = _sign_in(profile)
    return jsonify({"user": user, "cart_merge_error": merge_error}), 201


@auth_bp.route("/auth/login", methods=["POST"])
def login():
    """
    Authenticates a shopper by email and password.

    A guest cart held in the session is merged into the account cart. A failed
    merge does not fail the login; it is reported as cart_merge_error and the
    guest cart is kept for the next attempt.
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email") or ""
    password = data.get("password") or ""

    if not email or not password:
        return jsonify({"error": "Email and password are required"}), 400

    db = next(get_db())
    try:
        profile = authenticate(db, email, password)
        if profile is None:
            return jsonify({"error": "Invalid email or password"}), 401
        user = profile.to_dict()
    finally:
        db.close()

    merge_error = _sign_in(profile)
    return jsonify({"user": user, "cart_merge_error": merge_error}), 200


@auth_bp.route("/auth/logout", methods=["POST"])
def logout():
    current_identity().sign_out()
    return jsonify({"status": "signed_out"}), 200


@auth_bp.route("/auth/me", methods=["GET"])
@require_account
def me(account_id):
    db = next(get_db())
    try:
        profile = db.query(Profile).filter_by(id=account_id).first()
        if profile is None:
            current_identity().sign_out()
            return jsonify({"error": "User not found"}), 404
        return jsonify({"user": profile.to_dict()}), 200
    finally:
        db.close()
