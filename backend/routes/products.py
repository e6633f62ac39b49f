from decimal import Decimal, InvalidOperation

from flask import Blueprint, request, jsonify

from db import get_db
from services.catalog import DEFAULT_PAGE_SIZE, SEARCH_LIMIT, ProductCatalog
from services.pricing import SIZE_PRICES, format_money

products_bp = Blueprint("products", __name__)

FLAG_PARAMS = {"isNew": "is_new", "isBestSeller": "is_best_seller", "isOnSale": "is_on_sale"}


def _with_sizes(product):
    product["sizes"] = [{"size": s, "price": format_money(p)} for s, p in SIZE_PRICES.items()]
    return product


def _flag(value):
    if value is None:
        return None
    value = value.strip().lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    raise ValueError(value)


def _price(value):
    if value is None or value == "":
        return None
    try:
        return Decimal(value)
    except InvalidOperation:
        raise ValueError(value)


@products_bp.route("/products", methods=["GET"])
def list_products():
    """
    Lists active products, one page at a time.
    ---
    Query:
        - brand, category (str, optional)
        - minPrice / maxPrice (number, optional)
        - isNew / isBestSeller / isOnSale (true | false, optional)
        - search (str, optional): matches name, brand or description
        - page (int, default 1), limit (int, default 12)
    Output (200): products, total, page, limit, totalPages
    Errors:
        - 400: Malformed price or flag
    """
    args = request.args
    try:
        filters = {column: _flag(args.get(param)) for param, column in FLAG_PARAMS.items()}
        filters["min_price"] = _price(args.get("minPrice"))
        filters["max_price"] = _price(args.get("maxPrice"))
    except ValueError as e:
        return jsonify({"error": f"Invalid filter value {e}"}), 400

    result = ProductCatalog(get_db).list_products(
        brand=args.get("brand"),
        category=args.get("category"),
        search=args.get("search"),
        page=args.get("page", default=1, type=int),
        limit=args.get("limit", default=DEFAULT_PAGE_SIZE, type=int),
        **filters,
    )
    result["products"] = [_with_sizes(p) for p in result["products"]]
    return jsonify(result), 200


@products_bp.route("/products/search", methods=["GET"])
def search_products():
    products = ProductCatalog(get_db).search(
        request.args.get("q", ""),
        limit=request.args.get("limit", default=SEARCH_LIMIT, type=int),
    )
    return jsonify({"products": [_with_sizes(p) for p in products]}), 200


@products_bp.route("/products/brands", methods=["GET"])
def list_brands():
    return jsonify({"brands": ProductCatalog(get_db).brands()}), 200


@products_bp.route("/products/categories", methods=["GET"])
def list_categories():
    return jsonify({"categories": ProductCatalog(get_db).categories()}), 200


@products_bp.route("/products/<product_id>", methods=["GET"])
def get_product(product_id):
    product = ProductCatalog(get_db).get_product(product_id)
    if product is None:
        return jsonify({"error": "Product not found"}), 404
    return jsonify(_with_sizes(product)), 200
