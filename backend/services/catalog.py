import json
import math
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_

from schema import Product

DEFAULT_PAGE_SIZE = 12
SEARCH_LIMIT = 20


def _matches(text: str):
    # LIKE wildcards in the shopper's text are matched literally
    escaped = text.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    return or_(
        Product.name.ilike(pattern, escape="\\"),
        Product.brand.ilike(pattern, escape="\\"),
        Product.description.ilike(pattern, escape="\\"),
    )


def _images(raw) -> List[str]:
    if not raw:
        return []
    try:
        return list(json.loads(raw))
    except ValueError:
        return [raw]


def product_dict(product: Product) -> Dict[str, Any]:
    data = product.to_dict()
    data["images"] = _images(product.images)
    return data


class ProductCatalog:
    """
    Read-only product lookups for display data and stock checks.
    """
    def __init__(self, get_db):
        self._get_db = get_db

    def _listed(self, db):
        return db.query(Product).filter(Product.is_active.is_(True))

    def list_products(self, brand: Optional[str] = None, category: Optional[str] = None,
                      min_price: Optional[Decimal] = None, max_price: Optional[Decimal] = None,
                      is_new: Optional[bool] = None, is_best_seller: Optional[bool] = None,
                      is_on_sale: Optional[bool] = None, search: Optional[str] = None,
                      page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
        """
        Returns one page of listed products matching every given filter.

        A filter left as None is not applied; search matches name, brand or
        description case-insensitively.

        Returns:
            {"products": [...], "total": int, "page": int, "limit": int, "totalPages": int}
        """
        page = max(1, page)
        limit = max(1, limit)
        db = next(self._get_db())
        try:
            query = self._listed(db)
            if brand:
                query = query.filter(Product.brand == brand)
            if category:
                query = query.filter(Product.category == category)
            if min_price is not None:
                query = query.filter(Product.price >= min_price)
            if max_price is not None:
                query = query.filter(Product.price <= max_price)
            for column, wanted in (
                (Product.is_new, is_new),
                (Product.is_best_seller, is_best_seller),
                (Product.is_on_sale, is_on_sale),
            ):
                if wanted is not None:
                    query = query.filter(column.is_(wanted))
            if search:
                query = query.filter(_matches(search))

            total = query.count()
            rows = query.order_by(Product.name).offset((page - 1) * limit).limit(limit).all()
            return {
                "products": [product_dict(p) for p in rows],
                "total": total,
                "page": page,
                "limit": limit,
                "totalPages": math.ceil(total / limit),
            }
        finally:
            db.close()

    def search(self, text: str, limit: int = SEARCH_LIMIT) -> List[Dict[str, Any]]:
        if not text or not text.strip():
            return []
        db = next(self._get_db())
        try:
            rows = self._listed(db).filter(_matches(text)).order_by(Product.name).limit(limit).all()
            return [product_dict(p) for p in rows]
        finally:
            db.close()

    def brands(self) -> List[str]:
        return self._distinct(Product.brand)

    def categories(self) -> List[str]:
        return self._distinct(Product.category)

    def _distinct(self, column) -> List[str]:
        db = next(self._get_db())
        try:
            rows = self._listed(db).with_entities(column).distinct().order_by(column).all()
            return [value for (value,) in rows if value]
        finally:
            db.close()

    def get_products(self, product_ids: Iterable[str]) -> List[Dict[str, Any]]:
        """Listed products for product_ids, in the given order; unknown ids are skipped."""
        ids = list(product_ids)
        if not ids:
            return []
        db = next(self._get_db())
        try:
            found = {p.id: p for p in self._listed(db).filter(Product.id.in_(ids)).all()}
            return [product_dict(found[i]) for i in ids if i in found]
        finally:
            db.close()

    def get_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        db = next(self._get_db())
        try:
            product = db.query(Product).filter_by(id=product_id, is_active=True).first()
            return product_dict(product) if product else None
        finally:
            db.close()

    def snapshots(self, product_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """
        Returns {product_id: {"name", "images", "stock"}} for every listed product
        among product_ids. Missing or delisted products are simply absent.
        """
        ids = list(set(product_ids))
        if not ids:
            return {}
        db = next(self._get_db())
        try:
            rows = db.query(Product).filter(Product.id.in_(ids), Product.is_active.is_(True)).all()
            return {
                p.id: {"name": p.name, "images": _images(p.images), "stock": p.stock}
                for p in rows
            }
        finally:
            db.close()

    def stock_issues(self, items) -> List[Dict[str, Any]]:
        """
        Compares requested quantities against current stock.

        Quantities of the same product in different sizes share one stock
        count, since stock is tracked per product.

        Returns:
            A list of issue dicts: productId, productName, issue
            ('out_of_stock' | 'insufficient_stock'), availableStock,
            requestedQuantity.
        """
        requested: Dict[str, int] = {}
        names: Dict[str, str] = {}
        for item in items:
            requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity
            names.setdefault(item.product_id, item.name)

        snaps = self.snapshots(requested.keys())
        issues = []
        for product_id, quantity in requested.items():
            snap = snaps.get(product_id)
            stock = snap["stock"] if snap else 0
            if stock == 0:
                issue = "out_of_stock"
            elif stock < quantity:
                issue = "insufficient_stock"
            else:
                continue
            issues.append({
                "productId": product_id,
                "productName": names[product_id],
                "issue": issue,
                "availableStock": stock,
                "requestedQuantity": quantity,
            })
        return issues
