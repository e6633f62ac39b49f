import json
import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from services.pricing import price_of, resolve_size, format_money

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "Unknown Product"


@dataclass(frozen=True)
class LineItem:
    product_id: str
    size: str
    quantity: int
    unit_price: Decimal
    name: str = ""
    images: Tuple[str, ...] = ()
    stale: bool = False

    @property
    def key(self) -> Tuple[str, str]:
        return (self.product_id, self.size)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.name,
            "product_images": list(self.images),
            "selected_size": self.size,
            "quantity": self.quantity,
            "product_price": format_money(self.unit_price),
            "total_price": format_money(self.line_total),
            "stale": self.stale,
        }


def _field(row: Mapping, *names: str) -> Any:
    for name in names:
        if name in row and row[name] is not None:
            return row[name]
    return None


def _coerce_quantity(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return None


def _coerce_images(value: Any) -> Tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return (value,)
    return tuple(str(v) for v in value)


def _display(row: Mapping, product_id: str, snapshots: Optional[Mapping[str, Mapping]]):
    """
    Picks display data for a row: its own denormalized snapshot first, then the
    catalog snapshot. Returns (name, images, stale).
    """
    name = _field(row, "product_name", "name")
    if name:
        return name, _coerce_images(_field(row, "product_images", "images")), False

    if snapshots is not None and product_id in snapshots:
        snap = snapshots[product_id]
        return snap.get("name") or PLACEHOLDER_NAME, _coerce_images(snap.get("images")), False

    # Remote rows always carry the product_name column; guest rows only go
    # stale when a catalog was consulted and had nothing for them.
    if "product_name" in row or snapshots is not None:
        logger.warning(f"Cart line references unknown product {product_id}; using placeholder")
        return PLACEHOLDER_NAME, (), True

    return "", (), False


def normalize(rows: Iterable[Mapping], snapshots: Optional[Mapping[str, Mapping]] = None) -> List[LineItem]:
    """
    Converts raw cart rows from either storage path into canonical line items.

    Accepts guest rows ({product_id|productId, size?, quantity}) and remote rows
    ({product_id, selected_size, quantity, product_name, product_images,
    product_price}). Unit prices always come from the size table; a
    denormalized product_price is never used for cart math.

    Args:
        rows: Raw row mappings in storage order.
        snapshots: Optional product_id -> {"name", "images"} mapping used when
            a row carries no display data of its own.

    Returns:
        Line items in first-occurrence order, with rows sharing a
        (product_id, size) identity summed and non-positive quantities dropped.
    """
    merged: Dict[Tuple[str, str], LineItem] = {}
    for row in rows or []:
        product_id = _field(row, "product_id", "productId")
        quantity = _coerce_quantity(_field(row, "quantity"))
        if not product_id or quantity is None or quantity <= 0:
            logger.debug(f"Dropping cart row with product={product_id!r} quantity={row.get('quantity')!r}")
            continue

        product_id = str(product_id)
        size = resolve_size(_field(row, "selected_size", "size"))
        key = (product_id, size)

        if key in merged:
            existing = merged[key]
            merged[key] = replace(existing, quantity=existing.quantity + quantity)
            continue

        name, images, stale = _display(row, product_id, snapshots)
        merged[key] = LineItem(
            product_id=product_id,
            size=size,
            quantity=quantity,
            unit_price=price_of(size),
            name=name,
            images=images,
            stale=stale,
        )
    return list(merged.values())
