from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

SIZE_PRICES = {
    "20ml": Decimal("349"),
    "50ml": Decimal("599"),
    "100ml": Decimal("799"),
}
DEFAULT_SIZE = "100ml"

# Bundle promotion: every BUNDLE_UNITS bottles of BUNDLE_SIZE earn one free bottle
BUNDLE_SIZE = "100ml"
BUNDLE_UNITS = 2
PROMOTION_LABEL = "Buy 2 Get 1 Free on 100ml bottles"

ZERO = Decimal("0")


def resolve_size(size: Optional[str]) -> str:
    """Returns the canonical size label, falling back to the 100ml bottle."""
    if isinstance(size, str):
        size = size.strip().lower()
        if size in SIZE_PRICES:
            return size
    return DEFAULT_SIZE


def price_of(size: Optional[str]) -> Decimal:
    return SIZE_PRICES[resolve_size(size)]


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    promotion_label: Optional[str]
    item_count: int = 0

    def to_dict(self):
        return {
            "subtotal": format_money(self.subtotal),
            "discount": format_money(self.discount),
            "total": format_money(self.total),
            "promotion_text": self.promotion_label,
            "item_count": self.item_count,
        }


EMPTY_TOTALS = CartTotals(ZERO, ZERO, ZERO, None, 0)


def compute_totals(items: Iterable) -> CartTotals:
    """
    Prices a canonical line-item list and applies the bundle promotion.

    Eligibility is counted in units across all lines of the bundle size, so
    two 100ml lines of quantity 1 earn the same free bottle as one line of
    quantity 2.

    Args:
        items: LineItem objects (anything exposing size, quantity, line_total).

    Returns:
        A CartTotals value; promotion_label is set only when a discount applies.
    """
    subtotal = ZERO
    eligible_units = 0
    item_count = 0
    for item in items:
        subtotal += item.line_total
        item_count += item.quantity
        if item.size == BUNDLE_SIZE:
            eligible_units += item.quantity

    free_units = eligible_units // BUNDLE_UNITS
    discount = free_units * SIZE_PRICES[BUNDLE_SIZE]

    return CartTotals(
        subtotal=subtotal,
        discount=discount,
        total=subtotal - discount,
        promotion_label=PROMOTION_LABEL if free_units > 0 else None,
        item_count=item_count,
    )


def shipping_for(subtotal: Decimal, threshold: Decimal, fee: Decimal) -> Decimal:
    """Flat shipping fee below the free-shipping threshold; empty carts ship free."""
    if subtotal <= ZERO or subtotal >= threshold:
        return ZERO
    return fee


def format_money(value: Decimal) -> str:
    return f"{value:.2f}"


def to_minor_units(value: Decimal) -> int:
    """Converts a rupee amount to paise for the payment gateway."""
    return int((value * 100).to_integral_value())
