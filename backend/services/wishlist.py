from typing import Any, Dict, List

WISHLIST_KEY = "aura-wishlist"


class WishlistService:
    """
    Saved-for-later product ids kept in the shopper's local store, in the
    order they were added. Product display data is read from the catalog, so
    delisted products drop out of items() without being removed from the list.
    """

    def __init__(self, local_store, catalog):
        self._local = local_store
        self._catalog = catalog

    def product_ids(self) -> List[str]:
        ids = self._local.get(WISHLIST_KEY) or []
        return [str(i) for i in ids if i]

    def contains(self, product_id: str) -> bool:
        return product_id in self.product_ids()

    def items(self) -> List[Dict[str, Any]]:
        return self._catalog.get_products(self.product_ids())

    def add(self, product_id: str) -> bool:
        """Returns False when the product was already saved."""
        ids = self.product_ids()
        if product_id in ids:
            return False
        ids.append(product_id)
        self._local.set(WISHLIST_KEY, ids)
        return True

    def remove(self, product_id: str) -> bool:
        ids = self.product_ids()
        if product_id not in ids:
            return False
        self._local.set(WISHLIST_KEY, [i for i in ids if i != product_id])
        return True

    def toggle(self, product_id: str) -> bool:
        """Flips membership and returns whether the product is now saved."""
        if self.remove(product_id):
            return False
        self.add(product_id)
        return True

    def clear(self) -> None:
        self._local.remove(WISHLIST_KEY)
