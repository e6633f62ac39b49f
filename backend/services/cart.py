import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

from errors import CartError, InvalidQuantity, PartialMergeFailure, SizeChangeIncomplete
from services.normalizer import LineItem, normalize
from services.pricing import CartTotals, DEFAULT_SIZE, compute_totals, resolve_size

logger = logging.getLogger(__name__)

CART_KEY = "aura-cart"


class MutationQueue:
    """
    Serializes cart mutations per account so each write and its follow-up
    reload complete before the next mutation of that account starts.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # account_id -> [lock, number of holders and waiters]
        self._locks: Dict[str, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def acquire(self, account_id: str):
        with self._guard:
            slot = self._locks.get(account_id)
            if slot is None:
                slot = self._locks[account_id] = [threading.Lock(), 0]
            slot[1] += 1
        try:
            with slot[0]:
                yield
        finally:
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0:
                    self._locks.pop(account_id, None)


def _require_quantity(quantity: Any, allow_non_positive: bool) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity(f"Quantity must be an integer, got {quantity!r}")
    if quantity <= 0 and not allow_non_positive:
        raise InvalidQuantity(f"Quantity must be at least 1, got {quantity}")
    return quantity


class CartService:
    """
    Cart mutation coordinator.

    Routes each operation to the guest's local store (account_id is None) or to
    the remote store for a signed-in account, then re-derives the canonical
    line items. Account mutations always reload the whole cart from the remote
    store instead of patching local state.

    items / totals() expose the last successfully loaded state; a failed
    mutation never changes it. The failure is kept in last_error and re-raised.
    """

    def __init__(self, local_store, remote, queue: Optional[MutationQueue] = None, catalog=None):
        self._local = local_store
        self._remote = remote
        self._queue = queue or MutationQueue()
        self._catalog = catalog
        self._items: Tuple[LineItem, ...] = ()
        self.last_error: Optional[CartError] = None

    # ── Reads ────────────────────────────────────────────────────────────────

    @property
    def items(self) -> List[LineItem]:
        return list(self._items)

    def totals(self) -> CartTotals:
        return compute_totals(self._items)

    def find(self, product_id: str, size: str) -> Optional[LineItem]:
        key = (product_id, resolve_size(size))
        for item in self._items:
            if item.key == key:
                return item
        return None

    def stock_issues(self) -> List[Dict[str, Any]]:
        if self._catalog is None:
            return []
        return self._catalog.stock_issues(self._items)

    def load(self, account_id: Optional[str]) -> List[LineItem]:
        """Reloads the canonical cart for the identity from its owning store."""
        if account_id is None:
            self._set_guest_items(self._guest_rows())
        else:
            self._guarded(lambda: self._reload(account_id))
        return self.items

    # ── Mutations ────────────────────────────────────────────────────────────

    def add_item(self, account_id: Optional[str], product_id: str, quantity: int = 1,
                 size: str = DEFAULT_SIZE) -> List[LineItem]:
        quantity = self._checked(_require_quantity, quantity, allow_non_positive=False)
        size = resolve_size(size)

        if account_id is None:
            rows = self._guest_rows()
            for row in rows:
                if self._row_key(row) == (product_id, size):
                    row["quantity"] = int(row.get("quantity") or 0) + quantity
                    row["size"] = size
                    break
            else:
                rows.append({"product_id": product_id, "size": size, "quantity": quantity})
            self._save_guest(rows)
            return self.items

        self._mutate_remote(account_id, "add", lambda: self._remote.upsert(account_id, product_id, quantity, size))
        return self.items

    def update_quantity(self, account_id: Optional[str], product_id: str, size: str,
                        quantity: int) -> List[LineItem]:
        quantity = self._checked(_require_quantity, quantity, allow_non_positive=True)
        if quantity <= 0:
            return self.remove_item(account_id, product_id, size)
        size = resolve_size(size)

        if account_id is None:
            rows = self._guest_rows()
            for row in rows:
                if self._row_key(row) == (product_id, size):
                    row["quantity"] = quantity
                    row["size"] = size
            self._save_guest(rows)
            return self.items

        self._mutate_remote(
            account_id, "update", lambda: self._remote.set_quantity(account_id, product_id, quantity, size)
        )
        return self.items

    def remove_item(self, account_id: Optional[str], product_id: str, size: str) -> List[LineItem]:
        size = resolve_size(size)

        if account_id is None:
            rows = [r for r in self._guest_rows() if self._row_key(r) != (product_id, size)]
            self._save_guest(rows)
            return self.items

        self._mutate_remote(account_id, "remove", lambda: self._remote.remove(account_id, product_id, size))
        return self.items

    def change_size(self, account_id: Optional[str], product_id: str, old_size: str, new_size: str,
                    quantity: int) -> List[LineItem]:
        """
        Moves a line to another size: remove (product, old_size), then add
        (product, new_size). The add may merge into an existing line of the new
        size.

        If the add fails after the removal succeeded, the old line is written
        back with its previous quantity. When that restore fails too the cart is
        half-applied and SizeChangeIncomplete is raised.
        """
        quantity = self._checked(_require_quantity, quantity, allow_non_positive=False)
        old_size, new_size = resolve_size(old_size), resolve_size(new_size)
        if old_size == new_size:
            return self.update_quantity(account_id, product_id, new_size, quantity)

        if account_id is None:
            rows = [r for r in self._guest_rows() if self._row_key(r) != (product_id, old_size)]
            self._save_guest(rows)
            return self.add_item(None, product_id, quantity, new_size)

        with self._queue.acquire(account_id):
            try:
                current = normalize(self._remote.read(account_id))
                self._remote.remove(account_id, product_id, old_size)
            except CartError as e:
                self._fail(e)
            previous = next((i for i in current if i.key == (product_id, old_size)), None)

            try:
                self._remote.upsert(account_id, product_id, quantity, new_size)
            except CartError as add_error:
                logger.warning(
                    f"Size change {product_id} {old_size}->{new_size} failed on add, restoring old line: {add_error}"
                )
                restored = True
                if previous is not None:
                    try:
                        self._remote.upsert(account_id, product_id, previous.quantity, old_size)
                    except CartError as restore_error:
                        logger.error(f"Restoring {product_id} {old_size} failed: {restore_error}")
                        restored = False
                self._guarded(lambda: self._reload(account_id), reraise=False)
                if not restored:
                    self._fail(SizeChangeIncomplete(product_id, old_size, new_size, add_error))
                self._fail(add_error)

            self._guarded(lambda: self._reload(account_id))
        return self.items

    def clear(self, account_id: Optional[str]) -> List[LineItem]:
        if account_id is None:
            self._local.remove(CART_KEY)
            self._set_guest_items([])
            self.last_error = None
            return self.items

        self._mutate_remote(account_id, "clear", lambda: self._remote.clear(account_id))
        return self.items

    # ── Guest-to-account merge ───────────────────────────────────────────────

    def merge_guest_cart(self, account_id: str) -> List[LineItem]:
        """
        Copies the guest cart into the account's remote cart on sign-in.

        The local cart is removed only after every line was upserted; on a
        failure it is kept so nothing the shopper picked is lost, and a retry
        re-adds lines that already made it (at-least-once). The account cart
        is reloaded from the remote store in either case.

        Raises:
            PartialMergeFailure: if any upsert failed.
        """
        pending = normalize(self._guest_rows())
        merged = 0
        failure: Optional[PartialMergeFailure] = None

        with self._queue.acquire(account_id):
            for item in pending:
                try:
                    self._remote.upsert(account_id, item.product_id, item.quantity, item.size)
                except CartError as e:
                    logger.error(f"Guest cart merge for {account_id} stopped after {merged}/{len(pending)}: {e}")
                    failure = PartialMergeFailure(merged, len(pending), e)
                    break
                merged += 1

            if failure is None:
                self._local.remove(CART_KEY)
                if merged:
                    logger.info(f"Merged {merged} guest cart lines into account {account_id}")

            self._guarded(lambda: self._reload(account_id), reraise=failure is None)

        if failure is not None:
            self._fail(failure)
        return self.items

    # ── Internals ────────────────────────────────────────────────────────────

    @staticmethod
    def _row_key(row: Dict[str, Any]) -> Tuple[str, str]:
        return (str(row.get("product_id") or row.get("productId")), resolve_size(row.get("size")))

    def _guest_rows(self) -> List[Dict[str, Any]]:
        rows = self._local.get(CART_KEY) or []
        return [dict(r) for r in rows if isinstance(r, dict)]

    def _snapshots(self, rows) -> Optional[Dict[str, Dict[str, Any]]]:
        if self._catalog is None:
            return None
        return self._catalog.snapshots(str(r.get("product_id") or r.get("productId")) for r in rows)

    def _save_guest(self, rows: List[Dict[str, Any]]) -> None:
        # Canonicalize before writing so the stored rows never hold
        # duplicates or non-positive quantities.
        canonical = [
            {"product_id": i.product_id, "size": i.size, "quantity": i.quantity} for i in normalize(rows)
        ]
        self._local.set(CART_KEY, canonical)
        self._set_guest_items(canonical)
        self.last_error = None

    def _set_guest_items(self, rows) -> None:
        self._items = tuple(normalize(rows, self._snapshots(rows)))

    def _reload(self, account_id: str) -> None:
        rows = self._remote.read(account_id)
        self._items = tuple(normalize(rows))
        self.last_error = None

    def _mutate_remote(self, account_id: str, action: str, write) -> None:
        with self._queue.acquire(account_id):
            try:
                write()
            except CartError as e:
                logger.warning(f"Cart {action} for {account_id} failed: {e}")
                self._fail(e)
            self._guarded(lambda: self._reload(account_id))

    def _guarded(self, fn, reraise: bool = True) -> None:
        try:
            fn()
        except CartError as e:
            if reraise:
                self._fail(e)
            self.last_error = e

    def _checked(self, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except CartError as e:
            self._fail(e)

    def _fail(self, error: CartError):
        self.last_error = error
        raise error
