import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from errors import IdentityRequired, RemoteUnavailable
from schema import CartItem, Product
from services.pricing import resolve_size

logger = logging.getLogger(__name__)


# ---------------- local (ephemeral) stores ----------------

class MemoryLocalStore:
    """Dictionary-backed local store, used for tests and scripts."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data = dict(initial or {})

    def get(self, key: str) -> Any:
        value = self._data.get(key)
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class SessionLocalStore:
    """
    Local store kept in the shopper's signed Flask session cookie, the
    server-side stand-in for browser local storage.
    """

    def __init__(self, session):
        self._session = session

    def get(self, key: str) -> Any:
        return copy.deepcopy(self._session.get(key))

    def set(self, key: str, value: Any) -> None:
        self._session[key] = copy.deepcopy(value)
        self._session.modified = True

    def remove(self, key: str) -> None:
        if key in self._session:
            self._session.pop(key)
            self._session.modified = True


# ---------------- remote cart stores ----------------

class RemoteCart:
    """
    Interface of the authoritative per-account cart store.

    read(account_id) -> list of row dicts
    upsert(account_id, product_id, quantity, size)       increments an existing line
    set_quantity(account_id, product_id, quantity, size) absolute set
    remove(account_id, product_id, size)
    clear(account_id)

    Every failure is raised as IdentityRequired or RemoteUnavailable.
    """

    @staticmethod
    def _require_account(account_id: Optional[str]) -> str:
        if not account_id:
            raise IdentityRequired("Remote cart operation requires a signed-in account")
        return account_id

    def read(self, account_id: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def upsert(self, account_id: str, product_id: str, quantity: int, size: str) -> None:
        raise NotImplementedError

    def set_quantity(self, account_id: str, product_id: str, quantity: int, size: str) -> None:
        raise NotImplementedError

    def remove(self, account_id: str, product_id: str, size: str) -> None:
        raise NotImplementedError

    def clear(self, account_id: str) -> None:
        raise NotImplementedError


class SqlCartStore(RemoteCart):
    """
    Remote cart backed by the storefront database. Each operation runs in its
    own session and transaction, mirroring the hosted store's stored procedures.
    """

    def __init__(self, get_db):
        self._get_db = get_db

    def _run(self, action: str, fn):
        db = next(self._get_db())
        try:
            result = fn(db)
            db.commit()
            return result
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Cart {action} failed: {e}")
            raise RemoteUnavailable(f"Cart {action} failed") from e
        finally:
            db.close()

    def read(self, account_id: str) -> List[Dict[str, Any]]:
        account_id = self._require_account(account_id)

        def _read(db):
            rows = (
                db.query(CartItem, Product)
                .outerjoin(Product, Product.id == CartItem.product_id)
                .filter(CartItem.user_id == account_id)
                .order_by(CartItem.created_at.asc(), CartItem.id.asc())
                .all()
            )
            out = []
            for item, product in rows:
                listed = product is not None and product.is_active
                out.append({
                    "id": item.id,
                    "user_id": item.user_id,
                    "product_id": item.product_id,
                    "selected_size": item.selected_size,
                    "quantity": item.quantity,
                    "product_name": product.name if listed else None,
                    "product_images": product.images if listed else None,
                    "product_price": product.price if listed else None,
                })
            return out

        return self._run("read", _read)

    def _line(self, db, account_id, product_id, size):
        return (
            db.query(CartItem)
            .filter_by(user_id=account_id, product_id=product_id, selected_size=size)
            .with_for_update()
            .first()
        )

    def upsert(self, account_id: str, product_id: str, quantity: int, size: str) -> None:
        account_id = self._require_account(account_id)
        size = resolve_size(size)

        def _upsert(db):
            line = self._line(db, account_id, product_id, size)
            if line:
                line.quantity += quantity
            else:
                db.add(CartItem(
                    id=str(uuid.uuid4()),
                    user_id=account_id,
                    product_id=product_id,
                    selected_size=size,
                    quantity=quantity,
                    created_at=datetime.now(timezone.utc),
                ))

        self._run("upsert", _upsert)

    def set_quantity(self, account_id: str, product_id: str, quantity: int, size: str) -> None:
        account_id = self._require_account(account_id)
        size = resolve_size(size)

        def _set(db):
            line = self._line(db, account_id, product_id, size)
            if line:
                line.quantity = quantity

        self._run("set_quantity", _set)

    def remove(self, account_id: str, product_id: str, size: str) -> None:
        account_id = self._require_account(account_id)
        size = resolve_size(size)
        self._run(
            "remove",
            lambda db: db.query(CartItem)
            .filter_by(user_id=account_id, product_id=product_id, selected_size=size)
            .delete(),
        )

    def clear(self, account_id: str) -> None:
        account_id = self._require_account(account_id)
        self._run("clear", lambda db: db.query(CartItem).filter_by(user_id=account_id).delete())
