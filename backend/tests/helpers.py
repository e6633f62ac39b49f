import time
import uuid
from datetime import datetime, timezone
from errors import RemoteUnavailable
from schema import CartItem
from services.pricing import resolve_size
from services.stores import RemoteCart
from utils import upsert_product


class FakeRemote(RemoteCart):
    """
    In-memory remote cart.

    fail_on maps an operation name to the number of calls that succeed before
    every later call fails, e.g. {"upsert": 1} lets one upsert through.
    delay widens the read-modify-write window of upsert to expose races.
    """

    def __init__(self, fail_on=None, delay=0.0):
        self.rows = []
        self.fail_on = dict(fail_on or {})
        self.delay = delay
        self.calls = []

    def _call(self, op):
        self.calls.append(op)
        if op in self.fail_on:
            if self.fail_on[op] <= 0:
                raise RemoteUnavailable(f"{op} failed")
            self.fail_on[op] -= 1

    def _find(self, account_id, product_id, size):
        for row in self.rows:
            if (row["user_id"], row["product_id"], row["selected_size"]) == (account_id, product_id, size):
                return row
        return None

    def read(self, account_id):
        self._require_account(account_id)
        self._call("read")
        return [
            {**row, "product_name": f"Product {row['product_id']}", "product_images": []}
            for row in self.rows if row["user_id"] == account_id
        ]

    def upsert(self, account_id, product_id, quantity, size):
        self._require_account(account_id)
        self._call("upsert")
        size = resolve_size(size)
        row = self._find(account_id, product_id, size)
        current = row["quantity"] if row else 0
        if self.delay:
            time.sleep(self.delay)
        if row:
            row["quantity"] = current + quantity
        else:
            self.rows.append({
                "user_id": account_id, "product_id": product_id,
                "selected_size": size, "quantity": quantity,
            })

    def set_quantity(self, account_id, product_id, quantity, size):
        self._require_account(account_id)
        self._call("set_quantity")
        row = self._find(account_id, product_id, resolve_size(size))
        if row:
            row["quantity"] = quantity

    def remove(self, account_id, product_id, size):
        self._require_account(account_id)
        self._call("remove")
        size = resolve_size(size)
        self.rows = [
            r for r in self.rows
            if (r["user_id"], r["product_id"], r["selected_size"]) != (account_id, product_id, size)
        ]

    def clear(self, account_id):
        self._require_account(account_id)
        self._call("clear")
        self.rows = [r for r in self.rows if r["user_id"] != account_id]


def seed_products(db, stock=10):
    upsert_product(db, "aura-noir", "Aura Noir", 799, brand="Aura Essence", images=["/noir.jpg"], stock=stock,
                   category="unisex", description="Smoked oud and black amber", is_best_seller=True)
    upsert_product(db, "velvet-oud", "Velvet Oud", 799, brand="Aura Essence", images=["/oud.jpg"], stock=stock,
                   category="women", description="Rose and sandalwood", is_new=True)
    upsert_product(db, "midnight-iris", "Midnight Iris", 799, brand="Maison Lumiere", stock=stock,
                   category="women", description="Powdery iris and violet leaf", is_on_sale=True)
    db.commit()


def seed_cart_row(db, user_id, product_id, quantity, size="100ml"):
    db.add(CartItem(
        id=str(uuid.uuid4()), user_id=user_id, product_id=product_id,
        selected_size=size, quantity=quantity, created_at=datetime.now(timezone.utc),
    ))
    db.commit()


def signup(client, email="ava@example.com", password="s3cretpass", full_name="Ava Laurent"):
    return client.post("/api/v1/auth/signup", json={"email": email, "password": password, "fullName": full_name})


def login(client, email="ava@example.com", password="s3cretpass"):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


def cart_action(client, action, product_id=None, quantity=None, size=None, new_size=None):
    body = {"action": action}
    if product_id is not None:
        body["productId"] = product_id
    if quantity is not None:
        body["quantity"] = quantity
    if size is not None:
        body["selectedSize"] = size
    if new_size is not None:
        body["newSize"] = new_size
    return client.post("/api/v1/cart", json=body)


def get_cart(client):
    return client.get("/api/v1/cart").get_json()
