import os
from dataclasses import dataclass
from decimal import Decimal


def _env(name: str, default: str) -> str:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


@dataclass(frozen=True)
class StorefrontConfig:
    # Flask
    SECRET_KEY: str = _env("FLASK_SECRET_KEY", "dev-secret-change-me")

    # Cart storage: "sql" talks to DATABASE_URL, "supabase" to the hosted REST API
    CART_BACKEND: str = _env("CART_BACKEND", "sql").lower()
    SUPABASE_URL: str = _env("SUPABASE_URL", "")
    SUPABASE_KEY: str = _env("SUPABASE_KEY", "")
    REMOTE_TIMEOUT_SECONDS: float = float(_env("REMOTE_TIMEOUT_SECONDS", "10"))

    # Payments
    RAZORPAY_KEY_ID: str = _env("RAZORPAY_KEY_ID", "")
    RAZORPAY_KEY_SECRET: str = _env("RAZORPAY_KEY_SECRET", "")
    CURRENCY: str = _env("CURRENCY", "INR")

    # Checkout
    FREE_SHIPPING_THRESHOLD: Decimal = Decimal(_env("FREE_SHIPPING_THRESHOLD", "100"))
    SHIPPING_FEE: Decimal = Decimal(_env("SHIPPING_FEE", "15"))
    ORDERS_PAGE_SIZE: int = int(_env("ORDERS_PAGE_SIZE", "10"))


config = StorefrontConfig()
