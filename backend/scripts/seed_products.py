#!/usr/bin/env python3
import os
import sys
import json
import logging

# Add the parent directory to sys.path to allow imports from the backend
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db import get_db, init_db
from utils import clear_database, upsert_product

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

DEFAULT_CATALOG = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "data", "products.json")


def sync_products(path: str) -> int:
    """
    Loads the bundled catalog file into the products table.

    Existing products are refreshed in place, so the script can be re-run
    after editing the JSON.

    Args:
        path: Location of a JSON list of product objects.

    Returns:
        The number of products written.
    """
    with open(path, "r", encoding="utf-8") as f:
        products = json.load(f)

    db = next(get_db())
    try:
        for p in products:
            upsert_product(
                db,
                p["id"],
                p["name"],
                p["price"],
                brand=p.get("brand", ""),
                images=p.get("images"),
                stock=p.get("stock", 0),
                description=p.get("description", ""),
                category=p.get("category", ""),
                is_new=p.get("is_new", False),
                is_best_seller=p.get("is_best_seller", False),
                is_on_sale=p.get("is_on_sale", False),
            )
            logger.info(f"Synced product: {p['name']}")
        db.commit()
    finally:
        db.close()
    return len(products)


def main():
    """
    Usage: seed_products.py [--reset] [catalog.json]

    --reset drops every table (profiles, carts and orders included) first.
    """
    args = sys.argv[1:]
    if "--reset" in args:
        args.remove("--reset")
        confirm = input("This will permanently delete all storefront data. Continue? (y/N): ")
        if confirm.lower() != 'y':
            print("Reset cancelled.")
            return
        clear_database()
        logger.info("Database reset.")
    else:
        init_db()

    path = args[0] if args else DEFAULT_CATALOG
    count = sync_products(path)
    logger.info(f"Product sync completed: {count} products from {path}")


if __name__ == "__main__":
    main()
