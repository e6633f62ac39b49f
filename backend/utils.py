import json
from decimal import Decimal
from base import Base
from db import engine
from schema import Product


def upsert_product(db, product_id, name, price, brand="", images=None, stock=0, description="",
                   category="", is_new=False, is_best_seller=False, is_on_sale=False):
    """
    Inserts or refreshes a catalog product.

    Args:
        db: SQLAlchemy database session.
        product_id: Stable product identifier used by carts and orders.
        name: Display name.
        price: Base (100ml) list price.
        brand: Optional brand / house name.
        images: Optional list of image URLs.
        stock: Units on hand.
        description: Long-form copy.
        category: men, women or unisex.
        is_new / is_best_seller / is_on_sale: Merchandising flags.

    Returns:
        The Product instance (new or updated). The caller commits.
    """
    product = db.query(Product).filter_by(id=product_id).first()
    if product is None:
        product = Product(id=product_id)
        db.add(product)
    product.name = name
    product.brand = brand
    product.category = category
    product.price = Decimal(str(price))
    product.images = json.dumps(images or [])
    product.stock = stock
    product.description = description
    product.is_new = bool(is_new)
    product.is_best_seller = bool(is_best_seller)
    product.is_on_sale = bool(is_on_sale)
    product.is_active = True
    return product


def clear_database():
    """
    Wipes all storefront data and recreates the schema.
    """
    import schema  # Ensure all models are registered with Base
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
