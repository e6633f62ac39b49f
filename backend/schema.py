from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, Text, ForeignKey, DateTime, UniqueConstraint,
)
from base import Base


class Profile(Base):
    __tablename__ = 'profiles'
    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True)
    full_name = Column(String)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime)

    def to_dict(self):
        data = super().to_dict()
        data.pop("password_hash", None)
        return data


class Product(Base):
    __tablename__ = 'products'
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    brand = Column(String)
    category = Column(String)  # men | women | unisex
    price = Column(Numeric(10, 2), nullable=False)
    images = Column(Text)  # JSON list of URLs
    stock = Column(Integer, nullable=False, default=0)
    description = Column(Text)
    is_new = Column(Boolean, nullable=False, default=False)
    is_best_seller = Column(Boolean, nullable=False, default=False)
    is_on_sale = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)


class CartItem(Base):
    __tablename__ = 'cart_items'
    __table_args__ = (
        UniqueConstraint('user_id', 'product_id', 'selected_size', name='uq_cart_line'),
    )
    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey('profiles.id'), nullable=False)
    product_id = Column(String, ForeignKey('products.id'), nullable=False)
    selected_size = Column(String, nullable=False, default='100ml')
    quantity = Column(Integer, nullable=False)
    created_at = Column(DateTime)


class Order(Base):
    __tablename__ = 'orders'
    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey('profiles.id'), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    shipping = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String, nullable=False, default='pending')
    payment_status = Column(String, nullable=False, default='pending')
    payment_method = Column(String)
    shipping_address = Column(Text)  # JSON object
    razorpay_order_id = Column(String)
    razorpay_payment_id = Column(String, unique=True)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class OrderItem(Base):
    __tablename__ = 'order_items'
    id = Column(String, primary_key=True)
    order_id = Column(String, ForeignKey('orders.id'), nullable=False)
    product_id = Column(String, nullable=False)
    product_name = Column(String)
    selected_size = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
