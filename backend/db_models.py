"""
SQLAlchemy ORM models for the KrostyShop backend.

Tables:
    users                  — customers and admins (e-mail + bcrypt hash)
    password_reset_tokens  — single-use reset tokens (stored hashed)
    products               — catalog entries (gift cards, game reloads)
    product_variants       — denominations / options with their own price
    cart_items             — server-side cart lines per user
    orders                 — cart snapshot + totals + payment proof + status
    order_items            — line snapshot of an order
    messages               — per-order chat between buyer and admins
"""
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Text, ForeignKey,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship

from database import Base


# ════════════════════════════════════════════════════════════════════
# Accounts
# ════════════════════════════════════════════════════════════════════

class User(Base):
    """Shop accounts. Role decides back-office access."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(254), unique=True, nullable=False, index=True)
    full_name = Column(String(200), nullable=True)
    password_hash = Column(String(100), nullable=False)
    role = Column(String(20), nullable=False, default="customer")  # "customer" | "admin"
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PasswordResetToken(Base):
    """
    Single-use password reset token.

    Only the SHA-256 of the token is stored; the raw value is handed to the
    user once (by e-mail in a real deployment, in the response in demo mode).
    """
    __tablename__ = "password_reset_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# ════════════════════════════════════════════════════════════════════
# Catalog
# ════════════════════════════════════════════════════════════════════

class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False, default=0.0)  # "from" price in USDT
    image_url = Column(String(500), nullable=True)
    category = Column(String(30), nullable=False, default="gift_cards", index=True)
    stock_status = Column(String(20), nullable=False, default="in_stock")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariant.price",
        lazy="selectin",
    )


class ProductVariant(Base):
    """A purchasable denomination of a product (e.g. "$10 card")."""
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(Float, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    product = relationship("Product", back_populates="variants")


# ════════════════════════════════════════════════════════════════════
# Cart
# ════════════════════════════════════════════════════════════════════

class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", "variant_id", name="uq_cart_user_product_variant"),
    )


# ════════════════════════════════════════════════════════════════════
# Orders & Chat
# ════════════════════════════════════════════════════════════════════

class Order(Base):
    """
    A checked-out cart awaiting (or past) payment review.

    Lifecycle:
        1. Buyer uploads proof (manual) or is redirected to Binance Pay → pending
        2. Admin approves/rejects (manual) or webhook reports PAY_SUCCESS → approved
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    payment_method = Column(String(20), nullable=False, default="manual")  # manual | binance_pay
    status = Column(String(20), nullable=False, default="pending", index=True)  # pending | approved | rejected

    total = Column(Float, nullable=False, default=0.0)
    total_usdt = Column(Float, nullable=False, default=0.0)
    total_ves = Column(Float, nullable=True)
    exchange_rate = Column(Float, nullable=True)  # VES per USDT at checkout

    proof_url = Column(String(500), nullable=True)
    proof_key = Column(String(300), nullable=True)  # storage key inside payment-proofs

    merchant_trade_no = Column(String(64), unique=True, nullable=True, index=True)
    binance_prepay_id = Column(String(64), nullable=True)

    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        # Customer order history: filter by user_id, order by created_at DESC
        Index("ix_orders_user_created", "user_id", "created_at"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)  # snapshot; product may be deleted later
    variant_id = Column(Integer, nullable=True)
    name = Column(String(400), nullable=False)
    unit_price = Column(Float, nullable=False, default=0.0)
    quantity = Column(Integer, nullable=False, default=1)
    image_url = Column(String(500), nullable=True)

    order = relationship("Order", back_populates="items")


class Message(Base):
    """Chat line attached to an order."""
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
