"""
Domain enums shared by services and routers.
"""

from enum import Enum


class Role(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class OrderStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentMethod(str, Enum):
    MANUAL = "manual"
    BINANCE_PAY = "binance_pay"


class ProductCategory(str, Enum):
    GIFT_CARDS = "gift_cards"
    GAME_RELOADS = "game_reloads"


class StockStatus(str, Enum):
    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"
