"""
Cart service — server-side cart per signed-in user.

Prices are never taken from the client: each line is priced from the
current variant (or the base product price for products sold without
variants) every time the cart is read.
"""
import logging
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import CartItem, Product, ProductVariant
from domain.constants import BASE_VARIANT_ID, BASE_VARIANT_NAME
from domain.enums import StockStatus
from domain.errors import ConflictError, NotFoundError, ValidationError
from utils.money import line_total, round_cents

logger = logging.getLogger(__name__)

MAX_QUANTITY_PER_LINE = 99


def _parse_variant_id(variant_id) -> int | None:
    """Accept an int id, None, or the synthetic "base" id."""
    if variant_id is None or variant_id == BASE_VARIANT_ID:
        return None
    try:
        return int(variant_id)
    except (TypeError, ValueError):
        raise ValidationError("must be an integer or 'base'", field="variant_id")


async def _resolve(
    db: AsyncSession, product_id: int, variant_id: int | None
) -> tuple[Product, ProductVariant | None]:
    product = await db.get(Product, product_id)
    if not product:
        raise NotFoundError("Product", str(product_id))
    variant = None
    if variant_id is not None:
        variant = await db.get(ProductVariant, variant_id)
        if not variant or variant.product_id != product.id:
            raise NotFoundError("Variant", str(variant_id))
    elif product.variants:
        raise ValidationError("this product must be bought through one of its variants", field="variant_id")
    return product, variant


async def add_item(
    db: AsyncSession,
    *,
    user_id: int,
    product_id: int,
    variant_id=None,
    quantity: int = 1,
) -> CartItem:
    """
    Add a product/variant to the cart.

    An existing line for the same product and variant has its quantity
    incremented instead of a second line being created.
    """
    if quantity < 1:
        raise ValidationError("must be at least 1", field="quantity")
    vid = _parse_variant_id(variant_id)
    product, _ = await _resolve(db, product_id, vid)
    if product.stock_status != StockStatus.IN_STOCK.value:
        raise ConflictError(f"'{product.name}' is out of stock.")

    stmt = select(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)
    stmt = stmt.where(CartItem.variant_id.is_(None) if vid is None else CartItem.variant_id == vid)
    existing = (await db.execute(stmt)).scalar_one_or_none()

    if existing:
        existing.quantity = min(existing.quantity + quantity, MAX_QUANTITY_PER_LINE)
        item = existing
    else:
        item = CartItem(
            user_id=user_id,
            product_id=product_id,
            variant_id=vid,
            quantity=min(quantity, MAX_QUANTITY_PER_LINE),
        )
        db.add(item)

    await db.flush()
    return item


async def remove_item(db: AsyncSession, *, user_id: int, item_id: int) -> None:
    item = await db.get(CartItem, item_id)
    if not item or item.user_id != user_id:
        raise NotFoundError("Cart item", str(item_id))
    await db.delete(item)
    await db.flush()


async def clear(db: AsyncSession, *, user_id: int) -> None:
    await db.execute(delete(CartItem).where(CartItem.user_id == user_id))
    await db.flush()


async def get_cart(db: AsyncSession, *, user_id: int) -> dict:
    """
    Priced view of the cart.

    Returns:
        {"items": [{id, product_id, variant_id, name, price, quantity, image, line_total}],
         "total": float, "count": int}
    """
    res = await db.execute(
        select(CartItem).where(CartItem.user_id == user_id).order_by(CartItem.created_at, CartItem.id)
    )
    rows = res.scalars().all()

    total = Decimal("0")
    lines: list[dict] = []
    for row in rows:
        product = await db.get(Product, row.product_id)
        if not product:
            continue
        variant = await db.get(ProductVariant, row.variant_id) if row.variant_id is not None else None
        if row.variant_id is not None and not variant:
            continue

        price = variant.price if variant else product.price
        variant_name = variant.name if variant else BASE_VARIANT_NAME
        amount = line_total(price, row.quantity)
        total += amount
        lines.append(
            {
                "id": row.id,
                "product_id": product.id,
                "variant_id": variant.id if variant else BASE_VARIANT_ID,
                "name": f"{product.name} - {variant_name}",
                "price": price,
                "quantity": row.quantity,
                "image": product.image_url,
                "line_total": round_cents(amount),
            }
        )

    return {
        "items": lines,
        "total": round_cents(total),
        "count": sum(line["quantity"] for line in lines),
    }
