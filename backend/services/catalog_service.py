"""
Catalog service — products and their variants.

Storefront reads are public; writes are called from admin routes only.
"""

from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import CartItem, Product, ProductVariant
from domain.constants import BASE_VARIANT_ID, BASE_VARIANT_NAME
from domain.enums import ProductCategory, StockStatus
from domain.errors import NotFoundError, ValidationError

_CATEGORIES = {c.value for c in ProductCategory}
_STOCK_STATUSES = {s.value for s in StockStatus}


def _check_category(category: str) -> str:
    if category not in _CATEGORIES:
        raise ValidationError(f"must be one of {sorted(_CATEGORIES)}", field="category")
    return category


def _check_stock_status(stock_status: str) -> str:
    if stock_status not in _STOCK_STATUSES:
        raise ValidationError(f"must be one of {sorted(_STOCK_STATUSES)}", field="stock_status")
    return stock_status


def serialize_product(p: Product) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "price": p.price,
        "image_url": p.image_url,
        "category": p.category,
        "stock_status": p.stock_status,
    }


def serialize_variant(v: ProductVariant) -> dict:
    return {"id": v.id, "product_id": v.product_id, "name": v.name, "price": v.price}


def storefront_variants(product: Product) -> list[dict]:
    """
    Variants offered to buyers, cheapest first.

    Products without variants are sold through a single synthetic
    "Standard" option at the base price.
    """
    variants = sorted(product.variants, key=lambda v: v.price)
    if variants:
        return [serialize_variant(v) for v in variants]
    return [
        {
            "id": BASE_VARIANT_ID,
            "product_id": product.id,
            "name": BASE_VARIANT_NAME,
            "price": product.price,
        }
    ]


async def list_products(
    db: AsyncSession,
    *,
    category: str | None = None,
    search: str | None = None,
) -> list[Product]:
    stmt = select(Product)
    if category and category != "all":
        stmt = stmt.where(Product.category == category)
    if search and search.strip():
        stmt = stmt.where(func.lower(Product.name).contains(search.strip().lower()))
    res = await db.execute(stmt.order_by(Product.name))
    return list(res.scalars().all())


async def get_product(db: AsyncSession, product_id: int) -> Product:
    product = await db.get(Product, product_id)
    if not product:
        raise NotFoundError("Product", str(product_id))
    return product


async def create_product(
    db: AsyncSession,
    *,
    name: str,
    description: str | None,
    price: float,
    image_url: str | None,
    category: str,
    stock_status: str,
) -> Product:
    product = Product(
        name=name,
        description=description,
        price=price,
        image_url=image_url,
        category=_check_category(category),
        stock_status=_check_stock_status(stock_status),
    )
    db.add(product)
    await db.flush()
    await db.refresh(product, attribute_names=["variants"])
    return product


async def update_product(
    db: AsyncSession,
    *,
    product_id: int,
    name: str | None = None,
    description: str | None = None,
    price: float | None = None,
    image_url: str | None = None,
    category: str | None = None,
    stock_status: str | None = None,
) -> Product:
    """Update a product's fields. Only provided fields are updated."""
    product = await get_product(db, product_id)

    if name is not None:
        product.name = name
    if description is not None:
        product.description = description
    if price is not None:
        product.price = price
    if image_url is not None:
        product.image_url = image_url
    if category is not None:
        product.category = _check_category(category)
    if stock_status is not None:
        product.stock_status = _check_stock_status(stock_status)

    product.updated_at = datetime.utcnow()
    await db.flush()
    return product


async def delete_product(db: AsyncSession, *, product_id: int) -> None:
    """Delete a product with its variants. Cart lines pointing at it are dropped."""
    product = await get_product(db, product_id)
    await db.execute(delete(CartItem).where(CartItem.product_id == product_id))
    await db.delete(product)
    await db.flush()


async def add_variant(db: AsyncSession, *, product_id: int, name: str, price: float) -> ProductVariant:
    """
    Add a variant. The product's "from" price follows the cheapest variant:
    it is lowered when unset (0) or above the new variant's price.
    """
    if price <= 0:
        raise ValidationError("must be positive", field="price")
    product = await get_product(db, product_id)

    variant = ProductVariant(product_id=product.id, name=name, price=price)
    db.add(variant)

    if product.price == 0 or price < product.price:
        product.price = price
        product.updated_at = datetime.utcnow()

    await db.flush()
    await db.refresh(product, attribute_names=["variants"])
    return variant


async def delete_variant(db: AsyncSession, *, variant_id: int) -> None:
    variant = await db.get(ProductVariant, variant_id)
    if not variant:
        raise NotFoundError("Variant", str(variant_id))
    product_id = variant.product_id
    await db.execute(delete(CartItem).where(CartItem.variant_id == variant_id))
    await db.delete(variant)
    await db.flush()

    product = await db.get(Product, product_id)
    if product:
        await db.refresh(product, attribute_names=["variants"])
