"""
Unit tests for the catalog service.

Tests storefront listing/filtering, the synthetic base variant, product
CRUD and variant pricing rules.
"""
import pytest
from fastapi import HTTPException
from sqlalchemy import select

from db_models import CartItem, ProductVariant
from services import cart_service, catalog_service


@pytest.mark.unit
async def test_list_products_filters_and_orders(db_session, make_product):
    await make_product("Xbox Card", category="gift_cards")
    await make_product("Free Fire Diamonds", category="game_reloads")
    await make_product("Amazon Card", category="gift_cards")

    names = [p.name for p in await catalog_service.list_products(db_session)]
    assert names == ["Amazon Card", "Free Fire Diamonds", "Xbox Card"]

    gift = await catalog_service.list_products(db_session, category="gift_cards")
    assert [p.name for p in gift] == ["Amazon Card", "Xbox Card"]

    everything = await catalog_service.list_products(db_session, category="all")
    assert len(everything) == 3

    found = await catalog_service.list_products(db_session, search="  CARD ")
    assert [p.name for p in found] == ["Amazon Card", "Xbox Card"]


@pytest.mark.unit
async def test_get_product_missing_is_404(db_session):
    with pytest.raises(HTTPException) as exc_info:
        await catalog_service.get_product(db_session, 404)
    assert exc_info.value.status_code == 404


@pytest.mark.unit
async def test_storefront_variants_base_when_none(db_session, make_product):
    product = await make_product("Roblox", price=12.5)
    variants = catalog_service.storefront_variants(product)
    assert variants == [{"id": "base", "product_id": product.id, "name": "Standard", "price": 12.5}]


@pytest.mark.unit
async def test_storefront_variants_sorted_by_price(db_session, make_product):
    product = await make_product("PSN", price=5, variants=[("$50", 50.0), ("$10", 10.0), ("$25", 25.0)])
    assert [v["name"] for v in catalog_service.storefront_variants(product)] == ["$10", "$25", "$50"]


@pytest.mark.unit
async def test_create_product_validates_category(db_session):
    with pytest.raises(HTTPException) as exc_info:
        await catalog_service.create_product(
            db_session,
            name="Thing",
            description=None,
            price=1.0,
            image_url=None,
            category="toys",
            stock_status="in_stock",
        )
    assert exc_info.value.status_code == 400
    assert "category" in exc_info.value.detail


@pytest.mark.unit
async def test_update_product_partial(db_session, make_product):
    product = await make_product("Steam", price=10.0)
    updated = await catalog_service.update_product(db_session, product_id=product.id, stock_status="out_of_stock")
    await db_session.commit()

    assert updated.stock_status == "out_of_stock"
    assert updated.price == 10.0
    assert updated.name == "Steam"


@pytest.mark.unit
async def test_add_variant_lowers_from_price(db_session, make_product):
    product = await make_product("Netflix", price=0)

    await catalog_service.add_variant(db_session, product_id=product.id, name="1 month", price=15.0)
    assert product.price == 15.0

    await catalog_service.add_variant(db_session, product_id=product.id, name="Trial", price=9.99)
    assert product.price == 9.99

    await catalog_service.add_variant(db_session, product_id=product.id, name="Year", price=120.0)
    await db_session.commit()
    assert product.price == 9.99
    assert len(product.variants) == 3


@pytest.mark.unit
async def test_add_variant_requires_positive_price(db_session, make_product):
    product = await make_product()
    with pytest.raises(HTTPException):
        await catalog_service.add_variant(db_session, product_id=product.id, name="Free", price=0)


@pytest.mark.unit
async def test_delete_product_cascades(db_session, make_product, customer):
    product = await make_product("Spotify", variants=[("1 month", 5.0)])
    variant_id = product.variants[0].id
    await cart_service.add_item(db_session, user_id=customer.id, product_id=product.id, variant_id=variant_id)
    await db_session.commit()

    await catalog_service.delete_product(db_session, product_id=product.id)
    await db_session.commit()

    assert (await db_session.execute(select(ProductVariant))).scalars().all() == []
    assert (await db_session.execute(select(CartItem))).scalars().all() == []


@pytest.mark.unit
async def test_delete_variant(db_session, make_product):
    product = await make_product("Spotify", variants=[("1 month", 5.0), ("3 months", 14.0)])
    await catalog_service.delete_variant(db_session, variant_id=product.variants[0].id)
    await db_session.commit()
    assert [v.name for v in product.variants] == ["3 months"]

    with pytest.raises(HTTPException) as exc_info:
        await catalog_service.delete_variant(db_session, variant_id=9999)
    assert exc_info.value.status_code == 404
