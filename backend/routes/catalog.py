"""
Storefront catalog endpoints — public, no sign-in required.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from domain.responses import success_response
from services import catalog_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["catalog"])


@router.get("/products")
async def list_products(
    category: Optional[str] = Query(None, description="gift_cards | game_reloads | all"),
    search: Optional[str] = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
):
    products = await catalog_service.list_products(db, category=category, search=search)
    return success_response([catalog_service.serialize_product(p) for p in products])


@router.get("/products/{product_id}")
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    """Product detail with its purchasable variants, cheapest first."""
    product = await catalog_service.get_product(db, product_id)
    data = catalog_service.serialize_product(product)
    data["variants"] = catalog_service.storefront_variants(product)
    return success_response(data)
