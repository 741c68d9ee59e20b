"""
Cart endpoints — the signed-in user's server-side cart.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import get_current_user
from domain.responses import success_response
from models import CartAddRequest
from services import cart_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("")
async def get_cart(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await cart_service.get_cart(db, user_id=user.id))


@router.post("/items", status_code=201)
async def add_item(
    request: CartAddRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Add a product (or one of its variants); returns the updated cart."""
    await cart_service.add_item(
        db,
        user_id=user.id,
        product_id=request.product_id,
        variant_id=request.variant_id,
        quantity=request.quantity,
    )
    await db.commit()
    return success_response(await cart_service.get_cart(db, user_id=user.id))


@router.delete("/items/{item_id}")
async def remove_item(
    item_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await cart_service.remove_item(db, user_id=user.id, item_id=item_id)
    await db.commit()
    return success_response(await cart_service.get_cart(db, user_id=user.id))


@router.delete("")
async def clear_cart(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await cart_service.clear(db, user_id=user.id)
    await db.commit()
    return success_response(await cart_service.get_cart(db, user_id=user.id))
