"""
Customer order endpoints — order history and the per-order chat.

The chat endpoints are shared with admins: an admin may read and post on
any order, a customer only on their own.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import Pagination, get_current_user, pagination_params
from domain.responses import paginated_response, success_response
from models import MessageCreateRequest
from services import chat_service, order_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("")
async def list_my_orders(
    page: Pagination = Depends(pagination_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_user_orders(
        db, user_id=user.id, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        [order_service.serialize_order(o) for o in orders],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )


@router.get("/{order_id}")
async def get_my_order(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_user_order(db, order_id=order_id, user_id=user.id)
    return success_response(order_service.serialize_order(order))


# ── Chat ────────────────────────────────────────────────────────────

@router.get("/{order_id}/messages")
async def list_messages(
    order_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await chat_service.get_accessible_order(db, order_id=order_id, user=user)
    messages = await chat_service.list_messages(db, order_id=order.id)
    return success_response([chat_service.serialize_message(m) for m in messages])


@router.post("/{order_id}/messages", status_code=201)
async def send_message(
    order_id: int,
    request: MessageCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await chat_service.get_accessible_order(db, order_id=order_id, user=user)
    message = await chat_service.send_message(db, order=order, user=user, content=request.content)
    return success_response(chat_service.serialize_message(message))
