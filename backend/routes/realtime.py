"""
Realtime WebSocket feeds.

    /ws/admin/orders?token=<jwt>              — every order insert/update (admins)
    /ws/orders/{order_id}/messages?token=<jwt> — new chat messages of one order
                                                 (order owner or admin)

Connections that fail authentication or authorization are closed with
1008 (policy violation) before they are accepted.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import Order, User
from domain.constants import TOPIC_ORDERS
from domain.enums import Role
from domain.errors import DomainError
from middleware.auth import decode_access_token
from services import chat_service
from services.realtime import broadcaster, messages_topic

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/ws", tags=["realtime"])


def _token_payload(token: Optional[str]) -> Optional[dict]:
    if not token:
        return None
    try:
        return decode_access_token(token)
    except DomainError:
        return None


async def _stream(websocket: WebSocket, topic: str) -> None:
    """Accept the socket and forward broadcaster events until the client goes away."""
    # Subscribed before accept: nothing published after the handshake is missed
    sub_id, queue = broadcaster.subscribe(topic)

    async def _forward():
        while True:
            event = await queue.get()
            await websocket.send_json(event)

    async def _drain():
        # Client frames are ignored; this only notices the disconnect.
        while True:
            await websocket.receive_text()

    tasks = []
    try:
        await websocket.accept()
        tasks = [asyncio.create_task(_forward()), asyncio.create_task(_drain())]
        done, _pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc and not isinstance(exc, WebSocketDisconnect):
                logger.warning(f"WebSocket on {topic} closed with error: {exc}")
    finally:
        for task in tasks:
            task.cancel()
        broadcaster.unsubscribe(topic, sub_id)


@router.websocket("/admin/orders")
async def admin_orders_feed(websocket: WebSocket, token: Optional[str] = Query(None)):
    payload = _token_payload(token)
    if not payload or payload.get("role") != Role.ADMIN.value:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await _stream(websocket, TOPIC_ORDERS)


@router.websocket("/orders/{order_id}/messages")
async def order_messages_feed(
    websocket: WebSocket,
    order_id: int,
    token: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    payload = _token_payload(token)
    if not payload:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        user = await db.get(User, int(payload.get("sub")))
    except (TypeError, ValueError):
        user = None
    order = await db.get(Order, order_id) if user else None
    if not user or not order or not chat_service.can_access(order, user_id=user.id, role=user.role):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await db.close()

    await _stream(websocket, messages_topic(order_id))
