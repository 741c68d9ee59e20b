"""
Chat service — per-order conversation between the buyer and admins.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Message, Order, User
from domain.constants import MAX_MESSAGE_LENGTH
from domain.enums import Role
from domain.errors import NotFoundError, ValidationError
from services import realtime

logger = logging.getLogger(__name__)


def serialize_message(m: Message) -> dict:
    return {
        "id": m.id,
        "order_id": m.order_id,
        "user_id": m.user_id,
        "content": m.content,
        "created_at": m.created_at.isoformat() if m.created_at else None,
    }


def can_access(order: Order, *, user_id: int, role: str) -> bool:
    return role == Role.ADMIN.value or order.user_id == user_id


async def get_accessible_order(db: AsyncSession, *, order_id: int, user: User) -> Order:
    """The order if the user may read its chat; 404 otherwise."""
    order = await db.get(Order, order_id)
    if not order or not can_access(order, user_id=user.id, role=user.role):
        raise NotFoundError("Order", str(order_id))
    return order


async def list_messages(db: AsyncSession, *, order_id: int) -> list[Message]:
    res = await db.execute(
        select(Message)
        .where(Message.order_id == order_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
    )
    return list(res.scalars().all())


async def send_message(db: AsyncSession, *, order: Order, user: User, content: str) -> Message:
    """Store a message. Commits, then pushes it to the order's live feed."""
    content = (content or "").strip()
    if not content:
        raise ValidationError("Message cannot be empty", field="content")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message exceeds {MAX_MESSAGE_LENGTH} characters", field="content")

    message = Message(order_id=order.id, user_id=user.id, content=content)
    db.add(message)
    await db.commit()

    logger.info(f"Message {message.id} on order #{order.id} from user id={user.id}")
    realtime.publish_message(serialize_message(message))
    return message
