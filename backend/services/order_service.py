"""
Order service — checkout, order history and admin review.

Manual payment flow ("Pago Móvil"):
    1. Buyer transfers the bolívar amount off-platform
    2. Buyer uploads a screenshot → proof stored in the payment-proofs bucket
    3. Order persisted as `pending` with the cart snapshot, USDT total,
       exchange rate and VES total; the cart is cleared
    4. An admin approves or rejects the order from the back office

Hosted payments (Binance Pay) create `pending` orders through
services/binance_pay_service.py and are approved by its webhook.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Order, OrderItem
from domain.constants import BUCKET_PAYMENT_PROOFS
from domain.enums import OrderStatus, PaymentMethod
from domain.errors import ConflictError, NotFoundError, ValidationError
from services import cart_service, exchange_rate_service, realtime, storage_service
from utils.money import convert

logger = logging.getLogger(__name__)

REVIEW_STATUSES = (OrderStatus.APPROVED.value, OrderStatus.REJECTED.value)


def order_reference(order: Order) -> str:
    return f"#{order.id}"


def serialize_order(order: Order, *, include_items: bool = True) -> dict:
    data = {
        "id": order.id,
        "reference": order_reference(order),
        "user_id": order.user_id,
        "status": order.status,
        "payment_method": order.payment_method,
        "total": order.total,
        "total_usdt": order.total_usdt,
        "total_ves": order.total_ves,
        "exchange_rate": order.exchange_rate,
        "proof_url": order.proof_url,
        "merchant_trade_no": order.merchant_trade_no,
        "reviewed_by": order.reviewed_by,
        "reviewed_at": order.reviewed_at.isoformat() if order.reviewed_at else None,
        "created_at": order.created_at.isoformat() if order.created_at else None,
    }
    if include_items:
        data["items"] = [
            {
                "product_id": i.product_id,
                "variant_id": i.variant_id,
                "name": i.name,
                "price": i.unit_price,
                "quantity": i.quantity,
                "image": i.image_url,
            }
            for i in order.items
        ]
    return data


def _snapshot_items(cart: dict) -> list[OrderItem]:
    return [
        OrderItem(
            product_id=line["product_id"],
            variant_id=line["variant_id"] if isinstance(line["variant_id"], int) else None,
            name=line["name"],
            unit_price=line["price"],
            quantity=line["quantity"],
            image_url=line["image"],
        )
        for line in cart["items"]
    ]


async def _checkout_cart(db: AsyncSession, user_id: int) -> dict:
    cart = await cart_service.get_cart(db, user_id=user_id)
    if not cart["items"]:
        raise ValidationError("Cart is empty")
    return cart


async def build_manual_quote(db: AsyncSession, *, user_id: int) -> dict:
    """Cart totals in USDT and VES at the current exchange rate."""
    cart = await _checkout_cart(db, user_id)
    rate = await exchange_rate_service.get_rate()
    return {
        "items": cart["items"],
        "total_usdt": cart["total"],
        "exchange_rate": rate,
        "total_ves": convert(cart["total"], rate),
    }


async def create_manual_order(
    db: AsyncSession,
    *,
    user_id: int,
    proof_filename: Optional[str],
    proof_content_type: Optional[str],
    proof_data: bytes,
) -> Order:
    """
    Persist a manual-payment order from the user's cart. Commits.

    The proof is uploaded before the order row is written; if persisting
    fails the stored proof is deleted again.
    """
    if not proof_data:
        raise ValidationError("Payment proof is required", field="proof")

    cart = await _checkout_cart(db, user_id)
    rate = await exchange_rate_service.get_rate()

    stored = storage_service.save_upload(
        bucket=BUCKET_PAYMENT_PROOFS,
        owner_id=user_id,
        filename=proof_filename,
        content_type=proof_content_type,
        data=proof_data,
    )

    try:
        order = Order(
            user_id=user_id,
            payment_method=PaymentMethod.MANUAL.value,
            status=OrderStatus.PENDING.value,
            total=cart["total"],
            total_usdt=cart["total"],
            total_ves=convert(cart["total"], rate),
            exchange_rate=rate,
            proof_url=stored["url"],
            proof_key=stored["key"],
            items=_snapshot_items(cart),
        )
        db.add(order)
        await db.flush()
        await cart_service.clear(db, user_id=user_id)
        await db.commit()
    except Exception:
        await db.rollback()
        storage_service.delete_upload(bucket=BUCKET_PAYMENT_PROOFS, key=stored["key"])
        logger.error(f"Manual order for user id={user_id} failed; proof {stored['key']} removed")
        raise

    logger.info(
        f"Manual order {order_reference(order)} created: {order.total_usdt} USDT "
        f"= {order.total_ves} VES @ {rate}"
    )
    realtime.publish_order_change(serialize_order(order, include_items=False), "INSERT")
    return order


async def create_hosted_order(
    db: AsyncSession,
    *,
    user_id: int,
    cart: dict,
    merchant_trade_no: str,
) -> Order:
    """Persist a pending Binance Pay order and clear the cart. Flushes only."""
    order = Order(
        user_id=user_id,
        payment_method=PaymentMethod.BINANCE_PAY.value,
        status=OrderStatus.PENDING.value,
        total=cart["total"],
        total_usdt=cart["total"],
        merchant_trade_no=merchant_trade_no,
        items=_snapshot_items(cart),
    )
    db.add(order)
    await db.flush()
    await cart_service.clear(db, user_id=user_id)
    return order


async def get_order(db: AsyncSession, order_id: int) -> Order:
    order = await db.get(Order, order_id)
    if not order:
        raise NotFoundError("Order", str(order_id))
    return order


async def get_user_order(db: AsyncSession, *, order_id: int, user_id: int) -> Order:
    """An order owned by the user. Other users' orders look nonexistent."""
    order = await db.get(Order, order_id)
    if not order or order.user_id != user_id:
        raise NotFoundError("Order", str(order_id))
    return order


async def list_user_orders(
    db: AsyncSession, *, user_id: int, limit: int = 50, offset: int = 0
) -> tuple[list[Order], int]:
    total = (
        await db.execute(select(func.count()).select_from(Order).where(Order.user_id == user_id))
    ).scalar_one()
    res = await db.execute(
        select(Order)
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(res.scalars().all()), total


async def list_all_orders(
    db: AsyncSession, *, status: Optional[str] = None, limit: int = 50, offset: int = 0
) -> tuple[list[Order], int]:
    count_stmt = select(func.count()).select_from(Order)
    stmt = select(Order)
    if status:
        if status not in {s.value for s in OrderStatus}:
            raise ValidationError("unknown status", field="status")
        count_stmt = count_stmt.where(Order.status == status)
        stmt = stmt.where(Order.status == status)

    total = (await db.execute(count_stmt)).scalar_one()
    res = await db.execute(
        stmt.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset)
    )
    return list(res.scalars().all()), total


async def review_order(
    db: AsyncSession,
    *,
    order_id: int,
    admin_id: int,
    status: str,
) -> Order:
    """
    Admin decision on an order: approved or rejected.

    A reviewed order may be moved to the other decision; asking for the
    status it already has is a conflict.
    """
    if status not in REVIEW_STATUSES:
        raise ValidationError(f"must be one of {list(REVIEW_STATUSES)}", field="status")

    order = await get_order(db, order_id)
    if order.status == status:
        raise ConflictError(f"Order {order_reference(order)} is already {status}.")

    previous = order.status
    order.status = status
    order.reviewed_by = admin_id
    order.reviewed_at = datetime.utcnow()
    order.updated_at = order.reviewed_at
    await db.flush()

    logger.info(f"Order {order_reference(order)}: {previous} → {status} by admin id={admin_id}")
    return order
