"""
Binance Pay — hosted checkout + webhook.

Handles:
    1. Order creation (sign payload, call Binance Pay, persist pending order)
    2. Webhook signature verification
    3. PAY_SUCCESS webhook → order approved

Request and webhook signatures are the same scheme:

    HMAC-SHA512(secret, "{timestamp}\\n{nonce}\\n{body}\\n"), upper-case hex

Verification FAILS CLOSED when BINANCE_SECRET_KEY is not configured.
"""
import hashlib
import hmac
import json
import logging
import time
import uuid
from typing import Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Order
from domain.enums import OrderStatus
from domain.errors import UpstreamServiceError, ValidationError
from services import cart_service, order_service, realtime

logger = logging.getLogger(__name__)

CREATE_ORDER_PATH = "/binancepay/openapi/v2/order"
ACK = {"returnCode": "SUCCESS", "returnMessage": None}


# ════════════════════════════════════════════════════════════════════
# Signing
# ════════════════════════════════════════════════════════════════════


def sign(timestamp: str, nonce: str, body: str, secret: Optional[str] = None) -> str:
    key = settings.binance_secret_key if secret is None else secret
    payload = f"{timestamp}\n{nonce}\n{body}\n"
    return hmac.new(key.encode("utf-8"), payload.encode("utf-8"), hashlib.sha512).hexdigest().upper()


def _new_nonce() -> str:
    return uuid.uuid4().hex


# ════════════════════════════════════════════════════════════════════
# Order Creation
# ════════════════════════════════════════════════════════════════════


def build_order_payload(*, cart: dict, merchant_trade_no: str, origin: str) -> dict:
    items = cart["items"]
    return {
        "env": {"terminalType": "WEB"},
        "merchantTradeNo": merchant_trade_no,
        "orderAmount": f"{cart['total']:.2f}",
        "currency": "USDT",
        "goods": {
            "goodsType": "02",  # virtual goods
            "goodsCategory": "7000",
            "referenceGoodsId": str(items[0]["product_id"]),
            "goodsName": f"KrostyShop Order - {len(items)} items",
            "goodsDetail": ", ".join(f"{i['name']} x{i['quantity']}" for i in items),
        },
        "returnUrl": f"{origin}/payment/success?tradeNo={merchant_trade_no}",
        "cancelUrl": f"{origin}/payment/cancel?tradeNo={merchant_trade_no}",
    }


async def create_order(
    db: AsyncSession,
    *,
    user_id: int,
    origin: str,
    client: Optional[httpx.AsyncClient] = None,
) -> dict:
    """
    Start a hosted checkout for the user's cart.

    Returns:
        {"checkout_url", "trade_no", "order_id"}
    """
    if not settings.binance_api_key or not settings.binance_secret_key:
        raise UpstreamServiceError("Binance Pay is not configured.")

    cart = await cart_service.get_cart(db, user_id=user_id)
    if not cart["items"]:
        raise ValidationError("Cart is empty")

    merchant_trade_no = uuid.uuid4().hex
    body = json.dumps(
        build_order_payload(cart=cart, merchant_trade_no=merchant_trade_no, origin=origin.rstrip("/")),
        separators=(",", ":"),
    )
    timestamp = str(int(time.time() * 1000))
    nonce = _new_nonce()
    headers = {
        "Content-Type": "application/json",
        "BinancePay-Timestamp": timestamp,
        "BinancePay-Nonce": nonce,
        "BinancePay-Certificate-SN": settings.binance_api_key,
        "BinancePay-Signature": sign(timestamp, nonce, body),
    }
    url = f"{settings.binance_api_base.rstrip('/')}{CREATE_ORDER_PATH}"

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=15.0) as c:
                response = await c.post(url, content=body, headers=headers)
        else:
            response = await client.post(url, content=body, headers=headers)
        result = response.json()
    except httpx.HTTPError as e:
        logger.error(f"Binance Pay request failed: {e}")
        raise UpstreamServiceError("Payment provider unreachable. Please try again later.")
    except ValueError:
        logger.error("Binance Pay returned invalid JSON")
        raise UpstreamServiceError("Payment provider returned an invalid response.")

    if result.get("status") != "SUCCESS":
        logger.error(f"Binance Pay error: code={result.get('code')} message={result.get('errorMessage')}")
        raise UpstreamServiceError(
            result.get("errorMessage") or "Payment provider rejected the order.",
            details={"code": result.get("code")},
        )

    order = await order_service.create_hosted_order(
        db, user_id=user_id, cart=cart, merchant_trade_no=merchant_trade_no
    )
    await db.commit()

    logger.info(f"Binance Pay order {merchant_trade_no} created for order #{order.id} ({cart['total']} USDT)")
    realtime.publish_order_change(order_service.serialize_order(order, include_items=False), "INSERT")

    return {
        "checkout_url": (result.get("data") or {}).get("checkoutUrl"),
        "trade_no": merchant_trade_no,
        "order_id": order.id,
    }


# ════════════════════════════════════════════════════════════════════
# Webhook Verification
# ════════════════════════════════════════════════════════════════════


def verify_webhook_signature(
    *,
    payload: bytes,
    timestamp: str,
    nonce: str,
    signature: str,
    now_ms: Optional[int] = None,
) -> bool:
    if not settings.binance_secret_key:
        logger.error(
            "BINANCE_SECRET_KEY not configured — rejecting webhook. "
            "Set BINANCE_SECRET_KEY in .env to accept Binance Pay webhooks."
        )
        return False

    if not signature:
        logger.warning("Webhook received without signature header")
        return False

    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError:
        return False

    expected = sign(timestamp, nonce, body)
    if not hmac.compare_digest(expected.encode("utf-8"), signature.strip().upper().encode("utf-8")):
        logger.warning("Webhook signature mismatch")
        return False

    tolerance = settings.binance_webhook_tolerance_seconds
    if tolerance > 0:
        try:
            sent_ms = int(timestamp)
        except ValueError:
            return False
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        if abs(now_ms - sent_ms) > tolerance * 1000:
            logger.warning(f"Webhook timestamp outside tolerance ({tolerance}s)")
            return False

    return True


# ════════════════════════════════════════════════════════════════════
# Webhook Processing
# ════════════════════════════════════════════════════════════════════


def _event_data(body: dict) -> dict:
    """Binance sends `data` as a JSON string; older payloads put fields at the top level."""
    data = body.get("data")
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError:
            data = None
    merged = dict(body)
    if isinstance(data, dict):
        merged.update(data)
    return merged


async def process_webhook(body: dict, db: AsyncSession) -> str:
    """
    Apply a verified webhook event.

    Only PAY / PAY_SUCCESS changes state: the matching order becomes
    approved. Everything else is acknowledged and ignored.

    Returns the outcome: "approved" | "already_approved" | "unknown_order" | "ignored".
    The caller acknowledges with ACK in every case.
    """
    data = _event_data(body)
    biz_type = str(data.get("bizType", "")).upper()
    biz_status = str(data.get("bizStatus", "")).upper()
    trade_no = data.get("merchantTradeNo")

    logger.info(f"Binance Pay webhook: type={biz_type} status={biz_status} trade={trade_no}")

    if biz_type != "PAY" or biz_status != "PAY_SUCCESS":
        return "ignored"

    if not trade_no:
        logger.warning("PAY_SUCCESS webhook without merchantTradeNo")
        return "ignored"

    res = await db.execute(select(Order).where(Order.merchant_trade_no == trade_no))
    order = res.scalar_one_or_none()
    if not order:
        logger.warning(f"PAY_SUCCESS for unknown trade {trade_no}")
        return "unknown_order"

    if order.status == OrderStatus.APPROVED.value:
        return "already_approved"

    order.status = OrderStatus.APPROVED.value
    prepay_id = data.get("prepayId")
    order.binance_prepay_id = str(prepay_id) if prepay_id is not None else None
    await db.commit()

    logger.info(f"Order #{order.id} approved by Binance Pay (prepay={order.binance_prepay_id})")
    realtime.publish_order_change(order_service.serialize_order(order, include_items=False), "UPDATE")
    return "approved"
