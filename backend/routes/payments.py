"""
Payment provider webhooks.

Binance Pay calls POST /payments/binance/webhook with the signature headers:

    BinancePay-Timestamp, BinancePay-Nonce, BinancePay-Signature

The raw body is verified before it is parsed. Verified events are always
acknowledged with {"returnCode": "SUCCESS", "returnMessage": null} so the
provider stops retrying.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from domain.errors import UnauthorizedError, ValidationError
from services import binance_pay_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/binance/webhook")
async def binance_webhook(
    request: Request,
    signature: Optional[str] = Header(None, alias="BinancePay-Signature"),
    timestamp: Optional[str] = Header(None, alias="BinancePay-Timestamp"),
    nonce: Optional[str] = Header(None, alias="BinancePay-Nonce"),
    db: AsyncSession = Depends(get_db),
):
    if not signature or not timestamp or not nonce:
        raise ValidationError("Missing Binance Pay signature headers")

    payload = await request.body()
    if not binance_pay_service.verify_webhook_signature(
        payload=payload, timestamp=timestamp, nonce=nonce, signature=signature
    ):
        raise UnauthorizedError("Invalid webhook signature")

    try:
        body = json.loads(payload)
    except ValueError:
        raise ValidationError("Webhook body is not valid JSON")
    if not isinstance(body, dict):
        raise ValidationError("Webhook body must be a JSON object")

    outcome = await binance_pay_service.process_webhook(body, db)
    logger.info(f"Binance Pay webhook handled: {outcome}")
    return binance_pay_service.ACK
