"""
Checkout endpoints.

Manual ("Pago Móvil") flow:
  1) GET  /checkout/quote   -> cart totals in USDT + VES and the payee details
  2) Buyer transfers the VES amount from their bank app
  3) POST /checkout/manual  -> multipart upload of the transfer screenshot,
                               creates a pending order for admin review

Hosted flow:
  POST /checkout/binance    -> Binance Pay checkout URL; the order is approved
                               by the webhook in routes/payments.py
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from db_models import User
from deps import get_current_user
from domain.errors import ValidationError
from domain.responses import success_response
from services import binance_pay_service, order_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/checkout", tags=["checkout"])


def _payment_details() -> dict:
    return {
        "bank": settings.bank_name,
        "phone": settings.bank_phone,
        "holder_id": settings.bank_holder_id,
    }


@router.get("/quote")
async def get_quote(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    quote = await order_service.build_manual_quote(db, user_id=user.id)
    quote["payment_details"] = _payment_details()
    return success_response(quote)


@router.post("/manual", status_code=201)
async def checkout_manual(
    proof: Optional[UploadFile] = File(None, description="Screenshot of the bank transfer"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if proof is None:
        raise ValidationError("Payment proof is required", field="proof")

    data = await proof.read()
    order = await order_service.create_manual_order(
        db,
        user_id=user.id,
        proof_filename=proof.filename,
        proof_content_type=proof.content_type,
        proof_data=data,
    )
    return success_response(order_service.serialize_order(order))


@router.post("/binance", status_code=201)
async def checkout_binance(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    origin = request.headers.get("origin") or settings.public_base_url
    result = await binance_pay_service.create_order(db, user_id=user.id, origin=origin)
    return success_response(result)
