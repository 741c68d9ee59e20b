"""
Admin back-office endpoints — order review and catalog management.

Every route requires a signed-in user whose role is `admin`.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from db_models import User
from deps import Pagination, pagination_params, require_admin
from domain.constants import BUCKET_PRODUCT_IMAGES
from domain.errors import ValidationError
from domain.responses import paginated_response, success_response
from models import (
    OrderStatusUpdateRequest,
    ProductCreateRequest,
    ProductUpdateRequest,
    VariantCreateRequest,
)
from services import catalog_service, order_service, realtime, storage_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


def _product_detail(product) -> dict:
    data = catalog_service.serialize_product(product)
    data["variants"] = [catalog_service.serialize_variant(v) for v in product.variants]
    return data


# ════════════════════════════════════════════════════════════════════
# Orders
# ════════════════════════════════════════════════════════════════════


@router.get("/orders")
async def list_orders(
    status: Optional[str] = Query(None, description="pending | approved | rejected"),
    page: Pagination = Depends(pagination_params),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_all_orders(
        db, status=status, limit=page["limit"], offset=page["offset"]
    )
    return paginated_response(
        [order_service.serialize_order(o) for o in orders],
        limit=page["limit"],
        offset=page["offset"],
        total=total,
    )


@router.get("/orders/{order_id}")
async def get_order(
    order_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.get_order(db, order_id)
    return success_response(order_service.serialize_order(order))


@router.patch("/orders/{order_id}/status")
async def update_order_status(
    order_id: int,
    request: OrderStatusUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Approve or reject an order, then notify the live order feed."""
    order = await order_service.review_order(
        db, order_id=order_id, admin_id=admin.id, status=request.status
    )
    await db.commit()

    data = order_service.serialize_order(order)
    realtime.publish_order_change(order_service.serialize_order(order, include_items=False), "UPDATE")
    return success_response(data)


# ════════════════════════════════════════════════════════════════════
# Catalog
# ════════════════════════════════════════════════════════════════════


@router.post("/products", status_code=201)
async def create_product(
    request: ProductCreateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await catalog_service.create_product(
        db,
        name=request.name,
        description=request.description,
        price=request.price,
        image_url=request.image_url,
        category=request.category,
        stock_status=request.stock_status,
    )
    await db.commit()
    logger.info(f"Product {product.id} created by admin id={admin.id}")
    return success_response(_product_detail(product))


@router.patch("/products/{product_id}")
async def update_product(
    product_id: int,
    request: ProductUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    product = await catalog_service.update_product(
        db,
        product_id=product_id,
        name=request.name,
        description=request.description,
        price=request.price,
        image_url=request.image_url,
        category=request.category,
        stock_status=request.stock_status,
    )
    await db.commit()
    return success_response(_product_detail(product))


@router.delete("/products/{product_id}")
async def delete_product(
    product_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await catalog_service.delete_product(db, product_id=product_id)
    await db.commit()
    logger.info(f"Product {product_id} deleted by admin id={admin.id}")
    return success_response({"deleted": True, "id": product_id})


@router.post("/products/{product_id}/variants", status_code=201)
async def add_variant(
    product_id: int,
    request: VariantCreateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    variant = await catalog_service.add_variant(
        db, product_id=product_id, name=request.name, price=request.price
    )
    await db.commit()
    return success_response(catalog_service.serialize_variant(variant))


@router.delete("/variants/{variant_id}")
async def delete_variant(
    variant_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await catalog_service.delete_variant(db, variant_id=variant_id)
    await db.commit()
    return success_response({"deleted": True, "id": variant_id})


@router.post("/products/{product_id}/image")
async def upload_product_image(
    product_id: int,
    file: Optional[UploadFile] = File(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Store a product image in the product-images bucket and point the product at it."""
    if file is None:
        raise ValidationError("Image file is required", field="file")

    await catalog_service.get_product(db, product_id)
    stored = storage_service.save_upload(
        bucket=BUCKET_PRODUCT_IMAGES,
        owner_id=product_id,
        filename=file.filename,
        content_type=file.content_type,
        data=await file.read(),
    )
    product = await catalog_service.update_product(db, product_id=product_id, image_url=stored["url"])
    await db.commit()
    return success_response(_product_detail(product))
