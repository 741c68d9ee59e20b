"""
Pydantic models for request/response validation.
"""
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from domain.constants import MAX_MESSAGE_LENGTH, MAX_PASSWORD_BYTES, MIN_PASSWORD_LENGTH


class StoreBase(BaseModel):
    """Shared base — allows construction by Python name or alias."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ── Auth Models ─────────────────────────────────────────────────────

class SignUpRequest(StoreBase):
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_BYTES)
    full_name: Optional[str] = Field(default=None, alias="fullName", max_length=200)


class LoginRequest(StoreBase):
    email: str = Field(..., min_length=1, max_length=254)
    password: str = Field(..., min_length=1, max_length=128)


class ForgotPasswordRequest(StoreBase):
    email: str = Field(..., min_length=1, max_length=254)


class ResetPasswordRequest(StoreBase):
    token: str = Field(..., min_length=16, max_length=256)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_BYTES)


class UpdatePasswordRequest(StoreBase):
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_BYTES)


class UserResponse(StoreBase):
    id: int
    email: str
    full_name: Optional[str] = Field(default=None, alias="fullName")
    role: str


class SessionResponse(StoreBase):
    """Returned by sign-up and login."""
    user: UserResponse
    access_token: str = Field(..., alias="accessToken")
    token_type: str = Field("Bearer", alias="tokenType")
    expires_in_seconds: int = Field(..., alias="expiresInSeconds")


# ── Catalog Models ──────────────────────────────────────────────────

class ProductCreateRequest(StoreBase):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    price: float = Field(0, ge=0)
    image_url: Optional[str] = Field(default=None, alias="imageUrl", max_length=1000)
    category: str
    stock_status: str = Field("in_stock", alias="stockStatus")


class ProductUpdateRequest(StoreBase):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    price: Optional[float] = Field(default=None, ge=0)
    image_url: Optional[str] = Field(default=None, alias="imageUrl", max_length=1000)
    category: Optional[str] = None
    stock_status: Optional[str] = Field(default=None, alias="stockStatus")


class VariantCreateRequest(StoreBase):
    name: str = Field(..., min_length=1, max_length=200)
    price: float = Field(..., gt=0)


# ── Cart Models ─────────────────────────────────────────────────────

class CartAddRequest(StoreBase):
    product_id: int = Field(..., gt=0, alias="productId")
    variant_id: Optional[Union[int, str]] = Field(
        default=None,
        alias="variantId",
        description="Variant id, or \"base\" for products sold without variants",
    )
    quantity: int = Field(1, ge=1, le=99)


# ── Order / Chat Models ─────────────────────────────────────────────

class OrderStatusUpdateRequest(StoreBase):
    status: str = Field(..., description="approved | rejected")


class MessageCreateRequest(StoreBase):
    content: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
