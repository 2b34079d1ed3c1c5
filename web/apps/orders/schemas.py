"""Pydantic schemas for the orders API.

Request DTOs validate payloads and query strings before anything reaches
the services; read DTOs turn the assembled views into JSON documents.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from apps.core.pagination import DEFAULT_LIMIT, MAX_LIMIT, SortOrder

from .assembly import BasketView, CheckoutView, OrderLineView
from .domain import CheckoutStatus, UserSnapshot


# ---- Requests ----
class DesiredLineIn(BaseModel):
    """One desired line of a basket.

    A quantity of zero or less removes the product from the basket.
    """

    product_id: str = Field(min_length=1, max_length=64)
    quantity: int = Field(strict=True)
    product_variant_id: Optional[str] = Field(default=None, max_length=64)

    @field_validator("product_id")
    @classmethod
    def strip_product_id(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("product_id must not be blank")
        return v2


class BasketCreateDTO(BaseModel):
    lines: list[DesiredLineIn] = Field(default_factory=list)


class BasketUpdateDTO(BaseModel):
    lines: list[DesiredLineIn]


class CheckoutCreateDTO(BaseModel):
    basket_id: str = Field(min_length=1)
    address_id: str = Field(min_length=1)
    comment: str = Field(default="", max_length=2000)
    payment_id: Optional[str] = Field(default=None, max_length=128)


class CheckoutUpdateDTO(BaseModel):
    """Partial update of a checkout; absent fields are kept."""

    model_config = ConfigDict(extra="forbid")

    address_id: Optional[str] = None
    comment: Optional[str] = Field(default=None, max_length=2000)
    status: Optional[CheckoutStatus] = None
    payment_id: Optional[str] = Field(default=None, max_length=128)


class OrderLineUpdateDTO(BaseModel):
    quantity: int = Field(gt=0, strict=True)


class _PageQuery(BaseModel):
    order: SortOrder = SortOrder.DESC
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT)

    @field_validator("order", mode="before")
    @classmethod
    def upper_order(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class BasketQueryDTO(_PageQuery):
    sort_by: Literal["user_id", "created_at", "updated_at", "total_amount"] = "user_id"
    user_id: Optional[str] = None
    min_total: Optional[Decimal] = None
    max_total: Optional[Decimal] = None
    updated_from: Optional[datetime] = None
    updated_to: Optional[datetime] = None


class CheckoutQueryDTO(_PageQuery):
    sort_by: Literal["basket_id", "created_at", "updated_at", "total_amount", "status"] = "basket_id"
    user_id: Optional[str] = None
    address_id: Optional[str] = None
    basket_id: Optional[str] = None
    status: Optional[CheckoutStatus] = None


class OrderLineQueryDTO(_PageQuery):
    sort_by: Literal["product_id", "quantity", "product_price", "created_at"] = "product_id"
    product_id: Optional[str] = None
    user_id: Optional[str] = None
    min_qty: Optional[int] = Field(default=None, ge=0)
    max_qty: Optional[int] = Field(default=None, ge=0)
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None


# ---- Reads ----
class OrderLineReadDTO(BaseModel):
    id: str
    basket_id: str
    product_id: str
    product_variant_id: Optional[str] = None
    quantity: int
    product_price: Decimal
    subtotal: Decimal
    product: Optional[dict] = None

    @classmethod
    def from_view(cls, view: OrderLineView) -> "OrderLineReadDTO":
        line = view.line
        return cls(
            id=line.id,
            basket_id=line.basket_id,
            product_id=line.product_id,
            product_variant_id=line.product_variant_id,
            quantity=line.quantity,
            product_price=line.product_price,
            subtotal=line.subtotal,
            product=view.product,
        )


class BasketReadDTO(BaseModel):
    id: str
    user_id: Optional[str] = None
    status: str
    checkout_id: Optional[str] = None
    total_amount: Decimal
    order_lines: list[OrderLineReadDTO]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_view(cls, view: BasketView) -> "BasketReadDTO":
        basket = view.basket
        return cls(
            id=basket.id,
            user_id=basket.user_id,
            status=basket.status.value,
            checkout_id=basket.checkout_id,
            total_amount=view.total_amount,
            order_lines=[OrderLineReadDTO.from_view(v) for v in view.lines],
            created_at=basket.created_at,
            updated_at=basket.updated_at,
        )


class AddressReadDTO(BaseModel):
    id: str
    country: str
    city: str
    street: str
    zip_code: str


class UserReadDTO(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str


class CheckoutReadDTO(BaseModel):
    """Checkout document with the joined basket, address and owner.

    ``user`` is the owner's identity, or just the owner id when the
    identity service could not provide it.
    """

    id: str
    status: str
    comment: str
    total_amount: Decimal
    payment_id: Optional[str] = None
    user: Union[UserReadDTO, str]
    basket: Optional[BasketReadDTO] = None
    address: Optional[AddressReadDTO] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_view(cls, view: CheckoutView) -> "CheckoutReadDTO":
        checkout = view.checkout
        user = view.user
        if isinstance(user, UserSnapshot):
            user = UserReadDTO(id=user.id, first_name=user.first_name, last_name=user.last_name, email=user.email)
        address = None
        if view.address is not None:
            a = view.address
            address = AddressReadDTO(id=a.id, country=a.country, city=a.city, street=a.street, zip_code=a.zip_code)
        return cls(
            id=checkout.id,
            status=checkout.status.value,
            comment=checkout.comment,
            total_amount=checkout.total_amount,
            payment_id=checkout.payment_id,
            user=user,
            basket=BasketReadDTO.from_view(view.basket) if view.basket is not None else None,
            address=address,
            created_at=checkout.created_at,
            updated_at=checkout.updated_at,
        )
