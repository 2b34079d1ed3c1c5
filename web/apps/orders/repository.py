"""Repository layer persisting baskets, order lines and checkouts.

These classes implement the domain repository ports on top of the Django
ORM and map rows to the domain dataclasses, so the services never see ORM
types. ``paginate_queryset`` binds the shared filter/sort/paginate contract
to querysets.
"""

import uuid
from contextlib import contextmanager
from dataclasses import replace
from decimal import Decimal
from typing import Mapping, Optional

from django.db import transaction
from django.db.models import DecimalField, ExpressionWrapper, F, QuerySet, Sum, Value
from django.db.models.functions import Coalesce

from apps.core.pagination import Page, PageRequest

from .domain import (
    Address,
    Basket,
    BasketFilter,
    BasketStatus,
    Checkout,
    CheckoutFilter,
    CheckoutStatus,
    OrderLine,
    OrderLineFilter,
)
from .models import AddressModel, BasketModel, CheckoutModel, OrderLineModel

MONEY = DecimalField(max_digits=14, decimal_places=2)


def _as_uuid(value) -> Optional[uuid.UUID]:
    """Parse ``value`` as a UUID; None when it is not one (so lookups miss)."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def paginate_queryset(qs: QuerySet, page: PageRequest, fields: Mapping[str, str]) -> tuple[list, int]:
    """Apply sorting and the offset/limit window of ``page`` to ``qs``.

    Args:
        qs: Already filtered queryset.
        page: Validated page request.
        fields: Sort key name -> ORM field (or annotation) name.

    Returns:
        tuple[list, int]: Rows of the window and the total matching count.
    """
    # NULL is the lowest value, matching the in-memory ordering
    field = F(fields[page.sort_by])
    if page.descending:
        ordered = qs.order_by(field.desc(nulls_last=True), "-pk")
    else:
        ordered = qs.order_by(field.asc(nulls_first=True), "pk")
    total = qs.count()
    return list(ordered[page.offset:page.offset + page.limit]), total


# ---- Mappers ----
def _to_line(m: OrderLineModel) -> OrderLine:
    return OrderLine(
        id=str(m.id),
        basket_id=str(m.basket_id),
        product_id=m.product_id,
        quantity=m.quantity,
        product_price=m.product_price,
        product_variant_id=m.product_variant_id,
        created_at=m.created_at,
    )


def _to_basket(m: BasketModel, lines, checkout_id) -> Basket:
    return Basket(
        id=str(m.id),
        user_id=m.user_id,
        lines=[_to_line(line) for line in lines],
        status=BasketStatus(m.status),
        checkout_id=str(checkout_id) if checkout_id else None,
        created_at=m.created_at,
        updated_at=m.updated_at,
    )


def _to_checkout(m: CheckoutModel) -> Checkout:
    return Checkout(
        id=str(m.id),
        user_id=m.user_id,
        basket_id=str(m.basket_id),
        address_id=str(m.address_id),
        status=CheckoutStatus(m.status),
        comment=m.comment,
        total_amount=m.total_amount,
        payment_id=m.payment_id,
        created_at=m.created_at,
        updated_at=m.updated_at,
    )


def _loaded_basket(m: BasketModel) -> Basket:
    # expects prefetch_related("lines") and select_related("checkout")
    checkout = m.checkout if hasattr(m, "checkout") else None
    return _to_basket(m, m.lines.all(), checkout.id if checkout else None)


class DjangoBasketRepository:
    """Basket persistence with row-level locking for read-modify-write cycles."""

    SORT_FIELDS = {
        "user_id": "user_id",
        "created_at": "created_at",
        "updated_at": "updated_at",
        "total_amount": "total_amount",
    }

    def _queryset(self) -> QuerySet:
        return BasketModel.objects.select_related("checkout").prefetch_related("lines")

    def get(self, basket_id: str) -> Optional[Basket]:
        pk = _as_uuid(basket_id)
        m = self._queryset().filter(pk=pk).first() if pk else None
        return _loaded_basket(m) if m else None

    def find(self, flt: BasketFilter) -> Page[Basket]:
        subtotal = ExpressionWrapper(F("lines__quantity") * F("lines__product_price"), output_field=MONEY)
        qs = self._queryset().annotate(
            total_amount=Coalesce(Sum(subtotal), Value(Decimal("0.00")), output_field=MONEY)
        )
        if flt.user_id is not None:
            qs = qs.filter(user_id=flt.user_id)
        if flt.min_total is not None:
            qs = qs.filter(total_amount__gte=flt.min_total)
        if flt.max_total is not None:
            qs = qs.filter(total_amount__lte=flt.max_total)
        if flt.updated_from is not None:
            qs = qs.filter(updated_at__gte=flt.updated_from)
        if flt.updated_to is not None:
            qs = qs.filter(updated_at__lte=flt.updated_to)
        rows, total = paginate_queryset(qs, flt.page, self.SORT_FIELDS)
        return Page(rows=[_loaded_basket(m) for m in rows], length=total)

    def save(self, basket: Basket) -> Basket:
        """Insert or update the basket row and return it with fresh timestamps."""
        pk = _as_uuid(basket.id) if basket.id else None
        m = BasketModel.objects.filter(pk=pk).first() if pk else None
        if m is None:
            m = BasketModel(user_id=basket.user_id, status=BasketStatus(basket.status).value)
            if pk:
                m.id = pk
            m.save()
        else:
            m.user_id = basket.user_id
            m.status = BasketStatus(basket.status).value
            m.save(update_fields=["user_id", "status", "updated_at"])
        return replace(basket, id=str(m.id), created_at=m.created_at, updated_at=m.updated_at)

    def delete(self, basket_id: str) -> None:
        pk = _as_uuid(basket_id)
        if pk:
            BasketModel.objects.filter(pk=pk).delete()

    @contextmanager
    def locked(self, basket_id: str):
        """Hold ``SELECT ... FOR UPDATE`` on the basket row for the whole block.

        The block runs in one transaction: if it raises, every write made
        inside it is rolled back.
        """
        pk = _as_uuid(basket_id)
        with transaction.atomic():
            m = BasketModel.objects.select_for_update().filter(pk=pk).first() if pk else None
            if m is None:
                yield None
                return
            checkout_id = CheckoutModel.objects.filter(basket_id=m.pk).values_list("id", flat=True).first()
            yield _to_basket(m, OrderLineModel.objects.filter(basket_id=m.pk), checkout_id)


class DjangoOrderLineRepository:
    SORT_FIELDS = {
        "product_id": "product_id",
        "quantity": "quantity",
        "product_price": "product_price",
        "created_at": "internal_id",
    }

    def get(self, line_id: str) -> Optional[OrderLine]:
        pk = _as_uuid(line_id)
        m = OrderLineModel.objects.filter(pk=pk).first() if pk else None
        return _to_line(m) if m else None

    def find(self, flt: OrderLineFilter) -> Page[OrderLine]:
        qs = OrderLineModel.objects.all()
        if flt.product_id is not None:
            qs = qs.filter(product_id=flt.product_id)
        if flt.user_id is not None:
            qs = qs.filter(basket__user_id=flt.user_id)
        if flt.min_qty is not None:
            qs = qs.filter(quantity__gte=flt.min_qty)
        if flt.max_qty is not None:
            qs = qs.filter(quantity__lte=flt.max_qty)
        if flt.min_price is not None:
            qs = qs.filter(product_price__gte=flt.min_price)
        if flt.max_price is not None:
            qs = qs.filter(product_price__lte=flt.max_price)
        rows, total = paginate_queryset(qs, flt.page, self.SORT_FIELDS)
        return Page(rows=[_to_line(m) for m in rows], length=total)

    def create(self, line: OrderLine) -> OrderLine:
        m = OrderLineModel(
            basket_id=_as_uuid(line.basket_id),
            product_id=line.product_id,
            product_variant_id=line.product_variant_id,
            quantity=line.quantity,
            product_price=line.product_price,
        )
        m.save()
        return _to_line(m)

    def update_quantity(self, line_id: str, quantity: int) -> None:
        OrderLineModel.objects.filter(pk=_as_uuid(line_id)).update(quantity=quantity)

    def delete(self, line_id: str) -> None:
        OrderLineModel.objects.filter(pk=_as_uuid(line_id)).delete()


class DjangoCheckoutRepository:
    SORT_FIELDS = {
        "basket_id": "basket_id",
        "created_at": "created_at",
        "updated_at": "updated_at",
        "total_amount": "total_amount",
        "status": "status",
    }

    def _one(self, **lookup) -> Optional[Checkout]:
        m = CheckoutModel.objects.filter(**lookup).first()
        return _to_checkout(m) if m else None

    def get(self, checkout_id: str) -> Optional[Checkout]:
        pk = _as_uuid(checkout_id)
        return self._one(pk=pk) if pk else None

    def get_by_payment_id(self, payment_id: str) -> Optional[Checkout]:
        return self._one(payment_id=payment_id) if payment_id else None

    def get_by_basket(self, basket_id: str) -> Optional[Checkout]:
        pk = _as_uuid(basket_id)
        return self._one(basket_id=pk) if pk else None

    def find(self, flt: CheckoutFilter) -> Page[Checkout]:
        qs = CheckoutModel.objects.all()
        if flt.user_id is not None:
            qs = qs.filter(user_id=flt.user_id)
        if flt.address_id is not None:
            qs = qs.filter(address_id=_as_uuid(flt.address_id))
        if flt.basket_id is not None:
            qs = qs.filter(basket_id=_as_uuid(flt.basket_id))
        if flt.status is not None:
            qs = qs.filter(status=CheckoutStatus(flt.status).value)
        rows, total = paginate_queryset(qs, flt.page, self.SORT_FIELDS)
        return Page(rows=[_to_checkout(m) for m in rows], length=total)

    def save(self, checkout: Checkout) -> Checkout:
        fields = {
            "user_id": checkout.user_id,
            "basket_id": _as_uuid(checkout.basket_id),
            "address_id": _as_uuid(checkout.address_id),
            "status": CheckoutStatus(checkout.status).value,
            "comment": checkout.comment,
            "total_amount": checkout.total_amount,
            "payment_id": checkout.payment_id,
        }
        pk = _as_uuid(checkout.id) if checkout.id else None
        m = CheckoutModel.objects.filter(pk=pk).first() if pk else None
        if m is None:
            m = CheckoutModel.objects.create(**fields)
        else:
            for name, value in fields.items():
                setattr(m, name, value)
            m.save()
        return _to_checkout(m)

    def delete(self, checkout_id: str) -> None:
        pk = _as_uuid(checkout_id)
        if pk:
            CheckoutModel.objects.filter(pk=pk).delete()


class DjangoAddressBook:
    def get(self, address_id: str) -> Optional[Address]:
        pk = _as_uuid(address_id)
        m = AddressModel.objects.filter(pk=pk).first() if pk else None
        if m is None:
            return None
        return Address(
            id=str(m.id),
            user_id=m.user_id,
            country=m.country,
            city=m.city,
            street=m.street,
            zip_code=m.zip_code,
        )
