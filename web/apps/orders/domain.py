"""Domain entities, ports and pure rules for baskets and checkouts.

This module contains the dataclasses the services work with, the protocol
definitions (ports) of the collaborators they are constructed with
(repositories, catalog and identity gateways), and the pure rules that do
not need any collaborator: the basket total and the checkout status machine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import ContextManager, Iterable, List, Optional, Protocol

from apps.core.errors import ValidationFailed
from apps.core.pagination import Page, PageRequest

ZERO = Decimal("0.00")


# ---- Enums ----
class BasketStatus(str, Enum):
    """Lifecycle of a basket. A basket is CONVERTED once a checkout exists."""

    OPEN = "OPEN"
    CONVERTED = "CONVERTED"
    ABANDONED = "ABANDONED"


class CheckoutStatus(str, Enum):
    """Lifecycle of a placed order."""

    CREATED = "CREATED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    CANCELLED = "CANCELLED"


ALLOWED_TRANSITIONS = {
    CheckoutStatus.CREATED: frozenset({CheckoutStatus.PROCESSING, CheckoutStatus.CANCELLED}),
    CheckoutStatus.PROCESSING: frozenset({CheckoutStatus.SHIPPED, CheckoutStatus.CANCELLED}),
    CheckoutStatus.SHIPPED: frozenset(),
    CheckoutStatus.CANCELLED: frozenset(),
}


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class DesiredLine:
    """One entry of the line list a client wants its basket to contain.

    Attributes:
        product_id: Catalog product identifier; lines are matched on it.
        quantity: Requested units. Zero or less means "remove".
        product_variant_id: Optional variant, recorded when the line is created.
    """

    product_id: str
    quantity: int
    product_variant_id: Optional[str] = None


@dataclass(frozen=True)
class OrderLine:
    """A persisted basket line.

    The dataclass is frozen: ``product_price`` is snapshotted from the catalog
    when the line is created and only ``quantity`` is ever replaced.
    """

    id: Optional[str]
    basket_id: Optional[str]
    product_id: str
    quantity: int
    product_price: Decimal
    product_variant_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def subtotal(self) -> Decimal:
        return self.product_price * self.quantity


@dataclass
class Basket:
    """Mutable pre-order collection of lines.

    ``user_id`` is None for guest baskets. ``total_amount`` is always derived
    from the current lines and never stored.
    """

    id: Optional[str]
    user_id: Optional[str] = None
    lines: List[OrderLine] = field(default_factory=list)
    status: BasketStatus = BasketStatus.OPEN
    checkout_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def total_amount(self) -> Decimal:
        return compute_total(self.lines)


@dataclass(frozen=True)
class Address:
    """Delivery address owned by the address book of a user."""

    id: str
    user_id: str
    country: str = ""
    city: str = ""
    street: str = ""
    zip_code: str = ""


@dataclass
class Checkout:
    """A basket converted into an order.

    ``total_amount`` is copied from the basket when the checkout is created;
    later basket changes do not affect it.
    """

    id: Optional[str]
    user_id: str
    basket_id: str
    address_id: str
    status: CheckoutStatus = CheckoutStatus.CREATED
    comment: str = ""
    total_amount: Decimal = ZERO
    payment_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class CheckoutPatch:
    """Fields a caller may change on an existing checkout. None means "keep"."""

    address_id: Optional[str] = None
    comment: Optional[str] = None
    status: Optional[CheckoutStatus] = None
    payment_id: Optional[str] = None


@dataclass(frozen=True)
class Product:
    """Catalog answer for a product.

    Attributes:
        id: Product identifier.
        price: Current unit price, or None when the catalog has none.
        available: Availability flag as reported by the catalog.
        payload: Raw catalog document, joined into read views.
    """

    id: str
    price: Optional[Decimal]
    available: bool = True
    payload: dict = field(default_factory=dict)


@dataclass(frozen=True)
class UserSnapshot:
    """Identity of a user as returned by the identity service."""

    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""


# ---- Filters ----
@dataclass(frozen=True)
class BasketFilter:
    user_id: Optional[str] = None
    min_total: Optional[Decimal] = None
    max_total: Optional[Decimal] = None
    updated_from: Optional[datetime] = None
    updated_to: Optional[datetime] = None
    page: PageRequest = PageRequest(sort_by="user_id")


@dataclass(frozen=True)
class CheckoutFilter:
    user_id: Optional[str] = None
    address_id: Optional[str] = None
    basket_id: Optional[str] = None
    status: Optional[CheckoutStatus] = None
    page: PageRequest = PageRequest(sort_by="basket_id")


@dataclass(frozen=True)
class OrderLineFilter:
    product_id: Optional[str] = None
    user_id: Optional[str] = None
    min_qty: Optional[int] = None
    max_qty: Optional[int] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    page: PageRequest = PageRequest(sort_by="product_id")


BASKET_SORT_KEYS = ("user_id", "created_at", "updated_at", "total_amount")
CHECKOUT_SORT_KEYS = ("basket_id", "created_at", "updated_at", "total_amount", "status")
ORDER_LINE_SORT_KEYS = ("product_id", "quantity", "product_price", "created_at")


# ---- Pure rules ----
def compute_total(lines: Iterable[OrderLine]) -> Decimal:
    """Sum ``quantity * product_price`` over ``lines`` with exact decimal arithmetic."""
    return sum((Decimal(line.product_price) * line.quantity for line in lines), ZERO)


def ensure_transition(current: CheckoutStatus, target: CheckoutStatus) -> None:
    """Raise ``ValidationFailed`` unless ``current -> target`` is a legal move.

    Requesting the current status is accepted as a no-op.
    """
    current, target = CheckoutStatus(current), CheckoutStatus(target)
    if current == target:
        return
    if target not in ALLOWED_TRANSITIONS[current]:
        raise ValidationFailed(
            f"Cannot move checkout from {current.value} to {target.value}",
            code="ILLEGAL_STATUS_TRANSITION",
        )


# ---- Ports (DIP) ----
class CatalogPort(Protocol):
    """Port to the catalog service, the authority on product prices."""

    def get_product(self, product_id: str) -> Product:
        """Return the catalog entry of ``product_id``.

        Raises:
            NotFound: The catalog does not know the product.
            PricingUnavailable: The catalog could not be reached or failed.
        """
        raise NotImplementedError()


class IdentityPort(Protocol):
    """Port to the identity service."""

    def get_user(self, user_id: str, auth_token: Optional[str]) -> UserSnapshot:
        """Return the identity of ``user_id``, forwarding the caller's credential.

        Raises:
            Forbidden: The credential may not read this user.
            NotFound: Unknown user.
            IdentityUnavailable: The service could not be reached or failed.
        """
        raise NotImplementedError()


class BasketRepository(Protocol):
    """Persistence of baskets. Returned baskets carry their lines."""

    def get(self, basket_id: str) -> Optional[Basket]: ...

    def find(self, flt: BasketFilter) -> Page[Basket]: ...

    def save(self, basket: Basket) -> Basket:
        """Insert (``id`` is None) or update the basket row. Lines are not touched."""
        ...

    def delete(self, basket_id: str) -> None: ...

    def locked(self, basket_id: str) -> ContextManager[Optional[Basket]]:
        """Serialize read-modify-write cycles on one basket.

        Yields the current basket (or None) while holding an exclusive lock
        keyed by ``basket_id``. Writes made inside the block are undone if
        the block raises.
        """
        ...


class OrderLineRepository(Protocol):
    """Persistence of order lines."""

    def get(self, line_id: str) -> Optional[OrderLine]: ...

    def find(self, flt: OrderLineFilter) -> Page[OrderLine]: ...

    def create(self, line: OrderLine) -> OrderLine: ...

    def update_quantity(self, line_id: str, quantity: int) -> None: ...

    def delete(self, line_id: str) -> None: ...


class CheckoutRepository(Protocol):
    """Persistence of checkouts."""

    def get(self, checkout_id: str) -> Optional[Checkout]: ...

    def get_by_payment_id(self, payment_id: str) -> Optional[Checkout]: ...

    def get_by_basket(self, basket_id: str) -> Optional[Checkout]: ...

    def find(self, flt: CheckoutFilter) -> Page[Checkout]: ...

    def save(self, checkout: Checkout) -> Checkout: ...

    def delete(self, checkout_id: str) -> None: ...


class AddressBook(Protocol):
    """Read access to addresses owned by another part of the system."""

    def get(self, address_id: str) -> Optional[Address]: ...
