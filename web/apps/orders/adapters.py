"""In-process stub adapters for the orders domain ports.

These implement the catalog and identity ports and the repository ports
without any network or database. They are intended for unit tests and local
development where deterministic behavior is useful and the sibling services
are not running.
"""

import threading
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Mapping, Optional

from apps.core.errors import IdentityUnavailable, NotFound, PricingUnavailable
from apps.core.pagination import Page, paginate

from .domain import (
    Address,
    AddressBook,
    Basket,
    BasketFilter,
    BasketRepository,
    CatalogPort,
    Checkout,
    CheckoutFilter,
    CheckoutRepository,
    IdentityPort,
    OrderLine,
    OrderLineFilter,
    OrderLineRepository,
    Product,
    UserSnapshot,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CatalogStub(CatalogPort):
    """Stub implementation of ``CatalogPort``.

    Prices come from ``prices`` when the product is listed there, otherwise
    ``default_price`` applies. With ``default_price=None`` unknown products
    raise ``NotFound``. Products listed in ``failing`` raise
    ``PricingUnavailable``. Every lookup is recorded in ``calls``.
    """

    def __init__(
        self,
        prices: Optional[Mapping[str, Decimal]] = None,
        default_price: Optional[Decimal] = Decimal("10.00"),
        failing: tuple = (),
    ):
        self.prices = dict(prices or {})
        self.default_price = default_price
        self.failing = set(failing)
        self.calls: list[str] = []

    def get_product(self, product_id: str) -> Product:
        """Return a deterministic catalog entry for ``product_id``."""
        self.calls.append(product_id)
        if product_id in self.failing:
            raise PricingUnavailable(f"Catalog failed for {product_id}")
        if product_id in self.prices:
            price = self.prices[product_id]
        elif self.default_price is not None:
            price = self.default_price
        else:
            raise NotFound(f"Product {product_id} not found")
        payload = {
            "id": product_id,
            "name": f"Product {product_id}",
            "price": str(price) if price is not None else None,
            "available": True,
        }
        return Product(id=product_id, price=price, available=True, payload=payload)


class IdentityStub(IdentityPort):
    """Stub implementation of ``IdentityPort``.

    Known users come from ``users``; any other id gets a synthetic identity
    unless ``strict`` is set, in which case it raises ``NotFound``. With
    ``down=True`` every call raises ``IdentityUnavailable``.
    """

    def __init__(self, users: Optional[Mapping[str, UserSnapshot]] = None, strict: bool = False, down: bool = False):
        self.users = dict(users or {})
        self.strict = strict
        self.down = down
        self.calls: list[tuple[str, Optional[str]]] = []

    def get_user(self, user_id: str, auth_token: Optional[str]) -> UserSnapshot:
        self.calls.append((user_id, auth_token))
        if self.down:
            raise IdentityUnavailable("Identity service is down")
        if user_id in self.users:
            return self.users[user_id]
        if self.strict:
            raise NotFound(f"User {user_id} not found")
        return UserSnapshot(id=user_id, first_name="User", last_name=user_id, email=f"{user_id}@example.com")


class InMemoryStore:
    """Shared state behind the in-memory repositories.

    ``writes`` counts every mutation, which lets tests assert that an
    operation was a no-op.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self.clock = clock
        self.baskets: dict[str, Basket] = {}
        self.lines: dict[str, OrderLine] = {}
        self.checkouts: dict[str, Checkout] = {}
        self.addresses: dict[str, Address] = {}
        self.writes = 0
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, basket_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(str(basket_id), threading.Lock())

    def lines_of(self, basket_id: str) -> list[OrderLine]:
        return [line for line in self.lines.values() if line.basket_id == basket_id]


class InMemoryBasketRepository(BasketRepository):
    def __init__(self, store: InMemoryStore):
        self.store = store

    def _compose(self, record: Basket) -> Basket:
        checkout = next((c for c in self.store.checkouts.values() if c.basket_id == record.id), None)
        return replace(
            record,
            lines=self.store.lines_of(record.id),
            checkout_id=checkout.id if checkout else None,
        )

    def get(self, basket_id: str) -> Optional[Basket]:
        record = self.store.baskets.get(str(basket_id))
        return self._compose(record) if record else None

    def find(self, flt: BasketFilter) -> Page[Basket]:
        rows = [self._compose(b) for b in self.store.baskets.values()]
        if flt.user_id is not None:
            rows = [b for b in rows if b.user_id == flt.user_id]
        if flt.min_total is not None:
            rows = [b for b in rows if b.total_amount >= flt.min_total]
        if flt.max_total is not None:
            rows = [b for b in rows if b.total_amount <= flt.max_total]
        if flt.updated_from is not None:
            rows = [b for b in rows if b.updated_at >= flt.updated_from]
        if flt.updated_to is not None:
            rows = [b for b in rows if b.updated_at <= flt.updated_to]
        keys = {
            "user_id": lambda b: b.user_id,
            "created_at": lambda b: b.created_at,
            "updated_at": lambda b: b.updated_at,
            "total_amount": lambda b: b.total_amount,
        }
        return paginate(rows, flt.page, keys, tie_breaker=lambda b: b.id)

    def save(self, basket: Basket) -> Basket:
        now = self.store.clock()
        if basket.id is None:
            basket = replace(basket, id=str(uuid.uuid4()), created_at=now)
        basket = replace(basket, updated_at=now)
        self.store.baskets[basket.id] = replace(basket, lines=[], checkout_id=None)
        self.store.writes += 1
        return basket

    def delete(self, basket_id: str) -> None:
        basket_id = str(basket_id)
        self.store.baskets.pop(basket_id, None)
        for line in self.store.lines_of(basket_id):
            self.store.lines.pop(line.id, None)
        self.store.writes += 1

    @contextmanager
    def locked(self, basket_id: str):
        basket_id = str(basket_id)
        with self.store.lock_for(basket_id):
            record = self.store.baskets.get(basket_id)
            lines = {line.id: line for line in self.store.lines_of(basket_id)}
            try:
                yield self.get(basket_id)
            except Exception:
                # restore this basket's row and lines as they were on entry
                if record is None:
                    self.store.baskets.pop(basket_id, None)
                else:
                    self.store.baskets[basket_id] = record
                for line in self.store.lines_of(basket_id):
                    self.store.lines.pop(line.id, None)
                self.store.lines.update(lines)
                raise


class InMemoryOrderLineRepository(OrderLineRepository):
    def __init__(self, store: InMemoryStore):
        self.store = store

    def get(self, line_id: str) -> Optional[OrderLine]:
        return self.store.lines.get(str(line_id))

    def find(self, flt: OrderLineFilter) -> Page[OrderLine]:
        rows = list(self.store.lines.values())
        if flt.product_id is not None:
            rows = [l for l in rows if l.product_id == flt.product_id]
        if flt.user_id is not None:
            owners = {b.id for b in self.store.baskets.values() if b.user_id == flt.user_id}
            rows = [l for l in rows if l.basket_id in owners]
        if flt.min_qty is not None:
            rows = [l for l in rows if l.quantity >= flt.min_qty]
        if flt.max_qty is not None:
            rows = [l for l in rows if l.quantity <= flt.max_qty]
        if flt.min_price is not None:
            rows = [l for l in rows if l.product_price >= flt.min_price]
        if flt.max_price is not None:
            rows = [l for l in rows if l.product_price <= flt.max_price]
        keys = {
            "product_id": lambda l: l.product_id,
            "quantity": lambda l: l.quantity,
            "product_price": lambda l: l.product_price,
            "created_at": lambda l: l.created_at,
        }
        return paginate(rows, flt.page, keys, tie_breaker=lambda l: l.id)

    def create(self, line: OrderLine) -> OrderLine:
        line = replace(line, id=str(uuid.uuid4()), created_at=self.store.clock())
        self.store.lines[line.id] = line
        self.store.writes += 1
        return line

    def update_quantity(self, line_id: str, quantity: int) -> None:
        line = self.store.lines[str(line_id)]
        self.store.lines[line.id] = replace(line, quantity=quantity)
        self.store.writes += 1

    def delete(self, line_id: str) -> None:
        self.store.lines.pop(str(line_id), None)
        self.store.writes += 1


class InMemoryCheckoutRepository(CheckoutRepository):
    def __init__(self, store: InMemoryStore):
        self.store = store

    def _first(self, predicate) -> Optional[Checkout]:
        found = next((c for c in self.store.checkouts.values() if predicate(c)), None)
        return replace(found) if found else None

    def get(self, checkout_id: str) -> Optional[Checkout]:
        return self._first(lambda c: c.id == str(checkout_id))

    def get_by_payment_id(self, payment_id: str) -> Optional[Checkout]:
        return self._first(lambda c: c.payment_id is not None and c.payment_id == payment_id)

    def get_by_basket(self, basket_id: str) -> Optional[Checkout]:
        return self._first(lambda c: c.basket_id == str(basket_id))

    def find(self, flt: CheckoutFilter) -> Page[Checkout]:
        rows = [replace(c) for c in self.store.checkouts.values()]
        for attr in ("user_id", "address_id", "basket_id", "status"):
            wanted = getattr(flt, attr)
            if wanted is not None:
                rows = [c for c in rows if getattr(c, attr) == wanted]
        keys = {
            "basket_id": lambda c: c.basket_id,
            "created_at": lambda c: c.created_at,
            "updated_at": lambda c: c.updated_at,
            "total_amount": lambda c: c.total_amount,
            "status": lambda c: c.status.value,
        }
        return paginate(rows, flt.page, keys, tie_breaker=lambda c: c.id)

    def save(self, checkout: Checkout) -> Checkout:
        now = self.store.clock()
        if checkout.id is None:
            checkout = replace(checkout, id=str(uuid.uuid4()), created_at=now)
        checkout = replace(checkout, updated_at=now)
        self.store.checkouts[checkout.id] = replace(checkout)
        self.store.writes += 1
        return checkout

    def delete(self, checkout_id: str) -> None:
        self.store.checkouts.pop(str(checkout_id), None)
        self.store.writes += 1


class InMemoryAddressBook(AddressBook):
    def __init__(self, store: InMemoryStore):
        self.store = store

    def add(self, address: Address) -> Address:
        self.store.addresses[address.id] = address
        return address

    def get(self, address_id: str) -> Optional[Address]:
        return self.store.addresses.get(str(address_id))
