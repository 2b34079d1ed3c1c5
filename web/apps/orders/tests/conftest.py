from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from apps.orders.adapters import (
    CatalogStub,
    IdentityStub,
    InMemoryAddressBook,
    InMemoryBasketRepository,
    InMemoryCheckoutRepository,
    InMemoryOrderLineRepository,
    InMemoryStore,
)
from apps.orders.baskets import BasketService
from apps.orders.checkouts import CheckoutService
from apps.orders.domain import Address
from apps.orders.order_lines import OrderLineService

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

PRICES = {
    "p1": Decimal("2.50"),
    "p2": Decimal("4.00"),
    "p3": Decimal("9.99"),
}


class FakeClock:
    """Settable clock shared by the in-memory store and the checkout service."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta):
        self.now += timedelta(**delta)


@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
def store(clock):
    return InMemoryStore(clock=clock)


@pytest.fixture
def catalog():
    return CatalogStub(prices=PRICES)


@pytest.fixture
def identity():
    return IdentityStub()


@pytest.fixture
def addresses(store):
    book = InMemoryAddressBook(store)
    book.add(Address(id="addr-alice", user_id="alice", country="ES", city="Madrid", street="Gran Via 1", zip_code="28013"))
    book.add(Address(id="addr-bob", user_id="bob", country="ES", city="Sevilla", street="Feria 2", zip_code="41003"))
    return book


@pytest.fixture
def basket_service(store, catalog):
    return BasketService(
        baskets=InMemoryBasketRepository(store),
        lines=InMemoryOrderLineRepository(store),
        catalog=catalog,
        max_workers=4,
    )


@pytest.fixture
def checkout_service(store, catalog, identity, addresses, clock):
    return CheckoutService(
        checkouts=InMemoryCheckoutRepository(store),
        baskets=InMemoryBasketRepository(store),
        addresses=addresses,
        catalog=catalog,
        identity=identity,
        clock=clock,
        max_workers=4,
    )


@pytest.fixture
def order_line_service(store, catalog):
    return OrderLineService(
        lines=InMemoryOrderLineRepository(store),
        baskets=InMemoryBasketRepository(store),
        catalog=catalog,
        max_workers=4,
    )


@pytest.fixture
def alice_basket(basket_service):
    return basket_service.create_basket(
        "alice",
        [{"product_id": "p1", "quantity": 2}, {"product_id": "p2", "quantity": 3}],
    )
