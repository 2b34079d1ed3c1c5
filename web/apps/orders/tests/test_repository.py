"""Django ORM repositories behind the basket and checkout services."""

from decimal import Decimal

import pytest

from apps.core.errors import PricingUnavailable
from apps.core.pagination import PageRequest, SortOrder
from apps.orders.adapters import IdentityStub
from apps.orders.baskets import BasketService
from apps.orders.checkouts import CheckoutService
from apps.orders.domain import BasketFilter, BasketStatus, OrderLineFilter
from apps.orders.models import AddressModel, BasketModel, OrderLineModel
from apps.orders.order_lines import OrderLineService
from apps.orders.repository import (
    DjangoAddressBook,
    DjangoBasketRepository,
    DjangoCheckoutRepository,
    DjangoOrderLineRepository,
)

pytestmark = pytest.mark.django_db


@pytest.fixture
def baskets(catalog):
    return BasketService(DjangoBasketRepository(), DjangoOrderLineRepository(), catalog)


@pytest.fixture
def checkouts(catalog):
    return CheckoutService(
        DjangoCheckoutRepository(), DjangoBasketRepository(), DjangoAddressBook(), catalog, IdentityStub()
    )


def test_reconciliation_round_trip(baskets, catalog, alice):
    basket = baskets.create_basket("alice", [{"product_id": "p1", "quantity": 2}, {"product_id": "p2", "quantity": 3}])
    catalog.prices["p2"] = Decimal("100.00")

    view = baskets.update_basket(basket.id, [{"product_id": "p2", "quantity": 5}, {"product_id": "p3", "quantity": 1}], alice)

    assert [(v.line.product_id, v.line.quantity, v.line.product_price) for v in view.lines] == [
        ("p2", 5, Decimal("4.00")),
        ("p3", 1, Decimal("9.99")),
    ]
    stored = DjangoBasketRepository().get(basket.id)
    assert stored.total_amount == Decimal("29.99")
    assert [l.product_id for l in stored.lines] == ["p2", "p3"]


def test_pricing_failure_writes_nothing(baskets, catalog):
    catalog.failing.add("p3")
    with pytest.raises(PricingUnavailable):
        baskets.create_basket("alice", [{"product_id": "p3", "quantity": 1}])
    assert BasketModel.objects.count() == 0


def test_locked_block_rolls_back_on_error(baskets):
    basket = baskets.create_basket("alice", [{"product_id": "p1", "quantity": 2}])
    repo, lines = DjangoBasketRepository(), DjangoOrderLineRepository()

    with pytest.raises(RuntimeError):
        with repo.locked(basket.id) as current:
            lines.delete(current.lines[0].id)
            raise RuntimeError("abort")

    assert OrderLineModel.objects.filter(basket_id=basket.id).count() == 1


def test_lines_keep_creation_order(baskets):
    basket = baskets.create_basket(None, [{"product_id": pid, "quantity": 1} for pid in ("p3", "p1", "p2")])
    stored = DjangoBasketRepository().get(basket.id)
    assert [l.product_id for l in stored.lines] == ["p3", "p1", "p2"]


def test_list_baskets_paginates_in_the_database(baskets):
    for i in range(25):
        baskets.create_basket(f"u{i:02d}")

    page = baskets.list_baskets(BasketFilter())

    assert page.length == 25
    assert len(page.rows) == 10
    assert page.rows[0].basket.user_id == "u24"


def test_list_baskets_filters_and_sorts_on_total(baskets):
    baskets.create_basket("a", [{"product_id": "p1", "quantity": 1}])
    baskets.create_basket("b", [{"product_id": "p3", "quantity": 2}])
    baskets.create_basket("c", [{"product_id": "p2", "quantity": 2}])
    baskets.create_basket("empty")

    flt = BasketFilter(min_total=Decimal("5"), page=PageRequest(sort_by="total_amount", order=SortOrder.ASC))
    page = baskets.list_baskets(flt)

    assert [v.basket.user_id for v in page.rows] == ["c", "b"]
    assert [v.total_amount for v in page.rows] == [Decimal("8.00"), Decimal("19.98")]


def test_order_lines_filtered_by_owner(baskets, catalog):
    baskets.create_basket("alice", [{"product_id": "p1", "quantity": 1}, {"product_id": "p2", "quantity": 4}])
    baskets.create_basket("bob", [{"product_id": "p1", "quantity": 7}])
    service = OrderLineService(DjangoOrderLineRepository(), DjangoBasketRepository(), catalog)

    page = service.list_order_lines(OrderLineFilter(user_id="alice", min_qty=2))

    assert page.length == 1
    assert page.rows[0].line.product_id == "p2"


def test_checkout_conversion_and_reopen(baskets, checkouts, admin):
    address = AddressModel.objects.create(user_id="alice", city="Madrid")
    basket = baskets.create_basket("alice", [{"product_id": "p1", "quantity": 4}])

    checkout = checkouts.create_checkout(basket.id, str(address.id), "alice", payment_id="pay_1")

    assert checkout.total_amount == Decimal("10.00")
    assert DjangoBasketRepository().get(basket.id).status == BasketStatus.CONVERTED
    assert checkouts.get_checkout_by_payment_id("pay_1").address.city == "Madrid"

    checkouts.remove_checkout(checkout.id, admin)

    stored = DjangoBasketRepository().get(basket.id)
    assert stored.status == BasketStatus.OPEN
    assert stored.checkout_id is None


def test_guest_baskets_sort_as_lowest_owner(baskets):
    for owner in ("b", None, "a"):
        baskets.create_basket(owner)

    desc = baskets.list_baskets(BasketFilter())
    asc = baskets.list_baskets(BasketFilter(page=PageRequest(sort_by="user_id", order=SortOrder.ASC)))

    assert [v.basket.user_id for v in desc.rows] == ["b", "a", None]
    assert [v.basket.user_id for v in asc.rows] == [None, "a", "b"]
