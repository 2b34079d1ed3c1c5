"""Read-view assembly: de-duplicated, ordered and lenient remote lookups."""

from decimal import Decimal

from apps.orders.adapters import CatalogStub, IdentityStub
from apps.orders.assembly import ViewAssembler
from apps.orders.domain import Basket, Checkout, OrderLine


def _basket(basket_id, *product_ids):
    lines = [
        OrderLine(id=f"{basket_id}-{pid}", basket_id=basket_id, product_id=pid, quantity=1, product_price=Decimal("1.00"))
        for pid in product_ids
    ]
    return Basket(id=basket_id, user_id="alice", lines=lines)


def test_products_are_fetched_once_per_id():
    catalog = CatalogStub()
    assembler = ViewAssembler(catalog, max_workers=4)

    views = assembler.basket_views([_basket("b1", "p1", "p2"), _basket("b2", "p2", "p1", "p3")])

    assert sorted(catalog.calls) == ["p1", "p2", "p3"]
    assert [v.product["id"] for v in views[1].lines] == ["p2", "p1", "p3"]


def test_known_products_are_not_fetched_again():
    catalog = CatalogStub()
    assembler = ViewAssembler(catalog)
    known = {"p1": catalog.get_product("p1")}
    catalog.calls.clear()

    assembler.basket_view(_basket("b1", "p1", "p2"), known_products=known)

    assert catalog.calls == ["p2"]


def test_failed_product_lookup_yields_empty_product():
    assembler = ViewAssembler(CatalogStub(failing=("p2",)))
    view = assembler.basket_view(_basket("b1", "p1", "p2"))
    assert view.lines[0].product["id"] == "p1"
    assert view.lines[1].product is None
    assert view.total_amount == Decimal("2.00")


def test_users_fall_back_to_raw_ids():
    identity = IdentityStub(down=True)
    assembler = ViewAssembler(CatalogStub(), identity)
    checkout = Checkout(id="c1", user_id="alice", basket_id="b1", address_id="a1")

    [view] = assembler.checkout_views([(checkout, None, None)], auth_token="Bearer t")

    assert view.user == "alice"
    assert view.basket is None
    assert identity.calls == [("alice", "Bearer t")]


def test_users_are_fetched_once_per_id():
    identity = IdentityStub()
    assembler = ViewAssembler(CatalogStub(), identity)
    entries = [
        (Checkout(id=f"c{i}", user_id="alice", basket_id=f"b{i}", address_id="a1"), None, None)
        for i in range(3)
    ]

    views = assembler.checkout_views(entries, auth_token=None)

    assert identity.calls == [("alice", None)]
    assert all(v.user.email == "alice@example.com" for v in views)
