"""Basket conversion, mutability window and scoped reads of checkouts."""

from decimal import Decimal

import pytest

from apps.core.errors import CheckoutLocked, Forbidden, IdentityUnavailable, NotFound, ValidationFailed
from apps.orders.domain import BasketStatus, CheckoutFilter, CheckoutPatch, CheckoutStatus, UserSnapshot


@pytest.fixture
def checkout(checkout_service, alice_basket):
    return checkout_service.create_checkout(alice_basket.id, "addr-alice", "alice", comment="ring twice")


def test_create_copies_total_and_converts_basket(checkout, alice_basket, basket_service):
    assert checkout.total_amount == Decimal("17.00")
    assert checkout.status == CheckoutStatus.CREATED
    assert checkout.comment == "ring twice"

    basket = basket_service.get_basket(alice_basket.id).basket
    assert basket.status == BasketStatus.CONVERTED
    assert basket.checkout_id == checkout.id


def test_converted_basket_is_frozen(checkout, alice_basket, basket_service, checkout_service, alice):
    with pytest.raises(ValidationFailed) as e:
        basket_service.update_basket(alice_basket.id, [{"product_id": "p3", "quantity": 1}], alice)
    assert e.value.code == "BASKET_CONVERTED"
    assert checkout_service.get_checkout(checkout.id).checkout.total_amount == Decimal("17.00")


def test_basket_can_only_be_checked_out_once(checkout, alice_basket, checkout_service):
    with pytest.raises(ValidationFailed) as e:
        checkout_service.create_checkout(alice_basket.id, "addr-alice", "alice")
    assert e.value.code == "BASKET_ALREADY_CHECKED_OUT"


def test_create_rejects_foreign_basket_and_address(checkout_service, alice_basket, basket_service):
    with pytest.raises(Forbidden):
        checkout_service.create_checkout(alice_basket.id, "addr-bob", "bob")
    with pytest.raises(Forbidden):
        checkout_service.create_checkout(alice_basket.id, "addr-bob", "alice")
    with pytest.raises(NotFound):
        checkout_service.create_checkout(alice_basket.id, "addr-missing", "alice")
    with pytest.raises(NotFound):
        checkout_service.create_checkout("missing", "addr-alice", "alice")
    assert basket_service.get_basket(alice_basket.id).basket.status == BasketStatus.OPEN


def test_guest_basket_is_claimed_by_checkout_owner(checkout_service, basket_service):
    guest = basket_service.create_basket(None, [{"product_id": "p3", "quantity": 1}])
    checkout = checkout_service.create_checkout(guest.id, "addr-bob", "bob")
    assert checkout.user_id == "bob"
    assert basket_service.get_basket(guest.id).basket.user_id == "bob"


def test_owner_is_confirmed_when_a_token_is_given(checkout_service, alice_basket, identity):
    checkout_service.create_checkout(alice_basket.id, "addr-alice", "alice", auth_token="Bearer t")
    assert ("alice", "Bearer t") in identity.calls


def test_identity_outage_fails_checkout_creation(checkout_service, alice_basket, identity, basket_service):
    identity.down = True
    with pytest.raises(IdentityUnavailable):
        checkout_service.create_checkout(alice_basket.id, "addr-alice", "alice", auth_token="Bearer t")
    assert basket_service.get_basket(alice_basket.id).basket.status == BasketStatus.OPEN


def test_view_joins_address_basket_and_owner(checkout_service, checkout, identity):
    identity.users["alice"] = UserSnapshot(id="alice", first_name="Alice", last_name="Liddell", email="a@x.io")

    view = checkout_service.get_checkout(checkout.id, auth_token="Bearer t")

    assert view.user.first_name == "Alice"
    assert view.address.city == "Madrid"
    assert [v.line.product_id for v in view.basket.lines] == ["p1", "p2"]
    assert view.basket.lines[0].product["id"] == "p1"


def test_view_degrades_to_owner_id_when_identity_is_down(checkout_service, checkout, identity):
    identity.down = True
    view = checkout_service.get_checkout(checkout.id)
    assert view.user == "alice"
    assert view.checkout.id == checkout.id


def test_scoped_read(checkout_service, checkout, bob, admin):
    with pytest.raises(Forbidden):
        checkout_service.get_checkout(checkout.id, principal=bob)
    assert checkout_service.get_checkout(checkout.id, principal=admin).checkout.id == checkout.id


def test_owner_can_edit_just_before_window_ends(checkout_service, checkout, clock, alice):
    clock.advance(hours=23, minutes=59)
    view = checkout_service.update_checkout(checkout.id, CheckoutPatch(comment="leave at door"), alice)
    assert view.checkout.comment == "leave at door"


def test_owner_is_locked_out_after_window(checkout_service, checkout, clock, alice):
    clock.advance(hours=24, minutes=1)
    with pytest.raises(CheckoutLocked) as e:
        checkout_service.update_checkout(checkout.id, CheckoutPatch(comment="too late"), alice)
    assert e.value.code == "MUTABILITY_WINDOW_EXPIRED"
    assert isinstance(e.value, Forbidden)


def test_admin_can_edit_after_window(checkout_service, checkout, clock, admin):
    clock.advance(days=30)
    view = checkout_service.update_checkout(checkout.id, CheckoutPatch(comment="fixed by support"), admin)
    assert view.checkout.comment == "fixed by support"


def test_other_users_cannot_edit(checkout_service, checkout, bob):
    with pytest.raises(Forbidden):
        checkout_service.update_checkout(checkout.id, CheckoutPatch(comment="mine now"), bob)


def test_owner_can_move_address_to_own_address_only(checkout_service, checkout, store, alice):
    from apps.orders.domain import Address

    store.addresses["addr-alice-2"] = Address(id="addr-alice-2", user_id="alice", city="Bilbao")
    view = checkout_service.update_checkout(checkout.id, CheckoutPatch(address_id="addr-alice-2"), alice)
    assert view.address.city == "Bilbao"
    with pytest.raises(Forbidden):
        checkout_service.update_checkout(checkout.id, CheckoutPatch(address_id="addr-bob"), alice)


def test_owner_may_only_cancel(checkout_service, checkout, alice):
    with pytest.raises(Forbidden):
        checkout_service.update_checkout(checkout.id, CheckoutPatch(status=CheckoutStatus.PROCESSING), alice)
    view = checkout_service.update_checkout(checkout.id, CheckoutPatch(status=CheckoutStatus.CANCELLED), alice)
    assert view.checkout.status == CheckoutStatus.CANCELLED


def test_admin_drives_legal_transitions_only(checkout_service, checkout, admin):
    for target in (CheckoutStatus.PROCESSING, CheckoutStatus.SHIPPED):
        view = checkout_service.update_checkout(checkout.id, CheckoutPatch(status=target), admin)
        assert view.checkout.status == target

    with pytest.raises(ValidationFailed) as e:
        checkout_service.update_checkout(checkout.id, CheckoutPatch(status=CheckoutStatus.CANCELLED), admin)
    assert e.value.code == "ILLEGAL_STATUS_TRANSITION"


def test_requesting_current_status_is_a_no_op(checkout_service, checkout, alice):
    view = checkout_service.update_checkout(checkout.id, CheckoutPatch(status=CheckoutStatus.CREATED), alice)
    assert view.checkout.status == CheckoutStatus.CREATED


def test_lookup_by_payment_id(checkout_service, alice_basket):
    created = checkout_service.create_checkout(alice_basket.id, "addr-alice", "alice", payment_id="pay_123")
    assert checkout_service.get_checkout_by_payment_id("pay_123").checkout.id == created.id
    with pytest.raises(NotFound):
        checkout_service.get_checkout_by_payment_id("pay_999")


def test_non_admins_only_list_their_own(checkout_service, basket_service, checkout, alice, bob, admin):
    bob_basket = basket_service.create_basket("bob", [{"product_id": "p1", "quantity": 1}])
    checkout_service.create_checkout(bob_basket.id, "addr-bob", "bob")

    page = checkout_service.list_checkouts(CheckoutFilter(user_id="bob"), alice)
    assert [v.checkout.user_id for v in page.rows] == ["alice"]
    assert page.length == 1

    page = checkout_service.list_checkouts(CheckoutFilter(), admin)
    assert page.length == 2

    page = checkout_service.list_checkouts(CheckoutFilter(user_id="bob"), admin)
    assert [v.checkout.user_id for v in page.rows] == ["bob"]


def test_list_requires_a_principal(checkout_service):
    with pytest.raises(Forbidden):
        checkout_service.list_checkouts(CheckoutFilter(), None)


def test_remove_checkout_reopens_basket(checkout_service, basket_service, checkout, alice_basket, admin, bob):
    with pytest.raises(Forbidden):
        checkout_service.remove_checkout(checkout.id, bob)

    checkout_service.remove_checkout(checkout.id, admin)

    with pytest.raises(NotFound):
        checkout_service.get_checkout(checkout.id)
    basket = basket_service.get_basket(alice_basket.id).basket
    assert basket.status == BasketStatus.OPEN
    assert basket.checkout_id is None
