"""End-to-end API tests over the Django test client.

Identity arrives in the trusted ``X-User-Id`` / ``X-User-Role`` headers;
catalog and identity are the in-process stubs (every product costs 10.00).
"""

import uuid
from datetime import timedelta

import pytest
from django.core.cache import cache
from django.utils import timezone

from apps.orders import providers
from apps.orders.adapters import CatalogStub
from apps.orders.models import AddressModel, BasketModel, CheckoutModel

pytestmark = pytest.mark.django_db

BASKETS = "/api/orders/baskets/"
CHECKOUTS = "/api/orders/checkouts/"
LINES = "/api/orders/order-lines/"


@pytest.fixture(autouse=True)
def clear_throttle_history():
    cache.clear()
    yield
    cache.clear()


def as_user(user_id, role=None):
    headers = {"HTTP_X_USER_ID": user_id, "HTTP_AUTHORIZATION": f"Bearer token-{user_id}"}
    if role:
        headers["HTTP_X_USER_ROLE"] = role
    return headers


ADMIN = as_user("root", "ADMIN")


def create_basket(client, lines=(), **headers):
    resp = client.post(BASKETS, {"lines": list(lines)}, content_type="application/json", **headers)
    assert resp.status_code == 201, resp.content
    return resp.json()


def create_checkout(client, user_id="alice", **extra):
    basket = create_basket(client, [{"product_id": "p1", "quantity": 2}], **as_user(user_id))
    address = AddressModel.objects.create(user_id=user_id, city="Madrid")
    payload = {"basket_id": basket["id"], "address_id": str(address.id), "comment": "ring twice", **extra}
    resp = client.post(CHECKOUTS, payload, content_type="application/json", **as_user(user_id))
    assert resp.status_code == 201, resp.content
    return resp.json()


# ---- baskets ----
def test_guest_basket_create_and_update(client):
    body = create_basket(client, [{"product_id": "p1", "quantity": 2}])

    assert body["user_id"] is None
    assert body["status"] == "OPEN"
    assert body["total_amount"] == "20.00"
    assert body["order_lines"][0]["subtotal"] == "20.00"
    assert body["order_lines"][0]["product"]["name"] == "Product p1"

    resp = client.put(
        f"{BASKETS}{body['id']}/",
        {"lines": [{"product_id": "p1", "quantity": 1}, {"product_id": "p2", "quantity": 3}]},
        content_type="application/json",
    )
    assert resp.status_code == 200
    assert resp.json()["total_amount"] == "40.00"
    assert [l["product_id"] for l in resp.json()["order_lines"]] == ["p1", "p2"]


def test_owned_basket_only_updated_by_owner(client):
    basket = create_basket(client, [{"product_id": "p1", "quantity": 1}], **as_user("alice"))
    url = f"{BASKETS}{basket['id']}/"
    payload = {"lines": [{"product_id": "p1", "quantity": 4}]}

    assert client.put(url, payload, content_type="application/json").status_code == 403
    resp = client.put(url, payload, content_type="application/json", **as_user("bob"))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "FORBIDDEN"

    resp = client.put(url, payload, content_type="application/json", **as_user("alice"))
    assert resp.status_code == 200
    assert resp.json()["order_lines"][0]["quantity"] == 4


def test_bad_quantity_is_a_validation_error(client):
    resp = client.post(
        BASKETS, {"lines": [{"product_id": "p1", "quantity": "two"}]}, content_type="application/json"
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["detail"] == "VALIDATION_ERROR"
    assert body["errors"][0]["loc"] == ["lines", "0", "quantity"]


def test_pricing_failure_is_503_and_creates_nothing(client, monkeypatch):
    monkeypatch.setattr(providers, "get_catalog", lambda: CatalogStub(failing=("bad",)))

    resp = client.post(
        BASKETS, {"lines": [{"product_id": "bad", "quantity": 1}]}, content_type="application/json"
    )

    assert resp.status_code == 503
    assert resp.json()["detail"] == "PRICING_UNAVAILABLE"
    assert BasketModel.objects.count() == 0


def test_unknown_basket_is_404(client):
    resp = client.get(f"{BASKETS}{uuid.uuid4()}/")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "NOT_FOUND"


def test_listing_baskets_requires_identity(client):
    assert client.get(BASKETS).status_code == 401


def test_users_only_list_their_own_baskets(client):
    for _ in range(12):
        create_basket(client, **as_user("alice"))
    create_basket(client, **as_user("bob"))

    resp = client.get(BASKETS, {"limit": 5, "user_id": "bob"}, **as_user("alice"))
    assert resp.status_code == 200
    body = resp.json()
    assert body["length"] == 12
    assert len(body["rows"]) == 5
    assert {row["user_id"] for row in body["rows"]} == {"alice"}

    resp = client.get(BASKETS, {"user_id": "bob"}, **ADMIN)
    assert resp.json()["length"] == 1


def test_bad_sort_key_is_rejected(client):
    resp = client.get(BASKETS, {"sort_by": "price"}, **as_user("alice"))
    assert resp.status_code == 400


def test_delete_basket(client):
    basket = create_basket(client, [{"product_id": "p1", "quantity": 1}], **as_user("alice"))
    url = f"{BASKETS}{basket['id']}/"

    assert client.delete(url).status_code == 401
    assert client.delete(url, **as_user("bob")).status_code == 403
    assert client.delete(url, **as_user("alice")).status_code == 204
    assert client.get(url).status_code == 404


# ---- checkouts ----
def test_checkout_converts_basket(client):
    checkout = create_checkout(client, payment_id="pay_1")

    assert checkout["status"] == "CREATED"
    assert checkout["total_amount"] == "20.00"
    assert checkout["basket"]["status"] == "CONVERTED"
    assert checkout["address"]["city"] == "Madrid"
    assert checkout["user"]["email"] == "alice@example.com"

    resp = client.get(f"{CHECKOUTS}by-payment/pay_1/", **as_user("alice"))
    assert resp.status_code == 200
    assert resp.json()["id"] == checkout["id"]


def test_basket_cannot_be_checked_out_twice(client):
    checkout = create_checkout(client)
    address = AddressModel.objects.create(user_id="alice")
    payload = {"basket_id": checkout["basket"]["id"], "address_id": str(address.id)}

    resp = client.post(CHECKOUTS, payload, content_type="application/json", **as_user("alice"))

    assert resp.status_code == 400
    assert resp.json()["detail"] == "BASKET_ALREADY_CHECKED_OUT"


def test_converted_basket_rejects_line_changes(client):
    checkout = create_checkout(client)
    resp = client.put(
        f"{BASKETS}{checkout['basket']['id']}/",
        {"lines": [{"product_id": "p9", "quantity": 1}]},
        content_type="application/json",
        **as_user("alice"),
    )
    assert resp.status_code == 400


def test_checkout_is_private_to_its_owner(client):
    checkout = create_checkout(client)
    url = f"{CHECKOUTS}{checkout['id']}/"

    assert client.get(url, **as_user("bob")).status_code == 403
    assert client.get(url, **ADMIN).status_code == 200
    assert client.get(CHECKOUTS, **as_user("bob")).json()["length"] == 0
    assert client.get(CHECKOUTS, **as_user("alice")).json()["length"] == 1


def test_only_admin_advances_status(client):
    checkout = create_checkout(client)
    url = f"{CHECKOUTS}{checkout['id']}/"

    resp = client.patch(url, {"status": "PROCESSING"}, content_type="application/json", **as_user("alice"))
    assert resp.status_code == 403

    resp = client.patch(url, {"status": "PROCESSING"}, content_type="application/json", **ADMIN)
    assert resp.status_code == 200
    assert resp.json()["status"] == "PROCESSING"


def test_owner_edits_within_window_only(client):
    checkout = create_checkout(client)
    url = f"{CHECKOUTS}{checkout['id']}/"

    resp = client.patch(url, {"comment": "leave at door"}, content_type="application/json", **as_user("alice"))
    assert resp.status_code == 200
    assert resp.json()["comment"] == "leave at door"

    CheckoutModel.objects.filter(pk=checkout["id"]).update(created_at=timezone.now() - timedelta(hours=25))

    resp = client.patch(url, {"comment": "too late"}, content_type="application/json", **as_user("alice"))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "MUTABILITY_WINDOW_EXPIRED"

    resp = client.patch(url, {"comment": "admin note"}, content_type="application/json", **ADMIN)
    assert resp.status_code == 200


def test_patch_rejects_unknown_fields(client):
    checkout = create_checkout(client)
    resp = client.patch(
        f"{CHECKOUTS}{checkout['id']}/", {"total_amount": "0.01"}, content_type="application/json", **as_user("alice")
    )
    assert resp.status_code == 400


def test_admin_delete_reopens_basket(client):
    checkout = create_checkout(client)
    url = f"{CHECKOUTS}{checkout['id']}/"

    assert client.delete(url, **as_user("alice")).status_code == 403
    assert client.delete(url, **ADMIN).status_code == 204

    basket = client.get(f"{BASKETS}{checkout['basket']['id']}/").json()
    assert basket["status"] == "OPEN"
    assert basket["checkout_id"] is None


# ---- order lines ----
def test_order_line_patch_and_delete(client):
    basket = create_basket(
        client, [{"product_id": "p1", "quantity": 1}, {"product_id": "p2", "quantity": 1}], **as_user("alice")
    )
    line_id = basket["order_lines"][0]["id"]
    url = f"{LINES}{line_id}/"

    assert client.get(url).json()["quantity"] == 1
    assert client.patch(url, {"quantity": 3}, content_type="application/json", **as_user("bob")).status_code == 403

    resp = client.patch(url, {"quantity": 3}, content_type="application/json", **as_user("alice"))
    assert resp.status_code == 200
    assert resp.json()["subtotal"] == "30.00"

    assert client.patch(url, {"quantity": 0}, content_type="application/json", **as_user("alice")).status_code == 400
    assert client.delete(url, **as_user("alice")).status_code == 204
    assert client.get(f"{BASKETS}{basket['id']}/").json()["total_amount"] == "10.00"


def test_order_lines_listing_is_owner_scoped(client):
    create_basket(client, [{"product_id": "p1", "quantity": 2}], **as_user("alice"))
    create_basket(client, [{"product_id": "p1", "quantity": 5}], **as_user("bob"))

    body = client.get(LINES, {"product_id": "p1"}, **as_user("alice")).json()

    assert body["length"] == 1
    assert body["rows"][0]["quantity"] == 2


# ---- plumbing ----
def test_request_id_is_echoed(client):
    resp = client.get(f"{BASKETS}{uuid.uuid4()}/", HTTP_X_REQUEST_ID="req-42")
    assert resp["X-Request-ID"] == "req-42"


def test_unknown_role_is_rejected(client):
    assert client.get(BASKETS, **as_user("alice", "WIZARD")).status_code == 401


def test_oversized_body_is_413(client, settings):
    settings.API_MAX_BYTES = 64
    lines = [{"product_id": f"p{i}", "quantity": 1} for i in range(20)]
    resp = client.post(BASKETS, {"lines": lines}, content_type="application/json")
    assert resp.status_code == 413
    assert resp.json()["detail"] == "PAYLOAD_TOO_LARGE"


def test_health(client):
    resp = client.get("/health/")
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["components"]["db"]["ok"] is True
