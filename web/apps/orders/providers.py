"""Service provider helpers wiring the orders services with their ports.

Each factory returns a service backed by the Django ORM repositories. The
remote gateways are the HTTP clients when ``settings.USE_HTTP_ADAPTERS`` is
truthy, and the in-process stubs otherwise (tests, local development).
"""

from datetime import timedelta

from django.conf import settings

from .adapters import CatalogStub, IdentityStub
from .baskets import BasketService
from .checkouts import CheckoutService
from .domain import CatalogPort, IdentityPort
from .http_adapters import HttpCatalogClient, HttpIdentityClient
from .order_lines import OrderLineService
from .repository import (
    DjangoAddressBook,
    DjangoBasketRepository,
    DjangoCheckoutRepository,
    DjangoOrderLineRepository,
)


def _use_http() -> bool:
    return bool(getattr(settings, "USE_HTTP_ADAPTERS", True))


def _max_workers() -> int:
    return getattr(settings, "ENRICHMENT_MAX_WORKERS", 8)


def get_catalog() -> CatalogPort:
    return HttpCatalogClient() if _use_http() else CatalogStub()


def get_identity() -> IdentityPort:
    return HttpIdentityClient() if _use_http() else IdentityStub()


def get_basket_service() -> BasketService:
    return BasketService(
        baskets=DjangoBasketRepository(),
        lines=DjangoOrderLineRepository(),
        catalog=get_catalog(),
        max_workers=_max_workers(),
    )


def get_checkout_service() -> CheckoutService:
    """Return a CheckoutService with the configured mutability window."""
    return CheckoutService(
        checkouts=DjangoCheckoutRepository(),
        baskets=DjangoBasketRepository(),
        addresses=DjangoAddressBook(),
        catalog=get_catalog(),
        identity=get_identity(),
        mutable_window=timedelta(hours=getattr(settings, "CHECKOUT_MUTABLE_WINDOW_HOURS", 24)),
        max_workers=_max_workers(),
    )


def get_order_line_service() -> OrderLineService:
    return OrderLineService(
        lines=DjangoOrderLineRepository(),
        baskets=DjangoBasketRepository(),
        catalog=get_catalog(),
        max_workers=_max_workers(),
    )
