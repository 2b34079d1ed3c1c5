"""Basket service: lifecycle, totals and delegation to the reconciler."""

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Iterable, Optional

from apps.core.access import Principal, ensure_can_act
from apps.core.errors import NotFound, ValidationFailed
from apps.core.fanout import DEFAULT_MAX_WORKERS
from apps.core.pagination import Page

from .assembly import BasketView, ViewAssembler
from .domain import (
    BASKET_SORT_KEYS,
    Basket,
    BasketFilter,
    BasketRepository,
    BasketStatus,
    CatalogPort,
    OrderLine,
    OrderLineRepository,
    compute_total,
)
from .reconciler import OrderLineReconciler, normalize_desired_lines, plan_reconciliation

logger = logging.getLogger(__name__)


def ensure_open(basket: Basket) -> None:
    """Baskets that already became a checkout keep their lines frozen."""
    if basket.status != BasketStatus.OPEN:
        raise ValidationFailed(f"Basket {basket.id} is {basket.status.value}", code="BASKET_CONVERTED")


class BasketService:
    """Domain service owning basket lifecycle.

    The service is built with its collaborators (repositories and the
    catalog gateway); it never reaches for global state.
    """

    def __init__(
        self,
        baskets: BasketRepository,
        lines: OrderLineRepository,
        catalog: CatalogPort,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.baskets = baskets
        self.reconciler = OrderLineReconciler(catalog, lines, max_workers=max_workers)
        self.assembler = ViewAssembler(catalog, max_workers=max_workers)

    @staticmethod
    def compute_total(lines: Iterable[OrderLine]) -> Decimal:
        return compute_total(lines)

    def view(self, basket: Basket) -> BasketView:
        return self.assembler.basket_view(basket)

    def create_basket(self, owner_id: Optional[str] = None, lines: Iterable = ()) -> Basket:
        """Create a basket, optionally seeded with lines.

        Seeded lines are priced before the basket row is written, so a
        pricing failure creates nothing.

        Args:
            owner_id: Owning user, or None for a guest basket.
            lines: Initial desired lines.

        Returns:
            Basket: The persisted basket with its lines.

        Raises:
            ValidationFailed: Malformed lines.
            PricingUnavailable: A seeded product could not be priced.
        """
        desired = normalize_desired_lines(lines)
        quoted = self.reconciler.quote(d.product_id for d in desired)

        basket = self.baskets.save(Basket(id=None, user_id=owner_id))
        if desired:
            with self.baskets.locked(basket.id) as current:
                result = self.reconciler.reconcile(current, desired, quoted=quoted)
                basket = replace(current, lines=result.lines)
        logger.info("basket created", extra={"basket_id": basket.id, "lines": len(basket.lines)})
        return basket

    def get_basket(self, basket_id: str) -> BasketView:
        basket = self.baskets.get(basket_id)
        if basket is None:
            raise NotFound(f"Basket {basket_id} not found")
        return self.view(basket)

    def list_baskets(self, flt: BasketFilter) -> Page[BasketView]:
        """List baskets; default order is by owner, descending."""
        flt = replace(flt, page=flt.page.validated(BASKET_SORT_KEYS))
        page = self.baskets.find(flt)
        return page.with_rows(self.assembler.basket_views(page.rows))

    def update_basket(self, basket_id: str, desired_lines: Iterable, principal: Optional[Principal] = None) -> BasketView:
        """Reconcile the basket's lines with ``desired_lines``.

        Guest baskets may be updated anonymously. When a principal is given
        and the basket has an owner, the ownership check applies.

        Raises:
            ValidationFailed: Malformed lines or a converted basket.
            NotFound: Unknown basket.
            Forbidden: The principal does not own the basket.
            PricingUnavailable: A new product could not be priced; the
                basket is left unchanged.
        """
        desired = normalize_desired_lines(desired_lines)
        with self.baskets.locked(basket_id) as basket:
            if basket is None:
                raise NotFound(f"Basket {basket_id} not found")
            if principal is not None and basket.user_id is not None:
                ensure_can_act(basket.user_id, principal, "basket")
            if not plan_reconciliation(basket.lines, desired).is_empty:
                ensure_open(basket)
            result = self.reconciler.reconcile(basket, desired)
            basket.lines = result.lines
            if result.changed:
                basket = replace(self.baskets.save(basket), lines=result.lines)
        return self.assembler.basket_view(basket, known_products=result.products)

    def remove_basket(self, basket_id: str, principal: Principal) -> Basket:
        """Delete a basket and its lines.

        Raises:
            NotFound: Unknown basket.
            Forbidden: The principal is neither the owner nor an admin.
            ValidationFailed: The basket has already been checked out.
        """
        with self.baskets.locked(basket_id) as basket:
            if basket is None:
                raise NotFound(f"Basket {basket_id} not found")
            ensure_can_act(basket.user_id, principal, "basket")
            ensure_open(basket)
            self.baskets.delete(basket.id)
        logger.info("basket removed", extra={"basket_id": basket.id, "by": principal.id})
        return basket
