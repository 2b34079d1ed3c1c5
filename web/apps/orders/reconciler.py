"""Reconciliation of a basket's persisted lines with a desired line list.

Lines are matched by ``product_id``:

- persisted lines whose product is no longer desired are deleted;
- desired products already present with another quantity get their quantity
  updated in place (the snapshotted price is never touched);
- desired products not present yet are priced by the catalog and created;
- everything else is left alone, so replaying the same desired list writes
  nothing.

Prices of new lines are fetched before the first write. A catalog failure
therefore aborts the call with ``PricingUnavailable`` and leaves the basket
as it was. Callers run ``reconcile`` inside the basket repository's
``locked()`` block so concurrent updates of one basket cannot interleave.
"""

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional, Sequence

from apps.core.errors import NotFound, PricingUnavailable, ValidationFailed
from apps.core.fanout import DEFAULT_MAX_WORKERS, fan_out

from .domain import Basket, CatalogPort, DesiredLine, OrderLine, OrderLineRepository, Product

logger = logging.getLogger(__name__)


def _field(entry, name, default=None):
    if isinstance(entry, Mapping):
        return entry.get(name, default)
    return getattr(entry, name, default)


def normalize_desired_lines(entries: Iterable) -> List[DesiredLine]:
    """Validate and normalize a client supplied line list.

    Accepts ``DesiredLine`` objects, pydantic models or mappings with
    ``product_id``, ``quantity`` and optional ``product_variant_id``.

    - a blank product id or a non-integer quantity is rejected;
    - repeated product ids collapse to their last occurrence;
    - entries with a quantity of zero or less are dropped, which makes the
      reconciler delete the matching line.

    Raises:
        ValidationFailed: On malformed entries; nothing has been written yet.
    """
    by_product: dict[str, DesiredLine] = {}
    for entry in entries:
        raw_id = _field(entry, "product_id")
        product_id = str(raw_id).strip() if raw_id is not None else ""
        if not product_id:
            raise ValidationFailed("product_id is required for every line")
        quantity = _field(entry, "quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationFailed(f"quantity of {product_id} must be an integer")
        variant = _field(entry, "product_variant_id")
        by_product.pop(product_id, None)
        by_product[product_id] = DesiredLine(
            product_id=product_id,
            quantity=quantity,
            product_variant_id=str(variant) if variant is not None else None,
        )
    return [d for d in by_product.values() if d.quantity > 0]


@dataclass(frozen=True)
class ReconciliationPlan:
    """Minimal set of writes turning persisted lines into the desired ones."""

    deletes: tuple = ()
    updates: tuple = ()  # (OrderLine, new quantity)
    creates: tuple = ()  # DesiredLine

    @property
    def is_empty(self) -> bool:
        return not (self.deletes or self.updates or self.creates)


def plan_reconciliation(persisted: Sequence[OrderLine], desired: Sequence[DesiredLine]) -> ReconciliationPlan:
    """Diff persisted lines against an already normalized desired list. Pure."""
    wanted = {d.product_id: d for d in desired}
    present = {line.product_id: line for line in persisted}

    deletes = tuple(line for line in persisted if line.product_id not in wanted)
    updates = tuple(
        (present[d.product_id], d.quantity)
        for d in desired
        if d.product_id in present and present[d.product_id].quantity != d.quantity
    )
    creates = tuple(d for d in desired if d.product_id not in present)
    return ReconciliationPlan(deletes=deletes, updates=updates, creates=creates)


@dataclass
class ReconciliationResult:
    """Outcome of a reconciliation.

    Attributes:
        lines: Surviving, updated and created lines (persisted order first,
            then new lines in request order).
        plan: The writes that were applied.
        products: Catalog entries fetched while pricing new lines, reusable
            for presentation.
    """

    lines: List[OrderLine]
    plan: ReconciliationPlan
    products: dict = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return not self.plan.is_empty


class OrderLineReconciler:
    """Applies reconciliation plans, pricing new lines through the catalog."""

    def __init__(self, catalog: CatalogPort, lines: OrderLineRepository, max_workers: int = DEFAULT_MAX_WORKERS):
        self.catalog = catalog
        self.lines = lines
        self.max_workers = max_workers

    def _priced_product(self, product_id: str) -> Product:
        try:
            product = self.catalog.get_product(product_id)
        except NotFound as exc:
            raise PricingUnavailable(f"Product {product_id} is not in the catalog") from exc
        if product.price is None:
            raise PricingUnavailable(f"Catalog returned no price for product {product_id}")
        return product

    def quote(self, product_ids: Iterable[str]) -> dict[str, Product]:
        """Fetch the current catalog entry of every product id concurrently.

        Raises:
            PricingUnavailable: Any product could not be priced.
        """
        ids = list(dict.fromkeys(product_ids))
        products = fan_out(self._priced_product, ids, max_workers=self.max_workers)
        return dict(zip(ids, products))

    def apply(
        self,
        basket: Basket,
        plan: ReconciliationPlan,
        products: Mapping[str, Product],
    ) -> List[OrderLine]:
        """Write ``plan`` for ``basket`` and return the resulting lines."""
        for line in plan.deletes:
            self.lines.delete(line.id)

        new_quantities = {}
        for line, quantity in plan.updates:
            self.lines.update_quantity(line.id, quantity)
            new_quantities[line.id] = quantity

        deleted = {line.id for line in plan.deletes}
        result = [
            replace(line, quantity=new_quantities[line.id]) if line.id in new_quantities else line
            for line in basket.lines
            if line.id not in deleted
        ]
        for desired in plan.creates:
            result.append(
                self.lines.create(
                    OrderLine(
                        id=None,
                        basket_id=basket.id,
                        product_id=desired.product_id,
                        quantity=desired.quantity,
                        product_price=products[desired.product_id].price,
                        product_variant_id=desired.product_variant_id,
                    )
                )
            )
        return result

    def reconcile(self, basket: Basket, desired: Sequence[DesiredLine], quoted: Optional[Mapping[str, Product]] = None) -> ReconciliationResult:
        """Bring ``basket``'s persisted lines in line with ``desired``.

        Args:
            basket: Basket as read inside the caller's lock, with its lines.
            desired: Output of ``normalize_desired_lines``.
            quoted: Catalog entries already fetched by the caller, if any.

        Returns:
            ReconciliationResult: The merged lines and the applied plan.

        Raises:
            PricingUnavailable: A new line could not be priced; nothing was written.
        """
        plan = plan_reconciliation(basket.lines, desired)
        if plan.is_empty:
            return ReconciliationResult(lines=list(basket.lines), plan=plan)

        products = dict(quoted or {})
        missing = [d.product_id for d in plan.creates if d.product_id not in products]
        products.update(self.quote(missing))

        lines = self.apply(basket, plan, products)
        logger.info(
            "basket reconciled",
            extra={
                "basket_id": basket.id,
                "deleted_lines": len(plan.deletes),
                "updated_lines": len(plan.updates),
                "created_lines": len(plan.creates),
            },
        )
        return ReconciliationResult(lines=lines, plan=plan, products=products)
