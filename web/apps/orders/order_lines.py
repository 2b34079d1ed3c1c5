"""Order line service: direct reads and guarded edits of single lines."""

import logging
from dataclasses import replace
from typing import Optional

from apps.core.access import Principal, ensure_can_act
from apps.core.errors import NotFound, ValidationFailed
from apps.core.fanout import DEFAULT_MAX_WORKERS
from apps.core.pagination import Page

from .assembly import OrderLineView, ViewAssembler
from .baskets import ensure_open
from .domain import ORDER_LINE_SORT_KEYS, BasketRepository, CatalogPort, OrderLine, OrderLineFilter, OrderLineRepository

logger = logging.getLogger(__name__)


class OrderLineService:
    """Reads and edits individual order lines.

    Edits take the owning basket's lock, so they serialize with basket
    reconciliations. Only the quantity of a line can change.
    """

    def __init__(
        self,
        lines: OrderLineRepository,
        baskets: BasketRepository,
        catalog: CatalogPort,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.lines = lines
        self.baskets = baskets
        self.assembler = ViewAssembler(catalog, max_workers=max_workers)

    def _get(self, line_id: str) -> OrderLine:
        line = self.lines.get(line_id)
        if line is None:
            raise NotFound(f"Order line {line_id} not found")
        return line

    def list_order_lines(self, flt: OrderLineFilter) -> Page[OrderLineView]:
        flt = replace(flt, page=flt.page.validated(ORDER_LINE_SORT_KEYS))
        page = self.lines.find(flt)
        return page.with_rows(self.assembler.line_views(page.rows))

    def get_order_line(self, line_id: str) -> OrderLineView:
        return self.assembler.line_views([self._get(line_id)])[0]

    def update_order_line(self, line_id: str, quantity: int, principal: Optional[Principal]) -> OrderLineView:
        """Change the quantity of one line; its snapshotted price is kept.

        Raises:
            ValidationFailed: Non-positive quantity or converted basket.
            NotFound: Unknown line.
            Forbidden: The principal does not own the basket.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationFailed("quantity must be a positive integer")
        line = self._get(line_id)
        with self.baskets.locked(line.basket_id) as basket:
            current = next((l for l in basket.lines if l.id == line.id), None) if basket else None
            if current is None:
                raise NotFound(f"Order line {line_id} not found")
            ensure_can_act(basket.user_id, principal, "order line")
            ensure_open(basket)
            if current.quantity != quantity:
                self.lines.update_quantity(current.id, quantity)
                self.baskets.save(basket)
                current = replace(current, quantity=quantity)
        return self.assembler.line_views([current])[0]

    def remove_order_line(self, line_id: str, principal: Optional[Principal]) -> OrderLine:
        line = self._get(line_id)
        with self.baskets.locked(line.basket_id) as basket:
            if basket is None or all(l.id != line.id for l in basket.lines):
                raise NotFound(f"Order line {line_id} not found")
            ensure_can_act(basket.user_id, principal, "order line")
            ensure_open(basket)
            self.lines.delete(line.id)
            self.baskets.save(basket)
        logger.info("order line removed", extra={"line_id": line.id, "basket_id": line.basket_id})
        return line
