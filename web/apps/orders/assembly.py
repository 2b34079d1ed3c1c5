"""Read-view assembly: persisted entities joined with live remote data.

Baskets and checkouts are stored without product or user details; reads join
them with the current catalog entry of every line and the identity of the
checkout owner. The join is side-effect free and runs as a bounded
concurrent fan-out over de-duplicated ids. A failed lookup degrades the view
(``product`` becomes None, ``user`` falls back to the raw id) instead of
failing the read.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional, Sequence, Union

from apps.core.errors import DomainError
from apps.core.fanout import DEFAULT_MAX_WORKERS, fan_out_lenient

from .domain import Address, Basket, CatalogPort, Checkout, IdentityPort, OrderLine, Product, UserSnapshot


@dataclass(frozen=True)
class OrderLineView:
    line: OrderLine
    product: Optional[dict]


@dataclass(frozen=True)
class BasketView:
    basket: Basket
    lines: List[OrderLineView]
    total_amount: Decimal


@dataclass(frozen=True)
class CheckoutView:
    checkout: Checkout
    user: Union[UserSnapshot, str]
    basket: Optional[BasketView]
    address: Optional[Address]


class ViewAssembler:
    """Builds read views, fetching remote data concurrently and leniently."""

    def __init__(
        self,
        catalog: CatalogPort,
        identity: Optional[IdentityPort] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.catalog = catalog
        self.identity = identity
        self.max_workers = max_workers

    # ---- remote lookups ----
    def products_for(
        self,
        product_ids: Iterable[str],
        known: Optional[Mapping[str, Product]] = None,
    ) -> dict[str, Optional[dict]]:
        """Return ``{product_id: catalog payload or None}`` for every id."""
        known = known or {}
        payloads = {pid: p.payload for pid, p in known.items()}
        pending = [pid for pid in dict.fromkeys(product_ids) if pid not in payloads]
        fetched = fan_out_lenient(
            lambda pid: self.catalog.get_product(pid).payload,
            pending,
            fallback=lambda pid, exc: None,
            errors=(DomainError,),
            max_workers=self.max_workers,
        )
        payloads.update(zip(pending, fetched))
        return payloads

    def users_for(self, user_ids: Iterable[str], auth_token: Optional[str]) -> dict[str, Union[UserSnapshot, str]]:
        """Return ``{user_id: UserSnapshot or the raw id}`` for every id."""
        pending = list(dict.fromkeys(str(uid) for uid in user_ids))
        if self.identity is None:
            return {uid: uid for uid in pending}
        fetched = fan_out_lenient(
            lambda uid: self.identity.get_user(uid, auth_token),
            pending,
            fallback=lambda uid, exc: uid,
            errors=(DomainError,),
            max_workers=self.max_workers,
        )
        return dict(zip(pending, fetched))

    # ---- views ----
    @staticmethod
    def _line_views(lines: Sequence[OrderLine], products: Mapping[str, Optional[dict]]) -> List[OrderLineView]:
        return [OrderLineView(line=line, product=products.get(line.product_id)) for line in lines]

    def line_views(self, lines: Sequence[OrderLine]) -> List[OrderLineView]:
        products = self.products_for(line.product_id for line in lines)
        return self._line_views(lines, products)

    def basket_views(
        self,
        baskets: Sequence[Basket],
        known_products: Optional[Mapping[str, Product]] = None,
    ) -> List[BasketView]:
        """Views of several baskets with a single product fan-out for all lines."""
        products = self.products_for(
            (line.product_id for basket in baskets for line in basket.lines),
            known=known_products,
        )
        return [
            BasketView(
                basket=basket,
                lines=self._line_views(basket.lines, products),
                total_amount=basket.total_amount,
            )
            for basket in baskets
        ]

    def basket_view(self, basket: Basket, known_products: Optional[Mapping[str, Product]] = None) -> BasketView:
        return self.basket_views([basket], known_products=known_products)[0]

    def checkout_views(
        self,
        entries: Sequence[tuple[Checkout, Optional[Basket], Optional[Address]]],
        auth_token: Optional[str],
    ) -> List[CheckoutView]:
        """Views of checkouts given as ``(checkout, basket, address)`` triples."""
        baskets = [basket for _, basket, _ in entries if basket is not None]
        basket_views = {view.basket.id: view for view in self.basket_views(baskets)}
        users = self.users_for((checkout.user_id for checkout, _, _ in entries), auth_token)
        return [
            CheckoutView(
                checkout=checkout,
                user=users.get(str(checkout.user_id), checkout.user_id),
                basket=basket_views.get(basket.id) if basket is not None else None,
                address=address,
            )
            for checkout, basket, address in entries
        ]
