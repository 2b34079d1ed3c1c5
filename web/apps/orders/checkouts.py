"""Checkout service: basket conversion, scoped reads and guarded updates.

A checkout freezes the basket total at conversion time. Its owner may edit
it during a fixed window after creation (24 hours by default); afterwards
only administrators can. Reads join the address, the basket with live
product data and the owner identity, degrading to the raw owner id when the
identity service fails.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apps.core.access import Principal, ensure_can_act
from apps.core.errors import CheckoutLocked, Forbidden, NotFound, ValidationFailed
from apps.core.fanout import DEFAULT_MAX_WORKERS
from apps.core.pagination import Page

from .assembly import CheckoutView, ViewAssembler
from .domain import (
    CHECKOUT_SORT_KEYS,
    Address,
    AddressBook,
    BasketRepository,
    BasketStatus,
    CatalogPort,
    Checkout,
    CheckoutFilter,
    CheckoutPatch,
    CheckoutRepository,
    CheckoutStatus,
    IdentityPort,
    ensure_transition,
)

logger = logging.getLogger(__name__)

DEFAULT_MUTABLE_WINDOW = timedelta(hours=24)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CheckoutService:
    """Domain service converting baskets into checkouts and guarding changes."""

    def __init__(
        self,
        checkouts: CheckoutRepository,
        baskets: BasketRepository,
        addresses: AddressBook,
        catalog: CatalogPort,
        identity: IdentityPort,
        mutable_window: timedelta = DEFAULT_MUTABLE_WINDOW,
        clock: Callable[[], datetime] = _utcnow,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.checkouts = checkouts
        self.baskets = baskets
        self.addresses = addresses
        self.identity = identity
        self.mutable_window = mutable_window
        self.clock = clock
        self.assembler = ViewAssembler(catalog, identity, max_workers=max_workers)

    # ---- helpers ----
    def _address_of(self, address_id: str, owner_id: str) -> Address:
        address = self.addresses.get(address_id)
        if address is None:
            raise NotFound(f"Address {address_id} not found")
        ensure_can_act(address.user_id, Principal(id=str(owner_id)), "address")
        return address

    def _get(self, checkout_id: str) -> Checkout:
        checkout = self.checkouts.get(checkout_id)
        if checkout is None:
            raise NotFound(f"Checkout {checkout_id} not found")
        return checkout

    def _views(self, checkouts, auth_token: Optional[str]) -> list[CheckoutView]:
        entries = [
            (c, self.baskets.get(c.basket_id), self.addresses.get(c.address_id))
            for c in checkouts
        ]
        return self.assembler.checkout_views(entries, auth_token)

    def window_elapsed(self, checkout: Checkout) -> bool:
        """True once ``mutable_window`` has passed since the checkout was created."""
        if checkout.created_at is None:
            return False
        return self.clock() >= checkout.created_at + self.mutable_window

    # ---- operations ----
    def create_checkout(
        self,
        basket_id: str,
        address_id: str,
        owner_id: str,
        comment: str = "",
        auth_token: Optional[str] = None,
        payment_id: Optional[str] = None,
    ) -> Checkout:
        """Convert a basket into a checkout owned by ``owner_id``.

        The basket total is copied now; later basket changes do not affect
        the checkout. A guest basket is claimed by the owner. When
        ``auth_token`` is given the owner is confirmed with the identity
        service first.

        Raises:
            ValidationFailed: Missing owner, or the basket is already checked out.
            NotFound: Unknown basket or address (or owner, when confirmed).
            Forbidden: Basket or address belongs to another user.
            IdentityUnavailable: The owner could not be confirmed.
        """
        if not owner_id:
            raise ValidationFailed("owner_id is required")
        if auth_token is not None:
            self.identity.get_user(str(owner_id), auth_token)

        owner = Principal(id=str(owner_id))
        with self.baskets.locked(basket_id) as basket:
            if basket is None:
                raise NotFound(f"Basket {basket_id} not found")
            if basket.user_id is not None:
                ensure_can_act(basket.user_id, owner, "basket")
            if basket.status != BasketStatus.OPEN or self.checkouts.get_by_basket(basket.id) is not None:
                raise ValidationFailed(
                    f"Basket {basket.id} has already been checked out",
                    code="BASKET_ALREADY_CHECKED_OUT",
                )
            address = self._address_of(address_id, owner.id)

            checkout = self.checkouts.save(
                Checkout(
                    id=None,
                    user_id=owner.id,
                    basket_id=basket.id,
                    address_id=address.id,
                    comment=comment or "",
                    total_amount=basket.total_amount,
                    payment_id=payment_id,
                )
            )
            self.baskets.save(replace(basket, user_id=basket.user_id or owner.id, status=BasketStatus.CONVERTED))

        logger.info(
            "checkout created",
            extra={"checkout_id": checkout.id, "basket_id": basket.id, "total_amount": str(checkout.total_amount)},
        )
        return checkout

    def view(self, checkout: Checkout, auth_token: Optional[str] = None) -> CheckoutView:
        return self._views([checkout], auth_token)[0]

    def get_checkout(
        self,
        checkout_id: str,
        auth_token: Optional[str] = None,
        principal: Optional[Principal] = None,
    ) -> CheckoutView:
        """Return the assembled checkout; with a principal, reads are owner-scoped too."""
        checkout = self._get(checkout_id)
        if principal is not None:
            ensure_can_act(checkout.user_id, principal, "checkout")
        return self.view(checkout, auth_token)

    def get_checkout_by_payment_id(
        self,
        payment_id: str,
        auth_token: Optional[str] = None,
        principal: Optional[Principal] = None,
    ) -> CheckoutView:
        checkout = self.checkouts.get_by_payment_id(payment_id)
        if checkout is None:
            raise NotFound(f"No checkout for payment {payment_id}")
        if principal is not None:
            ensure_can_act(checkout.user_id, principal, "checkout")
        return self.view(checkout, auth_token)

    def list_checkouts(
        self,
        flt: CheckoutFilter,
        principal: Principal,
        auth_token: Optional[str] = None,
    ) -> Page[CheckoutView]:
        """List checkouts. Non-admins only ever see their own, whatever the filter says."""
        if principal is None:
            raise Forbidden("Authentication required to list checkouts")
        if not principal.is_admin:
            flt = replace(flt, user_id=principal.id)
        flt = replace(flt, page=flt.page.validated(CHECKOUT_SORT_KEYS))
        page = self.checkouts.find(flt)
        return page.with_rows(self._views(page.rows, auth_token))

    def update_checkout(
        self,
        checkout_id: str,
        patch: CheckoutPatch,
        principal: Principal,
        auth_token: Optional[str] = None,
    ) -> CheckoutView:
        """Apply ``patch`` to a checkout.

        Owners may edit within the mutability window and may only move the
        status to CANCELLED; administrators may edit at any time and drive
        any legal status transition.

        Raises:
            NotFound: Unknown checkout or address.
            Forbidden: Not the owner, or a non-admin status change other
                than cancellation.
            CheckoutLocked: Non-admin edit after the window elapsed.
            ValidationFailed: Illegal status transition.
        """
        checkout = self._get(checkout_id)
        ensure_can_act(checkout.user_id, principal, "checkout")
        if not principal.is_admin and self.window_elapsed(checkout):
            raise CheckoutLocked(f"Checkout {checkout.id} can no longer be modified")

        if patch.status is not None:
            target = CheckoutStatus(patch.status)
            if target != checkout.status and not principal.is_admin and target != CheckoutStatus.CANCELLED:
                raise Forbidden("Only administrators can advance a checkout")
            ensure_transition(checkout.status, target)
            checkout.status = target
        if patch.address_id is not None:
            checkout.address_id = self._address_of(patch.address_id, checkout.user_id).id
        if patch.comment is not None:
            checkout.comment = patch.comment
        if patch.payment_id is not None:
            checkout.payment_id = patch.payment_id

        checkout = self.checkouts.save(checkout)
        logger.info(
            "checkout updated",
            extra={"checkout_id": checkout.id, "status": checkout.status.value, "by": principal.id},
        )
        return self.view(checkout, auth_token)

    def remove_checkout(self, checkout_id: str, principal: Principal) -> Checkout:
        """Delete a checkout and reopen its basket."""
        checkout = self._get(checkout_id)
        ensure_can_act(checkout.user_id, principal, "checkout")
        with self.baskets.locked(checkout.basket_id) as basket:
            self.checkouts.delete(checkout.id)
            if basket is not None:
                self.baskets.save(replace(basket, status=BasketStatus.OPEN))
        logger.info("checkout removed", extra={"checkout_id": checkout.id, "by": principal.id})
        return checkout
