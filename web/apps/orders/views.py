"""HTTP views for the orders app.

Views are kept intentionally small: they validate requests (via Pydantic),
delegate to the domain services and serialize the assembled views. Services
come from ``providers``, which wires HTTP gateways or in-process stubs
depending on ``settings.USE_HTTP_ADAPTERS``; tests can swap implementations
without touching view logic.

Error kinds map to statuses in ``DomainAPIView``: NOT_FOUND 404,
FORBIDDEN and MUTABILITY_WINDOW_EXPIRED 403, PRICING_UNAVAILABLE and
IDENTITY_UNAVAILABLE 503, validation failures 400.
"""

from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.access import ANONYMOUS
from apps.core.pagination import PageRequest
from apps.core.views import DomainAPIView, page_body
from gateway.authentication import IsAdminPrincipal, IsAuthenticatedPrincipal

from . import providers
from .domain import BasketFilter, CheckoutFilter, CheckoutPatch, OrderLineFilter
from .schemas import (
    BasketCreateDTO,
    BasketQueryDTO,
    BasketReadDTO,
    BasketUpdateDTO,
    CheckoutCreateDTO,
    CheckoutQueryDTO,
    CheckoutReadDTO,
    CheckoutUpdateDTO,
    OrderLineQueryDTO,
    OrderLineReadDTO,
    OrderLineUpdateDTO,
)


def _page_request(query) -> PageRequest:
    return PageRequest(sort_by=query.sort_by, order=query.order, offset=query.offset, limit=query.limit)


def _basket_json(view) -> dict:
    return BasketReadDTO.from_view(view).model_dump(mode="json")


def _checkout_json(view) -> dict:
    return CheckoutReadDTO.from_view(view).model_dump(mode="json")


def _line_json(view) -> dict:
    return OrderLineReadDTO.from_view(view).model_dump(mode="json")


class OrdersPingView(APIView):
    """Liveness endpoint of the orders module."""

    def get(self, request):
        return Response({"ok": True})


# ---- Baskets ----
class BasketsCollectionView(DomainAPIView):
    """List baskets (authenticated) or create one (guests allowed).

    Non-admin principals only ever list their own baskets.
    """

    throttle_family = "baskets"

    def get_permissions(self):
        if self.request.method == "GET":
            return [IsAuthenticatedPrincipal()]
        return [AllowAny()]

    def get(self, request):
        query = BasketQueryDTO.model_validate(request.query_params.dict())
        principal = self.principal(request)
        flt = BasketFilter(
            user_id=query.user_id if principal.is_admin else principal.id,
            min_total=query.min_total,
            max_total=query.max_total,
            updated_from=query.updated_from,
            updated_to=query.updated_to,
            page=_page_request(query),
        )
        page = providers.get_basket_service().list_baskets(flt)
        return Response(page_body(page, _basket_json))

    def post(self, request):
        dto = BasketCreateDTO.model_validate(request.data)
        principal = self.principal(request)
        service = providers.get_basket_service()
        basket = service.create_basket(owner_id=principal.id if principal else None, lines=dto.lines)
        return Response(_basket_json(service.view(basket)), status=status.HTTP_201_CREATED)


class BasketDetailView(DomainAPIView):
    throttle_family = "baskets"

    def get_permissions(self):
        if self.request.method == "DELETE":
            return [IsAuthenticatedPrincipal()]
        return [AllowAny()]

    def get(self, request, basket_id):
        view = providers.get_basket_service().get_basket(str(basket_id))
        return Response(_basket_json(view))

    def put(self, request, basket_id):
        """Reconcile the basket's lines with the submitted desired list."""
        dto = BasketUpdateDTO.model_validate(request.data)
        # anonymous callers may only reconcile guest baskets
        principal = self.principal(request) or ANONYMOUS
        view = providers.get_basket_service().update_basket(str(basket_id), dto.lines, principal)
        return Response(_basket_json(view))

    def delete(self, request, basket_id):
        providers.get_basket_service().remove_basket(str(basket_id), self.principal(request))
        return Response(status=status.HTTP_204_NO_CONTENT)


# ---- Checkouts ----
class CheckoutsCollectionView(DomainAPIView):
    throttle_family = "checkouts"
    permission_classes = [IsAuthenticatedPrincipal]

    def get(self, request):
        query = CheckoutQueryDTO.model_validate(request.query_params.dict())
        flt = CheckoutFilter(
            user_id=query.user_id,
            address_id=query.address_id,
            basket_id=query.basket_id,
            status=query.status,
            page=_page_request(query),
        )
        page = providers.get_checkout_service().list_checkouts(
            flt, self.principal(request), self.auth_token(request)
        )
        return Response(page_body(page, _checkout_json))

    def post(self, request):
        """Convert a basket into a checkout owned by the requester."""
        dto = CheckoutCreateDTO.model_validate(request.data)
        service = providers.get_checkout_service()
        token = self.auth_token(request)
        checkout = service.create_checkout(
            basket_id=dto.basket_id,
            address_id=dto.address_id,
            owner_id=self.principal(request).id,
            comment=dto.comment,
            auth_token=token,
            payment_id=dto.payment_id,
        )
        return Response(_checkout_json(service.view(checkout, token)), status=status.HTTP_201_CREATED)


class CheckoutDetailView(DomainAPIView):
    """Read, patch or delete one checkout. Deletion is reserved to admins."""

    throttle_family = "checkouts"

    def get_permissions(self):
        if self.request.method == "DELETE":
            return [IsAdminPrincipal()]
        return [IsAuthenticatedPrincipal()]

    def get(self, request, checkout_id):
        view = providers.get_checkout_service().get_checkout(
            str(checkout_id), self.auth_token(request), self.principal(request)
        )
        return Response(_checkout_json(view))

    def patch(self, request, checkout_id):
        dto = CheckoutUpdateDTO.model_validate(request.data)
        view = providers.get_checkout_service().update_checkout(
            str(checkout_id),
            CheckoutPatch(**dto.model_dump(exclude_unset=True)),
            self.principal(request),
            self.auth_token(request),
        )
        return Response(_checkout_json(view))

    def delete(self, request, checkout_id):
        providers.get_checkout_service().remove_checkout(str(checkout_id), self.principal(request))
        return Response(status=status.HTTP_204_NO_CONTENT)


class CheckoutByPaymentView(DomainAPIView):
    throttle_family = "checkouts"
    permission_classes = [IsAuthenticatedPrincipal]

    def get(self, request, payment_id):
        view = providers.get_checkout_service().get_checkout_by_payment_id(
            payment_id, self.auth_token(request), self.principal(request)
        )
        return Response(_checkout_json(view))


# ---- Order lines ----
class OrderLinesCollectionView(DomainAPIView):
    throttle_family = "order_lines"
    permission_classes = [IsAuthenticatedPrincipal]

    def get(self, request):
        query = OrderLineQueryDTO.model_validate(request.query_params.dict())
        principal = self.principal(request)
        flt = OrderLineFilter(
            product_id=query.product_id,
            user_id=query.user_id if principal.is_admin else principal.id,
            min_qty=query.min_qty,
            max_qty=query.max_qty,
            min_price=query.min_price,
            max_price=query.max_price,
            page=_page_request(query),
        )
        page = providers.get_order_line_service().list_order_lines(flt)
        return Response(page_body(page, _line_json))


class OrderLineDetailView(DomainAPIView):
    throttle_family = "order_lines"

    def get_permissions(self):
        if self.request.method == "GET":
            return [AllowAny()]
        return [IsAuthenticatedPrincipal()]

    def get(self, request, line_id):
        view = providers.get_order_line_service().get_order_line(str(line_id))
        return Response(_line_json(view))

    def patch(self, request, line_id):
        dto = OrderLineUpdateDTO.model_validate(request.data)
        view = providers.get_order_line_service().update_order_line(
            str(line_id), dto.quantity, self.principal(request)
        )
        return Response(_line_json(view))

    def delete(self, request, line_id):
        providers.get_order_line_service().remove_order_line(str(line_id), self.principal(request))
        return Response(status=status.HTTP_204_NO_CONTENT)
