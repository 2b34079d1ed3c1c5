"""Shared DRF plumbing for the API views.

``DomainAPIView`` is the one place where core error kinds become HTTP
statuses. Views raise (or let the services raise) ``DomainError`` and
pydantic ``ValidationError``; everything else falls through to DRF.
"""

import logging

from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from .access import Principal
from .errors import DomainError, Forbidden, IdentityUnavailable, NotFound, PricingUnavailable, ValidationFailed
from .pagination import Page

logger = logging.getLogger(__name__)

# Checked in order: CheckoutLocked is a Forbidden and maps to 403.
STATUS_BY_ERROR = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (Forbidden, status.HTTP_403_FORBIDDEN),
    (PricingUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (IdentityUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ValidationFailed, status.HTTP_400_BAD_REQUEST),
)


def error_response(exc: DomainError) -> Response:
    """Translate a ``DomainError`` into ``{"detail": code, "message": text}``."""
    status_code = next(
        (code for kind, code in STATUS_BY_ERROR if isinstance(exc, kind)),
        status.HTTP_400_BAD_REQUEST,
    )
    if status_code >= 500:
        logger.warning("upstream unavailable", extra={"code": exc.code, "error": exc.message})
    return Response({"detail": exc.code, "message": exc.message}, status=status_code)


def validation_response(exc: ValidationError) -> Response:
    errors = [{"loc": [str(p) for p in e["loc"]], "msg": e["msg"]} for e in exc.errors()]
    return Response(
        {"detail": ValidationFailed.code, "message": "Invalid request", "errors": errors},
        status=status.HTTP_400_BAD_REQUEST,
    )


def page_body(page: Page, dump) -> dict:
    """List responses share the ``{"rows": [...], "length": total}`` shape."""
    return {"rows": [dump(row) for row in page.rows], "length": page.length}


class DomainAPIView(APIView):
    """Base view mapping domain errors and scoping throttles by method.

    Subclasses set ``throttle_family``; reads use ``<family>_read`` and
    writes ``<family>_write`` as the ``ScopedRateThrottle`` scope.
    """

    throttle_classes = [ScopedRateThrottle]
    throttle_family = "api"

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before the handler runs
        suffix = "read" if self.request.method in ("GET", "HEAD", "OPTIONS") else "write"
        self.throttle_scope = f"{self.throttle_family}_{suffix}"
        return [throttle() for throttle in self.throttle_classes]

    def handle_exception(self, exc):
        if isinstance(exc, DomainError):
            return error_response(exc)
        if isinstance(exc, ValidationError):
            return validation_response(exc)
        return super().handle_exception(exc)

    @staticmethod
    def principal(request) -> Principal | None:
        user = request.user
        return user if isinstance(user, Principal) else None

    @staticmethod
    def auth_token(request) -> str | None:
        return request.auth if isinstance(request.auth, str) else None
