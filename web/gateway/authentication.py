"""Principal authentication for the API.

Token verification happens at the edge: the gateway in front of this service
validates the JWT and forwards the verified identity in the ``X-User-Id`` and
``X-User-Role`` headers. This module turns those headers into a
``Principal`` and keeps the raw ``Authorization`` header as ``request.auth``
so views can forward it to the identity service.
"""

import logging

from rest_framework import exceptions
from rest_framework.authentication import BaseAuthentication
from rest_framework.permissions import BasePermission

from apps.core.access import Principal, Role

logger = logging.getLogger(__name__)


class TrustedHeaderAuthentication(BaseAuthentication):
    """Build a ``Principal`` from trusted identity headers.

    Requests without ``X-User-Id`` stay anonymous (``request.user`` is None
    with ``UNAUTHENTICATED_USER = None``).
    """

    USER_HEADER = "HTTP_X_USER_ID"
    ROLE_HEADER = "HTTP_X_USER_ROLE"

    def authenticate(self, request):
        user_id = (request.META.get(self.USER_HEADER) or "").strip()
        if not user_id:
            return None
        raw_role = (request.META.get(self.ROLE_HEADER) or Role.USER.value).strip().upper()
        try:
            role = Role(raw_role)
        except ValueError:
            logger.warning("unknown role header", extra={"role": raw_role})
            raise exceptions.AuthenticationFailed("Unknown role")
        token = request.META.get("HTTP_AUTHORIZATION") or None
        return Principal(id=user_id, role=role), token

    def authenticate_header(self, request):
        # makes DRF answer 401 instead of 403 for anonymous requests
        return "Bearer"


class IsAuthenticatedPrincipal(BasePermission):
    def has_permission(self, request, view):
        return isinstance(request.user, Principal)


class IsAdminPrincipal(BasePermission):
    """Admin-only routes (e.g. deleting a checkout)."""

    def has_permission(self, request, view):
        return isinstance(request.user, Principal) and request.user.is_admin
