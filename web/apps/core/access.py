"""Ownership scope evaluation shared by every mutating operation.

Baskets, checkouts, order lines, reviews and comments are each owned by a
single user id. A requester may act on a resource when they own it or when
their role is elevated. The same policy applies to every resource: only
``Role.ADMIN`` is elevated. ``Role.SUPERUSER`` is treated like a regular user
unless a caller passes a wider ``elevated`` set explicitly.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .errors import Forbidden


class Role(str, Enum):
    """Roles a requester can carry."""

    USER = "USER"
    ADMIN = "ADMIN"
    SUPERUSER = "SUPERUSER"


ADMIN_ONLY = frozenset({Role.ADMIN})


@dataclass(frozen=True)
class Principal:
    """The authenticated requester of an operation.

    Attributes:
        id: User identifier as issued by the identity service.
        role: Role carried by the requester's credential.
    """

    id: str
    role: Role = Role.USER

    # DRF permissions and throttles read ``request.user.is_authenticated`` / ``.pk``.
    is_authenticated = True

    @property
    def pk(self) -> str:
        return self.id

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ONLY


# Requester without credentials: owns nothing, so it may only touch unowned (guest) resources.
ANONYMOUS = Principal(id="")


def is_forbidden(
    owner_id,
    requester_id,
    requester_role: Role,
    elevated: Iterable[Role] = ADMIN_ONLY,
) -> bool:
    """Return True when the requester must be denied access to the resource.

    Ids are compared as strings so UUIDs and their text form match. A
    resource without an owner (owner_id None) is owned by nobody, so only
    elevated roles may act on it.

    Args:
        owner_id: Id of the resource owner.
        requester_id: Id of the principal performing the operation.
        requester_role: Role of that principal.
        elevated: Roles that bypass the ownership check.

    Returns:
        bool: True (deny) when the ids differ and the role is not elevated.
    """
    if owner_id is not None and requester_id is not None and str(owner_id) == str(requester_id):
        return False
    return Role(requester_role) not in frozenset(elevated)


def ensure_can_act(owner_id, principal: Principal | None, resource: str = "resource") -> None:
    """Raise ``Forbidden`` unless ``principal`` may act on a resource of ``owner_id``.

    A missing principal is always denied.
    """
    if principal is None:
        raise Forbidden(f"Authentication required to modify this {resource}")
    if is_forbidden(owner_id, principal.id, principal.role):
        raise Forbidden(f"Not allowed to modify this {resource}")
