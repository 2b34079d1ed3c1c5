"""Error taxonomy shared by the domain services.

Every failure the core reports is a ``DomainError`` carrying a stable
``code`` (what callers and clients branch on) and a human readable message.
Like the original ``ValueError("CODE")`` convention, these are still
``ValueError`` subclasses; the HTTP boundary is the only place that turns a
code into a status.
"""


class DomainError(ValueError):
    """Base class for all errors raised by the core.

    Attributes:
        code: Stable, machine readable error kind (e.g. ``NOT_FOUND``).
        message: Human readable explanation.
    """

    code = "DOMAIN_ERROR"
    default_message = "Domain error"

    def __init__(self, message: str | None = None, code: str | None = None):
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)


class NotFound(DomainError):
    """A referenced basket, checkout, order line, address or product is missing."""

    code = "NOT_FOUND"
    default_message = "Resource not found"


class Forbidden(DomainError):
    """The requester may not act on a resource owned by someone else."""

    code = "FORBIDDEN"
    default_message = "Not allowed to act on this resource"


class CheckoutLocked(Forbidden):
    """The checkout's owner-editable window has elapsed."""

    code = "MUTABILITY_WINDOW_EXPIRED"
    default_message = "Checkout can no longer be modified by its owner"


class PricingUnavailable(DomainError):
    """The catalog could not provide a price for a new order line."""

    code = "PRICING_UNAVAILABLE"
    default_message = "Product price unavailable"


class IdentityUnavailable(DomainError):
    """The identity service could not be reached or answered with an error."""

    code = "IDENTITY_UNAVAILABLE"
    default_message = "Identity service unavailable"


class ValidationFailed(DomainError):
    """Malformed input detected before any mutation was attempted."""

    code = "VALIDATION_ERROR"
    default_message = "Invalid input"
