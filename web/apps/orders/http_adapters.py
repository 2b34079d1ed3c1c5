"""HTTP adapter clients with retries, circuit breakers, and context headers.

This module implements the catalog and identity ports on top of ``httpx``.
It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
  by the gateway middleware.
- A circuit breaker per downstream service (catalog, identity) to avoid
  hammering unhealthy dependencies, with HALF_OPEN probing after a timeout.
- A bounded retry policy with exponential backoff for transport errors
  (timeouts included) and 5xx responses.
- Translation of every failure into the domain error kinds, so callers
  never see ``httpx`` exceptions.
"""

import logging
import threading
import time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from apps.core.errors import Forbidden, IdentityUnavailable, NotFound, PricingUnavailable

from .domain import CatalogPort, IdentityPort, Product, UserSnapshot

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")

logger = logging.getLogger(__name__)


# ---------------- Circuit Breaker ---------------- #

class BreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitOpenError(RuntimeError):
    """Raised instead of calling a downstream service the breaker protects."""


class CircuitBreaker:
    """Thread-safe circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    - CLOSED -> OPEN after ``fail_threshold`` consecutive failures.
    - OPEN -> HALF_OPEN once ``reset_timeout`` seconds have passed.
    - HALF_OPEN lets a single probe through: success closes the breaker,
      failure opens it again.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = BreakerState.CLOSED
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> BreakerState:
        with self._lock:
            if self._state == BreakerState.OPEN and time.monotonic() - self._opened_at >= self.reset_timeout:
                self._state = BreakerState.HALF_OPEN
                self._probe_in_flight = False
            return self._state

    def before_call(self) -> BreakerState:
        """Admit or reject a call.

        Raises:
            CircuitOpenError: The breaker is OPEN, or HALF_OPEN with a probe
                already in flight.
        """
        with self._lock:
            state = self.state
            if state == BreakerState.OPEN:
                raise CircuitOpenError(f"{self.name}: circuit open")
            if state == BreakerState.HALF_OPEN:
                if self._probe_in_flight:
                    raise CircuitOpenError(f"{self.name}: half-open probe busy")
                self._probe_in_flight = True
            return state

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = BreakerState.CLOSED
            self._probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == BreakerState.HALF_OPEN or (
                self._failures >= self.fail_threshold and self._state != BreakerState.OPEN
            ):
                self._state = BreakerState.OPEN
                self._opened_at = time.monotonic()
                self._probe_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == BreakerState.HALF_OPEN:
                self._probe_in_flight = False


# Per-service instances
_catalog_cb = CircuitBreaker(
    "catalog",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)
_identity_cb = CircuitBreaker(
    "identity",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Base headers: ``X-Request-ID`` of the current request plus ``extra``."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return (max_retries, backoff_base_seconds, max_sleep_seconds)."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 2),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
        getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    # Retry only on transport errors or 5xx
    if exc is not None:
        return True
    return resp is not None and 500 <= resp.status_code < 600


def _get(breaker: CircuitBreaker, url: str, timeout: float, headers: Optional[dict] = None) -> httpx.Response:
    """GET ``url`` behind ``breaker`` with bounded retries.

    Returns the first response that is not retriable, or the last 5xx
    response once retries are exhausted. 4xx answers are business outcomes
    and do not count against the breaker.

    Raises:
        CircuitOpenError: The breaker refused the call.
        httpx.RequestError: Transport error (timeout included) after retries.
    """
    max_retries, backoff, cap = _retry_policy()
    state = breaker.before_call()
    headers = _request_headers({**(headers or {}), "X-Circuit-State": state.value, "X-Retry-Count": "0"})
    tries = 0
    try:
        with httpx.Client(timeout=timeout) as client:
            while True:
                resp = None
                exc = None
                try:
                    resp = client.get(url, headers=headers)
                    if not _should_retry(resp, None):
                        breaker.on_success()
                        return resp
                except httpx.RequestError as e:
                    exc = e

                if tries >= max_retries:
                    breaker.on_failure()
                    logger.warning(
                        "downstream call failed",
                        extra={"service": breaker.name, "url": url, "tries": tries + 1},
                    )
                    if exc is not None:
                        raise exc
                    return resp

                tries += 1
                headers["X-Retry-Count"] = str(tries)
                time.sleep(min(backoff * (2 ** (tries - 1)), cap))  # exponential backoff
    finally:
        breaker.on_finish()


# ---------------- Catalog Adapter ---------------- #

class HttpCatalogClient(CatalogPort):
    """HTTP client for the catalog service."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.CATALOG_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def get_product(self, product_id: str) -> Product:
        """Fetch the current catalog entry of a product.

        Maps responses:
        - 200 -> ``Product`` with the price parsed as ``Decimal`` (None when absent)
        - 404 -> ``NotFound``
        - anything else, transport errors, timeouts, open circuit -> ``PricingUnavailable``
        """
        try:
            resp = _get(_catalog_cb, f"{self.base_url}/products/{product_id}", self.timeout)
        except (httpx.HTTPError, CircuitOpenError) as e:
            raise PricingUnavailable(f"Catalog unreachable for product {product_id}") from e

        if resp.status_code == 404:
            raise NotFound(f"Product {product_id} not found")
        if resp.status_code != 200:
            raise PricingUnavailable(f"Catalog answered {resp.status_code} for product {product_id}")

        data = resp.json()
        raw_price = data.get("price")
        try:
            price = Decimal(str(raw_price)) if raw_price is not None else None
        except InvalidOperation as e:
            raise PricingUnavailable(f"Catalog sent an invalid price for product {product_id}") from e
        return Product(
            id=str(data.get("id", product_id)),
            price=price,
            available=bool(data.get("available", True)),
            payload=data,
        )


# ---------------- Identity Adapter ---------------- #

class HttpIdentityClient(IdentityPort):
    """HTTP client for the identity service.

    The caller's ``Authorization`` header is forwarded unchanged.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.IDENTITY_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def get_user(self, user_id: str, auth_token: Optional[str]) -> UserSnapshot:
        """Fetch a user's identity.

        Maps responses:
        - 200 -> ``UserSnapshot``
        - 401/403 -> ``Forbidden``
        - 404 -> ``NotFound``
        - anything else, transport errors, timeouts, open circuit -> ``IdentityUnavailable``
        """
        extra = {"Authorization": auth_token} if auth_token else {}
        try:
            resp = _get(_identity_cb, f"{self.base_url}/users/{user_id}", self.timeout, headers=extra)
        except (httpx.HTTPError, CircuitOpenError) as e:
            raise IdentityUnavailable(f"Identity service unreachable for user {user_id}") from e

        if resp.status_code in (401, 403):
            raise Forbidden(f"Not allowed to read user {user_id}")
        if resp.status_code == 404:
            raise NotFound(f"User {user_id} not found")
        if resp.status_code != 200:
            raise IdentityUnavailable(f"Identity service answered {resp.status_code} for user {user_id}")

        data = resp.json()
        return UserSnapshot(
            id=str(data.get("id", user_id)),
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name", ""),
            email=data.get("email", ""),
        )
