"""Bounded concurrent fan-out that keeps input order.

Used to fetch catalog products and user identities for every item of a page.
Calls are I/O bound (HTTP), so a small thread pool is enough; results come
back in the order of the inputs regardless of completion order. Each call
runs in a copy of the caller's context, so context variables such as the
request id stay visible inside the workers.
"""

import contextvars
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, TypeVar

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


def fan_out(fn: Callable[[T], R], items: Iterable[T], max_workers: int = DEFAULT_MAX_WORKERS) -> list[R]:
    """Apply ``fn`` to every item concurrently and return results in input order.

    The first exception raised by ``fn`` propagates to the caller once all
    submitted calls have finished. Callers that want to degrade instead of
    failing wrap ``fn`` themselves (see ``fan_out_lenient``).

    Args:
        fn: Callable applied to each item.
        items: Inputs.
        max_workers: Upper bound on concurrent calls.

    Returns:
        list: ``[fn(item) for item in items]``, computed concurrently.
    """
    items = list(items)
    if not items:
        return []
    if len(items) == 1 or max_workers <= 1:
        return [fn(it) for it in items]
    with ThreadPoolExecutor(max_workers=min(max_workers, len(items))) as pool:
        futures = [pool.submit(contextvars.copy_context().run, fn, it) for it in items]
        return [f.result() for f in futures]


def fan_out_lenient(
    fn: Callable[[T], R],
    items: Iterable[T],
    fallback: Callable[[T, Exception], R],
    errors: tuple[type[Exception], ...],
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> list[R]:
    """Like ``fan_out`` but replaces failures listed in ``errors`` with ``fallback(item, exc)``."""

    def guarded(item: T) -> R:
        try:
            return fn(item)
        except errors as exc:
            logger.warning("enrichment degraded", extra={"item": str(item), "error": type(exc).__name__})
            return fallback(item, exc)

    return fan_out(guarded, items, max_workers=max_workers)
