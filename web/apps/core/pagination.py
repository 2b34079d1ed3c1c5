"""Filter / sort / paginate contract used by every list operation.

A list operation receives a ``PageRequest`` (sort key, direction, offset,
limit) next to its entity specific filters and returns a ``Page``: the rows of
the requested window plus the total number of rows matching the filters.
Repositories bind the contract to their storage; ``paginate`` is the
in-memory binding.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Generic, Iterable, Mapping, Sequence, TypeVar

from .errors import ValidationFailed

T = TypeVar("T")
U = TypeVar("U")

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class PageRequest:
    """Sorting and windowing parameters of a list request.

    Attributes:
        sort_by: Name of the sort key; each list operation declares which
            keys it accepts.
        order: Sort direction.
        offset: Number of rows to skip.
        limit: Maximum number of rows returned (1..MAX_LIMIT).
    """

    sort_by: str
    order: SortOrder = SortOrder.DESC
    offset: int = 0
    limit: int = DEFAULT_LIMIT

    def validated(self, allowed: Iterable[str]) -> "PageRequest":
        """Return a normalized copy, raising ``ValidationFailed`` on bad input."""
        allowed = tuple(allowed)
        if self.sort_by not in allowed:
            raise ValidationFailed(f"sort_by must be one of {', '.join(allowed)}")
        if self.offset < 0:
            raise ValidationFailed("offset must be >= 0")
        if not 1 <= self.limit <= MAX_LIMIT:
            raise ValidationFailed(f"limit must be between 1 and {MAX_LIMIT}")
        return replace(self, order=SortOrder(self.order))

    @property
    def descending(self) -> bool:
        return SortOrder(self.order) == SortOrder.DESC


@dataclass
class Page(Generic[T]):
    """One window of a list result.

    Attributes:
        rows: Items of the requested window, in sort order.
        length: Total number of items matching the filters.
    """

    rows: list[T] = field(default_factory=list)
    length: int = 0

    def with_rows(self, rows: Sequence[U]) -> "Page[U]":
        """Return a page with the same total and different (e.g. enriched) rows."""
        return Page(rows=list(rows), length=self.length)


def _sort_value(value):
    # None is the lowest value: first ascending, last descending.
    return (value is not None, value)


def paginate(
    items: Iterable[T],
    page: PageRequest,
    keys: Mapping[str, Callable[[T], object]],
    tie_breaker: Callable[[T], object] | None = None,
) -> Page[T]:
    """Sort and slice an in-memory collection according to ``page``.

    Args:
        items: Items already filtered by the caller.
        page: Sorting and windowing parameters.
        keys: Sort key name -> accessor.
        tie_breaker: Optional secondary key making the order deterministic.

    Returns:
        Page: The requested window and the total count.
    """
    page = page.validated(keys)
    accessor = keys[page.sort_by]
    rows = list(items)
    rows.sort(
        key=lambda it: (_sort_value(accessor(it)), _sort_value(tie_breaker(it)) if tie_breaker else 0),
        reverse=page.descending,
    )
    return Page(rows=rows[page.offset:page.offset + page.limit], length=len(rows))
