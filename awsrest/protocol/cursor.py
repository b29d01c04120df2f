"""
Listing Cursor: Marker-Based Pagination over Bucket Listings

Walks a bucket listing page by page, advancing the marker until the service
reports the listing is complete or the caller's item limit is reached.

Marker Advance:
---------------
1. `NextMarker` when the page carries one (delimited listings)
2. Otherwise the greatest of the last key and the last common prefix

A truncated page that yields no usable marker (empty, or equal to the one
just sent) would loop forever; iteration stops there with a warning.

Restartable, not resumable: every call to `pages()` starts again from the
initial state. A cursor must not be advanced by two tasks at once.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

from awsrest.core.errors import ConstructionError
from awsrest.protocol.results import ListBucketResult, ObjectEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PaginationState:
    """Parameters of the next page request."""

    prefix: str = ""
    delimiter: Optional[str] = None
    marker: str = ""
    max_keys: Optional[int] = None

    def advance(self, marker: str) -> PaginationState:
        return dataclasses.replace(self, marker=marker)


PageFetcher = Callable[[PaginationState], Awaitable[ListBucketResult]]


def next_marker(page: ListBucketResult) -> Optional[str]:
    """Marker that continues the listing after `page`, if it can be derived."""
    if page.next_marker:
        return page.next_marker
    candidates = []
    if page.entries:
        candidates.append(page.entries[-1].key)
    if page.common_prefixes:
        candidates.append(page.common_prefixes[-1])
    return max(candidates) if candidates else None


def trim_page(page: ListBucketResult, limit: int) -> ListBucketResult:
    """
    Keep the first `limit` items of a page in listing order.

    Entries and common prefixes share one lexicographic order on the wire,
    so they are merged before cutting.
    """
    if len(page) <= limit:
        return page
    items = sorted(
        [(entry.key, entry) for entry in page.entries]
        + [(prefix, prefix) for prefix in page.common_prefixes],
        key=lambda item: item[0],
    )[:limit]
    return dataclasses.replace(
        page,
        entries=tuple(item for _, item in items if isinstance(item, ObjectEntry)),
        common_prefixes=tuple(item for _, item in items if isinstance(item, str)),
        is_truncated=True,
    )


class ListingCursor:
    """
    Lazy sequence of listing pages.

    Usage:
        cursor = s3.iter_bucket("photos", prefix="2024/", limit=5000)
        async for page in cursor.pages():
            ...
        async for entry in cursor:   # same listing, flattened
            ...

    A fault on any page is raised out of the iteration.
    """

    __slots__ = ("_fetch", "_initial", "_limit")

    def __init__(
        self,
        fetch: PageFetcher,
        *,
        prefix: str = "",
        marker: str = "",
        delimiter: Optional[str] = None,
        max_keys: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> None:
        if limit is not None and limit < 0:
            raise ConstructionError.invalid_argument("limit", limit, "must be >= 0")
        self._fetch = fetch
        self._initial = PaginationState(
            prefix=prefix,
            delimiter=delimiter,
            marker=marker,
            max_keys=max_keys,
        )
        self._limit = limit

    @property
    def initial_state(self) -> PaginationState:
        return self._initial

    async def pages(self) -> AsyncIterator[ListBucketResult]:
        state = self._initial
        remaining = self._limit
        if remaining == 0:
            return

        while True:
            page = await self._fetch(state)

            if remaining is not None:
                if len(page) >= remaining:
                    yield trim_page(page, remaining)
                    return
                remaining -= len(page)

            yield page

            if not page.is_truncated:
                return

            marker = next_marker(page)
            if not marker or marker == state.marker:
                logger.warning(
                    f"Listing of {page.bucket!r} is truncated but gives no new marker "
                    f"after {state.marker!r}; stopping",
                )
                return
            state = state.advance(marker)

    async def entries(self) -> AsyncIterator[ObjectEntry]:
        async for page in self.pages():
            for entry in page.entries:
                yield entry

    def __aiter__(self) -> AsyncIterator[ObjectEntry]:
        return self.entries()
