"""Pull-side paging over changed records.

A client resumes pulling with the cursor ``(min_revision, page_index)``.
Each page is fetched with one extra record: if the extra record comes back
it is dropped and ``has_more`` is set.  This avoids a separate count query,
which some backends cannot answer cheaply.

Ordering is ``(revision, stable tiebreak)`` ascending and ``min_revision``
is inclusive, so records sharing the checkpoint timestamp are never
skipped.  A record rewritten during a paging run (for example by content
healing) may be delivered twice; clients apply records as idempotent
upserts.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from readnext_sync.config import DEFAULT_PAGE_SIZE
from readnext_sync.sync.models import Page

if TYPE_CHECKING:
    from readnext_sync.store.base import Store

logger = logging.getLogger(__name__)


def clamp_page_size(
    requested: int | None, max_page_size: int = DEFAULT_PAGE_SIZE
) -> int:
    """Normalise a client-requested page size.

    Missing, zero or negative values fall back to *max_page_size*; anything
    larger than *max_page_size* is capped to it.
    """
    if requested is None or requested <= 0:
        return max_page_size
    return min(requested, max_page_size)


class CursorPager:
    """Compute pages of changed records for a namespace.

    Args:
        store: Backend to read from.
        max_page_size: Hard cap on records per page, whatever the client
            asks for.
    """

    def __init__(
        self, store: Store, max_page_size: int = DEFAULT_PAGE_SIZE
    ) -> None:
        self.store = store
        self.max_page_size = max_page_size

    def fetch(
        self,
        namespace: str,
        min_revision: int = 0,
        page_size: int | None = None,
        page_index: int = 0,
    ) -> Page:
        """Return one page of records with ``revision >= min_revision``.

        Args:
            namespace: Namespace to read.
            min_revision: Client checkpoint (inclusive).  Negative values
                are treated as 0.
            page_size: Requested records per page; clamped by
                ``clamp_page_size()``.
            page_index: Zero-based page offset in units of the clamped page
                size.  Negative values are treated as 0.

        Raises:
            StoreUnavailable: If the store cannot be read.
        """
        size = clamp_page_size(page_size, self.max_page_size)
        min_revision = max(min_revision, 0)
        page_index = max(page_index, 0)

        records = self.store.query_changed(
            namespace,
            min_revision,
            skip=page_index * size,
            limit=size + 1,
        )
        has_more = len(records) > size
        if has_more:
            records = records[:size]

        total = self.store.count_changed(namespace, min_revision)

        logger.info(
            "[%s] Pull: sending page %d (limit %d, count %d). HasMore: %s",
            namespace,
            page_index,
            size,
            len(records),
            has_more,
        )
        return Page(records=records, has_more=has_more, total_updates=total)
