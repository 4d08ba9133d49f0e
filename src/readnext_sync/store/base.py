"""Store interface consumed by the reconciler, pager and stats queries.

A store persists ``ArticleRecord`` objects keyed by ``(namespace, id)``.
Namespaces are fully independent: the same id may exist in several
namespaces with unrelated state.

Ordering contract for ``query_changed``: ascending revision, ties broken by
a stable backend-defined key (insertion order for the file store, document
``_id`` for MongoDB).  ``min_revision`` is inclusive.

Failure contract: connectivity or persistence failures raise
``StoreUnavailable`` and leave previously persisted state intact.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol

from readnext_sync.sync.models import ArticleRecord, UpsertOutcome

# Returned by count_changed() when the backend cannot count cheaply.
APPROXIMATE_TOTAL = 9999


class Store(Protocol):
    """Protocol that all storage backends must satisfy."""

    def get(self, namespace: str, record_id: str) -> ArticleRecord | None:
        """Return the record for ``(namespace, record_id)`` or ``None``."""
        ...  # pragma: no cover

    def get_many(
        self, namespace: str, record_ids: Iterable[str]
    ) -> dict[str, ArticleRecord]:
        """Return the existing records among *record_ids*, keyed by id."""
        ...  # pragma: no cover

    def bulk_upsert(
        self, namespace: str, records: Sequence[ArticleRecord]
    ) -> list[UpsertOutcome]:
        """Insert or fully replace *records*.

        Items are independent: one failure does not block the others.

        Returns:
            One outcome per input record, in input order.
        """
        ...  # pragma: no cover

    def query_changed(
        self, namespace: str, min_revision: int, skip: int, limit: int
    ) -> list[ArticleRecord]:
        """Return records with ``revision >= min_revision`` in cursor order."""
        ...  # pragma: no cover

    def count(self, namespace: str) -> int:
        """Return the number of records in *namespace*."""
        ...  # pragma: no cover

    def count_changed(self, namespace: str, min_revision: int) -> int:
        """Best-effort count of records with ``revision >= min_revision``.

        May return ``APPROXIMATE_TOTAL`` instead of an exact figure.
        """
        ...  # pragma: no cover

    def find_truncated(
        self, namespace: str, threshold: int, limit: int
    ) -> list[ArticleRecord]:
        """Return up to *limit* records whose content is shorter than *threshold*."""
        ...  # pragma: no cover

    def close(self) -> None:
        """Release backend resources."""
        ...  # pragma: no cover
