"""Article reconciliation and change-cursor paging.

Public API for the sync core: the push side merges client batches into a
``Store``, the pull side pages through records changed since a client's
checkpoint.

Architecture
------------
Each round trip flows one way: client batch -> ``Reconciler`` -> store
write -> ``CursorPager`` store read -> response.  Nothing calls back into
the transport; every result is plain data.

Modules:

- ``models``     -- ``ArticleRecord``, ``PushResult``, ``Page``,
  ``SyncRequest``, ``SyncResponse``, ``NamespaceStats``.
- ``reconciler`` -- ``Reconciler``: last-write-wins with the
  content-healing override.
- ``pager``      -- ``CursorPager``: over-fetch-by-one paging.
- ``session``    -- ``SyncSession``: push then pull for one request.
- ``reporter``   -- namespace stats and text formatting.

Usage example
-------------
::

    from pathlib import Path
    from readnext_sync.store import FileStore
    from readnext_sync.sync import SyncRequest, SyncSession

    session = SyncSession(FileStore(Path("db.json")))
    response = session.run(
        "u1",
        SyncRequest(changes=[{"id": "a1", "content": "short", "updatedAt": 100}]),
    )
    response.model_dump(by_alias=True)
"""

from .models import (
    HEALING_THRESHOLD,
    ArticleRecord,
    NamespaceStats,
    Page,
    PushResult,
    RecordFailure,
    SyncRequest,
    SyncResponse,
    UpsertOutcome,
)
from .pager import CursorPager, clamp_page_size
from .reconciler import Reconciler, current_millis, needs_healing
from .reporter import (
    collect_namespace_stats,
    format_namespace_stats,
    format_page,
    format_push_result,
)
from .session import SyncSession, parse_sync_request

__all__ = [
    "HEALING_THRESHOLD",
    "ArticleRecord",
    "CursorPager",
    "NamespaceStats",
    "Page",
    "PushResult",
    "Reconciler",
    "RecordFailure",
    "SyncRequest",
    "SyncResponse",
    "SyncSession",
    "UpsertOutcome",
    "clamp_page_size",
    "collect_namespace_stats",
    "current_millis",
    "format_namespace_stats",
    "format_page",
    "format_push_result",
    "needs_healing",
    "parse_sync_request",
]
