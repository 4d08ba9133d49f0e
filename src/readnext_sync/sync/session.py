"""One sync round trip: push the client's changes, then pull a page.

The session is stateless.  The client carries its cursor (``lastSync`` and
``page``) and stores the returned ``serverTime`` as its next ``lastSync``.
Any failure in either phase aborts the whole request; because the push is
an idempotent upsert-by-id, resubmitting the identical request is safe.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from readnext_sync.config import DEFAULT_PAGE_SIZE
from readnext_sync.errors import RequestError
from readnext_sync.sync.models import SyncRequest, SyncResponse
from readnext_sync.sync.pager import CursorPager
from readnext_sync.sync.reconciler import Reconciler, current_millis

if TYPE_CHECKING:
    from readnext_sync.store.base import Store

logger = logging.getLogger(__name__)


def parse_sync_request(body: Any) -> SyncRequest:
    """Validate a raw request body.

    A missing body is an empty request (no changes, pull from 0).

    Raises:
        RequestError: If the body is not an object or a field has the
            wrong type.
    """
    if body is None:
        return SyncRequest()
    if not isinstance(body, dict):
        raise RequestError(
            f"request body must be a JSON object, got {type(body).__name__}"
        )
    try:
        return SyncRequest.model_validate(body)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
        raise RequestError(problems) from None


class SyncSession:
    """Run push-then-pull against one store.

    Args:
        store: Backend shared by the reconciler and the pager.
        max_page_size: Hard cap on records per pull page.
        clock: Returns the server time in milliseconds.
    """

    def __init__(
        self,
        store: Store,
        max_page_size: int = DEFAULT_PAGE_SIZE,
        clock: Callable[[], int] = current_millis,
    ) -> None:
        self.reconciler = Reconciler(store, clock=clock)
        self.pager = CursorPager(store, max_page_size=max_page_size)
        self.clock = clock

    def run(self, namespace: str, request: SyncRequest) -> SyncResponse:
        """Apply ``request.changes`` then return the next page of updates.

        Raises:
            StoreUnavailable: If the store fails in either phase.
        """
        logger.info(
            "[%s] Sync Req: %d changes, LastSync: %d",
            namespace,
            len(request.changes),
            request.last_sync,
        )

        pushed = self.reconciler.apply(namespace, request.changes)
        page = self.pager.fetch(
            namespace,
            min_revision=request.last_sync,
            page_size=request.limit,
            page_index=request.page,
        )

        return SyncResponse(
            changes=[record.to_payload() for record in page.records],
            server_time=self.clock(),
            has_more=page.has_more,
            total_updates=page.total_updates,
            pushed=pushed,
        )
