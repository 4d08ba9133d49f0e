"""Error taxonomy for the sync service.

- ``RequestError``: malformed request body.  Request-scoped; whatever was
  already upserted stays upserted.
- ``RecordError``: one incoming record could not be applied.  The batch
  continues and the error is reported in the push diagnostics.
- ``StoreUnavailable``: backend unreachable or failed to persist.  Fatal to
  the current request only.
- ``AuthError``: shared-secret mismatch.  Raised before the core runs.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all sync service errors."""


class RequestError(SyncError):
    """The request body is malformed."""


class RecordError(SyncError):
    """A single incoming record was rejected.

    Args:
        index: Position of the record in the incoming batch.
        record_id: The record's ``id`` if one could be read.
        reason: Human-readable rejection reason.
    """

    def __init__(
        self, index: int, record_id: str | None, reason: str
    ) -> None:
        super().__init__(f"record #{index} ({record_id!r}): {reason}")
        self.index = index
        self.record_id = record_id
        self.reason = reason


class StoreUnavailable(SyncError):
    """The storage backend could not serve the operation.

    Args:
        namespace: Namespace the operation targeted (may be ``None`` for
            startup checks).
        operation: Store operation name, e.g. ``"bulk_upsert"``.
        detail: Underlying failure description.
    """

    def __init__(
        self, namespace: str | None, operation: str, detail: str
    ) -> None:
        super().__init__(
            f"store unavailable during {operation}"
            + (f" [{namespace}]" if namespace else "")
            + f": {detail}"
        )
        self.namespace = namespace
        self.operation = operation
        self.detail = detail


class AuthError(SyncError):
    """Shared-secret check failed."""
