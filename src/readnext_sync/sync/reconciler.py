"""Push-side reconciliation of incoming client records.

For each incoming record the ``Reconciler`` looks up the stored copy and
picks one of two rules:

- **Content healing** -- the stored copy exists, its content is shorter
  than ``HEALING_THRESHOLD`` and the incoming content is at least that
  long.  The incoming record wins regardless of its revision and is
  stamped with the current server time, so other devices pull the healed
  text on their next sync.
- **Default** -- the incoming record replaces the stored one verbatim.
  Its revision is kept if supplied, otherwise the server time is used.
  Incoming revisions are not compared with stored ones: the last write to
  arrive wins.

Records are full replacements, never field-level merges.  A record that
cannot be read (missing id, wrong types) is rejected on its own and the
rest of the batch is still applied.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from readnext_sync.errors import RecordError
from readnext_sync.sync.models import (
    HEALING_THRESHOLD,
    ArticleRecord,
    PushResult,
    RecordFailure,
    UpsertOutcome,
)
from readnext_sync.sync.reporter import format_push_result

if TYPE_CHECKING:
    from readnext_sync.store.base import Store

logger = logging.getLogger(__name__)


def current_millis() -> int:
    """Server clock in milliseconds since the epoch."""
    return int(time.time() * 1000)


def needs_healing(
    existing: ArticleRecord | None,
    incoming: ArticleRecord,
    threshold: int = HEALING_THRESHOLD,
) -> bool:
    """Return ``True`` if *incoming* should heal a truncated *existing* copy."""
    if existing is None:
        return False
    return (
        existing.content_length < threshold
        and incoming.content_length >= threshold
    )


def parse_record(index: int, raw: Any) -> ArticleRecord:
    """Validate one raw incoming change.

    Raises:
        RecordError: If *raw* is not an object, lacks an id, or carries a
            known field with the wrong type.
    """
    if not isinstance(raw, dict):
        raise RecordError(
            index, None, f"expected an object, got {type(raw).__name__}"
        )
    raw_id = raw.get("id")
    record_id = raw_id if isinstance(raw_id, str) else None
    if raw_id is None or raw_id == "":
        raise RecordError(index, None, "missing id")
    try:
        return ArticleRecord.from_payload(raw)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}"
            for err in exc.errors()
        )
        raise RecordError(index, record_id, problems) from None


class Reconciler:
    """Apply incoming client batches to a store.

    Args:
        store: Backend holding the namespace collections.
        clock: Returns the server time in milliseconds.
        threshold: Content length below which a stored copy counts as
            truncated.
    """

    def __init__(
        self,
        store: Store,
        clock: Callable[[], int] = current_millis,
        threshold: int = HEALING_THRESHOLD,
    ) -> None:
        self.store = store
        self.clock = clock
        self.threshold = threshold

    def apply(self, namespace: str, changes: Sequence[Any]) -> PushResult:
        """Reconcile *changes* into *namespace*.

        Args:
            namespace: Target namespace.
            changes: Raw incoming records, in client order.

        Returns:
            A ``PushResult`` with inserted/updated/healed counts and the
            per-record failures.

        Raises:
            StoreUnavailable: If the store cannot be read or written.
        """
        if not changes:
            return PushResult()

        failures: list[RecordFailure] = []
        parsed: list[tuple[int, ArticleRecord]] = []
        for index, raw in enumerate(changes):
            try:
                parsed.append((index, parse_record(index, raw)))
            except RecordError as exc:
                logger.warning("[%s] Rejected change: %s", namespace, exc)
                failures.append(
                    RecordFailure(
                        index=exc.index, id=exc.record_id, reason=exc.reason
                    )
                )

        existing = self.store.get_many(
            namespace, (record.id for _, record in parsed)
        )

        # Last accepted state per id; dict order follows first appearance.
        accepted: dict[str, ArticleRecord] = {}
        healed_ids: set[str] = set()
        for _, incoming in parsed:
            current = accepted.get(incoming.id) or existing.get(incoming.id)
            now = self.clock()
            if needs_healing(current, incoming, self.threshold):
                logger.info(
                    "[%s] Healing %s: content %d -> %d chars, revision %s -> %d",
                    namespace,
                    incoming.id,
                    current.content_length if current else 0,
                    incoming.content_length,
                    incoming.revision,
                    now,
                )
                record = incoming.with_revision(now)
                healed_ids.add(incoming.id)
            else:
                record = incoming.with_revision(
                    incoming.revision if incoming.revision is not None else now
                )
                healed_ids.discard(incoming.id)
            accepted[incoming.id] = record

        records = list(accepted.values())
        outcomes = self.store.bulk_upsert(namespace, records)

        inserted = updated = healed = 0
        for record, outcome in zip(records, outcomes):
            if outcome is UpsertOutcome.INSERTED:
                inserted += 1
            elif outcome is UpsertOutcome.UPDATED:
                updated += 1
            else:
                failures.append(
                    RecordFailure(
                        index=_last_index(parsed, record.id),
                        id=record.id,
                        reason="store rejected the write",
                    )
                )
                continue
            if record.id in healed_ids:
                healed += 1

        result = PushResult(
            inserted=inserted,
            updated=updated,
            healed=healed,
            failed=sorted(failures, key=lambda f: f.index),
        )
        logger.info("[%s] %s", namespace, format_push_result(result))
        return result


def _last_index(parsed: list[tuple[int, ArticleRecord]], record_id: str) -> int:
    return max(index for index, record in parsed if record.id == record_id)
