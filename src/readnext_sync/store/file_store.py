"""JSON-file store backend.

Keeps every namespace resident in memory and rewrites the whole file on each
mutating call.  Suitable for a single user with modest concurrency; callers
needing multi-writer safety should use ``MongoStore``.

Key design choices:

* **Single writer lock** -- every read and write goes through one
  ``threading.Lock``; request handlers run store calls in worker threads.
* **Atomic writes** -- the file is written to a temp file in the same
  directory then ``os.replace()``-d, so readers never see partial data.
* **Commit after persist** -- a write is applied to a copy of the namespace
  and only swapped into memory once the file write succeeded.
* **Insertion-order tiebreak** -- records with equal revisions are returned
  in the order they were first inserted; an update keeps its position.
* **Unreadable records kept** -- stored payloads that fail validation are
  hidden from reads but written back verbatim on every save, until a valid
  record with the same id replaces them.

File layout::

    {"version": 1, "namespaces": {"<namespace>": [<payload>, ...]}}

The legacy layout ``{"<namespace>": [<payload>, ...]}`` is accepted on load.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import threading
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from readnext_sync.errors import StoreUnavailable
from readnext_sync.sync.models import ArticleRecord, UpsertOutcome

logger = logging.getLogger(__name__)

FILE_FORMAT_VERSION = 1


def _revision_key(record: ArticleRecord) -> int:
    return record.revision or 0


class FileStore:
    """Store backed by a single JSON file.

    Args:
        path: Location of the JSON file.  Created on first write.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._namespaces: dict[str, list[ArticleRecord]] = {}
        self._positions: dict[str, dict[str, int]] = {}
        self._unreadable: dict[str, list[Any]] = {}
        for namespace, records in self._load().items():
            self._commit(namespace, records)

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, namespace: str, record_id: str) -> ArticleRecord | None:
        with self._lock:
            pos = self._positions.get(namespace, {}).get(record_id)
            if pos is None:
                return None
            return self._namespaces[namespace][pos]

    def get_many(
        self, namespace: str, record_ids: Iterable[str]
    ) -> dict[str, ArticleRecord]:
        with self._lock:
            positions = self._positions.get(namespace, {})
            records = self._namespaces.get(namespace, [])
            return {
                rid: records[positions[rid]]
                for rid in set(record_ids)
                if rid in positions
            }

    def query_changed(
        self, namespace: str, min_revision: int, skip: int, limit: int
    ) -> list[ArticleRecord]:
        with self._lock:
            records = self._namespaces.get(namespace, [])
        changed = [r for r in records if _revision_key(r) >= min_revision]
        # sorted() is stable, so equal revisions keep insertion order.
        changed.sort(key=_revision_key)
        return changed[skip : skip + limit]

    def count(self, namespace: str) -> int:
        with self._lock:
            return len(self._namespaces.get(namespace, []))

    def count_changed(self, namespace: str, min_revision: int) -> int:
        with self._lock:
            records = self._namespaces.get(namespace, [])
        return sum(1 for r in records if _revision_key(r) >= min_revision)

    def find_truncated(
        self, namespace: str, threshold: int, limit: int
    ) -> list[ArticleRecord]:
        with self._lock:
            records = self._namespaces.get(namespace, [])
        found: list[ArticleRecord] = []
        for record in records:
            if len(found) >= limit:
                break
            if record.content_length < threshold:
                found.append(record)
        return found

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def bulk_upsert(
        self, namespace: str, records: Sequence[ArticleRecord]
    ) -> list[UpsertOutcome]:
        if not records:
            return []

        with self._lock:
            updated = list(self._namespaces.get(namespace, []))
            positions = dict(self._positions.get(namespace, {}))
            outcomes: list[UpsertOutcome] = []

            for record in records:
                pos = positions.get(record.id)
                if pos is None:
                    positions[record.id] = len(updated)
                    updated.append(record)
                    outcomes.append(UpsertOutcome.INSERTED)
                else:
                    updated[pos] = record
                    outcomes.append(UpsertOutcome.UPDATED)

            snapshot = dict(self._namespaces)
            snapshot[namespace] = updated
            unreadable = dict(self._unreadable)
            if namespace in unreadable:
                written = {record.id for record in records}
                unreadable[namespace] = [
                    raw
                    for raw in unreadable[namespace]
                    if not (isinstance(raw, dict) and raw.get("id") in written)
                ]
            try:
                self._save(snapshot, unreadable)
            except OSError as exc:
                logger.error(
                    "[%s] Failed to write %s: %s", namespace, self._path, exc
                )
                raise StoreUnavailable(
                    namespace, "bulk_upsert", str(exc)
                ) from exc

            self._namespaces[namespace] = updated
            self._positions[namespace] = positions
            self._unreadable = unreadable
            return outcomes

    def close(self) -> None:
        """No-op; every write is already flushed to disk."""

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, list[ArticleRecord]]:
        """Read the JSON file into memory.

        A missing file yields an empty store.  An unreadable or malformed
        file is moved aside to ``<name>.corrupt`` and also yields an empty
        store, with a warning.  Individual payloads that fail validation
        are collected in ``self._unreadable`` so ``_save()`` keeps them.  A
        namespace that is not a list is skipped after copying the file to
        ``<name>.corrupt``.
        """
        if not self._path.exists():
            logger.info(
                "No store file at %s, starting with an empty store",
                self._path,
            )
            return {}

        try:
            with open(self._path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            self._quarantine(f"unreadable JSON ({exc})")
            return {}

        if not isinstance(data, dict):
            self._quarantine(f"non-object root ({type(data).__name__})")
            return {}

        if isinstance(data.get("namespaces"), dict):
            raw_namespaces = data["namespaces"]
        else:
            # Legacy layout: top-level namespace -> list of payloads.
            raw_namespaces = {
                k: v for k, v in data.items() if isinstance(v, list)
            }
            if len(raw_namespaces) < len(data):
                self._backup("legacy layout has non-list top-level keys")

        loaded: dict[str, list[ArticleRecord]] = {}
        for namespace, payloads in raw_namespaces.items():
            if not isinstance(payloads, list):
                logger.warning(
                    "Skipping namespace %r in %s: not a list",
                    namespace,
                    self._path,
                )
                self._backup(f"namespace {namespace!r} is not a list")
                continue
            records: dict[str, ArticleRecord] = {}
            for payload in payloads:
                try:
                    record = ArticleRecord.from_payload(payload)
                except ValidationError as exc:
                    logger.warning(
                        "[%s] Skipping invalid stored record %r: %s",
                        namespace,
                        payload.get("id") if isinstance(payload, dict) else None,
                        exc.errors()[0]["msg"] if exc.errors() else exc,
                    )
                    self._unreadable.setdefault(namespace, []).append(payload)
                    continue
                # Later duplicates replace earlier ones in place.
                records[record.id] = record
            loaded[namespace] = list(records.values())

        logger.info(
            "Loaded %d namespace(s), %d record(s) from %s",
            len(loaded),
            sum(len(r) for r in loaded.values()),
            self._path,
        )
        return loaded

    def _quarantine(self, reason: str) -> None:
        backup = self._path.with_name(self._path.name + ".corrupt")
        logger.warning(
            "Store file %s is malformed: %s. Moving it to %s and "
            "starting with an empty store.",
            self._path,
            reason,
            backup,
        )
        try:
            os.replace(self._path, backup)
        except OSError as exc:
            logger.warning("Could not move %s aside: %s", self._path, exc)

    def _backup(self, reason: str) -> None:
        """Copy the file to ``<name>.corrupt`` before part of it is dropped."""
        backup = self._path.with_name(self._path.name + ".corrupt")
        logger.warning(
            "Store file %s: %s. Saving a copy to %s before it is rewritten.",
            self._path,
            reason,
            backup,
        )
        try:
            shutil.copy2(self._path, backup)
        except OSError as exc:
            logger.warning("Could not copy %s: %s", self._path, exc)

    def _save(
        self,
        namespaces: dict[str, list[ArticleRecord]],
        unreadable: dict[str, list[Any]],
    ) -> None:
        """Persist *namespaces* plus the *unreadable* payloads atomically."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        document = {
            "version": FILE_FORMAT_VERSION,
            "namespaces": {
                ns: [r.to_payload() for r in namespaces.get(ns, [])]
                + unreadable.get(ns, [])
                for ns in {**namespaces, **unreadable}
            },
        }

        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._path.parent), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2)
            os.replace(tmp_path, self._path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def _commit(
        self, namespace: str, records: list[ArticleRecord]
    ) -> None:
        self._namespaces[namespace] = records
        self._positions[namespace] = {
            r.id: pos for pos, r in enumerate(records)
        }
