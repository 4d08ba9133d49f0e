"""Pydantic models for the article sync engine.

Defines the data contracts shared by the store, reconciler, pager and
session:

- ``ArticleRecord``: one client article (``id``, ``content``, revision and
  opaque extra fields).
- ``UpsertOutcome``: per-item result of a bulk upsert.
- ``RecordFailure``: a rejected incoming record, for diagnostics.
- ``PushResult``: aggregate outcome of one reconciler run.
- ``Page``: one page of pulled changes.
- ``SyncRequest`` / ``SyncResponse``: the combined push+pull round trip.
- ``NamespaceStats``: diagnostics for a namespace.

On the wire the revision is carried under ``updatedAt``; ``revision`` is
accepted as an input alias.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# Content shorter than this is treated as truncated/placeholder text.
HEALING_THRESHOLD = 200

STATS_TRUNCATED_LIMIT = 20

REVISION_KEY = "updatedAt"


class UpsertOutcome(str, Enum):
    """Per-item result of ``Store.bulk_upsert``."""

    INSERTED = "inserted"
    UPDATED = "updated"
    FAILED = "failed"


class ArticleRecord(BaseModel):
    """A single article as pushed by a client.

    Attributes:
        id: Natural key, unique within a namespace.
        revision: Millisecond timestamp used as the change cursor.
            ``None`` when the client did not supply one.
        content: Extracted article text; may be empty or a placeholder.

    Any other keys of the client payload (title, url, metadata...) are kept
    verbatim as extra fields and round-trip untouched.
    """

    model_config = ConfigDict(
        extra="allow", frozen=True, populate_by_name=True
    )

    id: str = Field(min_length=1)
    revision: int | None = Field(
        default=None,
        validation_alias=AliasChoices(REVISION_KEY, "revision"),
    )
    content: str | None = None

    @property
    def fields(self) -> dict[str, Any]:
        """Opaque client fields other than id, revision and content."""
        return dict(self.model_extra or {})

    @property
    def content_length(self) -> int:
        return len(self.content or "")

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ArticleRecord:
        """Build a record from a raw client or stored payload.

        Raises:
            pydantic.ValidationError: If ``id`` is missing or a known key
                has the wrong type.
        """
        return cls.model_validate(payload)

    def to_payload(self) -> dict[str, Any]:
        """Return the wire/persisted form of the record.

        Extra fields come first, then ``id``, ``content`` (only if the
        client sent one) and ``updatedAt``.
        """
        payload = self.fields
        payload.pop("revision", None)
        payload["id"] = self.id
        if self.content is not None or "content" in self.model_fields_set:
            payload["content"] = self.content
        payload[REVISION_KEY] = self.revision
        return payload

    def with_revision(self, revision: int) -> ArticleRecord:
        """Return a copy stamped with *revision*."""
        return self.model_copy(update={"revision": revision})


class RecordFailure(BaseModel):
    """A rejected incoming record.

    Attributes:
        index: Position in the incoming batch.
        id: The record id, if one could be read.
        reason: Why the record was rejected.
    """

    index: int
    id: str | None = None
    reason: str

    model_config = {"frozen": True}


class PushResult(BaseModel):
    """Aggregate outcome of applying one incoming batch.

    ``healed`` counts records accepted through the content-healing override.
    All counts are diagnostic only.
    """

    inserted: int = 0
    updated: int = 0
    healed: int = 0
    failed: list[RecordFailure] = []

    model_config = {"frozen": True}

    @property
    def accepted(self) -> int:
        return self.inserted + self.updated


class Page(BaseModel):
    """One page of changed records.

    Attributes:
        records: At most ``page_size`` records ordered by revision.
        has_more: True when at least one more record exists past this page.
        total_updates: Best-effort count of changed records.  May be an
            approximation or a sentinel; only suitable for UI hints.
    """

    records: list[ArticleRecord] = []
    has_more: bool = False
    total_updates: int = 0

    model_config = {"frozen": True}


class SyncRequest(BaseModel):
    """Body of a combined push+pull request."""

    model_config = ConfigDict(populate_by_name=True)

    changes: list[Any] = Field(default_factory=list)
    last_sync: int = Field(default=0, alias="lastSync")
    limit: int | None = None
    page: int = 0


class SyncResponse(BaseModel):
    """Body of a combined push+pull response.

    ``serverTime`` is the server clock the client should persist as its next
    ``lastSync``.
    """

    model_config = ConfigDict(populate_by_name=True)

    changes: list[dict[str, Any]] = []
    server_time: int = Field(alias="serverTime")
    has_more: bool = Field(default=False, alias="hasMore")
    total_updates: int = Field(default=0, alias="totalUpdates")
    pushed: PushResult = Field(default_factory=PushResult)


class TruncatedArticle(BaseModel):
    """An article whose content is below the healing threshold."""

    id: str
    title: str | None = None
    length: int


class NamespaceStats(BaseModel):
    """Diagnostics for one namespace.

    ``truncated`` is capped at ``STATS_TRUNCATED_LIMIT`` entries.
    """

    namespace: str
    total: int
    threshold: int = HEALING_THRESHOLD
    truncated: list[TruncatedArticle] = []
