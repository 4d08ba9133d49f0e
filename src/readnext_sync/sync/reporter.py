"""Namespace diagnostics and report formatting.

- ``collect_namespace_stats`` -- record count plus truncated articles.
- ``format_namespace_stats`` -- human-readable stats summary.
- ``format_push_result`` -- one-paragraph push outcome.
- ``format_page`` -- human-readable summary of one pull page.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .models import (
    HEALING_THRESHOLD,
    STATS_TRUNCATED_LIMIT,
    NamespaceStats,
    TruncatedArticle,
)

if TYPE_CHECKING:
    from readnext_sync.store.base import Store

    from .models import Page, PushResult


def collect_namespace_stats(
    store: Store,
    namespace: str,
    threshold: int = HEALING_THRESHOLD,
    limit: int = STATS_TRUNCATED_LIMIT,
) -> NamespaceStats:
    """Gather diagnostics for *namespace*.

    Args:
        store: Backend to query.
        namespace: Namespace to inspect.
        threshold: Content length below which an article counts as
            truncated.
        limit: Maximum number of truncated articles listed.

    Raises:
        StoreUnavailable: If the store cannot be read.
    """
    truncated = [
        TruncatedArticle(
            id=record.id,
            title=_title_of(record.fields.get("title")),
            length=record.content_length,
        )
        for record in store.find_truncated(namespace, threshold, limit)
    ]
    return NamespaceStats(
        namespace=namespace,
        total=store.count(namespace),
        threshold=threshold,
        truncated=truncated,
    )


def _title_of(value: object) -> str | None:
    return value if isinstance(value, str) else None


def format_namespace_stats(stats: NamespaceStats) -> str:
    """Format namespace diagnostics as text.

    Returns:
        Multi-line string; the truncated section is omitted when empty.
    """
    lines = [
        f"Namespace '{stats.namespace}'",
        f"  Articles: {stats.total}",
        f"  Truncated (< {stats.threshold} chars): "
        + (
            f"{len(stats.truncated)}+"
            if len(stats.truncated) >= STATS_TRUNCATED_LIMIT
            else str(len(stats.truncated))
        ),
    ]
    if stats.truncated:
        lines.append("")
        for article in stats.truncated:
            label = article.title or "(untitled)"
            lines.append(f"  {article.id}  {article.length:>4}  {label}")
    return "\n".join(lines)


def format_push_result(result: PushResult) -> str:
    """Format a push outcome, listing rejected records if any."""
    lines = [
        f"Pushed {result.accepted} record(s): "
        f"{result.inserted} inserted, {result.updated} updated, "
        f"{result.healed} healed, {len(result.failed)} failed"
    ]
    for failure in result.failed:
        lines.append(
            f"  #{failure.index} ({failure.id or 'no id'}): {failure.reason}"
        )
    return "\n".join(lines)


def format_page(namespace: str, page: Page, page_index: int) -> str:
    """Format one pull page as an id/revision listing."""
    lines = [
        f"Namespace '{namespace}' page {page_index}: "
        f"{len(page.records)} record(s)"
        + (", more available" if page.has_more else "")
    ]
    for record in page.records:
        lines.append(f"  {record.revision}  {record.id}")
    return "\n".join(lines)
