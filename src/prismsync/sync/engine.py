"""Generic three-way reconciliation between local projections and remote items."""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence

from prismsync.models.records import IdentityProjection
from prismsync.sync.errors import PassError


logger = logging.getLogger(__name__)

MatchFunction = Callable[[IdentityProjection, Any], bool]
Loader = Callable[[Iterable[int]], Awaitable[List[Any]]]
Handler = Callable[[List[Any]], Awaitable[None]]


@dataclass
class UpdateItem:
    """A matched pair; existing is a projection until hydrated."""
    existing: Any
    remote: Any


@dataclass
class SyncResult:
    """Partition of a reconciliation into add, update and delete sets."""
    adds: List[Any] = field(default_factory=list)
    updates: List[UpdateItem] = field(default_factory=list)
    deletes: List[IdentityProjection] = field(default_factory=list)


def reconcile(
    existing: Sequence[IdentityProjection],
    remote: Iterable[Any],
    match: MatchFunction,
) -> SyncResult:
    """Diff remote items against existing projections.

    The first projection satisfying ``match`` wins and is consumed, so a second
    remote item matching the same projection lands in the add set.
    """
    remaining = list(existing)
    result = SyncResult()

    for item in remote:
        for index, projection in enumerate(remaining):
            if match(projection, item):
                result.updates.append(UpdateItem(existing=projection, remote=item))
                del remaining[index]
                break
        else:
            result.adds.append(item)

    result.deletes = remaining
    return result


async def hydrate(updates: List[UpdateItem], loader: Loader) -> List[UpdateItem]:
    """Swap projections for full records with one batched lookup."""
    if not updates:
        return []

    records = {record.id: record for record in await loader([item.existing.id for item in updates])}
    hydrated = []
    for item in updates:
        record = records.get(item.existing.id)
        if record is None:
            logger.warning(f"Skipping update: record {item.existing.id} vanished before hydration")
            continue
        hydrated.append(UpdateItem(existing=record, remote=item.remote))
    return hydrated


async def apply(
    result: SyncResult,
    loader: Optional[Loader] = None,
    on_add: Optional[Handler] = None,
    on_update: Optional[Handler] = None,
    on_delete: Optional[Handler] = None,
    label: str = "sync",
):
    """Run handlers in add, update, delete order.

    Each handler runs even if an earlier one failed; nothing is rolled back.
    Failures are collected and raised together as a PassError at the end.
    Handlers are only called for non-empty sets.
    """
    failures = []

    steps = (
        ("add", on_add, lambda: _ready(result.adds)),
        ("update", on_update, lambda: _hydrated(result.updates, loader)),
        ("delete", on_delete, lambda: _ready(result.deletes)),
    )
    for step, handler, items in steps:
        if handler is None:
            continue
        try:
            batch = await items()
            if batch:
                await handler(batch)
        except Exception as e:
            logger.error(f"{label}: {step} handler failed: {e}", exc_info=True)
            failures.append(e)

    if failures:
        raise PassError(label, failures)


async def _ready(items: List[Any]) -> List[Any]:
    return items


async def _hydrated(updates: List[UpdateItem], loader: Optional[Loader]) -> List[UpdateItem]:
    if loader is None:
        return updates
    return await hydrate(updates, loader)
