# contests/reconciler.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from contesso.db.enums import Platform
from contesso.db.schemas.contest import ContestRead, ContestUpsert

logger = logging.getLogger(__name__)

# Fields compared to decide whether an existing row needs an update.
_SYNCED_FIELDS = ("name", "platform", "start_time", "end_time", "duration", "url")


@dataclass(slots=True)
class ReconcilePlan:
    """Outcome of reconciling a fetched batch against the persisted snapshot."""
    inserts: list[ContestUpsert] = field(default_factory=list)
    updates: list[ContestUpsert] = field(default_factory=list)
    unchanged: list[ContestUpsert] = field(default_factory=list)
    failed_sources: list[Platform] = field(default_factory=list)

    @property
    def writes(self) -> list[ContestUpsert]:
        return [*self.inserts, *self.updates]

    @property
    def contests(self) -> list[ContestUpsert]:
        """Every contest of the batch, as it looks once the plan is applied."""
        return [*self.inserts, *self.updates, *self.unchanged]

    @property
    def is_noop(self) -> bool:
        return not self.inserts and not self.updates


def _differs(candidate: ContestUpsert, current: ContestRead) -> bool:
    return any(getattr(candidate, f) != getattr(current, f) for f in _SYNCED_FIELDS)


def reconcile(
    batch: Iterable[ContestUpsert],
    persisted: Mapping[str, ContestRead],
    *,
    failed_sources: Sequence[Platform] = (),
) -> ReconcilePlan:
    """
    Compute the idempotent upsert for a batch.

    - Duplicate ids inside the batch collapse to the last record seen.
    - Unknown ids are inserted.
    - Known ids are updated in every field except solution_link, which keeps
      the persisted value; an update that changes nothing is reported as unchanged.
    - Persisted contests missing from the batch are not touched.
    """
    by_id: dict[str, ContestUpsert] = {}
    for contest in batch:
        if contest.id in by_id:
            logger.debug("Duplicate contest %s in batch; keeping the last record", contest.id)
        by_id[contest.id] = contest

    plan = ReconcilePlan(failed_sources=list(failed_sources))
    for cid, candidate in by_id.items():
        current = persisted.get(cid)
        if current is None:
            plan.inserts.append(candidate)
            continue

        merged = candidate.model_copy(update={"solution_link": current.solution_link})
        if _differs(merged, current):
            plan.updates.append(merged)
        else:
            plan.unchanged.append(merged)

    logger.info(
        "Reconciled %d contests: %d new, %d updated, %d unchanged",
        len(by_id), len(plan.inserts), len(plan.updates), len(plan.unchanged),
    )
    return plan
