"""
Workload cache: counts of live (non-archived) work items per (workspace, phase, status).

Recomputed in full per workspace rather than patched with deltas; workspaces hold tens
to low thousands of items, so an O(n) GROUP BY is cheap and cannot drift. ``hooks.py``
calls ``refresh_workload`` right before commit for every workspace touched by the
transaction, so readers never see a stale cache after a commit.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete, func, insert, select
from sqlalchemy.orm import Session

from app.plm.constants import WORK_ITEM_STATUSES
from app.plm.models import Workspace
from app.plm.modules.work_items.models import WorkItem

from .models import WorkloadCacheEntry
from .vocabulary import WORK_ITEM_PHASES

logger = logging.getLogger(__name__)


def count_live_items(s: Session, workspace_id: int) -> dict[tuple[str, str], int]:
    """Source-of-truth counts, straight from work_items."""
    rows = s.execute(
        select(WorkItem.phase, WorkItem.status, func.count(WorkItem.id))
        .where(WorkItem.workspace_id == workspace_id, WorkItem.archived_at.is_(None))
        .group_by(WorkItem.phase, WorkItem.status)
    ).all()
    return {(phase, status): int(n) for phase, status, n in rows}


def refresh_workload(s: Session, workspace_id: int) -> int:
    """Replace the cache rows of one workspace. Returns the number of rows written."""
    team_id = s.execute(select(Workspace.team_id).where(Workspace.id == workspace_id)).scalar_one_or_none()

    s.execute(
        delete(WorkloadCacheEntry)
        .where(WorkloadCacheEntry.workspace_id == workspace_id)
        .execution_options(synchronize_session=False)
    )
    if team_id is None:
        return 0

    counts = count_live_items(s, workspace_id)
    if counts:
        now = datetime.utcnow()
        s.execute(
            insert(WorkloadCacheEntry),
            [
                {
                    "workspace_id": workspace_id,
                    "phase": phase,
                    "status": status,
                    "team_id": team_id,
                    "item_count": n,
                    "refreshed_at": now,
                }
                for (phase, status), n in sorted(counts.items())
            ],
        )
    logger.debug("Workload cache refreshed: workspace=%s rows=%s", workspace_id, len(counts))
    return len(counts)


def rebuild_all_workloads(s: Session) -> int:
    """Recompute the cache for every workspace (backfill / recovery)."""
    ws_ids = list(s.execute(select(Workspace.id).order_by(Workspace.id.asc())).scalars())
    for ws_id in ws_ids:
        refresh_workload(s, ws_id)
    logger.info("Workload cache rebuilt for %s workspaces", len(ws_ids))
    return len(ws_ids)


def get_workload(s: Session, workspace_id: int) -> dict[tuple[str, str], int]:
    """
    Cached counts as of the last committed write, as a full phase x status matrix
    (pairs with no items read as 0).
    """
    out = {(p, st): 0 for p in WORK_ITEM_PHASES for st in WORK_ITEM_STATUSES}
    rows = s.execute(
        select(WorkloadCacheEntry.phase, WorkloadCacheEntry.status, WorkloadCacheEntry.item_count).where(
            WorkloadCacheEntry.workspace_id == workspace_id
        )
    ).all()
    for phase, status, n in rows:
        out[(phase, status)] = n
    return out


def get_phase_totals(s: Session, workspace_id: int) -> dict[str, int]:
    totals = {p: 0 for p in WORK_ITEM_PHASES}
    for (phase, _status), n in get_workload(s, workspace_id).items():
        totals[phase] = totals.get(phase, 0) + n
    return totals
