"""
Phase history: one immutable row per accepted phase change.

Rows are built by ``build_history_entry`` from the flush hook in ``hooks.py``, so a
phase change and its history row always land in the same transaction. There is no
update or delete path.
"""
from __future__ import annotations

import json
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import PhaseHistoryEntry

if TYPE_CHECKING:
    from app.plm.modules.work_items.models import WorkItem

HISTORY_PAGE_MAX = 500


def build_history_entry(
    item: WorkItem,
    *,
    operation: str,
    from_phase: str | None,
    old_status: str | None,
    old_owner_user_id: int | None,
) -> PhaseHistoryEntry:
    if operation == "INSERT":
        actor_id = item.created_by_user_id
    else:
        actor_id = item.updated_by_user_id
    snapshot = {
        "operation": operation,
        "old_status": old_status,
        "new_status": item.status,
        "old_owner": old_owner_user_id,
        "new_owner": item.owner_user_id,
    }
    reason = item.transition_reason
    return PhaseHistoryEntry(
        work_item=item,
        team_id=item.team_id,
        workspace_id=item.workspace_id,
        from_phase=from_phase,
        to_phase=item.phase,
        changed_by_user_id=actor_id,
        reason=reason.strip()[:512] if reason else None,
        metadata_json=json.dumps(snapshot, sort_keys=True),
    )


def get_history(
    s: Session,
    item: WorkItem,
    *,
    limit: int | None = None,
    before_id: int | None = None,
) -> list[PhaseHistoryEntry]:
    """
    Phase history for one item, newest first.
    Page with ``before_id`` (the last id already seen) to resume a read.
    """
    q = select(PhaseHistoryEntry).where(PhaseHistoryEntry.work_item_id == item.id)
    if before_id is not None:
        q = q.where(PhaseHistoryEntry.id < before_id)
    q = q.order_by(PhaseHistoryEntry.id.desc())
    if limit is not None:
        q = q.limit(max(1, min(limit, HISTORY_PAGE_MAX)))
    return list(s.execute(q).scalars())


def list_workspace_history(s: Session, workspace_id: int, *, limit: int = 100) -> list[PhaseHistoryEntry]:
    q = (
        select(PhaseHistoryEntry)
        .where(PhaseHistoryEntry.workspace_id == workspace_id)
        .order_by(PhaseHistoryEntry.id.desc())
        .limit(max(1, min(limit, HISTORY_PAGE_MAX)))
    )
    return list(s.execute(q).scalars())
