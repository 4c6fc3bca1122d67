"""
Unit-of-work hooks for work items.

before_flush:  every inserted WorkItem, and every WorkItem whose phase value changed,
               gets a PhaseHistoryEntry in the same flush. Workspaces whose items were
               inserted, archived, deleted, or changed phase/status are remembered.
before_commit: flush, then recompute the workload cache of every remembered workspace.

Both run inside the triggering transaction: if either fails, the commit fails and the
whole change is rolled back with it.
"""
from __future__ import annotations

import logging

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from app.plm.db import PlmSession
from app.plm.modules.work_items.models import WorkItem

from .history import build_history_entry
from .workload import refresh_workload

logger = logging.getLogger(__name__)

_DIRTY_WORKSPACES = "plm.workload_dirty"
_CACHE_FIELDS = ("phase", "status", "archived_at", "workspace_id")


def _previous(state, key: str):
    hist = state.attrs[key].history
    if hist.deleted:
        return hist.deleted[0]
    return getattr(state.object, key)


def _dirty_workspaces(session: Session) -> set[int]:
    return session.info.setdefault(_DIRTY_WORKSPACES, set())


@event.listens_for(PlmSession, "before_flush")
def _record_work_item_changes(session: Session, flush_context, instances) -> None:
    dirty = _dirty_workspaces(session)

    for obj in session.new:
        if not isinstance(obj, WorkItem):
            continue
        session.add(
            build_history_entry(obj, operation="INSERT", from_phase=None, old_status=None, old_owner_user_id=None)
        )
        obj.transition_reason = None
        dirty.add(obj.workspace_id)

    for obj in session.dirty:
        if not isinstance(obj, WorkItem) or not session.is_modified(obj, include_collections=False):
            continue
        state = inspect(obj)
        old_phase = _previous(state, "phase")
        if old_phase != obj.phase:
            session.add(
                build_history_entry(
                    obj,
                    operation="UPDATE",
                    from_phase=old_phase,
                    old_status=_previous(state, "status"),
                    old_owner_user_id=_previous(state, "owner_user_id"),
                )
            )
        obj.transition_reason = None
        if any(state.attrs[f].history.has_changes() for f in _CACHE_FIELDS):
            dirty.add(obj.workspace_id)
            old_ws = _previous(state, "workspace_id")
            if old_ws is not None:
                dirty.add(old_ws)

    for obj in session.deleted:
        if isinstance(obj, WorkItem):
            dirty.add(obj.workspace_id)


@event.listens_for(PlmSession, "before_commit")
def _refresh_touched_workloads(session: Session) -> None:
    if not session.info.get(_DIRTY_WORKSPACES) and not session.new and not session.dirty and not session.deleted:
        return
    session.flush()
    dirty = session.info.pop(_DIRTY_WORKSPACES, None) or set()
    dirty.discard(None)
    for workspace_id in sorted(dirty):
        refresh_workload(session, workspace_id)


@event.listens_for(PlmSession, "after_rollback")
def _forget_touched_workloads(session: Session) -> None:
    session.info.pop(_DIRTY_WORKSPACES, None)
