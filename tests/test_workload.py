"""Tests for the derived phase workload cache."""
import pytest
from sqlalchemy import delete, func, select

from app.plm.db import session_scope
from app.plm.errors import AuthorizationError
from app.plm.models import User
from app.plm.modules.phases.models import WorkloadCacheEntry
from app.plm.modules.phases.vocabulary import WORK_ITEM_PHASES
from app.plm.modules.phases.workload import get_phase_totals, get_workload, rebuild_all_workloads, refresh_workload
from app.plm.modules.work_items.models import WorkItem
from app.plm.modules.work_items.service import create_work_item, delete_work_item, transition_phase, update_work_item


def _make(s, seed, item_type, title, **kw):
    return create_work_item(
        s,
        team_id=seed.team_id,
        workspace_id=seed.workspace_id,
        item_type=item_type,
        title=title,
        user=s.get(User, seed.admin),
        **kw,
    )


def _direct_counts(s, workspace_id):
    rows = s.execute(
        select(WorkItem.phase, WorkItem.status, func.count(WorkItem.id))
        .where(WorkItem.workspace_id == workspace_id, WorkItem.archived_at.is_(None))
        .group_by(WorkItem.phase, WorkItem.status)
    ).all()
    return {(p, st): n for p, st, n in rows}


def _assert_cache_matches(s, workspace_id):
    direct = _direct_counts(s, workspace_id)
    cached = get_workload(s, workspace_id)
    for key, n in cached.items():
        assert n == direct.get(key, 0), key
    for key, n in direct.items():
        assert cached[key] == n, key


def test_empty_workspace_reads_as_zero_matrix(app, seed):
    with session_scope(app) as s:
        wl = get_workload(s, seed.workspace_id)
        assert len(wl) == len(WORK_ITEM_PHASES) * 6
        assert set(wl.values()) == {0}


def test_cache_follows_every_committed_write(app, seed):
    with session_scope(app) as s:
        a = _make(s, seed, "bug", "A")
        b = _make(s, seed, "bug", "B", status="in_progress")
        _make(s, seed, "feature", "C")
        ids = (a.id, b.id)

    with session_scope(app) as s:
        wl = get_workload(s, seed.workspace_id)
        assert wl[("triage", "not_started")] == 1
        assert wl[("triage", "in_progress")] == 1
        assert wl[("design", "not_started")] == 1
        _assert_cache_matches(s, seed.workspace_id)

    with session_scope(app) as s:
        admin = s.get(User, seed.admin)
        transition_phase(s, s.get(WorkItem, ids[0]), "fixing", admin)
        update_work_item(s, s.get(WorkItem, ids[1]), admin, status="blocked")

    with session_scope(app) as s:
        wl = get_workload(s, seed.workspace_id)
        assert wl[("triage", "not_started")] == 0
        assert wl[("fixing", "not_started")] == 1
        assert wl[("triage", "blocked")] == 1
        _assert_cache_matches(s, seed.workspace_id)

    with session_scope(app) as s:
        delete_work_item(s, s.get(WorkItem, ids[0]), s.get(User, seed.admin))

    with session_scope(app) as s:
        assert get_workload(s, seed.workspace_id)[("fixing", "not_started")] == 0
        totals = get_phase_totals(s, seed.workspace_id)
        assert totals["triage"] == 1
        assert totals["design"] == 1
        assert sum(totals.values()) == 2
        _assert_cache_matches(s, seed.workspace_id)


def test_rolled_back_write_leaves_cache_untouched(app, seed):
    with session_scope(app) as s:
        _make(s, seed, "bug", "A")

    with pytest.raises(RuntimeError):
        with session_scope(app) as s:
            _make(s, seed, "bug", "B")
            s.flush()
            raise RuntimeError("abort")

    with session_scope(app) as s:
        assert get_workload(s, seed.workspace_id)[("triage", "not_started")] == 1
        assert s.execute(select(func.count(WorkItem.id))).scalar_one() == 1


def test_denied_transition_does_not_change_cache(app, seed):
    with session_scope(app) as s:
        item_id = _make(s, seed, "bug", "A").id

    with session_scope(app) as s:
        with pytest.raises(AuthorizationError):
            transition_phase(s, s.get(WorkItem, item_id), "fixing", s.get(User, seed.member))

    with session_scope(app) as s:
        wl = get_workload(s, seed.workspace_id)
        assert wl[("triage", "not_started")] == 1
        assert wl[("fixing", "not_started")] == 0


def test_refresh_is_idempotent_and_rebuild_repairs_drift(app, seed):
    with session_scope(app) as s:
        _make(s, seed, "concept", "Idea 1")
        _make(s, seed, "concept", "Idea 2")

    with session_scope(app) as s:
        s.execute(delete(WorkloadCacheEntry))

    with session_scope(app) as s:
        assert get_workload(s, seed.workspace_id)[("ideation", "not_started")] == 0

    with session_scope(app) as s:
        assert rebuild_all_workloads(s) == 2

    with session_scope(app) as s:
        assert refresh_workload(s, seed.workspace_id) == 1
        assert refresh_workload(s, seed.workspace_id) == 1

    with session_scope(app) as s:
        assert get_workload(s, seed.workspace_id)[("ideation", "not_started")] == 2
        assert get_workload(s, seed.other_workspace_id)[("ideation", "not_started")] == 0
        _assert_cache_matches(s, seed.workspace_id)
