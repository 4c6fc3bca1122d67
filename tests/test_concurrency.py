"""Two sessions racing to transition the same work item."""
import pytest

from app.plm.db import session_scope
from app.plm.errors import ConcurrentModification
from app.plm.models import User
from app.plm.modules.phases.history import get_history
from app.plm.modules.phases.workload import get_workload
from app.plm.modules.work_items import api as work_items_api
from app.plm.modules.work_items.models import WorkItem
from app.plm.modules.work_items.service import create_work_item, transition_phase


def test_only_one_of_two_concurrent_transitions_commits(app, seed):
    with session_scope(app) as s:
        item_id = create_work_item(
            s,
            team_id=seed.team_id,
            workspace_id=seed.workspace_id,
            item_type="bug",
            title="Race",
            user=s.get(User, seed.admin),
        ).id

    sm = app.extensions["sqlalchemy_sessionmaker"]
    first = sm()
    second = sm()
    try:
        item_a = first.get(WorkItem, item_id)
        item_b = second.get(WorkItem, item_id)
        assert item_a.row_version == item_b.row_version == 1

        transition_phase(first, item_a, "fixing", first.get(User, seed.admin))
        first.commit()

        with pytest.raises(ConcurrentModification) as exc:
            transition_phase(second, item_b, "verified", second.get(User, seed.owner))
        assert exc.value.work_item_id == item_id
        assert exc.value.http_status == 409
        second.rollback()

        # The loser sees the winner's committed state
        item_b = second.get(WorkItem, item_id)
        assert item_b.phase == "fixing"
        assert item_b.row_version == 2
    finally:
        first.close()
        second.close()

    with session_scope(app) as s:
        item = s.get(WorkItem, item_id)
        assert item.phase == "fixing"
        assert [e.to_phase for e in get_history(s, item)] == ["fixing", "triage"]
        wl = get_workload(s, seed.workspace_id)
        assert wl[("fixing", "not_started")] == 1
        assert wl[("verified", "not_started")] == 0


def test_retry_against_fresh_state_succeeds(app, seed):
    with session_scope(app) as s:
        item_id = create_work_item(
            s,
            team_id=seed.team_id,
            workspace_id=seed.workspace_id,
            item_type="feature",
            title="Race again",
            user=s.get(User, seed.admin),
        ).id

    sm = app.extensions["sqlalchemy_sessionmaker"]
    first = sm()
    second = sm()
    try:
        item_b = second.get(WorkItem, item_id)

        transition_phase(first, first.get(WorkItem, item_id), "build", first.get(User, seed.admin))
        first.commit()

        with pytest.raises(ConcurrentModification):
            transition_phase(second, item_b, "refine", second.get(User, seed.admin))
        second.rollback()

        item_b = second.get(WorkItem, item_id, populate_existing=True)
        transition_phase(second, item_b, "refine", second.get(User, seed.admin))
        second.commit()
    finally:
        first.close()
        second.close()

    with session_scope(app) as s:
        item = s.get(WorkItem, item_id)
        assert item.phase == "refine"
        assert item.row_version == 3
        assert [(e.from_phase, e.to_phase) for e in get_history(s, item)][:2] == [("build", "refine"), ("design", "build")]


def _commit_competing_transition(app, item_id, phase, actor_id):
    """Move the item from a separate session, as another request would."""
    other = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        transition_phase(other, other.get(WorkItem, item_id), phase, other.get(User, actor_id))
        other.commit()
    finally:
        other.close()


def _create_bug_over_http(client, seed, as_user):
    r = client.post(
        f"/api/workspaces/{seed.workspace_id}/work-items",
        json={"type": "bug", "title": "Flaky deploy"},
        headers=as_user(seed.admin),
    )
    assert r.status_code == 201
    return r.json["id"]


def test_transition_endpoint_retries_once_after_losing_a_race(app, client, seed, as_user, monkeypatch):
    item_id = _create_bug_over_http(client, seed, as_user)
    calls = []

    def racing_transition(s, item, new_phase, user, **kw):
        calls.append(new_phase)
        if len(calls) == 1:
            _commit_competing_transition(app, item_id, "fixing", seed.owner)
        return transition_phase(s, item, new_phase, user, **kw)

    monkeypatch.setattr(work_items_api, "transition_phase", racing_transition)

    r = client.post(
        f"/api/work-items/{item_id}/transition",
        json={"phase": "verified", "reason": "Patched"},
        headers=as_user(seed.admin),
    )
    assert r.status_code == 200
    assert r.json["phase"] == "verified"
    assert r.json["row_version"] == 3
    assert calls == ["verified", "verified"]

    with session_scope(app) as s:
        item = s.get(WorkItem, item_id)
        assert [(e.from_phase, e.to_phase) for e in get_history(s, item)] == [
            ("fixing", "verified"),
            ("triage", "fixing"),
            (None, "triage"),
        ]
        wl = get_workload(s, seed.workspace_id)
        assert wl[("verified", "not_started")] == 1
        assert wl[("fixing", "not_started")] == 0


def test_transition_endpoint_gives_up_after_second_conflict(app, client, seed, as_user, monkeypatch):
    item_id = _create_bug_over_http(client, seed, as_user)
    competing = iter(["investigating", "fixing"])

    def racing_transition(s, item, new_phase, user, **kw):
        _commit_competing_transition(app, item_id, next(competing), seed.owner)
        return transition_phase(s, item, new_phase, user, **kw)

    monkeypatch.setattr(work_items_api, "transition_phase", racing_transition)

    r = client.post(f"/api/work-items/{item_id}/transition", json={"phase": "verified"}, headers=as_user(seed.admin))
    assert r.status_code == 409
    assert r.json["error"] == "concurrent_modification"

    with session_scope(app) as s:
        item = s.get(WorkItem, item_id)
        assert item.phase == "fixing"
        assert item.row_version == 3
        assert [e.to_phase for e in get_history(s, item)] == ["fixing", "investigating", "triage"]
