"""Tests for phase assignments, lead designation and the permission summary."""
import logging

import pytest
from sqlalchemy import select

from app.plm.db import session_scope
from app.plm.errors import AuthorizationError, NotFoundError, ValidationError
from app.plm.models import AuditEvent, User, Workspace
from app.plm.modules.phases.assignments import (
    assign_phase,
    count_phase_leads,
    get_phase_leads,
    list_phase_assignments,
    revoke_phase_assignment,
)
from app.plm.modules.phases.authz import can_edit_phase, can_manage_phase, workspace_phase_permissions


def _assign(s, seed, actor_id, user_id, phase, **kw):
    return assign_phase(
        s,
        workspace=s.get(Workspace, seed.workspace_id),
        user_id=user_id,
        phase=phase,
        actor=s.get(User, actor_id),
        **kw,
    )


def test_admin_grants_edit_and_audits_it(app, seed):
    with session_scope(app) as s:
        a, warnings = _assign(s, seed, seed.admin, seed.member, "build", notes="Sprint 4")
        assert warnings == []
        assert a.can_edit and not a.is_lead
        assert a.assigned_by_user_id == seed.admin

    with session_scope(app) as s:
        assert can_edit_phase(s, s.get(User, seed.member), team_id=seed.team_id, workspace_id=seed.workspace_id, phase="build")
        assert not can_edit_phase(s, s.get(User, seed.member), team_id=seed.team_id, workspace_id=seed.workspace_id, phase="design")
        ev = s.execute(select(AuditEvent).where(AuditEvent.action == "phase_assignment.grant")).scalar_one()
        assert ev.actor_user_id == seed.admin
        assert (ev.team_id, ev.workspace_id, ev.phase) == (seed.team_id, seed.workspace_id, "build")

        workspace_log = s.execute(
            select(AuditEvent.action).where(AuditEvent.workspace_id == seed.workspace_id)
        ).scalars().all()
        assert workspace_log == ["phase_assignment.grant"]
        assert s.execute(select(AuditEvent).where(AuditEvent.workspace_id == seed.other_workspace_id)).first() is None


def test_assign_again_updates_in_place(app, seed):
    with session_scope(app) as s:
        first, _ = _assign(s, seed, seed.admin, seed.member, "build")
        first_id = first.id

    with session_scope(app) as s:
        again, _ = _assign(s, seed, seed.admin, seed.member, "build", can_edit=False)
        assert again.id == first_id
        assert again.can_edit is False

    with session_scope(app) as s:
        rows = list_phase_assignments(s, s.get(Workspace, seed.workspace_id), s.get(User, seed.member))
        assert len(rows) == 1
        assert s.execute(select(AuditEvent).where(AuditEvent.action == "phase_assignment.update")).scalar_one()


def test_plain_member_cannot_assign(app, seed):
    with session_scope(app) as s:
        with pytest.raises(AuthorizationError):
            _assign(s, seed, seed.member, seed.requester, "build")


def test_lead_manages_non_lead_assignments_in_own_phase_only(app, seed):
    with session_scope(app) as s:
        _assign(s, seed, seed.admin, seed.lead, "execution", is_lead=True)

    with session_scope(app) as s:
        assert can_manage_phase(s, s.get(User, seed.lead), s.get(Workspace, seed.workspace_id), "execution")
        a, _ = _assign(s, seed, seed.lead, seed.member, "execution")
        assert a.assigned_by_user_id == seed.lead

    with session_scope(app) as s:
        with pytest.raises(AuthorizationError):
            _assign(s, seed, seed.lead, seed.member, "review")
        with pytest.raises(AuthorizationError):
            _assign(s, seed, seed.lead, seed.requester, "execution", is_lead=True)

    with session_scope(app) as s:
        revoke_phase_assignment(
            s,
            workspace=s.get(Workspace, seed.workspace_id),
            user_id=seed.member,
            phase="execution",
            actor=s.get(User, seed.lead),
        )

    with session_scope(app) as s:
        assert not can_edit_phase(
            s, s.get(User, seed.member), team_id=seed.team_id, workspace_id=seed.workspace_id, phase="execution"
        )


def test_lead_cannot_demote_or_remove_another_lead(app, seed):
    with session_scope(app) as s:
        _assign(s, seed, seed.admin, seed.lead, "build", is_lead=True)
        _assign(s, seed, seed.admin, seed.member, "build", is_lead=True)

    with session_scope(app) as s:
        with pytest.raises(AuthorizationError):
            _assign(s, seed, seed.lead, seed.member, "build", is_lead=False)
        with pytest.raises(AuthorizationError):
            revoke_phase_assignment(
                s,
                workspace=s.get(Workspace, seed.workspace_id),
                user_id=seed.member,
                phase="build",
                actor=s.get(User, seed.lead),
            )


def test_lead_cap_is_advisory(app, seed, caplog):
    with session_scope(app) as s:
        for uid in (seed.lead, seed.member):
            _, warnings = _assign(s, seed, seed.admin, uid, "launch", is_lead=True)
            assert warnings == []

    with caplog.at_level(logging.WARNING, logger="app.plm.modules.phases.assignments"):
        with session_scope(app) as s:
            _, warnings = _assign(s, seed, seed.admin, seed.requester, "launch", is_lead=True)

    assert len(warnings) == 1
    assert "launch" in warnings[0]
    assert any("Lead cap exceeded" in r.getMessage() for r in caplog.records)

    with session_scope(app) as s:
        assert count_phase_leads(s, seed.workspace_id, "launch") == 3
        leads = get_phase_leads(s, seed.workspace_id, "launch")
        assert [a.user_id for a in leads] == [seed.lead, seed.member, seed.requester]


def test_lead_cap_comes_from_config(app, seed):
    app.config["MAX_PHASE_LEADS"] = 1
    with app.app_context():
        with session_scope(app) as s:
            _assign(s, seed, seed.admin, seed.lead, "launch", is_lead=True)
            _, warnings = _assign(s, seed, seed.admin, seed.member, "launch", is_lead=True)
    assert len(warnings) == 1


def test_assignee_must_be_team_member(app, seed):
    with session_scope(app) as s:
        with pytest.raises(ValidationError):
            _assign(s, seed, seed.admin, seed.outsider, "build")


def test_unknown_phase_is_rejected(app, seed):
    with session_scope(app) as s:
        with pytest.raises(ValidationError):
            _assign(s, seed, seed.admin, seed.member, "shipping")


def test_revoke_missing_assignment_is_not_found(app, seed):
    with session_scope(app) as s:
        with pytest.raises(NotFoundError):
            revoke_phase_assignment(
                s,
                workspace=s.get(Workspace, seed.workspace_id),
                user_id=seed.member,
                phase="build",
                actor=s.get(User, seed.admin),
            )


def test_outsider_admin_cannot_assign_across_teams(app, seed):
    with session_scope(app) as s:
        with pytest.raises(AuthorizationError):
            _assign(s, seed, seed.outsider, seed.member, "build")


def test_permission_summary(app, seed):
    with session_scope(app) as s:
        _assign(s, seed, seed.admin, seed.member, "fixing")
        _assign(s, seed, seed.admin, seed.lead, "review", is_lead=True)

    with session_scope(app) as s:
        ws = s.get(Workspace, seed.workspace_id)

        member = workspace_phase_permissions(s, s.get(User, seed.member), ws)
        assert member["fixing"]["can_edit"] is True
        assert member["triage"] == {
            "can_view": True,
            "can_edit": False,
            "can_delete": False,
            "is_lead": False,
            "can_manage_assignments": False,
        }

        lead = workspace_phase_permissions(s, s.get(User, seed.lead), ws)
        assert lead["review"]["is_lead"] is True
        assert lead["review"]["can_manage_assignments"] is True

        admin = workspace_phase_permissions(s, s.get(User, seed.admin), ws)
        assert all(p["can_edit"] and p["can_manage_assignments"] for p in admin.values())

        with pytest.raises(AuthorizationError):
            workspace_phase_permissions(s, s.get(User, seed.outsider), ws)
