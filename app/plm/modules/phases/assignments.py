"""
Phase assignment registry.

An assignment grants one user edit (and optionally lead) authority over one
(workspace, phase). Owners/admins manage every phase; a phase lead manages the
non-lead assignments of their own phase. Only owners/admins designate leads.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from flask import current_app, has_app_context
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.plm.audit import record_event
from app.plm.constants import MAX_RECOMMENDED_PHASE_LEADS
from app.plm.errors import AuthorizationError, NotFoundError, ValidationError
from app.plm.membership import membership_oracle

from .authz import get_assignment, is_team_admin, require_phase_manager, require_team_member
from .models import PhaseAssignment
from .vocabulary import validate_assignable_phase

if TYPE_CHECKING:
    from app.plm.models import User, Workspace

logger = logging.getLogger(__name__)


def _max_leads() -> int:
    if has_app_context():
        return int(current_app.config.get("MAX_PHASE_LEADS") or MAX_RECOMMENDED_PHASE_LEADS)
    return MAX_RECOMMENDED_PHASE_LEADS


def count_phase_leads(s: Session, workspace_id: int, phase: str) -> int:
    return int(
        s.execute(
            select(func.count(PhaseAssignment.id)).where(
                PhaseAssignment.workspace_id == workspace_id,
                PhaseAssignment.phase == phase,
                PhaseAssignment.is_lead.is_(True),
            )
        ).scalar_one()
    )


def get_phase_leads(s: Session, workspace_id: int, phase: str) -> list[PhaseAssignment]:
    return list(
        s.execute(
            select(PhaseAssignment)
            .where(
                PhaseAssignment.workspace_id == workspace_id,
                PhaseAssignment.phase == phase,
                PhaseAssignment.is_lead.is_(True),
            )
            .order_by(PhaseAssignment.assigned_at.asc(), PhaseAssignment.id.asc())
        ).scalars()
    )


def list_phase_assignments(
    s: Session,
    workspace: Workspace,
    viewer: User,
    *,
    phase: str | None = None,
    user_id: int | None = None,
) -> list[PhaseAssignment]:
    require_team_member(s, viewer, workspace.team_id)
    q = select(PhaseAssignment).where(PhaseAssignment.workspace_id == workspace.id)
    if phase:
        q = q.where(PhaseAssignment.phase == validate_assignable_phase(phase))
    if user_id is not None:
        q = q.where(PhaseAssignment.user_id == user_id)
    return list(s.execute(q.order_by(PhaseAssignment.phase.asc(), PhaseAssignment.assigned_at.asc())).scalars())


def grant_edit_access(
    s: Session,
    *,
    workspace: Workspace,
    user_id: int,
    phase: str,
    granted_by: User,
    notes: str | None = None,
) -> PhaseAssignment:
    """
    Create the assignment with can_edit, or upgrade an existing one. Lead status is left
    as it was. Caller is responsible for authorization (access request approval).
    """
    a = get_assignment(s, workspace_id=workspace.id, user_id=user_id, phase=phase)
    if a is None:
        a = PhaseAssignment(
            team_id=workspace.team_id,
            workspace_id=workspace.id,
            user_id=user_id,
            phase=phase,
            can_edit=True,
            is_lead=False,
            assigned_by_user_id=granted_by.id,
            notes=notes,
        )
        s.add(a)
    else:
        a.can_edit = True
        a.assigned_by_user_id = granted_by.id
        a.assigned_at = datetime.utcnow()
        if notes:
            a.notes = notes
    s.flush()
    return a


def assign_phase(
    s: Session,
    *,
    workspace: Workspace,
    user_id: int,
    phase: str,
    actor: User,
    can_edit: bool = True,
    is_lead: bool = False,
    notes: str | None = None,
) -> tuple[PhaseAssignment, list[str]]:
    """
    Create or update the (workspace, user, phase) assignment.

    Returns the assignment and a list of advisory warnings (e.g. too many leads).
    The lead cap is a recommendation; it is never enforced.
    """
    phase = validate_assignable_phase(phase)
    require_phase_manager(s, actor, workspace, phase)
    actor_is_admin = is_team_admin(s, actor, workspace.team_id)

    if membership_oracle(s).role_of(user_id, workspace.team_id) is None:
        raise ValidationError("User is not a member of this team", details={"user_id": user_id})

    existing = get_assignment(s, workspace_id=workspace.id, user_id=user_id, phase=phase)
    if not actor_is_admin and (is_lead or (existing is not None and existing.is_lead)):
        raise AuthorizationError(
            "Only team owners/admins can designate or change phase leads",
            user_id=actor.id,
            phase=phase,
        )

    warnings: list[str] = []
    becoming_lead = is_lead and (existing is None or not existing.is_lead)
    if becoming_lead:
        cap = _max_leads()
        n = count_phase_leads(s, workspace.id, phase)
        if n >= cap:
            msg = f"Phase {phase!r} already has {n} lead(s); at most {cap} is recommended"
            logger.warning("Lead cap exceeded: workspace=%s phase=%s leads=%s cap=%s", workspace.id, phase, n, cap)
            warnings.append(msg)

    now = datetime.utcnow()
    if existing is None:
        a = PhaseAssignment(
            team_id=workspace.team_id,
            workspace_id=workspace.id,
            user_id=user_id,
            phase=phase,
            can_edit=bool(can_edit),
            is_lead=bool(is_lead),
            assigned_by_user_id=actor.id,
            assigned_at=now,
            notes=notes,
        )
        s.add(a)
        action = "phase_assignment.grant"
        before = None
    else:
        a = existing
        before = {"can_edit": a.can_edit, "is_lead": a.is_lead}
        a.can_edit = bool(can_edit)
        a.is_lead = bool(is_lead)
        a.assigned_by_user_id = actor.id
        a.assigned_at = now
        if notes is not None:
            a.notes = notes
        action = "phase_assignment.update"

    s.flush()
    record_event(
        s,
        actor=actor,
        action=action,
        team_id=workspace.team_id,
        workspace_id=workspace.id,
        phase=phase,
        entity_type="PhaseAssignment",
        entity_id=str(a.id),
        metadata={
            "user_id": user_id,
            "before": before,
            "after": {"can_edit": a.can_edit, "is_lead": a.is_lead},
        },
    )
    logger.info(
        "Phase assignment %s: workspace=%s user=%s phase=%s can_edit=%s is_lead=%s by user=%s",
        action,
        workspace.id,
        user_id,
        phase,
        a.can_edit,
        a.is_lead,
        actor.id,
    )
    return a, warnings


def revoke_phase_assignment(
    s: Session,
    *,
    workspace: Workspace,
    user_id: int,
    phase: str,
    actor: User,
    reason: str | None = None,
) -> None:
    phase = validate_assignable_phase(phase)
    require_phase_manager(s, actor, workspace, phase)

    a = get_assignment(s, workspace_id=workspace.id, user_id=user_id, phase=phase)
    if a is None:
        raise NotFoundError("PhaseAssignment")
    if a.is_lead and not is_team_admin(s, actor, workspace.team_id):
        raise AuthorizationError("Only team owners/admins can remove a phase lead", user_id=actor.id, phase=phase)

    record_event(
        s,
        actor=actor,
        action="phase_assignment.revoke",
        team_id=workspace.team_id,
        workspace_id=workspace.id,
        phase=phase,
        entity_type="PhaseAssignment",
        entity_id=str(a.id),
        reason=reason,
        metadata={
            "user_id": user_id,
            "can_edit": a.can_edit,
            "is_lead": a.is_lead,
        },
    )
    s.delete(a)
    s.flush()
    logger.info("Phase assignment revoked: workspace=%s user=%s phase=%s by user=%s", workspace.id, user_id, phase, actor.id)
