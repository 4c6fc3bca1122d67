"""
Authorization evaluator.

A write (create, transition, edit, archive) is allowed iff
  1. the actor belongs to the item's team (never bypassable), and
  2. for every phase touched, the actor either holds can_edit on (workspace, phase)
     or is an owner/admin of the team.

A transition touches both the phase being left and the phase being entered.
Reads are not phase-gated; team membership alone is enough to view.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.plm.constants import BYPASS_ROLES
from app.plm.errors import AuthorizationError
from app.plm.membership import membership_oracle

from .models import PhaseAssignment
from .vocabulary import ASSIGNABLE_PHASES

if TYPE_CHECKING:
    from app.plm.models import User, Workspace
    from app.plm.modules.work_items.models import WorkItem

logger = logging.getLogger(__name__)


def team_role(s: Session, user: User | None, team_id: int) -> str | None:
    if user is None or not user.is_active:
        return None
    return membership_oracle(s).role_of(user.id, team_id)


def is_team_member(s: Session, user: User | None, team_id: int) -> bool:
    return team_role(s, user, team_id) is not None


def is_team_admin(s: Session, user: User | None, team_id: int) -> bool:
    return team_role(s, user, team_id) in BYPASS_ROLES


def get_assignment(s: Session, *, workspace_id: int, user_id: int, phase: str) -> PhaseAssignment | None:
    return s.execute(
        select(PhaseAssignment).where(
            PhaseAssignment.workspace_id == workspace_id,
            PhaseAssignment.user_id == user_id,
            PhaseAssignment.phase == phase,
        )
    ).scalar_one_or_none()


def is_phase_lead(s: Session, user: User, workspace_id: int, phase: str) -> bool:
    a = get_assignment(s, workspace_id=workspace_id, user_id=user.id, phase=phase)
    return bool(a and a.is_lead)


def _can_edit_with_role(s: Session, role: str | None, user: User, workspace_id: int, phase: str) -> bool:
    if role is None:
        return False
    if role in BYPASS_ROLES:
        return True
    a = get_assignment(s, workspace_id=workspace_id, user_id=user.id, phase=phase)
    return bool(a and a.can_edit)


def can_edit_phase(s: Session, user: User | None, *, team_id: int, workspace_id: int, phase: str) -> bool:
    """Could ``user`` create, edit or move items in ``phase`` of this workspace?"""
    role = team_role(s, user, team_id)
    if user is None:
        return False
    return _can_edit_with_role(s, role, user, workspace_id, phase)


def _phases_touched(item: WorkItem, target_phase: str | None) -> list[str]:
    target = target_phase or item.phase
    phases = [target]
    if item.phase and item.phase != target:
        phases.insert(0, item.phase)
    return phases


def can_mutate(s: Session, user: User | None, item: WorkItem, target_phase: str | None = None) -> bool:
    role = team_role(s, user, item.team_id)
    if user is None or role is None:
        return False
    return all(
        _can_edit_with_role(s, role, user, item.workspace_id, p) for p in _phases_touched(item, target_phase)
    )


def authorize_mutation(
    s: Session,
    user: User | None,
    item: WorkItem,
    target_phase: str | None = None,
    *,
    action: str = "update",
) -> None:
    """
    The one guard every work item write goes through. Raises AuthorizationError on denial.
    ``item`` may be transient (creation): then only ``target_phase`` (or item.phase) is checked.
    """
    role = team_role(s, user, item.team_id)
    if user is None or role is None:
        logger.warning(
            "Denied %s: user=%s is not a member of team=%s",
            action,
            getattr(user, "id", None),
            item.team_id,
        )
        raise AuthorizationError("You are not a member of this team", user_id=getattr(user, "id", None))

    for phase in _phases_touched(item, target_phase):
        if not _can_edit_with_role(s, role, user, item.workspace_id, phase):
            logger.info(
                "Denied %s: user=%s role=%s lacks edit access to phase=%s workspace=%s item=%s",
                action,
                user.id,
                role,
                phase,
                item.workspace_id,
                item.id,
            )
            raise AuthorizationError(
                f"You don't have edit access to the {phase!r} phase in this workspace",
                user_id=user.id,
                phase=phase,
            )


def require_team_member(s: Session, user: User | None, team_id: int) -> str:
    role = team_role(s, user, team_id)
    if role is None:
        raise AuthorizationError("You are not a member of this team", user_id=getattr(user, "id", None))
    return role


def can_manage_phase(s: Session, user: User | None, workspace: Workspace, phase: str) -> bool:
    """Owners/admins, or a lead of exactly this (workspace, phase), may review and assign."""
    role = team_role(s, user, workspace.team_id)
    if user is None or role is None:
        return False
    if role in BYPASS_ROLES:
        return True
    return is_phase_lead(s, user, workspace.id, phase)


def require_phase_manager(s: Session, user: User | None, workspace: Workspace, phase: str) -> None:
    require_team_member(s, user, workspace.team_id)
    if not can_manage_phase(s, user, workspace, phase):
        raise AuthorizationError(
            f"Only team owners/admins or leads of the {phase!r} phase can do this",
            user_id=getattr(user, "id", None),
            phase=phase,
        )


def workspace_phase_permissions(s: Session, user: User, workspace: Workspace) -> dict[str, dict[str, bool]]:
    """Per-phase permission summary for UIs. Team members can always view."""
    role = require_team_member(s, user, workspace.team_id)
    if role in BYPASS_ROLES:
        full = {
            "can_view": True,
            "can_edit": True,
            "can_delete": True,
            "is_lead": True,
            "can_manage_assignments": True,
        }
        return {p: dict(full) for p in ASSIGNABLE_PHASES}

    rows = s.execute(
        select(PhaseAssignment).where(
            PhaseAssignment.workspace_id == workspace.id,
            PhaseAssignment.user_id == user.id,
        )
    ).scalars()
    by_phase = {a.phase: a for a in rows}

    out: dict[str, dict[str, bool]] = {}
    for p in ASSIGNABLE_PHASES:
        a = by_phase.get(p)
        out[p] = {
            "can_view": True,
            "can_edit": bool(a and a.can_edit),
            "can_delete": bool(a and a.can_edit),
            "is_lead": bool(a and a.is_lead),
            "can_manage_assignments": bool(a and a.is_lead),
        }
    return out
