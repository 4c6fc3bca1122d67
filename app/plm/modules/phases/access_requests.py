"""
Self-service phase access requests.

pending -> approved | rejected   (reviewer: owner/admin, or lead of that workspace+phase)
pending -> cancelled             (requester only)

Approval grants can_edit on the requested (workspace, phase) in the same transaction
as the status change.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.plm.audit import record_event
from app.plm.constants import (
    BYPASS_ROLES,
    DEFAULT_URGENCY,
    REQUEST_APPROVED,
    REQUEST_CANCELLED,
    REQUEST_PENDING,
    REQUEST_STATUSES,
    REVIEW_DECISIONS,
    URGENCY_LEVELS,
)
from app.plm.errors import AlreadyResolved, AuthorizationError, ConflictError, NotFoundError, ValidationError

from .assignments import grant_edit_access
from .authz import require_phase_manager, require_team_member
from .models import PhaseAccessRequest, PhaseAssignment
from .vocabulary import validate_assignable_phase

if TYPE_CHECKING:
    from app.plm.models import User, Workspace

logger = logging.getLogger(__name__)


def get_access_request(s: Session, request_id: int) -> PhaseAccessRequest:
    req = s.get(PhaseAccessRequest, request_id)
    if req is None:
        raise NotFoundError("PhaseAccessRequest", request_id)
    return req


def request_phase_access(
    s: Session,
    *,
    workspace: Workspace,
    phase: str,
    reason: str,
    requester: User,
    urgency: str | None = None,
    expected_duration: str | None = None,
) -> PhaseAccessRequest:
    require_team_member(s, requester, workspace.team_id)
    phase = validate_assignable_phase(phase)

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Reason is required", details={"reason": "required"})

    urg = (urgency or DEFAULT_URGENCY).strip().lower()
    if urg not in URGENCY_LEVELS:
        raise ValidationError(f"Invalid urgency: {urgency}", details={"urgency": f"must be one of {list(URGENCY_LEVELS)}"})

    pending = s.execute(
        select(PhaseAccessRequest.id).where(
            PhaseAccessRequest.workspace_id == workspace.id,
            PhaseAccessRequest.user_id == requester.id,
            PhaseAccessRequest.phase == phase,
            PhaseAccessRequest.status == REQUEST_PENDING,
        )
    ).first()
    if pending is not None:
        raise ConflictError(f"You already have a pending request for the {phase!r} phase (id={pending[0]})")

    req = PhaseAccessRequest(
        user_id=requester.id,
        team_id=workspace.team_id,
        workspace_id=workspace.id,
        phase=phase,
        reason=reason,
        urgency=urg,
        status=REQUEST_PENDING,
        expected_duration=(expected_duration or "").strip() or None,
        requested_at=datetime.utcnow(),
    )
    s.add(req)
    s.flush()

    record_event(
        s,
        actor=requester,
        action="phase_access_request.create",
        team_id=workspace.team_id,
        workspace_id=workspace.id,
        phase=phase,
        entity_type="PhaseAccessRequest",
        entity_id=str(req.id),
        reason=reason,
        metadata={"urgency": urg, "expected_duration": req.expected_duration},
    )
    logger.info("Access request created id=%s user=%s workspace=%s phase=%s", req.id, requester.id, workspace.id, phase)
    return req


def review_access_request(
    s: Session,
    req: PhaseAccessRequest,
    *,
    decision: str,
    reviewer: User,
    notes: str | None = None,
) -> PhaseAccessRequest:
    """
    Approve or reject a pending request. A request that is no longer pending raises
    AlreadyResolved and nothing is changed.
    """
    d = (decision or "").strip().lower()
    if d not in REVIEW_DECISIONS:
        raise ValidationError(f"Invalid decision: {decision}", details={"decision": f"must be one of {sorted(REVIEW_DECISIONS)}"})

    workspace = req.workspace
    require_phase_manager(s, reviewer, workspace, req.phase)

    if req.status != REQUEST_PENDING:
        raise AlreadyResolved(req.id, req.status)

    req.status = d
    req.reviewed_by_user_id = reviewer.id
    req.reviewed_at = datetime.utcnow()
    req.reviewer_notes = (notes or "").strip() or None

    if d == REQUEST_APPROVED:
        grant_edit_access(
            s,
            workspace=workspace,
            user_id=req.user_id,
            phase=req.phase,
            granted_by=reviewer,
            notes=f"Granted via access request #{req.id}",
        )
    s.flush()

    record_event(
        s,
        actor=reviewer,
        action=f"phase_access_request.{d}",
        team_id=req.team_id,
        workspace_id=req.workspace_id,
        phase=req.phase,
        entity_type="PhaseAccessRequest",
        entity_id=str(req.id),
        reason=req.reviewer_notes,
        metadata={"requester_user_id": req.user_id},
    )
    logger.info("Access request id=%s %s by user=%s", req.id, d, reviewer.id)
    return req


def cancel_access_request(s: Session, req: PhaseAccessRequest, *, actor: User) -> PhaseAccessRequest:
    if actor is None or req.user_id != actor.id:
        raise AuthorizationError("Only the requester can cancel an access request", user_id=getattr(actor, "id", None))
    if req.status != REQUEST_PENDING:
        raise AlreadyResolved(req.id, req.status)

    req.status = REQUEST_CANCELLED
    s.flush()
    record_event(
        s,
        actor=actor,
        action="phase_access_request.cancel",
        team_id=req.team_id,
        workspace_id=req.workspace_id,
        phase=req.phase,
        entity_type="PhaseAccessRequest",
        entity_id=str(req.id),
    )
    return req


def list_access_requests(
    s: Session,
    workspace: Workspace,
    viewer: User,
    *,
    status: str | None = None,
) -> list[PhaseAccessRequest]:
    """
    Requests visible to ``viewer``: owners/admins see all of the workspace, leads see
    their own plus those for phases they lead, everyone else sees only their own.
    """
    role = require_team_member(s, viewer, workspace.team_id)

    q = select(PhaseAccessRequest).where(PhaseAccessRequest.workspace_id == workspace.id)
    if status:
        st = status.strip().lower()
        if st not in REQUEST_STATUSES:
            raise ValidationError(f"Invalid status: {status}", details={"status": f"must be one of {sorted(REQUEST_STATUSES)}"})
        q = q.where(PhaseAccessRequest.status == st)

    if role not in BYPASS_ROLES:
        led_phases = select(PhaseAssignment.phase).where(
            PhaseAssignment.workspace_id == workspace.id,
            PhaseAssignment.user_id == viewer.id,
            PhaseAssignment.is_lead.is_(True),
        )
        q = q.where(
            or_(
                PhaseAccessRequest.user_id == viewer.id,
                PhaseAccessRequest.phase.in_(led_phases),
            )
        )

    return list(s.execute(q.order_by(PhaseAccessRequest.requested_at.desc(), PhaseAccessRequest.id.desc())).scalars())
