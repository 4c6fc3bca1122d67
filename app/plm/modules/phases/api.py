"""
Phase JSON routes: assignments, leads, access requests, workload and workspace history.
"""
from __future__ import annotations

from flask import Blueprint, g, jsonify, request
from sqlalchemy.orm import Session

from app.plm.db import db_session
from app.plm.errors import ValidationError
from app.plm.modules.work_items.service import get_workspace
from app.plm.rbac import require_actor
from app.plm.utils import json_body, optional_int, str_field

from .access_requests import (
    cancel_access_request,
    get_access_request,
    list_access_requests,
    request_phase_access,
    review_access_request,
)
from .assignments import assign_phase, get_phase_leads, list_phase_assignments, revoke_phase_assignment
from .authz import require_team_member, workspace_phase_permissions
from .history import list_workspace_history
from .vocabulary import validate_assignable_phase
from .workload import get_phase_totals, get_workload

bp = Blueprint("phases", __name__)


def _require_int(data: dict, key: str) -> int:
    value = optional_int(data.get(key), key)
    if value is None:
        raise ValidationError(f"{key} is required and must be an integer", details={key: "required"})
    return value


def _as_bool(value, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# ─────────────────────────────────────────────────────────────────────────────
# Permissions & assignments
# ─────────────────────────────────────────────────────────────────────────────


@bp.get("/workspaces/<int:workspace_id>/permissions")
@require_actor
def permissions(workspace_id: int):
    s: Session = db_session()
    ws = get_workspace(s, workspace_id)
    return jsonify({"workspace_id": ws.id, "phases": workspace_phase_permissions(s, g.current_user, ws)})


@bp.get("/workspaces/<int:workspace_id>/assignments")
@require_actor
def assignments_list(workspace_id: int):
    s: Session = db_session()
    ws = get_workspace(s, workspace_id)
    rows = list_phase_assignments(
        s,
        ws,
        g.current_user,
        phase=request.args.get("phase") or None,
        user_id=request.args.get("user_id", type=int),
    )
    return jsonify({"assignments": [a.to_dict() for a in rows]})


@bp.put("/workspaces/<int:workspace_id>/assignments")
@require_actor
def assignments_upsert(workspace_id: int):
    s: Session = db_session()
    data = json_body()
    ws = get_workspace(s, workspace_id)
    a, warnings = assign_phase(
        s,
        workspace=ws,
        user_id=_require_int(data, "user_id"),
        phase=str_field(data, "phase", ""),
        actor=g.current_user,
        can_edit=_as_bool(data.get("can_edit"), True),
        is_lead=_as_bool(data.get("is_lead"), False),
        notes=str_field(data, "notes"),
    )
    s.commit()
    return jsonify({"assignment": a.to_dict(), "warnings": warnings})


@bp.delete("/workspaces/<int:workspace_id>/assignments/<phase>/<int:user_id>")
@require_actor
def assignments_revoke(workspace_id: int, phase: str, user_id: int):
    s: Session = db_session()
    ws = get_workspace(s, workspace_id)
    revoke_phase_assignment(
        s, workspace=ws, user_id=user_id, phase=phase, actor=g.current_user, reason=str_field(json_body(), "reason")
    )
    s.commit()
    return jsonify({"ok": True})


@bp.get("/workspaces/<int:workspace_id>/phases/<phase>/leads")
@require_actor
def phase_leads(workspace_id: int, phase: str):
    s: Session = db_session()
    ws = get_workspace(s, workspace_id)
    require_team_member(s, g.current_user, ws.team_id)
    leads = get_phase_leads(s, ws.id, validate_assignable_phase(phase))
    return jsonify({"leads": [a.to_dict() for a in leads]})


# ─────────────────────────────────────────────────────────────────────────────
# Access requests
# ─────────────────────────────────────────────────────────────────────────────


@bp.get("/workspaces/<int:workspace_id>/access-requests")
@require_actor
def access_requests_list(workspace_id: int):
    s: Session = db_session()
    ws = get_workspace(s, workspace_id)
    rows = list_access_requests(s, ws, g.current_user, status=request.args.get("status") or None)
    return jsonify({"requests": [r.to_dict() for r in rows]})


@bp.post("/workspaces/<int:workspace_id>/access-requests")
@require_actor
def access_requests_create(workspace_id: int):
    s: Session = db_session()
    data = json_body()
    ws = get_workspace(s, workspace_id)
    req = request_phase_access(
        s,
        workspace=ws,
        phase=str_field(data, "phase", ""),
        reason=str_field(data, "reason", ""),
        requester=g.current_user,
        urgency=str_field(data, "urgency"),
        expected_duration=str_field(data, "expected_duration"),
    )
    s.commit()
    return jsonify(req.to_dict()), 201


@bp.post("/access-requests/<int:request_id>/review")
@require_actor
def access_requests_review(request_id: int):
    s: Session = db_session()
    data = json_body()
    req = get_access_request(s, request_id)
    review_access_request(
        s, req, decision=str_field(data, "decision", ""), reviewer=g.current_user, notes=str_field(data, "notes")
    )
    s.commit()
    return jsonify(req.to_dict())


@bp.post("/access-requests/<int:request_id>/cancel")
@require_actor
def access_requests_cancel(request_id: int):
    s: Session = db_session()
    req = get_access_request(s, request_id)
    cancel_access_request(s, req, actor=g.current_user)
    s.commit()
    return jsonify(req.to_dict())


# ─────────────────────────────────────────────────────────────────────────────
# Workload & history
# ─────────────────────────────────────────────────────────────────────────────


@bp.get("/workspaces/<int:workspace_id>/workload")
@require_actor
def workload(workspace_id: int):
    s: Session = db_session()
    ws = get_workspace(s, workspace_id)
    require_team_member(s, g.current_user, ws.team_id)
    matrix: dict[str, dict[str, int]] = {}
    for (phase, status), n in get_workload(s, ws.id).items():
        matrix.setdefault(phase, {})[status] = n
    return jsonify({"workspace_id": ws.id, "matrix": matrix, "totals": get_phase_totals(s, ws.id)})


@bp.get("/workspaces/<int:workspace_id>/history")
@require_actor
def workspace_history(workspace_id: int):
    s: Session = db_session()
    ws = get_workspace(s, workspace_id)
    require_team_member(s, g.current_user, ws.team_id)
    entries = list_workspace_history(s, ws.id, limit=request.args.get("limit", 100, type=int))
    return jsonify({"entries": [e.to_dict() for e in entries]})
