"""
Work item JSON routes.
Each handler commits on success; PhaseflowError subclasses propagate to the app-level
error handler, which rolls back and renders them.
"""
from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.orm import Session

from app.plm.db import db_session
from app.plm.errors import ConcurrentModification
from app.plm.modules.phases.history import get_history
from app.plm.rbac import require_actor
from app.plm.utils import json_body, optional_int, str_field

from .models import WorkItem
from .service import (
    create_work_item,
    delete_work_item,
    get_work_item,
    get_workspace,
    list_work_items,
    transition_phase,
    update_work_item,
)

bp = Blueprint("work_items", __name__)


# ─────────────────────────────────────────────────────────────────────────────
# Collection
# ─────────────────────────────────────────────────────────────────────────────


@bp.get("/workspaces/<int:workspace_id>/work-items")
@require_actor
def work_items_list(workspace_id: int):
    s: Session = db_session()
    ws = get_workspace(s, workspace_id)
    items = list_work_items(
        s,
        ws,
        g.current_user,
        phase=(request.args.get("phase") or "").strip().lower() or None,
        include_archived=request.args.get("include_archived") == "1",
    )
    return jsonify({"items": [i.to_dict() for i in items]})


@bp.post("/workspaces/<int:workspace_id>/work-items")
@require_actor
def work_items_create(workspace_id: int):
    s: Session = db_session()
    data = json_body()
    ws = get_workspace(s, workspace_id)
    item = create_work_item(
        s,
        team_id=ws.team_id,
        workspace_id=ws.id,
        item_type=str_field(data, "type", ""),
        title=str_field(data, "title", ""),
        user=g.current_user,
        initial_phase=str_field(data, "phase"),
        description=str_field(data, "description"),
        status=str_field(data, "status"),
        owner_user_id=optional_int(data.get("owner_user_id"), "owner_user_id"),
        reason=str_field(data, "reason"),
    )
    s.commit()
    return jsonify(item.to_dict()), 201


# ─────────────────────────────────────────────────────────────────────────────
# Single item
# ─────────────────────────────────────────────────────────────────────────────


@bp.get("/work-items/<int:item_id>")
@require_actor
def work_items_detail(item_id: int):
    s: Session = db_session()
    item = get_work_item(s, item_id, g.current_user)
    return jsonify(item.to_dict())


@bp.patch("/work-items/<int:item_id>")
@require_actor
def work_items_update(item_id: int):
    s: Session = db_session()
    data = json_body()
    item = get_work_item(s, item_id, g.current_user)
    update_work_item(
        s,
        item,
        g.current_user,
        title=str_field(data, "title"),
        description=str_field(data, "description"),
        status=str_field(data, "status"),
        owner_user_id=optional_int(data.get("owner_user_id"), "owner_user_id"),
        reason=str_field(data, "reason"),
    )
    s.commit()
    return jsonify(item.to_dict())


@bp.post("/work-items/<int:item_id>/transition")
@require_actor
def work_items_transition(item_id: int):
    """Move to another phase. A lost concurrency race is retried once against fresh state."""
    s: Session = db_session()
    data = json_body()
    new_phase = str_field(data, "phase", "")
    reason = str_field(data, "reason")

    item = get_work_item(s, item_id, g.current_user)
    try:
        transition_phase(s, item, new_phase, g.current_user, reason=reason)
    except ConcurrentModification:
        s.rollback()
        current_app.logger.info("Retrying transition of work item id=%s (request_id=%s)", item_id, g.request_id)
        item = s.get(WorkItem, item_id, populate_existing=True)
        transition_phase(s, item, new_phase, g.current_user, reason=reason)
    s.commit()
    return jsonify(item.to_dict())


@bp.delete("/work-items/<int:item_id>")
@require_actor
def work_items_delete(item_id: int):
    s: Session = db_session()
    item = get_work_item(s, item_id, g.current_user)
    delete_work_item(s, item, g.current_user, reason=str_field(json_body(), "reason"))
    s.commit()
    return jsonify(item.to_dict())


@bp.get("/work-items/<int:item_id>/history")
@require_actor
def work_items_history(item_id: int):
    s: Session = db_session()
    item = get_work_item(s, item_id, g.current_user)
    entries = get_history(
        s,
        item,
        limit=request.args.get("limit", type=int),
        before_id=request.args.get("before_id", type=int),
    )
    return jsonify({"entries": [e.to_dict() for e in entries]})
