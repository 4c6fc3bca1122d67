"""
Work item service layer.
Handles creation, phase transitions, field edits and archiving. Every write goes
through authz.authorize_mutation first; phase history and the workload cache are
maintained by the session hooks in app.plm.modules.phases.hooks.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.plm.audit import record_event
from app.plm.constants import DEFAULT_WORK_ITEM_STATUS, WORK_ITEM_STATUSES
from app.plm.errors import AuthorizationError, ConcurrentModification, NotFoundError, ValidationError
from app.plm.membership import membership_oracle
from app.plm.models import Workspace
from app.plm.modules.phases.authz import authorize_mutation, require_team_member
from app.plm.modules.phases.vocabulary import default_phase, normalize_type, validate_phase

from .models import WorkItem

if TYPE_CHECKING:
    from app.plm.models import User

logger = logging.getLogger(__name__)


def _flush_or_conflict(s: Session, item: WorkItem) -> None:
    # A failed flush expires the item, so its id is read before flushing.
    item_id = item.id
    try:
        s.flush()
    except StaleDataError as e:
        logger.warning("Concurrent modification on work item id=%s: %s", item_id, e)
        raise ConcurrentModification(item_id) from e


def _touch(item: WorkItem, user: User) -> None:
    item.updated_at = datetime.utcnow()
    item.updated_by_user_id = user.id


def _validate_status(status: str | None) -> str:
    st = (status or DEFAULT_WORK_ITEM_STATUS).strip().lower()
    if st not in WORK_ITEM_STATUSES:
        raise ValidationError(f"Invalid status: {status}", details={"status": f"must be one of {list(WORK_ITEM_STATUSES)}"})
    return st


def _validate_owner(s: Session, team_id: int, owner_user_id: int | None) -> int | None:
    if owner_user_id is None:
        return None
    if membership_oracle(s).role_of(owner_user_id, team_id) is None:
        raise ValidationError("Owner must be a member of the team", details={"owner_user_id": owner_user_id})
    return owner_user_id


def get_workspace(s: Session, workspace_id: int) -> Workspace:
    ws = s.get(Workspace, workspace_id)
    if ws is None:
        raise NotFoundError("Workspace", workspace_id)
    return ws


def get_work_item(s: Session, item_id: int, user: User) -> WorkItem:
    """Load an item the user may see. Items of other teams read as missing."""
    item = s.get(WorkItem, item_id)
    if item is None:
        raise NotFoundError("WorkItem", item_id)
    try:
        require_team_member(s, user, item.team_id)
    except AuthorizationError:
        raise NotFoundError("WorkItem", item_id) from None
    return item


def list_work_items(
    s: Session,
    workspace: Workspace,
    user: User,
    *,
    phase: str | None = None,
    include_archived: bool = False,
) -> list[WorkItem]:
    """Any team member sees every phase; only writes are phase-gated."""
    require_team_member(s, user, workspace.team_id)
    q = select(WorkItem).where(WorkItem.workspace_id == workspace.id)
    if phase:
        q = q.where(WorkItem.phase == phase)
    if not include_archived:
        q = q.where(WorkItem.archived_at.is_(None))
    return list(s.execute(q.order_by(WorkItem.id.asc())).scalars())


def create_work_item(
    s: Session,
    *,
    team_id: int,
    workspace_id: int,
    item_type: str,
    title: str,
    user: User,
    initial_phase: str | None = None,
    description: str | None = None,
    status: str | None = None,
    owner_user_id: int | None = None,
    reason: str | None = None,
) -> WorkItem:
    """Create a work item in ``initial_phase`` (or the type's first phase)."""
    t = normalize_type(item_type)
    phase = validate_phase(t, initial_phase.strip().lower()) if initial_phase else default_phase(t)

    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required", details={"title": "required"})

    ws = get_workspace(s, workspace_id)
    if ws.team_id != team_id:
        raise ValidationError("Workspace does not belong to this team", details={"workspace_id": workspace_id})

    item = WorkItem(
        team_id=team_id,
        workspace_id=workspace_id,
        type=t,
        phase=phase,
        status=_validate_status(status),
        title=title,
        description=description.strip() if description else None,
        owner_user_id=owner_user_id,
        created_by_user_id=user.id if user else None,
        updated_by_user_id=user.id if user else None,
    )
    authorize_mutation(s, user, item, phase, action="create")
    item.owner_user_id = _validate_owner(s, team_id, owner_user_id)
    item.transition_reason = reason

    s.add(item)
    s.flush()

    logger.info("Work item created id=%s type=%s phase=%s workspace=%s by user=%s", item.id, t, phase, workspace_id, user.id)
    return item


def transition_phase(
    s: Session,
    item: WorkItem,
    new_phase: str,
    user: User,
    *,
    reason: str | None = None,
) -> WorkItem:
    """
    Move an item to ``new_phase``. The actor needs edit rights on both the phase being
    left and the phase being entered. Moving to the current phase is a no-op.
    """
    if item.is_archived:
        raise ValidationError("Archived work items cannot change phase")
    target = validate_phase(item.type, (new_phase or "").strip().lower())

    authorize_mutation(s, user, item, target, action="transition")
    if target == item.phase:
        return item

    old_phase = item.phase
    item.phase = target
    item.transition_reason = reason
    _touch(item, user)
    _flush_or_conflict(s, item)

    logger.info("Work item id=%s phase %s -> %s by user=%s", item.id, old_phase, target, user.id)
    return item


set_phase = transition_phase


def update_work_item(
    s: Session,
    item: WorkItem,
    user: User,
    *,
    title: str | None = None,
    description: str | None = None,
    status: str | None = None,
    owner_user_id: int | None = None,
    reason: str | None = None,
) -> WorkItem:
    """Edit non-phase fields. Authorized against the item's current phase."""
    if item.is_archived:
        raise ValidationError("Archived work items cannot be edited")
    authorize_mutation(s, user, item, action="update")

    changes: dict[str, dict] = {}

    if title is not None:
        title = title.strip()
        if not title:
            raise ValidationError("Title is required", details={"title": "required"})
        if title != item.title:
            changes["title"] = {"from": item.title, "to": title}
            item.title = title

    if description is not None and description != (item.description or ""):
        changes["description"] = {"from": "...", "to": "..."}  # Don't log full text
        item.description = description.strip() or None

    if status is not None:
        st = _validate_status(status)
        if st != item.status:
            changes["status"] = {"from": item.status, "to": st}
            item.status = st

    if owner_user_id is not None and owner_user_id != item.owner_user_id:
        changes["owner_user_id"] = {"from": item.owner_user_id, "to": owner_user_id}
        item.owner_user_id = _validate_owner(s, item.team_id, owner_user_id)

    if changes:
        _touch(item, user)
        record_event(
            s,
            actor=user,
            action="work_item.edit",
            team_id=item.team_id,
            workspace_id=item.workspace_id,
            phase=item.phase,
            entity_type="WorkItem",
            entity_id=str(item.id),
            reason=reason,
            metadata={"changes": changes},
        )
        _flush_or_conflict(s, item)

    return item


def delete_work_item(s: Session, item: WorkItem, user: User, *, reason: str | None = None) -> None:
    """Archive the item. Authorized against its current phase; archiving twice is a no-op."""
    authorize_mutation(s, user, item, action="delete")
    if item.is_archived:
        return

    item.archived_at = datetime.utcnow()
    item.archived_by_user_id = user.id
    _touch(item, user)
    record_event(
        s,
        actor=user,
        action="work_item.archive",
        team_id=item.team_id,
        workspace_id=item.workspace_id,
        phase=item.phase,
        entity_type="WorkItem",
        entity_id=str(item.id),
        reason=reason,
        metadata={"status": item.status},
    )
    _flush_or_conflict(s, item)
    logger.info("Work item archived id=%s by user=%s", item.id, user.id)
