from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.plm.models import Base, User, Workspace

if TYPE_CHECKING:
    from app.plm.modules.work_items.models import WorkItem


class PhaseAssignment(Base):
    """Grant of edit (and optionally lead) authority over one (workspace, phase) to one user."""

    __tablename__ = "user_phase_assignments"
    __table_args__ = (
        UniqueConstraint("workspace_id", "user_id", "phase", name="uq_phase_assignment"),
        Index("idx_user_phase_permission", "user_id", "workspace_id", "phase", "can_edit"),
        Index("idx_user_phase_leads", "workspace_id", "phase", "is_lead"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    phase: Mapped[str] = mapped_column(String(32), nullable=False)

    can_edit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_lead: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    assigned_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    user: Mapped[User] = relationship(foreign_keys=[user_id], lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "team_id": self.team_id,
            "workspace_id": self.workspace_id,
            "user_id": self.user_id,
            "phase": self.phase,
            "can_edit": self.can_edit,
            "is_lead": self.is_lead,
            "assigned_by_user_id": self.assigned_by_user_id,
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
            "notes": self.notes,
        }


class PhaseHistoryEntry(Base):
    """
    Immutable record of one accepted phase change (creation included, with from_phase NULL).
    Written only by the flush hook; nothing updates or deletes these rows.
    """

    __tablename__ = "phase_assignment_history"
    __table_args__ = (
        Index("idx_phase_history_work_item", "work_item_id", "changed_at"),
        Index("idx_phase_history_workspace", "workspace_id", "changed_at"),
        Index("idx_phase_history_user", "changed_by_user_id", "changed_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    work_item_id: Mapped[int] = mapped_column(ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)

    from_phase: Mapped[str | None] = mapped_column(String(32), nullable=True)
    to_phase: Mapped[str] = mapped_column(String(32), nullable=False)

    changed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    work_item: Mapped["WorkItem"] = relationship("WorkItem", lazy="select")

    @property
    def context(self) -> dict:
        return json.loads(self.metadata_json) if self.metadata_json else {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "work_item_id": self.work_item_id,
            "from_phase": self.from_phase,
            "to_phase": self.to_phase,
            "changed_by_user_id": self.changed_by_user_id,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
            "reason": self.reason,
            "context": self.context,
        }


class PhaseAccessRequest(Base):
    __tablename__ = "phase_access_requests"
    __table_args__ = (
        Index("idx_access_requests_user", "user_id", "status"),
        Index("idx_access_requests_workspace", "workspace_id", "status", "requested_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)
    phase: Mapped[str] = mapped_column(String(32), nullable=False)

    reason: Mapped[str] = mapped_column(Text, nullable=False)
    urgency: Mapped[str] = mapped_column(String(16), nullable=False, default="medium")  # low, medium, high, critical
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending, approved, rejected, cancelled
    expected_duration: Mapped[str | None] = mapped_column(String(64), nullable=True)  # e.g. "2 weeks"

    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    reviewed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    reviewer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    workspace: Mapped[Workspace] = relationship(lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "team_id": self.team_id,
            "workspace_id": self.workspace_id,
            "phase": self.phase,
            "reason": self.reason,
            "urgency": self.urgency,
            "status": self.status,
            "expected_duration": self.expected_duration,
            "requested_at": self.requested_at.isoformat() if self.requested_at else None,
            "reviewed_by_user_id": self.reviewed_by_user_id,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "reviewer_notes": self.reviewer_notes,
        }


class WorkloadCacheEntry(Base):
    """Derived count of live work items per (workspace, phase, status). Safe to drop and rebuild."""

    __tablename__ = "phase_workload_cache"
    __table_args__ = (
        Index("idx_workload_cache_team", "team_id", "phase"),
    )

    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id", ondelete="CASCADE"), primary_key=True)
    phase: Mapped[str] = mapped_column(String(32), primary_key=True)
    status: Mapped[str] = mapped_column(String(32), primary_key=True)

    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    item_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    refreshed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
