from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.plm.models import Base


class WorkItem(Base):
    __tablename__ = "work_items"
    __table_args__ = (
        Index("idx_work_items_workspace_phase", "workspace_id", "phase"),
        Index("idx_work_items_workspace_phase_status", "workspace_id", "phase", "status"),
        Index("idx_work_items_team_phase", "team_id", "phase"),
        Index("idx_work_items_type_phase", "type", "phase"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False)

    type: Mapped[str] = mapped_column(String(32), nullable=False)  # feature, concept, bug, enhancement
    phase: Mapped[str] = mapped_column(String(32), nullable=False)  # constrained by type, see vocabulary.py
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="not_started")

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    owner_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Archive instead of delete
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    archived_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    row_version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": row_version}

    # Not persisted: free-text reason picked up by the phase history hook on the next flush.
    transition_reason = None

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "team_id": self.team_id,
            "workspace_id": self.workspace_id,
            "type": self.type,
            "phase": self.phase,
            "status": self.status,
            "title": self.title,
            "description": self.description,
            "owner_user_id": self.owner_user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "archived_at": self.archived_at.isoformat() if self.archived_at else None,
            "row_version": self.row_version,
        }
