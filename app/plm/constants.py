"""
Central constants for the phase workflow engine.
"""
from __future__ import annotations

# Team roles (from the membership registry)
ROLE_OWNER = "owner"
ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"
TEAM_ROLES = frozenset({ROLE_OWNER, ROLE_ADMIN, ROLE_MEMBER})

# Roles that bypass phase restrictions (never team isolation)
BYPASS_ROLES = frozenset({ROLE_OWNER, ROLE_ADMIN})

# Execution status of a work item, independent of its phase
WORK_ITEM_STATUSES = (
    "not_started",
    "in_progress",
    "blocked",
    "completed",
    "on_hold",
    "cancelled",
)
DEFAULT_WORK_ITEM_STATUS = "not_started"

# Access requests
REQUEST_PENDING = "pending"
REQUEST_APPROVED = "approved"
REQUEST_REJECTED = "rejected"
REQUEST_CANCELLED = "cancelled"
REQUEST_STATUSES = frozenset({REQUEST_PENDING, REQUEST_APPROVED, REQUEST_REJECTED, REQUEST_CANCELLED})
REVIEW_DECISIONS = frozenset({REQUEST_APPROVED, REQUEST_REJECTED})

URGENCY_LEVELS = ("low", "medium", "high", "critical")
DEFAULT_URGENCY = "medium"

# Advisory only; see assignments.assign_phase
MAX_RECOMMENDED_PHASE_LEADS = 2
