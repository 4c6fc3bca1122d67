"""
Exception hierarchy for the phase workflow engine.

Services raise these; the Flask error handler in ``app.plm.__init__`` maps
each one to a status code and a stable ``code`` string so callers can tell
"no access to this phase" apart from "invalid phase for this type".

Usage:
    from app.plm.errors import AuthorizationError, InvalidPhaseForType

    raise InvalidPhaseForType(item_type="bug", phase="launch")
"""
from __future__ import annotations


class PhaseflowError(Exception):
    code = "error"
    http_status = 400

    def to_dict(self) -> dict:
        return {"error": self.code, "message": str(self)}


class AuthorizationError(PhaseflowError):
    """Team-isolation or phase-permission failure.

    Never retried automatically and never swallowed by the service layer.
    """

    code = "authorization_error"
    http_status = 403

    def __init__(self, message: str, *, user_id: int | None = None, phase: str | None = None) -> None:
        self.user_id = user_id
        self.phase = phase
        super().__init__(message)


class ValidationError(PhaseflowError):
    """Well-formed input that violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured responses.
    """

    code = "validation_error"
    http_status = 422

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        out = super().to_dict()
        if self.details:
            out["details"] = self.details
        return out


class InvalidPhaseForType(ValidationError):
    code = "invalid_phase_for_type"

    def __init__(self, *, item_type: str, phase: str | None) -> None:
        self.item_type = item_type
        self.phase = phase
        super().__init__(
            f"Phase {phase!r} is not valid for work item type {item_type!r}",
            details={"type": item_type, "phase": phase},
        )


class NotFoundError(PhaseflowError):
    """Missing record, or a record outside the caller's team (same answer either way)."""

    code = "not_found"
    http_status = 404

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        super().__init__(msg + " not found")


class ConflictError(PhaseflowError):
    code = "conflict"
    http_status = 409


class AlreadyResolved(ConflictError):
    """An access request already left ``pending``; reviewing it again is refused."""

    code = "already_resolved"

    def __init__(self, request_id: int, status: str) -> None:
        self.request_id = request_id
        self.status = status
        super().__init__(f"Access request id={request_id} is already {status}")


class ConcurrentModification(ConflictError):
    """Lost an optimistic-concurrency race on a work item. Safe to retry once."""

    code = "concurrent_modification"

    def __init__(self, work_item_id: int | None) -> None:
        self.work_item_id = work_item_id
        super().__init__(f"Work item id={work_item_id} was modified concurrently; reload and retry")
