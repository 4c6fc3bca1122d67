"""
Type-aware phase vocabulary.

Feature:     design -> build -> refine -> launch
Concept:     ideation -> research -> validated | rejected
Bug:         triage -> investigating -> fixing -> verified
Enhancement: same as Feature

Order is advisory: any phase in a type's set may follow any other.
"""
from __future__ import annotations

from app.plm.errors import InvalidPhaseForType, ValidationError

FEATURE_PHASES = ("design", "build", "refine", "launch")
CONCEPT_PHASES = ("ideation", "research", "validated", "rejected")
BUG_PHASES = ("triage", "investigating", "fixing", "verified")

PHASES_BY_TYPE: dict[str, tuple[str, ...]] = {
    "feature": FEATURE_PHASES,
    "concept": CONCEPT_PHASES,
    "bug": BUG_PHASES,
    "enhancement": FEATURE_PHASES,
}

WORK_ITEM_TYPES = frozenset(PHASES_BY_TYPE)

# Progression order; "rejected" ends a concept but is not a step forward.
PHASE_ORDER: dict[str, tuple[str, ...]] = {
    "feature": FEATURE_PHASES,
    "concept": ("ideation", "research", "validated"),
    "bug": BUG_PHASES,
    "enhancement": FEATURE_PHASES,
}

TERMINAL_PHASES: dict[str, frozenset[str]] = {
    "feature": frozenset({"launch"}),
    "concept": frozenset({"validated", "rejected"}),
    "bug": frozenset({"verified"}),
    "enhancement": frozenset({"launch"}),
}

# Workspace-level lifecycle names that predate the per-type vocabularies.
# Assignments and access requests may still target them.
WORKSPACE_LIFECYCLE_PHASES = ("research", "planning", "execution", "review", "complete")


def _assignable() -> tuple[str, ...]:
    out: list[str] = []
    for phases in (*PHASES_BY_TYPE.values(), WORKSPACE_LIFECYCLE_PHASES):
        for p in phases:
            if p not in out:
                out.append(p)
    return tuple(out)


ASSIGNABLE_PHASES: tuple[str, ...] = _assignable()

# Phases a work item can actually be in (cache matrix rows)
WORK_ITEM_PHASES: tuple[str, ...] = tuple(p for p in ASSIGNABLE_PHASES if any(p in v for v in PHASES_BY_TYPE.values()))


def normalize_type(item_type: str | None) -> str:
    t = (item_type or "").strip().lower()
    if t not in WORK_ITEM_TYPES:
        raise ValidationError(
            f"Unknown work item type: {item_type!r}",
            details={"type": f"must be one of {sorted(WORK_ITEM_TYPES)}"},
        )
    return t


def phases_for_type(item_type: str) -> tuple[str, ...]:
    return PHASES_BY_TYPE[normalize_type(item_type)]


def default_phase(item_type: str) -> str:
    return phases_for_type(item_type)[0]


def is_valid_phase(item_type: str, phase: str | None) -> bool:
    return item_type in PHASES_BY_TYPE and phase in PHASES_BY_TYPE[item_type]


def validate_phase(item_type: str, phase: str | None) -> str:
    """Return ``phase`` if it belongs to the type's vocabulary, else raise InvalidPhaseForType."""
    t = normalize_type(item_type)
    if phase not in PHASES_BY_TYPE[t]:
        raise InvalidPhaseForType(item_type=t, phase=phase)
    return phase


def validate_assignable_phase(phase: str | None) -> str:
    p = (phase or "").strip().lower()
    if p not in ASSIGNABLE_PHASES:
        raise ValidationError(f"Unknown phase: {phase!r}", details={"phase": "not an assignable phase"})
    return p


def is_terminal(item_type: str, phase: str) -> bool:
    return phase in TERMINAL_PHASES[normalize_type(item_type)]


def next_phase(item_type: str, phase: str) -> str | None:
    """Next step in the type's progression, or None at the end (or off the progression)."""
    order = PHASE_ORDER[normalize_type(item_type)]
    if phase not in order:
        return None
    idx = order.index(phase)
    return order[idx + 1] if idx + 1 < len(order) else None
