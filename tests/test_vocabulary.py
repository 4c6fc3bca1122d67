"""Tests for the type-aware phase vocabulary."""
import pytest

from app.plm.errors import InvalidPhaseForType, ValidationError
from app.plm.modules.phases.vocabulary import (
    ASSIGNABLE_PHASES,
    WORK_ITEM_PHASES,
    default_phase,
    is_terminal,
    is_valid_phase,
    next_phase,
    phases_for_type,
    validate_assignable_phase,
    validate_phase,
)


def test_default_phase_is_first_of_each_vocabulary():
    assert default_phase("feature") == "design"
    assert default_phase("concept") == "ideation"
    assert default_phase("bug") == "triage"
    assert default_phase("enhancement") == "design"


def test_enhancement_shares_feature_phases():
    assert phases_for_type("enhancement") == phases_for_type("feature")


def test_type_lookup_is_case_insensitive():
    assert phases_for_type(" Bug ") == ("triage", "investigating", "fixing", "verified")


def test_unknown_type_is_validation_error():
    with pytest.raises(ValidationError):
        phases_for_type("epic")


def test_validate_phase_rejects_phase_of_another_type():
    assert validate_phase("bug", "fixing") == "fixing"
    with pytest.raises(InvalidPhaseForType) as exc:
        validate_phase("bug", "launch")
    assert exc.value.code == "invalid_phase_for_type"
    assert exc.value.http_status == 422
    assert exc.value.details == {"type": "bug", "phase": "launch"}


def test_is_valid_phase():
    assert is_valid_phase("concept", "rejected")
    assert not is_valid_phase("concept", "build")
    assert not is_valid_phase("nope", "build")


def test_terminal_phases():
    assert is_terminal("feature", "launch")
    assert is_terminal("concept", "validated")
    assert is_terminal("concept", "rejected")
    assert is_terminal("bug", "verified")
    assert not is_terminal("bug", "fixing")


def test_next_phase_follows_progression():
    assert next_phase("bug", "triage") == "investigating"
    assert next_phase("feature", "launch") is None
    assert next_phase("concept", "research") == "validated"
    # rejected ends a concept but is not part of the forward progression
    assert next_phase("concept", "rejected") is None


def test_workspace_lifecycle_phases_are_assignable_but_not_item_phases():
    for p in ("research", "planning", "execution", "review", "complete"):
        assert p in ASSIGNABLE_PHASES
    assert "execution" not in WORK_ITEM_PHASES
    assert "triage" in WORK_ITEM_PHASES
    assert len(set(ASSIGNABLE_PHASES)) == len(ASSIGNABLE_PHASES)


def test_validate_assignable_phase_normalizes():
    assert validate_assignable_phase(" Execution ") == "execution"
    with pytest.raises(ValidationError):
        validate_assignable_phase("shipping")
