"""The membership oracle can be swapped per session."""
import pytest

from app.plm.db import session_scope
from app.plm.errors import AuthorizationError
from app.plm.membership import SqlMembershipOracle, membership_oracle, use_membership_oracle
from app.plm.models import User
from app.plm.modules.phases.authz import is_team_admin, team_role
from app.plm.modules.work_items.service import create_work_item


class DictOracle:
    def __init__(self, roles):
        self.roles = roles

    def role_of(self, user_id, team_id):
        return self.roles.get((user_id, team_id))


def test_default_oracle_reads_team_members(app, seed):
    with session_scope(app) as s:
        oracle = membership_oracle(s)
        assert isinstance(oracle, SqlMembershipOracle)
        assert oracle.role_of(seed.owner, seed.team_id) == "owner"
        assert oracle.role_of(seed.member, seed.team_id) == "member"
        assert oracle.role_of(seed.outsider, seed.team_id) is None


def test_injected_oracle_drives_authorization(app, seed):
    with session_scope(app) as s:
        use_membership_oracle(s, DictOracle({(seed.outsider, seed.team_id): "admin"}))
        outsider = s.get(User, seed.outsider)
        assert team_role(s, outsider, seed.team_id) == "admin"
        assert is_team_admin(s, outsider, seed.team_id)

        item = create_work_item(
            s,
            team_id=seed.team_id,
            workspace_id=seed.workspace_id,
            item_type="bug",
            title="Reported via partner registry",
            user=outsider,
        )
        assert item.phase == "triage"

        # The table says owner, the injected oracle does not know them
        with pytest.raises(AuthorizationError):
            create_work_item(
                s,
                team_id=seed.team_id,
                workspace_id=seed.workspace_id,
                item_type="bug",
                title="Not a member here",
                user=s.get(User, seed.owner),
            )
