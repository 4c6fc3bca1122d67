import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.plm.constants import ROLE_OWNER  # noqa: E402
from app.plm.models import Team, TeamMember, User, Workspace  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed an owner user, a team and a first workspace in an idempotent way.
    Existing rows are left alone; a missing owner membership is re-attached.
    """
    owner_email = (os.environ.get("OWNER_EMAIL") or "owner@phaseflow.local").strip().lower()
    team_name = (os.environ.get("SEED_TEAM_NAME") or "Product").strip()
    workspace_name = (os.environ.get("SEED_WORKSPACE_NAME") or "Roadmap").strip()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///phaseflow.db").strip()

    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == owner_email).one_or_none()
        if not user:
            user = User(email=owner_email, display_name="Owner", is_active=True)
            s.add(user)

        team = s.query(Team).filter(Team.name == team_name).one_or_none()
        if not team:
            team = Team(name=team_name)
            s.add(team)
        s.flush()

        membership = (
            s.query(TeamMember)
            .filter(TeamMember.team_id == team.id, TeamMember.user_id == user.id)
            .one_or_none()
        )
        if not membership:
            s.add(TeamMember(team_id=team.id, user_id=user.id, role=ROLE_OWNER))

        ws = (
            s.query(Workspace)
            .filter(Workspace.team_id == team.id, Workspace.name == workspace_name)
            .one_or_none()
        )
        if not ws:
            s.add(Workspace(team_id=team.id, name=workspace_name))

    print("Initialized database (seed_only).")
    print(f"Owner email: {owner_email}")
    print(f"Team: {team_name} / Workspace: {workspace_name}")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
