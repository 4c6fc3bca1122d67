from types import SimpleNamespace

import pytest

from app.plm import create_app
from app.plm.db import session_scope
from app.plm.models import Base, Team, TeamMember, User, Workspace


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("ACTOR_HEADER", "MAX_PHASE_LEADS", "LOG_LEVEL"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    app.config["TESTING"] = True

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def seed(app):
    """
    Two teams. "Acme" has an owner, an admin, plain members (one of them used as a
    lead, one as a requester); "Globex" has its own admin and workspace.
    """
    with session_scope(app) as s:
        acme = Team(name="Acme")
        globex = Team(name="Globex")
        s.add_all([acme, globex])
        s.flush()

        ws = Workspace(team_id=acme.id, name="Roadmap")
        other_ws = Workspace(team_id=globex.id, name="Globex Roadmap")
        s.add_all([ws, other_ws])

        users = {}
        for key, email in (
            ("owner", "owner@acme.test"),
            ("admin", "admin@acme.test"),
            ("member", "member@acme.test"),
            ("lead", "lead@acme.test"),
            ("requester", "requester@acme.test"),
            ("outsider", "admin@globex.test"),
        ):
            u = User(email=email, display_name=key.title(), is_active=True)
            s.add(u)
            users[key] = u
        s.flush()

        for key, role in (
            ("owner", "owner"),
            ("admin", "admin"),
            ("member", "member"),
            ("lead", "member"),
            ("requester", "member"),
        ):
            s.add(TeamMember(team_id=acme.id, user_id=users[key].id, role=role))
        s.add(TeamMember(team_id=globex.id, user_id=users["outsider"].id, role="admin"))
        s.flush()

        return SimpleNamespace(
            team_id=acme.id,
            other_team_id=globex.id,
            workspace_id=ws.id,
            other_workspace_id=other_ws.id,
            **{k: u.id for k, u in users.items()},
        )


@pytest.fixture()
def client(app, seed):
    return app.test_client()


@pytest.fixture()
def as_user():
    """Request headers identifying the acting user, as the upstream gateway would send them."""

    def _headers(user_id: int) -> dict:
        return {"X-Actor-Id": str(user_id)}

    return _headers
