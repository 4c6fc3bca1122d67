import pytest

from app.plm import create_app


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_ok(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_actor_header_is_configurable(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("ACTOR_HEADER", "X-Forwarded-User")
    monkeypatch.setenv("MAX_PHASE_LEADS", "3")

    app = create_app()
    assert app.config["ACTOR_HEADER"] == "X-Forwarded-User"
    assert app.config["MAX_PHASE_LEADS"] == 3


def test_bad_integer_setting_fails_fast(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("MAX_PHASE_LEADS", "two")
    with pytest.raises(RuntimeError):
        create_app()


def test_production_refuses_sqlite(tmp_path, monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "a-real-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    with pytest.raises(RuntimeError):
        create_app()


def test_production_refuses_default_secret(monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "change-me")
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://u:p@localhost/phaseflow")
    with pytest.raises(RuntimeError):
        create_app()
