import logging
import os

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from sqlalchemy import inspect as sa_inspect
from werkzeug.exceptions import HTTPException

from app.plm.config import load_config
from app.plm.db import init_db, teardown_db_session
from app.plm.errors import PhaseflowError
from app.plm.auth import load_current_user
from app.plm.routes import bp as routes_bp
from app.plm.modules.work_items.api import bp as work_items_bp
from app.plm.modules.phases.api import bp as phases_bp

_REQUIRED_TABLES = (
    "teams",
    "team_members",
    "workspaces",
    "work_items",
    "user_phase_assignments",
    "phase_assignment_history",
    "phase_access_requests",
    "phase_workload_cache",
)


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL") or "INFO").upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("app.plm").setLevel(level)
    app.logger.setLevel(level)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    _configure_logging(app)

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(work_items_bp, url_prefix="/api")
    app.register_blueprint(phases_bp, url_prefix="/api")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    # Schema health (lean): warn once if the phase tables are missing.
    try:
        insp = sa_inspect(app.extensions["sqlalchemy_engine"])
        missing = [t for t in _REQUIRED_TABLES if not insp.has_table(t)]
    except Exception as e:
        app.logger.exception("Schema health check failed: %s", e)
        missing = []
    if missing:
        app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))

    def _rollback_request_session() -> None:
        s = getattr(g, "db_session", None)
        if s is not None:
            s.rollback()

    @app.errorhandler(PhaseflowError)
    def _err_phaseflow(e: PhaseflowError):  # type: ignore[no-redef]
        _rollback_request_session()
        if e.http_status >= 500:
            app.logger.error("%s (request_id=%s)", e, getattr(g, "request_id", None))
        body = e.to_dict()
        body["request_id"] = getattr(g, "request_id", None)
        return jsonify(body), e.http_status

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        _rollback_request_session()
        return jsonify({"error": (e.name or "error").lower().replace(" ", "_"), "message": e.description}), e.code

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        _rollback_request_session()
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 on %s %s (request_id=%s)", request.method, request.path, rid)
        return jsonify({"error": "internal_error", "message": "Internal server error", "request_id": rid}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
