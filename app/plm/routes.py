from flask import Blueprint, current_app
from sqlalchemy import text

from app.plm.db import db_session

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Touches the database. Returns JSON."""
    db_session().execute(text("SELECT 1"))
    return {"ok": True, "env": current_app.config.get("ENV")}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s/DO probes. No DB access, minimal overhead.
    """
    return "ok", 200
