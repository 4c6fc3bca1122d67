from __future__ import annotations

import uuid

from flask import current_app, g, request

from app.plm.db import db_session
from app.plm.models import User


def load_current_user() -> None:
    """
    Loads g.current_user from the actor header set by the upstream identity gateway.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
    if request.path.startswith(("/health", "/healthz")):
        g.current_user = None
        return

    header = current_app.config.get("ACTOR_HEADER") or "X-Actor-Id"
    raw = (request.headers.get(header) or "").strip()
    if not raw:
        g.current_user = None
        return

    try:
        user_id = int(raw)
    except ValueError:
        current_app.logger.warning("Ignoring malformed %s header: %r (request_id=%s)", header, raw, g.request_id)
        g.current_user = None
        return

    user = db_session().get(User, user_id)
    if not user or not user.is_active:
        g.current_user = None
        return
    g.current_user = user
