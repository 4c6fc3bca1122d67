from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g, jsonify

from app.plm.models import User


def require_actor(fn: Callable[..., Any]) -> Callable[..., Any]:
    """
    Route guard: an authenticated, active actor is required.
    Team and phase checks happen in the service layer, not here.
    """

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            return jsonify({"error": "unauthenticated", "message": "Missing or unknown actor"}), 401
        return fn(*args, **kwargs)

    return wrapped
