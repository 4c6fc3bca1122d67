import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    # Header set by the upstream identity gateway with the authenticated user id.
    actor_header: str
    max_phase_leads: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///phaseflow.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        actor_header=_getenv("ACTOR_HEADER", "X-Actor-Id"),
        max_phase_leads=_getenv_int("MAX_PHASE_LEADS", 2),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "ACTOR_HEADER": s.actor_header,
        "MAX_PHASE_LEADS": s.max_phase_leads,
        "JSON_SORT_KEYS": False,
    }
