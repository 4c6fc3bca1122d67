from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy.orm import Session

from app.plm.db import create_db_engine, make_sessionmaker


@contextmanager
def script_session(db_url: str):
    """
    Commit-or-rollback session for scripts that run without the Flask app.
    Uses the project session class so phase history and workload hooks still fire.
    """
    engine = create_db_engine(db_url)
    sm = make_sessionmaker(engine)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
