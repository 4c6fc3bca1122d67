#!/usr/bin/env python3
"""
Recompute the phase workload cache for every workspace (idempotent).

The cache is normally kept current by the commit hook; this is for backfills and
for recovering after rows were changed outside the application.

Usage:
    python scripts/rebuild_workloads.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def rebuild(db_url: str) -> int:
    from app.plm.modules.phases.workload import rebuild_all_workloads
    from scripts._db_utils import script_session

    with script_session(db_url) as s:
        return rebuild_all_workloads(s)


def main() -> None:
    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///phaseflow.db").strip()
    n = rebuild(db_url)
    print(f"Rebuilt workload cache for {n} workspace(s).")


if __name__ == "__main__":
    main()
