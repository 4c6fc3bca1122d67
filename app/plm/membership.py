"""
Team membership oracle.

The membership registry lives outside the phase engine. Everything here asks one
question: what role (if any) does this user hold in this team? The default oracle
reads ``team_members``; a different registry can be plugged in per session with
``use_membership_oracle``.
"""
from __future__ import annotations

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.plm.models import TeamMember

_SESSION_KEY = "plm.membership_oracle"


class MembershipOracle(Protocol):
    def role_of(self, user_id: int, team_id: int) -> str | None:
        ...


class SqlMembershipOracle:
    def __init__(self, s: Session) -> None:
        self.s = s

    def role_of(self, user_id: int, team_id: int) -> str | None:
        return self.s.execute(
            select(TeamMember.role).where(TeamMember.user_id == user_id, TeamMember.team_id == team_id)
        ).scalar_one_or_none()


def use_membership_oracle(s: Session, oracle: MembershipOracle) -> None:
    s.info[_SESSION_KEY] = oracle


def membership_oracle(s: Session) -> MembershipOracle:
    oracle = s.info.get(_SESSION_KEY)
    if oracle is None:
        oracle = SqlMembershipOracle(s)
        s.info[_SESSION_KEY] = oracle
    return oracle
