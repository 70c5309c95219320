"""
Read-only view over users/teams. The feedback core consumes membership
through this class and never writes these tables.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Set

from sqlalchemy.orm import Session

from feedback_service.models import User, Team, TeamMember, ROLE_EMPLOYEE


class TeamDirectory:
    def __init__(self, session: Session):
        self.session = session

    def is_active_employee(self, user_id: int) -> bool:
        return bool(
            self.session.query(User.id)
            .filter(User.id == user_id, User.role == ROLE_EMPLOYEE, User.is_active.is_(True))
            .first()
        )

    def active_employee_ids(self, user_ids: Iterable[int]) -> Set[int]:
        ids = list(user_ids)
        if not ids:
            return set()
        rows = (
            self.session.query(User.id)
            .filter(User.id.in_(ids), User.role == ROLE_EMPLOYEE, User.is_active.is_(True))
            .all()
        )
        return {r[0] for r in rows}

    def teams_managed_by(self, manager_id: int) -> List[Dict]:
        teams = (
            self.session.query(Team)
            .filter(Team.manager_id == manager_id, Team.is_active.is_(True))
            .order_by(Team.id)
            .all()
        )
        return [{"team_id": t.id, "employee_ids": t.employee_ids} for t in teams]

    def is_team_member(self, team_id: int, employee_id: int) -> bool:
        return bool(
            self.session.query(TeamMember.id)
            .join(Team, Team.id == TeamMember.team_id)
            .filter(
                TeamMember.team_id == team_id,
                TeamMember.employee_id == employee_id,
                Team.is_active.is_(True),
            )
            .first()
        )

    def managed_employee_ids(self, manager_id: int) -> Set[int]:
        rows = (
            self.session.query(TeamMember.employee_id)
            .join(Team, Team.id == TeamMember.team_id)
            .filter(Team.manager_id == manager_id, Team.is_active.is_(True))
            .distinct()
            .all()
        )
        return {r[0] for r in rows}

    def user_summaries(self, user_ids: Iterable[int]) -> Dict[int, Dict]:
        """Display details keyed by id; unknown ids are left out."""
        ids = sorted(set(user_ids))
        if not ids:
            return {}
        rows = self.session.query(User.id, User.name, User.email, User.role).filter(User.id.in_(ids)).all()
        return {r.id: {"id": r.id, "name": r.name, "email": r.email, "role": r.role} for r in rows}
