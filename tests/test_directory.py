from feedback_service.extensions import db
from feedback_service.models import Team
from feedback_service.services.directory import TeamDirectory

def test_active_employees(ctx, people):
    d = TeamDirectory(db.session)
    assert d.is_active_employee(people.e1)
    assert not d.is_active_employee(people.e_gone)
    assert not d.is_active_employee(people.m)
    assert d.active_employee_ids([people.e1, people.e_gone, people.m, 4242]) == {people.e1}
    assert d.active_employee_ids([]) == set()

def test_team_membership(ctx, people):
    d = TeamDirectory(db.session)
    [team] = d.teams_managed_by(people.m)
    assert team["team_id"] == people.platform
    assert sorted(team["employee_ids"]) == sorted([people.e1, people.e2, people.e_gone])
    assert d.is_team_member(people.platform, people.e1)
    assert not d.is_team_member(people.platform, people.e3)
    assert d.managed_employee_ids(people.m2) == {people.e3}

def test_inactive_team_grants_nothing(ctx, people):
    db.session.get(Team, people.payments).is_active = False
    db.session.commit()
    d = TeamDirectory(db.session)
    assert d.teams_managed_by(people.m2) == []
    assert d.managed_employee_ids(people.m2) == set()
    assert not d.is_team_member(people.payments, people.e3)

def test_user_summaries(ctx, people):
    d = TeamDirectory(db.session)
    found = d.user_summaries([people.e1, people.m, people.e1, 4242])
    assert set(found) == {people.e1, people.m}
    assert set(found[people.m]) == {"id", "name", "email", "role"}
    assert found[people.m]["role"] == "manager"
    assert d.user_summaries([]) == {}
