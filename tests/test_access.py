import types

import pytest
from feedback_service.services import access
from feedback_service.services.access import Principal, ACTION_EDIT, ACTION_DELETE, ACTION_RESTORE
from feedback_service.services.errors import Forbidden, NotFound

class DummyDirectory:
    def __init__(self, teams): self._teams = teams
    def teams_managed_by(self, manager_id): return self._teams.get(manager_id, [])

def rec(manager_id=10, employee_id=20, deleted=False, acked=False):
    return types.SimpleNamespace(
        manager_id=manager_id, employee_id=employee_id, is_deleted=deleted, is_acknowledged=acked
    )

M = Principal(10, "manager")
OTHER_M = Principal(11, "manager")
E = Principal(20, "employee")
OTHER_E = Principal(21, "employee")
ADMIN = Principal(1, "admin")

def test_principal_from_user_and_role_flags():
    p = Principal.from_user(types.SimpleNamespace(id="7", role="manager"))
    assert p == Principal(7, "manager")
    assert p.is_manager and not p.is_admin and not p.is_employee

def test_can_author_requires_membership_in_a_managed_team():
    d = DummyDirectory({10: [{"team_id": 1, "employee_ids": [20, 22]}, {"team_id": 2, "employee_ids": [23]}]})
    assert access.can_author(d, 10, 23)
    assert not access.can_author(d, 10, 99)
    assert not access.can_author(d, 11, 20)

def test_can_read_own_by_role():
    r = rec()
    assert access.can_read_own(ADMIN, r)
    assert access.can_read_own(M, r)
    assert access.can_read_own(E, r)
    assert not access.can_read_own(OTHER_M, r)
    assert not access.can_read_own(OTHER_E, r)

def test_can_modify_only_author_on_live_record():
    assert access.can_modify(M, rec(), ACTION_EDIT)
    assert access.can_modify(M, rec(acked=True), ACTION_DELETE)
    assert not access.can_modify(M, rec(deleted=True), ACTION_EDIT)
    assert not access.can_modify(OTHER_M, rec(), ACTION_EDIT)
    assert not access.can_modify(E, rec(), ACTION_EDIT)
    assert not access.can_modify(ADMIN, rec(), ACTION_EDIT)

def test_can_modify_restore_needs_deleted_record():
    assert access.can_modify(M, rec(deleted=True), ACTION_RESTORE)
    assert not access.can_modify(M, rec(deleted=False), ACTION_RESTORE)

@pytest.mark.parametrize("op,msg", [
    ("create", "Only managers can create feedback"),
    (ACTION_EDIT, "Only managers can update feedback"),
    (ACTION_DELETE, "Only managers can soft delete feedback"),
    (ACTION_RESTORE, "Only managers can restore feedback"),
    ("bulk", "Only managers can bulk create feedback"),
])
def test_require_manager_role_specific_messages(op, msg):
    with pytest.raises(Forbidden) as ei:
        access.require_manager(E, op)
    assert ei.value.message == msg
    access.require_manager(M, op)

def test_require_employee_and_admin():
    access.require_employee(E)
    with pytest.raises(Forbidden):
        access.require_employee(M)
    access.require_admin(ADMIN)
    with pytest.raises(Forbidden):
        access.require_admin(M)

def test_unknown_role_is_forbidden():
    with pytest.raises(Forbidden):
        access.require_known_role(Principal(5, "contractor"))

def test_require_author_outside_team_forbidden():
    d = DummyDirectory({10: [{"team_id": 1, "employee_ids": [20]}]})
    access.require_author(d, M, 20)
    with pytest.raises(Forbidden) as ei:
        access.require_author(d, M, 21)
    assert "team members" in ei.value.message

def test_require_modify_conflates_missing_and_foreign():
    with pytest.raises(NotFound):
        access.require_modify(M, None, ACTION_EDIT)
    with pytest.raises(NotFound):
        access.require_modify(OTHER_M, rec(), ACTION_EDIT)

def test_require_reader_deleted_is_not_found_even_for_admin():
    with pytest.raises(NotFound):
        access.require_reader(ADMIN, rec(deleted=True))
    with pytest.raises(NotFound):
        access.require_reader(M, None)

def test_require_reader_foreign_record_messages():
    with pytest.raises(Forbidden) as ei:
        access.require_reader(OTHER_E, rec())
    assert ei.value.message == "Employees can only access their own feedback"
    with pytest.raises(Forbidden) as ei:
        access.require_reader(OTHER_M, rec())
    assert ei.value.message == "Managers can only access feedback they created"
    access.require_reader(E, rec())

class TeamsDirectory:
    def __init__(self, managed): self._managed = managed
    def managed_employee_ids(self, manager_id): return set(self._managed.get(manager_id, ()))

def audit(editor_id=10):
    return types.SimpleNamespace(edited_by_manager_id=editor_id)

def test_require_audit_editor_admin_and_manager_only():
    access.require_audit_editor(ADMIN)
    access.require_audit_editor(M)
    with pytest.raises(Forbidden) as ei:
        access.require_audit_editor(E)
    assert ei.value.message == "You are not authorized to view this resource"

def test_require_audit_reader_scoping():
    d = TeamsDirectory({10: [20]})
    access.require_audit_reader(d, ADMIN, audit(), rec())
    access.require_audit_reader(d, E, audit(), rec())
    access.require_audit_reader(d, M, audit(), rec())
    with pytest.raises(Forbidden) as ei:
        access.require_audit_reader(d, OTHER_E, audit(), rec())
    assert ei.value.message == "You can only access your own feedback history"
    with pytest.raises(Forbidden) as ei:
        access.require_audit_reader(d, M, audit(editor_id=11), rec())
    assert ei.value.message == "You can only access feedback history you've edited"
    with pytest.raises(Forbidden) as ei:
        access.require_audit_reader(d, M, audit(), rec(employee_id=21))
    assert ei.value.message == "You can only access feedback for your team members"

def test_require_audit_reader_missing_entry_or_record():
    d = TeamsDirectory({})
    with pytest.raises(NotFound):
        access.require_audit_reader(d, ADMIN, None, None)
    with pytest.raises(NotFound):
        access.require_audit_reader(d, ADMIN, audit(), None)
    with pytest.raises(Forbidden):
        access.require_audit_reader(d, Principal(5, "contractor"), audit(), rec())
