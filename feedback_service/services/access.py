"""
Access scope resolution.

The ``can_*`` predicates are pure decisions and never raise. The
``require_*`` guards wrap them (one per operation type) and translate a
negative decision into the error the caller should see.
"""
from __future__ import annotations

from dataclasses import dataclass

from feedback_service.models import ROLE_ADMIN, ROLE_MANAGER, ROLE_EMPLOYEE, ROLE_CHOICES
from .errors import Forbidden, NotFound

ACTION_EDIT = "edit"
ACTION_DELETE = "delete"
ACTION_RESTORE = "restore"


@dataclass(frozen=True)
class Principal:
    id: int
    role: str

    @classmethod
    def from_user(cls, user) -> "Principal":
        return cls(id=int(user.id), role=user.role)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role == ROLE_MANAGER

    @property
    def is_employee(self) -> bool:
        return self.role == ROLE_EMPLOYEE


# ---- decisions --------------------------------------------------------------

def can_author(directory, manager_id: int, employee_id: int) -> bool:
    """True iff an active team managed by manager_id contains employee_id."""
    for team in directory.teams_managed_by(manager_id):
        if employee_id in team["employee_ids"]:
            return True
    return False


def can_read_own(principal: Principal, record) -> bool:
    if principal.is_admin:
        return True
    if principal.is_manager and record.manager_id == principal.id:
        return True
    if principal.is_employee and record.employee_id == principal.id:
        return True
    return False


def can_modify(principal: Principal, record, action: str = ACTION_EDIT) -> bool:
    if not principal.is_manager or record.manager_id != principal.id:
        return False
    if action == ACTION_RESTORE:
        return bool(record.is_deleted)
    # edit and delete both need a live record; delete's acknowledgment rule
    # is a state conflict, checked by the caller
    return not record.is_deleted


# ---- guards -----------------------------------------------------------------

_ROLE_MESSAGES = {
    "create": "Only managers can create feedback",
    ACTION_EDIT: "Only managers can update feedback",
    ACTION_DELETE: "Only managers can soft delete feedback",
    ACTION_RESTORE: "Only managers can restore feedback",
    "bulk": "Only managers can bulk create feedback",
    "acknowledge": "Only employees can acknowledge feedback",
    "audit_delete": "Only admins can delete feedback history",
    "audit_range": "Only admins and managers can access feedback history by date",
    "audit_editor": "You are not authorized to view this resource",
}


def require_known_role(principal: Principal) -> None:
    if principal.role not in ROLE_CHOICES:
        raise Forbidden("Only authorized feedback system users can access this")


def require_manager(principal: Principal, operation: str) -> None:
    if not principal.is_manager:
        raise Forbidden(_ROLE_MESSAGES[operation])


def require_employee(principal: Principal) -> None:
    if not principal.is_employee:
        raise Forbidden(_ROLE_MESSAGES["acknowledge"])


def require_admin(principal: Principal) -> None:
    if not principal.is_admin:
        raise Forbidden(_ROLE_MESSAGES["audit_delete"])


def require_admin_or_manager(principal: Principal, operation: str) -> None:
    if not (principal.is_admin or principal.is_manager):
        raise Forbidden(_ROLE_MESSAGES[operation])


def require_author(directory, principal: Principal, employee_id: int) -> None:
    require_manager(principal, "create")
    if not can_author(directory, principal.id, employee_id):
        raise Forbidden("You can only provide feedback to your current team members")


def require_modify(principal: Principal, record, action: str) -> None:
    """Scoped-lookup companion: a record the caller may not touch is NotFound."""
    if record is None or not can_modify(principal, record, action):
        raise NotFound("Feedback not found or you don't have permission to change it")


def require_reader(principal: Principal, record) -> None:
    """
    Read guard with role-specific messages. Deleted or missing records are
    NotFound for everybody.
    """
    require_known_role(principal)
    if record is None or record.is_deleted:
        raise NotFound("Feedback not found or has been deleted")
    if can_read_own(principal, record):
        return
    if principal.is_employee:
        raise Forbidden("Employees can only access their own feedback")
    raise Forbidden("Managers can only access feedback they created")


def require_audit_editor(principal: Principal) -> None:
    require_admin_or_manager(principal, "audit_editor")


def require_audit_reader(directory, principal: Principal, entry, record) -> None:
    """
    Audit entry read guard. Employees see entries on their own feedback;
    managers see entries they wrote about employees still on their teams.
    """
    require_known_role(principal)
    if entry is None or record is None:
        raise NotFound("Feedback history not found")
    if principal.is_admin:
        return
    if principal.is_employee:
        if record.employee_id != principal.id:
            raise Forbidden("You can only access your own feedback history")
        return
    if entry.edited_by_manager_id != principal.id:
        raise Forbidden("You can only access feedback history you've edited")
    if record.employee_id not in directory.managed_employee_ids(principal.id):
        raise Forbidden("You can only access feedback for your team members")
