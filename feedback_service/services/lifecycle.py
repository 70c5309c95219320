"""
Feedback lifecycle orchestration.

Every mutating operation runs as one read-validate-write(-audit) unit inside
a single database transaction:

    find_mutable (row lock)  ->  guard  ->  apply_edit (+ audit append)  ->  commit

Any failure rolls the whole unit back. The record UPDATE is conditional on
the version that was read, so a concurrent writer turns into ``Conflict``
instead of a silent overwrite.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from flask import current_app
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from feedback_service.extensions import db
from feedback_service.models import Feedback, FeedbackHistory, FeedbackSnapshot, EDITABLE_FIELDS
from feedback_service.observability import log_event
from feedback_service.utils.validators import (
    parse_id,
    parse_bool,
    parse_date,
    day_bounds,
    check_text,
    check_sentiment,
)
from . import access, audit_log, feedback_store
from .access import Principal, ACTION_EDIT, ACTION_DELETE, ACTION_RESTORE
from .bulk_validator import validate_bulk_entries
from .directory import TeamDirectory
from .errors import FeedbackError, InvalidInput, Forbidden, NotFound, Conflict, RateLimited, Transient
from .export_sink import JsonExportSink

# Request payloads may use the client's camelCase names
_FIELD_ALIASES = {
    "strengths": ("strengths",),
    "areas_to_improve": ("areas_to_improve", "areasToImprove"),
    "sentiment": ("sentiment",),
}


# serialization_failure, deadlock_detected
_CONFLICT_SQLSTATES = {"40001", "40P01"}


def _utcnow():
    return datetime.now(timezone.utc)


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    # psycopg 3 exposes .sqlstate, psycopg2 .pgcode
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


@dataclass(frozen=True)
class LifecycleSettings:
    text_max_length: int = 1000
    page_size_default: int = feedback_store.DEFAULT_PAGE_SIZE
    page_size_max: int = feedback_store.MAX_PAGE_SIZE
    bulk_max_entries: int = 100
    duplicate_window: timedelta = timedelta(hours=24)
    edit_reason_max_length: int = audit_log.EDIT_REASON_MAX_LENGTH

    @classmethod
    def from_config(cls, cfg: Mapping) -> "LifecycleSettings":
        return cls(
            text_max_length=int(cfg.get("FEEDBACK_TEXT_MAX_LENGTH", 1000)),
            page_size_default=int(cfg.get("FEEDBACK_PAGE_SIZE_DEFAULT", feedback_store.DEFAULT_PAGE_SIZE)),
            page_size_max=int(cfg.get("FEEDBACK_PAGE_SIZE_MAX", feedback_store.MAX_PAGE_SIZE)),
            bulk_max_entries=int(cfg.get("BULK_MAX_ENTRIES", 100)),
            duplicate_window=timedelta(hours=int(cfg.get("BULK_DUPLICATE_WINDOW_HOURS", 24))),
            edit_reason_max_length=int(cfg.get("AUDIT_EDIT_REASON_MAX_LENGTH", audit_log.EDIT_REASON_MAX_LENGTH)),
        )


@dataclass
class BulkResult:
    records: List[Feedback]

    @property
    def created_count(self) -> int:
        return len(self.records)

    def to_dict(self) -> dict:
        return {"created_count": self.created_count, "records": [r.to_dict() for r in self.records]}


@dataclass
class FeedbackHistoryView:
    record: Feedback
    entries: List[FeedbackHistory] = field(default_factory=list)
    # id -> {"id", "name", "email", "role"} from the directory
    people: Dict[int, dict] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "record": self.record.to_dict(),
            "employee": self.people.get(self.record.employee_id),
            "audit_entries": [
                {**e.to_dict(), "edited_by": self.people.get(e.edited_by_manager_id)} for e in self.entries
            ],
        }


class FeedbackLifecycle:
    def __init__(
        self,
        session: Session,
        *,
        directory: Optional[TeamDirectory] = None,
        rate_limiter=None,
        export_sink=None,
        settings: Optional[LifecycleSettings] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.session = session
        self.directory = directory or TeamDirectory(session)
        self.rate_limiter = rate_limiter
        self.export_sink = export_sink or JsonExportSink()
        self.settings = settings or LifecycleSettings()
        self.now = now or _utcnow

    # ---- transaction plumbing ------------------------------------------------

    @contextmanager
    def _transaction(self, operation: str, **ctx):
        try:
            yield
            self.session.commit()
        except FeedbackError as e:
            self.session.rollback()
            log_event("feedback.rejected", logging.WARNING, operation=operation, code=e.code, **ctx)
            raise
        except (StaleDataError, IntegrityError) as e:
            self.session.rollback()
            log_event("feedback.conflict", logging.WARNING, operation=operation, **ctx)
            raise Conflict("Feedback was changed by another request; re-fetch and retry") from e
        except DBAPIError as e:
            self.session.rollback()
            if _sqlstate(e) in _CONFLICT_SQLSTATES:
                log_event("feedback.conflict", logging.WARNING, operation=operation, sqlstate=_sqlstate(e), **ctx)
                raise Conflict("Feedback was changed by another request; re-fetch and retry") from e
            current_app.logger.exception("feedback %s failed in storage", operation)
            raise Transient("Storage is temporarily unavailable; please retry") from e
        except Exception:
            self.session.rollback()
            raise

    @contextmanager
    def _reading(self, operation: str):
        try:
            yield
        except DBAPIError as e:
            self.session.rollback()
            current_app.logger.exception("feedback %s read failed", operation)
            raise Transient("Storage is temporarily unavailable; please retry") from e

    # ---- input helpers -------------------------------------------------------

    @staticmethod
    def _require_id(val, message: str) -> int:
        parsed = parse_id(val)
        if parsed is None:
            raise InvalidInput(message)
        return parsed

    def _content_patch(self, fields: Mapping[str, Any], *, require_all: bool) -> Dict[str, str]:
        patch: Dict[str, str] = {}
        errors: List[str] = []
        for name in EDITABLE_FIELDS:
            raw = None
            for key in _FIELD_ALIASES[name]:
                if fields.get(key) is not None:
                    raw = fields[key]
                    break
            if raw is None:
                if require_all:
                    errors.append(f"{name} is required")
                continue
            if name == "sentiment":
                value, err = check_sentiment(raw)
            else:
                value, err = check_text(name, raw, self.settings.text_max_length)
            if err:
                errors.append(err)
            else:
                patch[name] = value
        if errors:
            raise InvalidInput(errors[0], errors=errors)
        return patch

    # ---- operations ----------------------------------------------------------

    def create_feedback(self, principal: Principal, employee_id, *, strengths, areas_to_improve, sentiment) -> Feedback:
        access.require_manager(principal, "create")
        emp_id = self._require_id(employee_id, "Invalid employee ID")
        patch = self._content_patch(
            {"strengths": strengths, "areas_to_improve": areas_to_improve, "sentiment": sentiment},
            require_all=True,
        )
        with self._transaction("create", manager_id=principal.id, employee_id=emp_id):
            if not self.directory.is_active_employee(emp_id):
                raise InvalidInput("Employee not found or inactive")
            access.require_author(self.directory, principal, emp_id)
            record = feedback_store.create(
                self.session, manager_id=principal.id, employee_id=emp_id, now=self.now(), **patch
            )
        log_event("feedback.created", feedback_id=record.id, manager_id=principal.id, employee_id=emp_id, version=record.version)
        return record

    def edit_feedback(self, principal: Principal, feedback_id, fields: Mapping[str, Any]) -> Feedback:
        access.require_manager(principal, ACTION_EDIT)
        fid = self._require_id(feedback_id, "Invalid feedback ID")
        patch = self._content_patch(fields or {}, require_all=False)
        if not patch:
            raise InvalidInput("At least one field is required to update feedback")

        with self._transaction("edit", feedback_id=fid, manager_id=principal.id):
            record = feedback_store.find_mutable(self.session, fid, manager_id=principal.id, is_deleted=False)
            access.require_modify(principal, record, ACTION_EDIT)
            previous = FeedbackSnapshot.of(record)
            now = self.now()
            feedback_store.apply_edit(self.session, record, patch, now=now)
            audit_log.append(
                self.session,
                feedback_id=record.id,
                previous=previous,
                editor_id=principal.id,
                reason=audit_log.edit_reason_for(patch, max_length=self.settings.edit_reason_max_length),
                now=now,
            )
        log_event("feedback.edited", feedback_id=fid, version=record.version, fields=sorted(patch))
        return record

    def acknowledge_feedback(self, principal: Principal, feedback_id) -> Feedback:
        access.require_employee(principal)
        fid = self._require_id(feedback_id, "Invalid feedback ID")
        with self._transaction("acknowledge", feedback_id=fid, employee_id=principal.id):
            record = feedback_store.find_mutable(self.session, fid, employee_id=principal.id, is_deleted=False)
            if record is None:
                raise NotFound("Feedback not found or you are not the employee for this feedback")
            if record.is_acknowledged:
                raise Conflict("Feedback has already been acknowledged")
            now = self.now()
            feedback_store.apply_edit(
                self.session, record, {"is_acknowledged": True, "acknowledged_at": now}, now=now
            )
        log_event("feedback.acknowledged", feedback_id=fid, version=record.version)
        return record

    def soft_delete_feedback(self, principal: Principal, feedback_id) -> Feedback:
        access.require_manager(principal, ACTION_DELETE)
        fid = self._require_id(feedback_id, "Invalid feedback ID")
        with self._transaction("soft_delete", feedback_id=fid, manager_id=principal.id):
            record = feedback_store.find_mutable(self.session, fid, manager_id=principal.id, is_deleted=False)
            access.require_modify(principal, record, ACTION_DELETE)
            # Pending feedback must stay visible to the employee
            if not record.is_acknowledged:
                raise Conflict("Employee has still not acknowledged the feedback")
            now = self.now()
            feedback_store.apply_edit(self.session, record, {"is_deleted": True, "deleted_at": now}, now=now)
        log_event("feedback.deleted", feedback_id=fid, version=record.version)
        return record

    def restore_feedback(self, principal: Principal, feedback_id) -> Feedback:
        access.require_manager(principal, ACTION_RESTORE)
        fid = self._require_id(feedback_id, "Invalid feedback ID")
        with self._transaction("restore", feedback_id=fid, manager_id=principal.id):
            record = feedback_store.find_mutable(self.session, fid, manager_id=principal.id, is_deleted=True)
            access.require_modify(principal, record, ACTION_RESTORE)
            feedback_store.apply_edit(
                self.session, record, {"is_deleted": False, "deleted_at": None}, now=self.now()
            )
        log_event("feedback.restored", feedback_id=fid, version=record.version)
        return record

    def bulk_create_feedback(self, principal: Principal, entries: Sequence) -> BulkResult:
        access.require_manager(principal, "bulk")
        validated = validate_bulk_entries(
            entries,
            max_entries=self.settings.bulk_max_entries,
            text_max_length=self.settings.text_max_length,
        )
        employee_ids = [e.employee_id for e in validated]

        with self._transaction("bulk_create", manager_id=principal.id, count=len(validated)):
            # Held until commit: a second batch from this manager waits here and
            # then reads the first one's rows in the duplicate-window check
            feedback_store.lock_author(self.session, principal.id)
            active = self.directory.active_employee_ids(employee_ids)
            missing = [i for i in employee_ids if i not in active]
            if missing:
                raise InvalidInput(
                    "Some employees were not found or are inactive",
                    errors=[f"employee {i}: not found or inactive" for i in missing],
                )

            managed = self.directory.managed_employee_ids(principal.id)
            outside = [i for i in employee_ids if i not in managed]
            if outside:
                raise Forbidden(
                    "You can only provide feedback to your current team members "
                    f"(not on your teams: {', '.join(str(i) for i in outside)})"
                )

            now = self.now()
            recent = feedback_store.recent_employee_ids(
                self.session,
                manager_id=principal.id,
                employee_ids=employee_ids,
                since=now - self.settings.duplicate_window,
            )
            if recent:
                raise Conflict(
                    "Feedback was already submitted in the last "
                    f"{int(self.settings.duplicate_window.total_seconds() // 3600)} hours for employees: "
                    f"{', '.join(str(i) for i in recent)}"
                )

            records = feedback_store.insert_many(self.session, manager_id=principal.id, entries=validated, now=now)
        log_event("feedback.bulk_created", manager_id=principal.id, count=len(records))
        return BulkResult(records=records)

    def list_feedback(
        self,
        principal: Principal,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        page=1,
        limit=None,
        sort_by=None,
        sort_order=None,
    ) -> feedback_store.Page:
        access.require_known_role(principal)
        filters = filters or {}

        def _opt_id(*keys):
            for key in keys:
                raw = filters.get(key)
                if raw not in (None, ""):
                    return self._require_id(raw, f"Invalid {key}")
            return None

        f = feedback_store.FeedbackFilter(
            sentiment=(filters.get("sentiment") or None),
            is_acknowledged=parse_bool(filters.get("acknowledged")),
        )
        if principal.is_employee:
            f.employee_id = principal.id
        elif principal.is_manager:
            f.manager_id = principal.id
            f.employee_id = _opt_id("employee_id", "employeeId")
            f.include_deleted = bool(parse_bool(filters.get("include_deleted", filters.get("includeDeleted"))))
        else:
            f.employee_id = _opt_id("employee_id", "employeeId")
            f.manager_id = _opt_id("manager_id", "managerId")

        with self._reading("list"):
            return feedback_store.paginated_query(
                self.session,
                f,
                page=page,
                limit=limit if limit is not None else self.settings.page_size_default,
                sort_by=sort_by,
                sort_order=sort_order,
                max_limit=self.settings.page_size_max,
            )

    def get_feedback(self, principal: Principal, feedback_id) -> Feedback:
        fid = self._require_id(feedback_id, "Invalid feedback ID")
        with self._reading("get"):
            record = feedback_store.get(self.session, fid)
        access.require_reader(principal, record)
        return record

    def get_feedback_history(self, principal: Principal, feedback_id) -> FeedbackHistoryView:
        fid = self._require_id(feedback_id, "Invalid feedback ID")
        with self._reading("history"):
            record = feedback_store.get(self.session, fid)
            access.require_reader(principal, record)
            entries = audit_log.list_by_feedback(self.session, fid)
            people = self.directory.user_summaries(
                [record.employee_id] + [e.edited_by_manager_id for e in entries]
            )
        return FeedbackHistoryView(record=record, entries=entries, people=people)

    def get_audit_entry(self, principal: Principal, entry_id):
        access.require_known_role(principal)
        eid = self._require_id(entry_id, "Invalid feedback history ID")
        with self._reading("audit_entry"):
            entry = audit_log.get(self.session, eid)
            record = feedback_store.get(self.session, entry.feedback_id) if entry is not None else None
            access.require_audit_reader(self.directory, principal, entry, record)
        return entry, record

    def list_audit_by_editor(self, principal: Principal, manager_id=None) -> List[FeedbackHistory]:
        access.require_audit_editor(principal)
        if principal.is_admin:
            target = self._require_id(manager_id, "Invalid manager ID")
        else:
            target = principal.id
        with self._reading("audit_by_editor"):
            return audit_log.list_by_editor(self.session, target)

    def list_audit_by_date_range(self, principal: Principal, start, end, employee_id=None) -> List[FeedbackHistory]:
        access.require_admin_or_manager(principal, "audit_range")
        if not start or not end:
            raise InvalidInput("startDate and endDate are required")
        start_d, end_d = parse_date(start), parse_date(end)
        if start_d is None or end_d is None or start_d > end_d:
            raise InvalidInput("Invalid date range")
        emp_id = None
        if employee_id not in (None, ""):
            emp_id = self._require_id(employee_id, "Invalid employeeId")

        lo, hi = day_bounds(start_d, end_d)
        with self._reading("audit_by_date"):
            employee_ids = None
            if principal.is_manager:
                allowed = self.directory.managed_employee_ids(principal.id)
                if not allowed:
                    raise Forbidden("You don't manage any active team")
                if emp_id is not None and emp_id not in allowed:
                    raise Forbidden("Employee not in your team")
                employee_ids = [emp_id] if emp_id is not None else sorted(allowed)
            elif emp_id is not None:
                employee_ids = [emp_id]
            return audit_log.list_by_date_range(self.session, start=lo, end=hi, employee_ids=employee_ids)

    def delete_audit_entries(self, principal: Principal, entry_ids) -> dict:
        access.require_admin(principal)
        if not isinstance(entry_ids, (list, tuple)) or not entry_ids:
            raise InvalidInput("historyIds must be a non-empty array")
        valid = [i for i in (parse_id(v) for v in entry_ids) if i is not None]
        if not valid:
            raise InvalidInput("No valid feedback history ids found in the request")

        with self._transaction("audit_delete", admin_id=principal.id, attempted=len(valid)):
            deleted = audit_log.delete_many(self.session, valid)
        log_event("audit.deleted", admin_id=principal.id, deleted_count=deleted)
        return {
            "deleted_count": deleted,
            "attempted": len(valid),
            "invalid_ids": len(entry_ids) - len(valid),
        }

    def export_feedback(self, principal: Principal, employee_id=None) -> dict:
        access.require_known_role(principal)
        if self.rate_limiter is not None and not self.rate_limiter.allow(principal.id):
            log_event("feedback.export_limited", logging.WARNING, principal_id=principal.id)
            raise RateLimited(
                "Export limit reached; try again later",
                retry_after=self.rate_limiter.retry_after(principal.id),
            )

        if principal.is_employee:
            target = principal.id
            if employee_id not in (None, "") and parse_id(employee_id) != principal.id:
                raise Forbidden("Employees can only export their own feedback")
        else:
            target = self._require_id(employee_id, "Invalid employee ID")

        with self._reading("export"):
            if principal.is_manager and target not in self.directory.managed_employee_ids(principal.id):
                raise Forbidden("You can only export feedback for your team members")
            q = self.session.query(Feedback).filter(
                Feedback.employee_id == target,
                Feedback.is_deleted.is_(False),
            )
            if principal.is_manager:
                q = q.filter(Feedback.manager_id == principal.id)
            records = q.order_by(Feedback.created_at.desc(), Feedback.id.desc()).all()

        if not records and not principal.is_employee:
            raise NotFound("No feedback found for this employee")
        log_event("feedback.exported", principal_id=principal.id, employee_id=target, count=len(records))
        return self.export_sink.deliver(principal=principal, employee_id=target, records=records)


def get_lifecycle() -> FeedbackLifecycle:
    """Lifecycle bound to the current app context's session and app-scoped collaborators."""
    return FeedbackLifecycle(
        db.session,
        directory=TeamDirectory(db.session),
        rate_limiter=current_app.extensions.get("export_rate_limiter"),
        export_sink=current_app.extensions.get("export_sink"),
        settings=LifecycleSettings.from_config(current_app.config),
    )
