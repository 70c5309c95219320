from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from feedback_service.models import Feedback, User, SENTIMENTS

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50

# Public sort names (camelCase as clients send them, snake_case accepted too)
_SORT_COLUMNS = {
    "createdAt": Feedback.created_at,
    "updatedAt": Feedback.updated_at,
    "sentiment": Feedback.sentiment,
    "acknowledgedAt": Feedback.acknowledged_at,
}
_SORT_ALIASES = {
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "acknowledged_at": "acknowledgedAt",
}
DEFAULT_SORT = ("createdAt", "desc")


@dataclass
class FeedbackFilter:
    manager_id: Optional[int] = None
    employee_id: Optional[int] = None
    sentiment: Optional[str] = None
    is_acknowledged: Optional[bool] = None
    include_deleted: bool = False


@dataclass(frozen=True)
class Page:
    items: List[Feedback]
    total: int
    page: int
    limit: int
    sort_by: str = DEFAULT_SORT[0]
    sort_order: str = DEFAULT_SORT[1]
    filters: Dict = field(default_factory=dict)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def meta(self) -> dict:
        has_next = self.page < self.total_pages
        has_prev = self.page > 1
        return {
            "current_page": self.page,
            "total_pages": self.total_pages,
            "total_count": self.total,
            "limit": self.limit,
            "has_next_page": has_next,
            "has_prev_page": has_prev,
            "next_page": self.page + 1 if has_next else None,
            "prev_page": self.page - 1 if has_prev else None,
        }


def normalize_paging(
    page,
    limit,
    sort_by=None,
    sort_order=None,
    *,
    default_limit: int = DEFAULT_PAGE_SIZE,
    max_limit: int = MAX_PAGE_SIZE,
) -> Tuple[int, int, str, str]:
    """
    page >= 1, limit clamped to [1, max_limit]. An unknown sort field falls
    back to createdAt desc as a whole; an unknown order alone falls back to desc.
    """
    try:
        page_num = max(1, int(page))
    except (TypeError, ValueError):
        page_num = 1
    try:
        limit_num = min(max_limit, max(1, int(limit)))
    except (TypeError, ValueError):
        limit_num = min(max_limit, default_limit)

    key = _SORT_ALIASES.get(sort_by, sort_by) if sort_by else DEFAULT_SORT[0]
    if key not in _SORT_COLUMNS:
        return page_num, limit_num, DEFAULT_SORT[0], DEFAULT_SORT[1]
    order = (sort_order or "").lower()
    if order not in ("asc", "desc"):
        order = DEFAULT_SORT[1]
    return page_num, limit_num, key, order


def create(
    session: Session,
    *,
    manager_id: int,
    employee_id: int,
    strengths: str,
    areas_to_improve: str,
    sentiment: str,
    now: datetime,
) -> Feedback:
    fb = Feedback(
        manager_id=manager_id,
        employee_id=employee_id,
        strengths=strengths,
        areas_to_improve=areas_to_improve,
        sentiment=sentiment,
        is_acknowledged=False,
        acknowledged_at=None,
        is_deleted=False,
        deleted_at=None,
        version=1,
        created_at=now,
        updated_at=now,
    )
    session.add(fb)
    session.flush()
    return fb


def insert_many(session: Session, *, manager_id: int, entries: Sequence, now: datetime) -> List[Feedback]:
    """Insert a validated batch in one flush. Entries carry employee_id + the three text fields."""
    rows = [
        Feedback(
            manager_id=manager_id,
            employee_id=e.employee_id,
            strengths=e.strengths,
            areas_to_improve=e.areas_to_improve,
            sentiment=e.sentiment,
            is_acknowledged=False,
            is_deleted=False,
            version=1,
            created_at=now,
            updated_at=now,
        )
        for e in entries
    ]
    session.add_all(rows)
    session.flush()
    return rows


def get(session: Session, feedback_id: int) -> Optional[Feedback]:
    return session.get(Feedback, feedback_id)


def find_mutable(
    session: Session,
    feedback_id: int,
    *,
    manager_id: Optional[int] = None,
    employee_id: Optional[int] = None,
    is_deleted: Optional[bool] = None,
    is_acknowledged: Optional[bool] = None,
    lock: bool = True,
) -> Optional[Feedback]:
    """
    Scoped lookup for a mutation: owner and state filters are applied in the
    query, so anything outside scope simply comes back as None. The row is
    locked FOR UPDATE where the backend supports it.
    """
    q = session.query(Feedback).filter(Feedback.id == feedback_id)
    if manager_id is not None:
        q = q.filter(Feedback.manager_id == manager_id)
    if employee_id is not None:
        q = q.filter(Feedback.employee_id == employee_id)
    if is_deleted is not None:
        q = q.filter(Feedback.is_deleted.is_(is_deleted))
    if is_acknowledged is not None:
        q = q.filter(Feedback.is_acknowledged.is_(is_acknowledged))
    if lock:
        q = q.with_for_update()
    return q.one_or_none()


def apply_edit(session: Session, record: Feedback, patch: Dict, *, now: datetime) -> Feedback:
    """
    Set the patched fields and bump version by exactly one. The UPDATE is
    conditional on the version read earlier; a concurrent writer makes the
    flush raise StaleDataError.
    """
    for key, value in patch.items():
        setattr(record, key, value)
    record.version = record.version + 1
    record.updated_at = now
    session.flush()
    return record


def lock_author(session: Session, manager_id: int) -> None:
    """
    Serialize batch writers for one manager until the transaction ends.
    Takes a row lock on the manager; SQLite has no row locks, so there the
    database write lock is taken up front instead.
    """
    conn = session.connection()
    if conn.dialect.name == "sqlite":
        if not conn.connection.dbapi_connection.in_transaction:
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        return
    session.query(User.id).filter(User.id == manager_id).with_for_update().one_or_none()


def recent_employee_ids(
    session: Session, *, manager_id: int, employee_ids: Iterable[int], since: datetime
) -> List[int]:
    """Employees that already got feedback from this manager at or after ``since``."""
    ids = list(employee_ids)
    if not ids:
        return []
    rows = (
        session.query(Feedback.employee_id)
        .filter(
            Feedback.manager_id == manager_id,
            Feedback.employee_id.in_(ids),
            Feedback.created_at >= since,
        )
        .distinct()
        .all()
    )
    return sorted(r[0] for r in rows)


def paginated_query(
    session: Session,
    filters: FeedbackFilter,
    *,
    page=1,
    limit=DEFAULT_PAGE_SIZE,
    sort_by=None,
    sort_order=None,
    max_limit: int = MAX_PAGE_SIZE,
) -> Page:
    page_num, limit_num, sort_key, order = normalize_paging(
        page, limit, sort_by, sort_order, default_limit=DEFAULT_PAGE_SIZE, max_limit=max_limit
    )

    q = session.query(Feedback)
    if not filters.include_deleted:
        q = q.filter(Feedback.is_deleted.is_(False))
    if filters.manager_id is not None:
        q = q.filter(Feedback.manager_id == filters.manager_id)
    if filters.employee_id is not None:
        q = q.filter(Feedback.employee_id == filters.employee_id)
    # Unknown sentiments are ignored rather than rejected
    sentiment = filters.sentiment if filters.sentiment in SENTIMENTS else None
    if sentiment:
        q = q.filter(Feedback.sentiment == sentiment)
    if filters.is_acknowledged is not None:
        q = q.filter(Feedback.is_acknowledged.is_(filters.is_acknowledged))

    total = q.count()

    col = _SORT_COLUMNS[sort_key]
    ordering = (col.asc(), Feedback.id.asc()) if order == "asc" else (col.desc(), Feedback.id.desc())
    items = q.order_by(*ordering).offset((page_num - 1) * limit_num).limit(limit_num).all()

    return Page(
        items=items,
        total=total,
        page=page_num,
        limit=limit_num,
        sort_by=sort_key,
        sort_order=order,
        filters={"sentiment": sentiment, "acknowledged": filters.is_acknowledged},
    )
