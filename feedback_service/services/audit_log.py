"""
Append-only audit trail of feedback edits.

``append`` is only called from inside the lifecycle's Edit transaction; it
flushes but never commits, so the caller's commit/rollback covers both the
record update and the audit row.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import delete
from sqlalchemy.orm import Session

from feedback_service.models import Feedback, FeedbackHistory, FeedbackSnapshot

EDIT_REASON_MAX_LENGTH = 500


def edit_reason_for(fields: Iterable[str], max_length: int = EDIT_REASON_MAX_LENGTH) -> str:
    return f"Updated fields: {', '.join(fields)}"[:min(max_length, EDIT_REASON_MAX_LENGTH)]


def append(
    session: Session,
    *,
    feedback_id: int,
    previous: FeedbackSnapshot,
    editor_id: int,
    reason: Optional[str],
    now: datetime,
) -> FeedbackHistory:
    entry = FeedbackHistory(
        feedback_id=feedback_id,
        previous_strengths=previous.strengths,
        previous_areas_to_improve=previous.areas_to_improve,
        previous_sentiment=previous.sentiment,
        previous_version=previous.version,
        edited_by_manager_id=editor_id,
        edit_reason=reason[:EDIT_REASON_MAX_LENGTH] if reason else None,
        edited_at=now,
    )
    session.add(entry)
    session.flush()  # unique (feedback_id, previous_version) fires here
    return entry


def get(session: Session, entry_id: int) -> Optional[FeedbackHistory]:
    return session.get(FeedbackHistory, entry_id)


def list_by_feedback(session: Session, feedback_id: int) -> List[FeedbackHistory]:
    return (
        session.query(FeedbackHistory)
        .filter(FeedbackHistory.feedback_id == feedback_id)
        .order_by(FeedbackHistory.edited_at.desc(), FeedbackHistory.id.desc())
        .all()
    )


def list_by_editor(session: Session, manager_id: int) -> List[FeedbackHistory]:
    return (
        session.query(FeedbackHistory)
        .filter(FeedbackHistory.edited_by_manager_id == manager_id)
        .order_by(FeedbackHistory.edited_at.desc(), FeedbackHistory.id.desc())
        .all()
    )


def list_by_date_range(
    session: Session,
    *,
    start: datetime,
    end: datetime,
    employee_ids: Optional[Iterable[int]] = None,
) -> List[FeedbackHistory]:
    q = (
        session.query(FeedbackHistory)
        .join(Feedback, Feedback.id == FeedbackHistory.feedback_id)
        .filter(FeedbackHistory.edited_at >= start, FeedbackHistory.edited_at <= end)
    )
    if employee_ids is not None:
        q = q.filter(Feedback.employee_id.in_(list(employee_ids)))
    return q.order_by(FeedbackHistory.edited_at.desc(), FeedbackHistory.id.desc()).all()


def delete_many(session: Session, entry_ids: Iterable[int]) -> int:
    """Irreversible admin maintenance. Returns the number of rows removed."""
    ids = list(entry_ids)
    if not ids:
        return 0
    result = session.execute(
        delete(FeedbackHistory)
        .where(FeedbackHistory.id.in_(ids))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
