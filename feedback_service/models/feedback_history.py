from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime, timezone

from sqlalchemy import UniqueConstraint, Index, event, text

from feedback_service.extensions import db


def _utcnow():
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FeedbackSnapshot:
    """Mutable fields of a feedback record as they were right before an edit."""
    strengths: str
    areas_to_improve: str
    sentiment: str
    version: int

    @classmethod
    def of(cls, feedback) -> "FeedbackSnapshot":
        return cls(
            strengths=feedback.strengths,
            areas_to_improve=feedback.areas_to_improve,
            sentiment=feedback.sentiment,
            version=feedback.version,
        )

    def to_dict(self) -> dict:
        return asdict(self)


class FeedbackHistory(db.Model):
    """
    Audit entry: one row per committed content edit. Rows are append-only;
    the only removal path is the admin bulk delete.
    """
    __tablename__ = "feedback_history"

    id = db.Column(db.Integer, primary_key=True)
    feedback_id = db.Column(
        db.Integer,
        db.ForeignKey("feedback.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Snapshot stored as typed columns rather than an open JSON blob
    previous_strengths = db.Column(db.String(1000), nullable=False)
    previous_areas_to_improve = db.Column(db.String(1000), nullable=False)
    previous_sentiment = db.Column(db.String(16), nullable=False)
    previous_version = db.Column(db.Integer, nullable=False)

    edited_by_manager_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    edit_reason = db.Column(db.String(500), nullable=True)
    edited_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, server_default=text("CURRENT_TIMESTAMP"))

    __table_args__ = (
        # Two entries can never claim the same pre-edit version of one record
        UniqueConstraint("feedback_id", "previous_version", name="uq_feedback_history_feedback_version"),
        Index("ix_feedback_history_edited_at", "edited_at"),
    )

    @property
    def previous_data(self) -> FeedbackSnapshot:
        return FeedbackSnapshot(
            strengths=self.previous_strengths,
            areas_to_improve=self.previous_areas_to_improve,
            sentiment=self.previous_sentiment,
            version=self.previous_version,
        )

    def __repr__(self) -> str:
        return f"<FeedbackHistory id={self.id} feedback_id={self.feedback_id} prev_v={self.previous_version}>"

    def to_dict(self) -> dict:
        return dict(
            id=self.id,
            feedback_id=self.feedback_id,
            previous_data=self.previous_data.to_dict(),
            edited_by_manager_id=self.edited_by_manager_id,
            edit_reason=self.edit_reason,
            edited_at=self.edited_at.isoformat() if self.edited_at else None,
        )


class AuditEntryImmutable(RuntimeError):
    """Raised when something tries to UPDATE an audit row."""


@event.listens_for(FeedbackHistory, "before_update")
def _refuse_update(mapper, connection, target):
    raise AuditEntryImmutable(f"feedback_history row {target.id} is append-only")
