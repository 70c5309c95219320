from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Index, text

from feedback_service.extensions import db

SENTIMENT_POSITIVE = "positive"
SENTIMENT_NEUTRAL = "neutral"
SENTIMENT_NEGATIVE = "negative"
SENTIMENTS = (SENTIMENT_POSITIVE, SENTIMENT_NEUTRAL, SENTIMENT_NEGATIVE)

# Fields an Edit may change; also the shape of an audit snapshot (plus version)
EDITABLE_FIELDS = ("strengths", "areas_to_improve", "sentiment")


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(dt):
    return dt.isoformat() if dt else None


class Feedback(db.Model):
    __tablename__ = "feedback"

    id = db.Column(db.Integer, primary_key=True)

    # Immutable once created
    manager_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)

    strengths = db.Column(db.String(1000), nullable=False)
    areas_to_improve = db.Column(db.String(1000), nullable=False)
    sentiment = db.Column(db.String(16), nullable=False)

    is_acknowledged = db.Column(db.Boolean, nullable=False, default=False, server_default=text("false"))
    acknowledged_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Application-managed counter; the ORM adds "AND version = :old" to every UPDATE
    version = db.Column(db.Integer, nullable=False, default=1, server_default=text("1"))

    is_deleted = db.Column(db.Boolean, nullable=False, default=False, server_default=text("false"))
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, server_default=text("CURRENT_TIMESTAMP"))

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    __table_args__ = (
        CheckConstraint(
            "sentiment IN ('positive','neutral','negative')",
            name="ck_feedback_sentiment_valid",
        ),
        CheckConstraint(
            "(is_acknowledged AND acknowledged_at IS NOT NULL) OR (NOT is_acknowledged AND acknowledged_at IS NULL)",
            name="ck_feedback_ack_consistent",
        ),
        CheckConstraint(
            "(is_deleted AND deleted_at IS NOT NULL) OR (NOT is_deleted AND deleted_at IS NULL)",
            name="ck_feedback_deleted_consistent",
        ),
        CheckConstraint("version >= 1", name="ck_feedback_version_positive"),
        Index("ix_feedback_manager_employee_created", "manager_id", "employee_id", "created_at"),
        Index("ix_feedback_employee_created", "employee_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Feedback id={self.id} v{self.version} ack={self.is_acknowledged} deleted={self.is_deleted}>"

    def to_dict(self) -> dict:
        return dict(
            id=self.id,
            manager_id=self.manager_id,
            employee_id=self.employee_id,
            strengths=self.strengths,
            areas_to_improve=self.areas_to_improve,
            sentiment=self.sentiment,
            is_acknowledged=self.is_acknowledged,
            acknowledged_at=_iso(self.acknowledged_at),
            version=self.version,
            is_deleted=self.is_deleted,
            deleted_at=_iso(self.deleted_at),
            created_at=_iso(self.created_at),
            updated_at=_iso(self.updated_at),
        )

    def deletion_dict(self) -> dict:
        """Compact shape returned by soft-delete."""
        return dict(
            id=self.id,
            is_deleted=self.is_deleted,
            deleted_at=_iso(self.deleted_at),
            version=self.version,
        )
