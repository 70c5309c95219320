from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "9e3f5a61c8b2"
down_revision = "4b1e7c9d2a10"
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "feedback",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("manager_id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("strengths", sa.String(length=1000), nullable=False),
        sa.Column("areas_to_improve", sa.String(length=1000), nullable=False),
        sa.Column("sentiment", sa.String(length=16), nullable=False),
        sa.Column("is_acknowledged", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["manager_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["employee_id"], ["users.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("sentiment IN ('positive','neutral','negative')", name="ck_feedback_sentiment_valid"),
        sa.CheckConstraint(
            "(is_acknowledged AND acknowledged_at IS NOT NULL) OR (NOT is_acknowledged AND acknowledged_at IS NULL)",
            name="ck_feedback_ack_consistent",
        ),
        sa.CheckConstraint(
            "(is_deleted AND deleted_at IS NOT NULL) OR (NOT is_deleted AND deleted_at IS NULL)",
            name="ck_feedback_deleted_consistent",
        ),
        sa.CheckConstraint("version >= 1", name="ck_feedback_version_positive"),
    )
    op.create_index("ix_feedback_manager_id", "feedback", ["manager_id"], unique=False)
    op.create_index("ix_feedback_employee_id", "feedback", ["employee_id"], unique=False)
    op.create_index("ix_feedback_manager_employee_created", "feedback", ["manager_id", "employee_id", "created_at"], unique=False)
    op.create_index("ix_feedback_employee_created", "feedback", ["employee_id", "created_at"], unique=False)

    op.create_table(
        "feedback_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("feedback_id", sa.Integer(), nullable=False),
        sa.Column("previous_strengths", sa.String(length=1000), nullable=False),
        sa.Column("previous_areas_to_improve", sa.String(length=1000), nullable=False),
        sa.Column("previous_sentiment", sa.String(length=16), nullable=False),
        sa.Column("previous_version", sa.Integer(), nullable=False),
        sa.Column("edited_by_manager_id", sa.Integer(), nullable=False),
        sa.Column("edit_reason", sa.String(length=500), nullable=True),
        sa.Column("edited_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["feedback_id"], ["feedback.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["edited_by_manager_id"], ["users.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("feedback_id", "previous_version", name="uq_feedback_history_feedback_version"),
    )
    op.create_index("ix_feedback_history_feedback_id", "feedback_history", ["feedback_id"], unique=False)
    op.create_index("ix_feedback_history_edited_by_manager_id", "feedback_history", ["edited_by_manager_id"], unique=False)
    op.create_index("ix_feedback_history_edited_at", "feedback_history", ["edited_at"], unique=False)

def downgrade():
    op.drop_index("ix_feedback_history_edited_at", table_name="feedback_history")
    op.drop_index("ix_feedback_history_edited_by_manager_id", table_name="feedback_history")
    op.drop_index("ix_feedback_history_feedback_id", table_name="feedback_history")
    op.drop_table("feedback_history")
    op.drop_index("ix_feedback_employee_created", table_name="feedback")
    op.drop_index("ix_feedback_manager_employee_created", table_name="feedback")
    op.drop_index("ix_feedback_employee_id", table_name="feedback")
    op.drop_index("ix_feedback_manager_id", table_name="feedback")
    op.drop_table("feedback")
