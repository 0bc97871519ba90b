"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates all tables for Replyscope:
- local_users
- sessions
- reports
- replies
- report_activity
- workflow_steps
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Local users table
    op.create_table(
        "local_users",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(64), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column("last_login_at", sa.DateTime, nullable=True),
    )

    # Sessions table
    op.create_table(
        "sessions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.BigInteger,
            sa.ForeignKey("local_users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column("expires_at", sa.DateTime, nullable=False),
    )
    op.create_index("idx_sessions_expires", "sessions", ["expires_at"])

    # Reports table
    op.create_table(
        "reports",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.BigInteger,
            sa.ForeignKey("local_users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("source_url", sa.String(512), nullable=False),
        sa.Column("conversation_id", sa.String(32), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "setting_up", "pending", "scraping", "completed", "failed",
                name="report_status_enum",
            ),
            nullable=False,
            server_default="setting_up",
        ),
        sa.Column("reply_threshold", sa.Integer, nullable=False, server_default="100"),
        sa.Column("min_length", sa.Integer, nullable=False, server_default="0"),
        sa.Column("blue_only", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("min_followers", sa.Integer, nullable=True),
        sa.Column("goal", sa.Text, nullable=False),
        sa.Column("persona", sa.Text, nullable=True),
        sa.Column("preset", sa.String(32), nullable=False, server_default="balanced"),
        sa.Column("weights", sa.JSON, nullable=False),
        sa.Column("useful_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("qualified_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("original_post_text", sa.Text, nullable=True),
        sa.Column("original_author_username", sa.String(64), nullable=True),
        sa.Column("original_author_avatar", sa.String(512), nullable=True),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("last_reply_at", sa.DateTime, nullable=True),
        sa.Column("last_reply_external_id", sa.String(32), nullable=True),
        sa.Column("last_activity_at", sa.DateTime, nullable=True),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("idx_reports_user_created", "reports", ["user_id", "created_at"])
    op.create_index("idx_reports_status", "reports", ["status"])

    # Replies table
    op.create_table(
        "replies",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "report_id",
            sa.BigInteger,
            sa.ForeignKey("reports.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("external_id", sa.String(32), nullable=False),
        sa.Column("author_username", sa.String(64), nullable=False),
        sa.Column("author_external_id", sa.String(32), nullable=True),
        sa.Column("author_avatar", sa.String(512), nullable=True),
        sa.Column("verified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("follower_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("text", sa.Text, nullable=False),
        sa.Column(
            "length",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Length without mentions and URLs",
        ),
        sa.Column("posted_at", sa.DateTime, nullable=True),
        sa.Column(
            "observed_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "evaluation_status",
            sa.Enum(
                "pending", "evaluating", "evaluated",
                name="reply_evaluation_status_enum",
            ),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("to_be_included", sa.Boolean, nullable=True),
        sa.UniqueConstraint("report_id", "external_id", name="uq_reply_report_external"),
    )
    op.create_index(
        "idx_replies_evaluation", "replies", ["report_id", "evaluation_status"]
    )

    # Report activity feed
    op.create_table(
        "report_activity",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "report_id",
            sa.BigInteger,
            sa.ForeignKey("reports.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("key", sa.String(32), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("meta", sa.JSON, nullable=True),
        sa.Column("ts", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "idx_report_activity_report_ts", "report_activity", ["report_id", "ts"]
    )

    # Workflow step ledger
    op.create_table(
        "workflow_steps",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("instance_id", sa.String(64), nullable=False),
        sa.Column("workflow", sa.String(64), nullable=False),
        sa.Column("report_id", sa.BigInteger, nullable=True),
        sa.Column("step_name", sa.String(64), nullable=False),
        sa.Column(
            "status",
            sa.Enum("running", "done", "failed", name="workflow_step_status_enum"),
            nullable=False,
            server_default="running",
        ),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("result_json", sa.JSON, nullable=True),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("instance_id", "step_name", name="uq_workflow_step"),
    )
    op.create_index(
        "idx_workflow_steps_report", "workflow_steps", ["report_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_table("workflow_steps")
    op.drop_table("report_activity")
    op.drop_table("replies")
    op.drop_table("reports")
    op.drop_table("sessions")
    op.drop_table("local_users")
