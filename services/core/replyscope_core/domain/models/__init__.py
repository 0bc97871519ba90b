"""Domain models for Replyscope.

This module defines the SQLAlchemy ORM models for reports, their replies,
the activity feed and the workflow step ledger.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (all columns store naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# =============================================================================
# ENUMS
# =============================================================================


class ReportStatus(str):
    """Report status values."""

    SETTING_UP = "setting_up"
    PENDING = "pending"
    SCRAPING = "scraping"
    COMPLETED = "completed"
    FAILED = "failed"


class EvaluationStatus(str):
    """Reply evaluation status values."""

    PENDING = "pending"
    EVALUATING = "evaluating"
    EVALUATED = "evaluated"


class StepStatus(str):
    """Workflow step checkpoint status values."""

    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


# =============================================================================
# AUTH
# =============================================================================


class LocalUser(Base):
    """Local user account."""

    __tablename__ = "local_users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Relationships
    sessions: Mapped[list["Session"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
    )
    reports: Mapped[list["Report"]] = relationship(back_populates="user")


class Session(Base):
    """Server-side session store."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)  # UUID
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("local_users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (Index("idx_sessions_expires", "expires_at"),)

    # Relationships
    user: Mapped["LocalUser"] = relationship(back_populates="sessions")


# =============================================================================
# REPORTS
# =============================================================================


class Report(Base):
    """A monitored X conversation and its aggregated reply counts."""

    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("local_users.id", ondelete="CASCADE"), nullable=False
    )

    # Source post
    source_url: Mapped[str] = mapped_column(String(512), nullable=False)
    conversation_id: Mapped[str] = mapped_column(String(32), nullable=False)

    status: Mapped[str] = mapped_column(
        Enum(
            "setting_up", "pending", "scraping", "completed", "failed",
            name="report_status_enum",
        ),
        nullable=False,
        default=ReportStatus.SETTING_UP,
    )

    # Acceptance settings
    reply_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    min_length: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    blue_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    min_followers: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Evaluation settings (consumed by the scoring collaborator)
    goal: Mapped[str] = mapped_column(Text, nullable=False)
    persona: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    preset: Mapped[str] = mapped_column(String(32), nullable=False, default="balanced")
    weights: Mapped[dict] = mapped_column(JSON, nullable=False)

    # Counters (updated atomically)
    useful_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    qualified_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Original post, filled in as soon as the scraper resolves it
    original_post_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    original_author_username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    original_author_avatar: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Pagination and liveness
    last_reply_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_reply_external_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    last_activity_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_reports_user_created", "user_id", "created_at"),
        Index("idx_reports_status", "status"),
    )

    # Relationships
    user: Mapped["LocalUser"] = relationship(back_populates="reports")
    replies: Mapped[list["Reply"]] = relationship(
        back_populates="report",
        cascade="all, delete-orphan",
    )
    activity: Mapped[list["ReportActivity"]] = relationship(
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="ReportActivity.ts",
    )


class Reply(Base):
    """A scraped reply accepted into a report."""

    __tablename__ = "replies"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    report_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False
    )

    # Post identification (dedup key within a report)
    external_id: Mapped[str] = mapped_column(String(32), nullable=False)

    # Author
    author_username: Mapped[str] = mapped_column(String(64), nullable=False)
    author_external_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    author_avatar: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    follower_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Content
    text: Mapped[str] = mapped_column(Text, nullable=False)
    length: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Length without mentions and URLs"
    )
    posted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    observed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    # Evaluation
    evaluation_status: Mapped[str] = mapped_column(
        Enum("pending", "evaluating", "evaluated", name="reply_evaluation_status_enum"),
        nullable=False,
        default=EvaluationStatus.PENDING,
    )
    to_be_included: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    __table_args__ = (
        UniqueConstraint("report_id", "external_id", name="uq_reply_report_external"),
        Index("idx_replies_evaluation", "report_id", "evaluation_status"),
    )

    # Relationships
    report: Mapped["Report"] = relationship(back_populates="replies")


class ReportActivity(Base):
    """Append-only progress narration for a report."""

    __tablename__ = "report_activity"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    report_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False
    )
    key: Mapped[str] = mapped_column(String(32), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    meta: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    ts: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("idx_report_activity_report_ts", "report_id", "ts"),)

    # Relationships
    report: Mapped["Report"] = relationship(back_populates="activity")


class WorkflowStep(Base):
    """Checkpoint ledger for durable workflow steps."""

    __tablename__ = "workflow_steps"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    instance_id: Mapped[str] = mapped_column(String(64), nullable=False)
    workflow: Mapped[str] = mapped_column(String(64), nullable=False)
    # No foreign key: the ledger also records instances whose report is gone
    report_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    step_name: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[str] = mapped_column(
        Enum("running", "done", "failed", name="workflow_step_status_enum"),
        nullable=False,
        default=StepStatus.RUNNING,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    result_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("instance_id", "step_name", name="uq_workflow_step"),
        Index("idx_workflow_steps_report", "report_id", "created_at"),
    )


# Export all models
__all__ = [
    "Base",
    "LocalUser",
    "Session",
    "Report",
    "Reply",
    "ReportActivity",
    "WorkflowStep",
    # Enums
    "ReportStatus",
    "EvaluationStatus",
    "StepStatus",
    "utcnow",
]
