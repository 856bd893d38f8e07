"""create auth and attendance tables

Revision ID: a7c1e9d2b4f0
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration:
1. Creates the users table used for login
2. Creates class_sessions with the check-in metadata columns and the
   checkin_issued_at index used by the expiry sweeper
3. Creates enrollments (the roster consulted for eligibility)
4. Creates student_attendance with UNIQUE(session_id, student_id), which is
   what makes concurrent check-in redemptions record at most one row
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a7c1e9d2b4f0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create users, class_sessions, enrollments and student_attendance."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column(
            "role",
            sa.Enum("owner", "admin", "teacher", "student", name="user_role"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "class_sessions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("class_id", sa.Integer(), nullable=False),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "session_status",
            sa.Enum(
                "scheduled",
                "confirmed",
                "in_progress",
                "completed",
                "cancelled",
                name="session_status",
            ),
            nullable=False,
        ),
        # Check-in token metadata (cleared by the expiry sweeper)
        sa.Column("checkin_issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checkin_issued_by", sa.Integer(), nullable=True),
        sa.Column("checkin_fingerprint", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["checkin_issued_by"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_class_sessions_class_id", "class_sessions", ["class_id"])
    op.create_index(
        "ix_class_sessions_checkin_issued_at", "class_sessions", ["checkin_issued_at"]
    )

    op.create_table(
        "enrollments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("class_id", sa.Integer(), nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("active", "suspended", "completed", "withdrawn", name="enrollment_status"),
            nullable=False,
        ),
        sa.Column("enrolled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("withdrawn_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_enrollments_class_student", "enrollments", ["class_id", "student_id"])

    op.create_table(
        "student_attendance",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("present", "absent", "excused", "late", name="attendance_status"),
            nullable=False,
        ),
        sa.Column("check_in_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("qr_check_in", sa.Boolean(), nullable=False),
        sa.Column("checkin_issuer_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["session_id"], ["class_sessions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["student_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "session_id", "student_id", name="uq_student_attendance_session_student"
        ),
    )


def downgrade() -> None:
    """Drop the tables and their enum types."""
    op.drop_table("student_attendance")
    op.drop_index("ix_enrollments_class_student", table_name="enrollments")
    op.drop_table("enrollments")
    op.drop_index("ix_class_sessions_checkin_issued_at", table_name="class_sessions")
    op.drop_index("ix_class_sessions_class_id", table_name="class_sessions")
    op.drop_table("class_sessions")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_name in ("attendance_status", "enrollment_status", "session_status", "user_role"):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
