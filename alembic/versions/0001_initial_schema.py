"""Initial schema for marks and result publication.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18

Creates the roster tables (users, school_classes, subjects, students), the
marks table with its cohort uniqueness constraint, and the notification and
audit tables written during publication.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


exam_type = postgresql.ENUM(
    "1st_term", "2nd_term", "3rd_term", "half_yearly", "annual", "test", "mock",
    name="exam_type",
    create_type=False,
)
result_status = postgresql.ENUM("Pass", "Fail", "Not Published", name="result_status", create_type=False)
audit_action = postgresql.ENUM(
    "MARK_SAVED",
    "MARKS_BULK_SAVED",
    "MARKS_UPLOADED",
    "MARK_DELETED",
    "RESULTS_PUBLISHED",
    "RESULTS_UNPUBLISHED",
    name="audit_action",
    create_type=False,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    exam_type.create(bind, checkfirst=True)
    result_status.create(bind, checkfirst=True)
    audit_action.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "school_classes",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("section", sa.String(50), nullable=True),
        sa.Column("subjects", postgresql.JSONB(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_school_classes_name", "school_classes", ["name"])

    op.create_table(
        "subjects",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "class_id",
            sa.BigInteger(),
            sa.ForeignKey("school_classes.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(50), nullable=True),
        sa.Column("theory_full_marks", sa.DECIMAL(10, 2), nullable=False, server_default="100"),
        sa.Column("practical_full_marks", sa.DECIMAL(10, 2), nullable=False, server_default="0"),
        sa.Column("mcq_full_marks", sa.DECIMAL(10, 2), nullable=False, server_default="0"),
        sa.Column("pass_marks", sa.DECIMAL(10, 2), nullable=False, server_default="33"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_subjects_class_id", "subjects", ["class_id"])

    op.create_table(
        "students",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "class_id",
            sa.BigInteger(),
            sa.ForeignKey("school_classes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("student_name", sa.String(255), nullable=False),
        sa.Column("roll_number", sa.String(50), nullable=True),
        sa.Column("section", sa.String(50), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_students_class_id", "students", ["class_id"])
    op.create_index("ix_students_user_id", "students", ["user_id"])

    op.create_table(
        "marks",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "student_id",
            sa.BigInteger(),
            sa.ForeignKey("students.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "class_id",
            sa.BigInteger(),
            sa.ForeignKey("school_classes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("exam_type", exam_type, nullable=False),
        sa.Column("exam_year", sa.Integer(), nullable=False),
        sa.Column("subjects", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("total_obtained", sa.DECIMAL(10, 2), nullable=False, server_default="0"),
        sa.Column("total_full_marks", sa.DECIMAL(10, 2), nullable=False, server_default="0"),
        sa.Column("percentage", sa.DECIMAL(6, 2), nullable=False, server_default="0"),
        sa.Column("gpa", sa.DECIMAL(4, 2), nullable=False, server_default="0"),
        sa.Column("grade", sa.String(5), nullable=False, server_default=""),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("result", result_status, nullable=False, server_default="Not Published"),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_by",
            sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "updated_by",
            sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
        sa.UniqueConstraint(
            "student_id", "class_id", "exam_type", "exam_year",
            name="uq_mark_student_class_exam",
        ),
    )
    op.create_index("ix_marks_student_id", "marks", ["student_id"])
    op.create_index("ix_marks_is_published", "marks", ["is_published"])
    op.create_index("ix_marks_cohort", "marks", ["class_id", "exam_type", "exam_year"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("notification_type", sa.String(50), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("action_url", sa.Text(), nullable=True),
        sa.Column("action_data", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("action", audit_action, nullable=False),
        sa.Column("resource_type", sa.String(100), nullable=False),
        sa.Column("resource_id", sa.String(100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("extra_data", postgresql.JSONB(), nullable=True),
        sa.Column("ip_address", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("notifications")
    op.drop_table("marks")
    op.drop_table("students")
    op.drop_table("subjects")
    op.drop_table("school_classes")
    op.drop_table("users")

    bind = op.get_bind()
    audit_action.drop(bind, checkfirst=True)
    result_status.drop(bind, checkfirst=True)
    exam_type.drop(bind, checkfirst=True)
