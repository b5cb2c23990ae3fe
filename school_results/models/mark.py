"""Exam mark model."""

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    DECIMAL,
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from school_results.core.database import Base
from school_results.models.base import IDMixin, JSONType, TimestampMixin


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class ExamType(str, enum.Enum):
    """Exams a mark can be recorded for."""

    FIRST_TERM = "1st_term"
    SECOND_TERM = "2nd_term"
    THIRD_TERM = "3rd_term"
    HALF_YEARLY = "half_yearly"
    ANNUAL = "annual"
    TEST = "test"
    MOCK = "mock"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class ResultStatus(str, enum.Enum):
    """Outcome shown on a result sheet."""

    PASS = "Pass"
    FAIL = "Fail"
    NOT_PUBLISHED = "Not Published"


class Mark(Base, IDMixin, TimestampMixin):
    """One student's marks for one exam of one class.

    Derived fields (totals, percentage, gpa, grade) are always written together
    from a fresh aggregation of ``subjects``; see ``MarkStore``.
    """

    __tablename__ = "marks"

    student_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    class_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("school_classes.id", ondelete="CASCADE"),
        nullable=False,
    )
    exam_type: Mapped[ExamType] = mapped_column(
        Enum(ExamType, name="exam_type", values_callable=_enum_values),
        nullable=False,
    )
    exam_year: Mapped[int] = mapped_column(Integer, nullable=False)

    # Ordered list of derived SubjectScore dicts
    subjects: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    # Auto-calculated summary
    total_obtained: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), default=Decimal("0"), nullable=False)
    total_full_marks: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), default=Decimal("0"), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(DECIMAL(6, 2), default=Decimal("0"), nullable=False)
    gpa: Mapped[Decimal] = mapped_column(DECIMAL(4, 2), default=Decimal("0"), nullable=False)
    grade: Mapped[str] = mapped_column(String(5), default="", nullable=False)

    # Publication state
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    result: Mapped[ResultStatus] = mapped_column(
        Enum(ResultStatus, name="result_status", values_callable=_enum_values),
        default=ResultStatus.NOT_PUBLISHED,
        nullable=False,
    )
    is_published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Actors
    created_by: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    updated_by: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Relationships
    student: Mapped["Student"] = relationship("Student", lazy="selectin")
    school_class: Mapped["SchoolClass"] = relationship("SchoolClass", lazy="selectin")

    __table_args__ = (
        UniqueConstraint(
            "student_id", "class_id", "exam_type", "exam_year",
            name="uq_mark_student_class_exam",
        ),
        Index("ix_marks_cohort", "class_id", "exam_type", "exam_year"),
    )

    def __repr__(self) -> str:
        return (
            f"<Mark(id={self.id}, student_id={self.student_id}, "
            f"exam={self.exam_type}/{self.exam_year})>"
        )
