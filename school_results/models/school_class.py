"""Class and subject catalog models."""

from decimal import Decimal

from sqlalchemy import DECIMAL, BigInteger, Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from school_results.core.database import Base
from school_results.models.base import IDMixin, JSONType, TimestampMixin


class SchoolClass(Base, IDMixin, TimestampMixin):
    """A class (grade + section) that students are enrolled in."""

    __tablename__ = "school_classes"

    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    section: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Legacy per-class subject list: [{"name": ..., "code": ...}, ...]
    # Only consulted when the class has no active catalog subjects.
    subjects: Mapped[list | None] = mapped_column(JSONType, nullable=True)

    # Relationships
    students: Mapped[list["Student"]] = relationship(
        "Student",
        back_populates="school_class",
        lazy="selectin",
    )
    catalog_subjects: Mapped[list["Subject"]] = relationship(
        "Subject",
        back_populates="school_class",
        lazy="selectin",
        order_by="Subject.display_order",
    )

    def __repr__(self) -> str:
        return f"<SchoolClass(id={self.id}, name={self.name}, section={self.section})>"


class Subject(Base, IDMixin, TimestampMixin):
    """Catalog subject with its mark configuration."""

    __tablename__ = "subjects"

    class_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("school_classes.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Mark configuration
    theory_full_marks: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), default=Decimal("100"), nullable=False)
    practical_full_marks: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), default=Decimal("0"), nullable=False)
    mcq_full_marks: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), default=Decimal("0"), nullable=False)
    pass_marks: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), default=Decimal("33"), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    school_class: Mapped["SchoolClass | None"] = relationship(
        "SchoolClass",
        back_populates="catalog_subjects",
    )

    def __repr__(self) -> str:
        return f"<Subject(id={self.id}, name={self.name}, class_id={self.class_id})>"
