"""Roster schemas used to build mark entry grids."""

from typing import Annotated, Literal

from pydantic import Field

from school_results.models.mark import ExamType
from school_results.schemas.common import BaseSchema
from school_results.schemas.mark import MarkResponse


# ==========================================
# Subjects
# ==========================================

class _SubjectConfig(BaseSchema):
    """Mark configuration shared by every subject source."""

    name: str
    code: str
    theory_full_marks: float = 100
    practical_full_marks: float = 0
    mcq_full_marks: float = 0
    pass_marks: float = 33

    @property
    def label(self) -> str:
        """Short name used for spreadsheet columns."""
        return self.code or self.name


class CatalogSubject(_SubjectConfig):
    """Subject taken from the subject catalog."""

    source: Literal["catalog"] = "catalog"
    subject_id: int


class ClassConfigSubject(_SubjectConfig):
    """Subject taken from the class's embedded subject list."""

    source: Literal["class_config"] = "class_config"
    index: int


RosterSubject = Annotated[
    CatalogSubject | ClassConfigSubject,
    Field(discriminator="source"),
]


# ==========================================
# Students
# ==========================================

class RosterStudent(BaseSchema):
    """Student as listed on a class roster."""

    id: int
    name: str
    roll_number: str | None
    section: str | None
    user_id: int | None


class CohortRoster(BaseSchema):
    """Students and subjects of a class."""

    class_id: int
    class_name: str
    section: str | None
    students: list[RosterStudent]
    subjects: list[RosterSubject]


# ==========================================
# Entry Grid
# ==========================================

class EntryGridRow(BaseSchema):
    """A roster student with any marks already saved for the exam."""

    student: RosterStudent
    existing_mark: MarkResponse | None = None


class EntryGrid(BaseSchema):
    """Pre-filled mark entry grid for one class and exam."""

    class_id: int
    class_name: str
    section: str | None
    exam_type: ExamType | None
    exam_year: int | None
    subjects: list[RosterSubject]
    students: list[EntryGridRow]
    total_students: int
