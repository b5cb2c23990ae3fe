"""Mark schemas."""

import math
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import Field, field_validator

from school_results.models.mark import ExamType, ResultStatus
from school_results.schemas.common import BaseSchema


# ==========================================
# Subject Scores
# ==========================================

class SubjectScoreInput(BaseSchema):
    """Raw marks for one subject as entered by a teacher.

    Derived fields (totals, grade, grade point) are not accepted here; any
    supplied by the caller are dropped and recomputed.
    """

    subject_name: str = ""
    subject_code: str = ""
    theory_full_marks: float = 100
    theory_obtained: float = 0
    practical_full_marks: float = 0
    practical_obtained: float = 0
    mcq_full_marks: float = 0
    mcq_obtained: float = 0
    is_absent: bool = False
    remarks: str = ""

    @field_validator(
        "theory_full_marks",
        "theory_obtained",
        "practical_full_marks",
        "practical_obtained",
        "mcq_full_marks",
        "mcq_obtained",
        mode="before",
    )
    @classmethod
    def coerce_marks(cls, v: Any) -> float:
        """Non-numeric, negative or non-finite marks count as zero."""
        if isinstance(v, bool):
            return float(v)
        try:
            number = float(v)
        except (TypeError, ValueError):
            return 0.0
        if math.isnan(number) or math.isinf(number) or number < 0:
            return 0.0
        return number

    @field_validator("subject_name", "subject_code", "remarks", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("is_absent", mode="before")
    @classmethod
    def coerce_absent(cls, v: Any) -> Any:
        return False if v is None or v == "" else v


class SubjectScore(SubjectScoreInput):
    """Subject marks with derived fields filled."""

    total_full_marks: float
    total_obtained: float
    grade: str
    grade_point: float


class MarkAggregate(BaseSchema):
    """Record-level result of aggregating a student's subject scores."""

    subjects: list[SubjectScore]
    total_obtained: Decimal
    total_full_marks: Decimal
    percentage: Decimal
    gpa: Decimal
    grade: str
    has_failed: bool


# ==========================================
# Mark Records
# ==========================================

class MarkCreate(BaseSchema):
    """Single student mark submission.

    Key fields are optional at the schema level so that the service can
    report every missing one in a single validation error.
    """

    student_id: int | None = None
    class_id: int | None = None
    exam_type: ExamType | None = None
    exam_year: int | None = None
    subjects: list[SubjectScoreInput] = []


class MarkResponse(BaseSchema):
    """Mark record response schema."""

    id: int
    student_id: int
    student_name: str
    roll_number: str | None
    class_id: int
    exam_type: ExamType
    exam_year: int
    subjects: list[SubjectScore]
    total_obtained: Decimal
    total_full_marks: Decimal
    percentage: Decimal
    gpa: Decimal
    grade: str
    position: int
    result: ResultStatus
    is_published: bool
    published_at: datetime | None
    created_by: int | None
    updated_by: int | None
    created_at: datetime
    updated_at: datetime


class CohortKey(BaseSchema):
    """Identifies one cohort: a class sitting one exam in one year."""

    class_id: int
    exam_type: ExamType
    exam_year: int = Field(..., ge=1900, le=3000)


# ==========================================
# Bulk Operations
# ==========================================

class BulkMarkEntry(BaseSchema):
    """One student's row in a bulk submission.

    ``subjects`` is kept loosely typed so that one malformed row is reported
    against its student instead of rejecting the whole batch.
    """

    student_id: int | None = None
    subjects: list[Any] = []


class BulkMarkCreate(CohortKey):
    """Bulk mark submission for a whole class."""

    entries: list[BulkMarkEntry]


class BulkEntryError(BaseSchema):
    """Failure of a single entry in a bulk submission."""

    student_id: int
    message: str


class BulkMarkResponse(BaseSchema):
    """Response for bulk mark operations."""

    saved_count: int
    failed_count: int
    errors: list[BulkEntryError] = []
    message: str


# ==========================================
# Publication
# ==========================================

class PublishFailure(BaseSchema):
    """A record that could not be published."""

    mark_id: int
    student_id: int
    message: str


class PublishResult(BaseSchema):
    """Outcome of publishing a cohort."""

    published_count: int
    failed_count: int
    notified_count: int
    failures: list[PublishFailure] = []
    message: str


class UnpublishResult(BaseSchema):
    """Outcome of withdrawing a cohort's results."""

    count: int
    message: str


# ==========================================
# Cohort Summary
# ==========================================

class StudentHighlight(BaseSchema):
    """Top or bottom performer of a cohort."""

    student_id: int
    student_name: str
    percentage: Decimal
    gpa: Decimal
    grade: str


class CohortSummary(BaseSchema):
    """Summary of a cohort's marks."""

    class_id: int
    exam_type: ExamType
    exam_year: int
    total: int
    published: int
    not_published: int
    passed: int
    failed: int
    pass_rate: Decimal
    average_percentage: Decimal
    average_gpa: Decimal
    highest: StudentHighlight
    lowest: StudentHighlight
    grade_distribution: dict[str, int]


# ==========================================
# Excel Upload
# ==========================================

class MarkUploadError(BaseSchema):
    """Error detail for mark sheet upload."""

    row: int
    student_id: int | None = None
    column: str | None = None
    message: str


class MarkUploadResult(BaseSchema):
    """Result of mark sheet upload processing."""

    total_rows: int
    saved_count: int
    failed_rows: int
    skipped_rows: int = 0
    errors: list[MarkUploadError] = []
    message: str
