"""Mark service for entry, bulk submission and queries."""

import logging
from collections import Counter
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from school_results.core.exceptions import NotFoundError, ValidationError
from school_results.models.mark import ExamType, Mark, ResultStatus
from school_results.schemas.mark import (
    BulkEntryError,
    BulkMarkEntry,
    BulkMarkResponse,
    CohortSummary,
    MarkCreate,
    MarkResponse,
    StudentHighlight,
    SubjectScoreInput,
)
from school_results.schemas.roster import EntryGrid, EntryGridRow
from school_results.services.mark_store import MarkKey, MarkStore
from school_results.services.roster import RosterService

logger = logging.getLogger(__name__)


class MarkService:
    """Mark record management service."""

    def __init__(self, db: Session):
        self.db = db
        self.store = MarkStore(db)
        self.roster = RosterService(db)

    def _mark_to_response(self, mark: Mark) -> MarkResponse:
        """Convert Mark to response schema."""
        return MarkResponse(
            id=mark.id,
            student_id=mark.student_id,
            student_name=mark.student.student_name if mark.student else "",
            roll_number=mark.student.roll_number if mark.student else None,
            class_id=mark.class_id,
            exam_type=mark.exam_type,
            exam_year=mark.exam_year,
            subjects=mark.subjects or [],
            total_obtained=mark.total_obtained,
            total_full_marks=mark.total_full_marks,
            percentage=mark.percentage,
            gpa=mark.gpa,
            grade=mark.grade,
            position=mark.position,
            result=mark.result,
            is_published=mark.is_published,
            published_at=mark.published_at,
            created_by=mark.created_by,
            updated_by=mark.updated_by,
            created_at=mark.created_at,
            updated_at=mark.updated_at,
        )

    # ==========================================
    # Entry
    # ==========================================

    def save_mark(self, request: MarkCreate, actor_id: int | None) -> MarkResponse:
        """Create or update one student's marks for an exam."""
        missing = [
            field
            for field in ("student_id", "class_id", "exam_type", "exam_year")
            if getattr(request, field) in (None, "", 0)
        ]
        if missing:
            raise ValidationError(
                f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required",
                details={"missing_fields": missing},
            )

        self.roster.get_student(request.student_id)
        self.roster.get_class(request.class_id)

        key = MarkKey(request.student_id, request.class_id, request.exam_type, request.exam_year)
        mark = self.store.upsert(key, request.subjects, actor_id)
        self.db.refresh(mark)
        return self._mark_to_response(mark)

    def submit_batch(
        self,
        class_id: int,
        exam_type: ExamType,
        exam_year: int,
        entries: Sequence[BulkMarkEntry],
        actor_id: int | None,
    ) -> BulkMarkResponse:
        """Upsert marks for many students of one class and exam.

        Each entry is saved in its own savepoint. A failing entry is reported
        in ``errors`` and never undoes or blocks the others. Entries without a
        student id are skipped silently.
        """
        self.roster.get_class(class_id)

        saved_count = 0
        errors: list[BulkEntryError] = []

        for entry in entries:
            if not entry.student_id:
                continue
            try:
                with self.db.begin_nested():
                    subjects = [SubjectScoreInput.model_validate(s) for s in entry.subjects]
                    self.roster.get_student(entry.student_id)
                    key = MarkKey(entry.student_id, class_id, exam_type, exam_year)
                    self.store.upsert(key, subjects, actor_id)
                saved_count += 1
            except Exception as e:
                logger.warning(f"[BULK MARKS] Entry for student {entry.student_id} failed: {e}")
                errors.append(BulkEntryError(student_id=entry.student_id, message=str(e)))

        logger.info(
            f"[BULK MARKS] class_id={class_id} exam={exam_type.value}/{exam_year}: "
            f"{saved_count} saved, {len(errors)} failed"
        )

        message = f"Marks saved for {saved_count} student{'s' if saved_count != 1 else ''}"
        if errors:
            message += f" ({len(errors)} errors)"

        return BulkMarkResponse(
            saved_count=saved_count,
            failed_count=len(errors),
            errors=errors,
            message=message,
        )

    # ==========================================
    # Queries
    # ==========================================

    def get_mark(self, mark_id: int) -> MarkResponse:
        """Get a mark record by ID."""
        return self._mark_to_response(self.store.get(mark_id))

    def delete_mark(self, mark_id: int) -> None:
        """Permanently delete a mark record."""
        if not self.store.delete(mark_id):
            raise NotFoundError("Mark", str(mark_id))

    def list_class_marks(
        self,
        class_id: int,
        exam_type: ExamType | None = None,
        exam_year: int | None = None,
    ) -> list[MarkResponse]:
        """Marks of a class, best percentage first."""
        query = select(Mark).where(Mark.class_id == class_id)
        if exam_type:
            query = query.where(Mark.exam_type == exam_type)
        if exam_year:
            query = query.where(Mark.exam_year == exam_year)

        result = self.db.execute(query.order_by(Mark.percentage.desc(), Mark.id))
        return [self._mark_to_response(m) for m in result.scalars().all()]

    def list_student_marks(
        self,
        student_id: int,
        exam_type: ExamType | None = None,
        exam_year: int | None = None,
        include_unpublished: bool = False,
    ) -> list[MarkResponse]:
        """Marks of one student, newest first."""
        marks = self.store.find_by_student(
            student_id,
            exam_type=exam_type,
            exam_year=exam_year,
            published_only=not include_unpublished,
        )
        return [self._mark_to_response(m) for m in marks]

    def get_result_sheet(
        self,
        class_id: int,
        exam_type: ExamType,
        exam_year: int,
        student_id: int | None = None,
        include_unpublished: bool = False,
    ) -> list[MarkResponse]:
        """Result sheets of a cohort in merit order."""
        query = select(Mark).where(
            Mark.class_id == class_id,
            Mark.exam_type == exam_type,
            Mark.exam_year == exam_year,
        )
        if student_id:
            query = query.where(Mark.student_id == student_id)
        if not include_unpublished:
            query = query.where(Mark.is_published.is_(True))

        result = self.db.execute(
            query.order_by(Mark.position, Mark.percentage.desc(), Mark.id)
        )
        return [self._mark_to_response(m) for m in result.scalars().all()]

    def get_cohort_summary(
        self,
        class_id: int,
        exam_type: ExamType,
        exam_year: int,
    ) -> CohortSummary | None:
        """Counts, averages and extremes of a cohort; None if it has no marks."""
        marks = self.store.find_by_class_exam(class_id, exam_type, exam_year)
        if not marks:
            return None

        total = len(marks)
        published = sum(1 for m in marks if m.is_published)
        passed = sum(1 for m in marks if m.result == ResultStatus.PASS)
        failed = sum(1 for m in marks if m.result == ResultStatus.FAIL)

        avg_pct = sum((Decimal(m.percentage) for m in marks), Decimal("0")) / total
        avg_gpa = sum((Decimal(m.gpa) for m in marks), Decimal("0")) / total
        pass_rate = Decimal(passed * 100) / total

        ranked = sorted(marks, key=lambda m: m.percentage or 0, reverse=True)

        return CohortSummary(
            class_id=class_id,
            exam_type=exam_type,
            exam_year=exam_year,
            total=total,
            published=published,
            not_published=total - published,
            passed=passed,
            failed=failed,
            pass_rate=pass_rate.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP),
            average_percentage=avg_pct.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
            average_gpa=avg_gpa.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
            highest=self._highlight(ranked[0]),
            lowest=self._highlight(ranked[-1]),
            grade_distribution=dict(Counter(m.grade for m in marks if m.grade)),
        )

    def _highlight(self, mark: Mark) -> StudentHighlight:
        return StudentHighlight(
            student_id=mark.student_id,
            student_name=mark.student.student_name if mark.student else "N/A",
            percentage=mark.percentage,
            gpa=mark.gpa,
            grade=mark.grade,
        )

    # ==========================================
    # Entry Grid
    # ==========================================

    def get_entry_grid(
        self,
        class_id: int,
        exam_type: ExamType | None = None,
        exam_year: int | None = None,
    ) -> EntryGrid:
        """Roster of a class with any marks already saved for the exam."""
        roster = self.roster.get_cohort_roster(class_id)

        existing: dict[int, Mark] = {}
        if exam_type and exam_year:
            existing = {
                m.student_id: m
                for m in self.store.find_by_class_exam(class_id, exam_type, exam_year)
            }

        rows = [
            EntryGridRow(
                student=student,
                existing_mark=(
                    self._mark_to_response(existing[student.id])
                    if student.id in existing
                    else None
                ),
            )
            for student in roster.students
        ]

        return EntryGrid(
            class_id=roster.class_id,
            class_name=roster.class_name,
            section=roster.section,
            exam_type=exam_type,
            exam_year=exam_year,
            subjects=roster.subjects,
            students=rows,
            total_students=len(rows),
        )
