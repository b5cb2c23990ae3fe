"""Persistence boundary for mark records.

Uniqueness of (student, class, exam type, exam year) is enforced by the
``uq_mark_student_class_exam`` constraint, not by locking in the process.
A create that loses a race for the same key is retried as an update, so
concurrent upserts resolve last-writer-wins with a full subject replace.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any, NamedTuple

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from school_results.core.exceptions import ConflictError, NotFoundError
from school_results.models.mark import ExamType, Mark, ResultStatus
from school_results.schemas.mark import MarkAggregate, SubjectScoreInput
from school_results.services.grading import aggregate

logger = logging.getLogger(__name__)


class MarkKey(NamedTuple):
    """Natural key of a mark record."""

    student_id: int
    class_id: int
    exam_type: ExamType
    exam_year: int


class MarkStore:
    """Keyed storage for ``Mark`` records."""

    def __init__(self, db: Session):
        self.db = db

    def find_one(self, key: MarkKey, lock: bool = False) -> Mark | None:
        """Get the record for a key, if any."""
        query = select(Mark).where(
            Mark.student_id == key.student_id,
            Mark.class_id == key.class_id,
            Mark.exam_type == key.exam_type,
            Mark.exam_year == key.exam_year,
        )
        if lock:
            query = query.with_for_update()
        result = self.db.execute(query)
        return result.scalar_one_or_none()

    def get(self, mark_id: int) -> Mark:
        """Get a record by id."""
        mark = self.db.get(Mark, mark_id)
        if not mark:
            raise NotFoundError("Mark", str(mark_id))
        return mark

    def create(
        self,
        key: MarkKey,
        subjects: Iterable[SubjectScoreInput | Mapping[str, Any]],
        actor_id: int | None,
    ) -> Mark:
        """Insert a new record; raises ConflictError if the key is taken."""
        mark = Mark(
            student_id=key.student_id,
            class_id=key.class_id,
            exam_type=key.exam_type,
            exam_year=key.exam_year,
            created_by=actor_id,
        )
        self._apply_aggregate(mark, aggregate(subjects))
        try:
            with self.db.begin_nested():
                self.db.add(mark)
                self.db.flush()
        except IntegrityError as e:
            raise ConflictError(
                "A mark record already exists for this student and exam",
                details=key._asdict(),
            ) from e
        return mark

    def upsert(
        self,
        key: MarkKey,
        subjects: Iterable[SubjectScoreInput | Mapping[str, Any]],
        actor_id: int | None,
    ) -> Mark:
        """Create the record for a key, or replace its subjects."""
        subjects = list(subjects)
        mark = self.find_one(key, lock=True)
        if mark is None:
            try:
                return self.create(key, subjects, actor_id)
            except ConflictError:
                # Another writer created the key between our read and insert
                mark = self.find_one(key, lock=True)
                if mark is None:
                    raise
                logger.info(f"Mark for {key} created concurrently, updating instead")

        self._apply_aggregate(mark, aggregate(subjects))
        mark.updated_by = actor_id
        self.db.flush()
        return mark

    def find_by_class_exam(
        self,
        class_id: int,
        exam_type: ExamType,
        exam_year: int,
    ) -> list[Mark]:
        """All records of a cohort, in insertion order."""
        result = self.db.execute(
            select(Mark)
            .where(
                Mark.class_id == class_id,
                Mark.exam_type == exam_type,
                Mark.exam_year == exam_year,
            )
            .order_by(Mark.id)
        )
        return list(result.scalars().all())

    def find_by_student(
        self,
        student_id: int,
        exam_type: ExamType | None = None,
        exam_year: int | None = None,
        published_only: bool = False,
    ) -> list[Mark]:
        """Records of one student, newest exam year first."""
        query = select(Mark).where(Mark.student_id == student_id)
        if exam_type:
            query = query.where(Mark.exam_type == exam_type)
        if exam_year:
            query = query.where(Mark.exam_year == exam_year)
        if published_only:
            query = query.where(Mark.is_published.is_(True))

        result = self.db.execute(
            query.order_by(Mark.exam_year.desc(), Mark.created_at.desc(), Mark.id.desc())
        )
        return list(result.scalars().all())

    def delete(self, mark_id: int) -> bool:
        """Hard-delete a record. Returns False if it did not exist."""
        result = self.db.execute(delete(Mark).where(Mark.id == mark_id))
        self.db.flush()
        return result.rowcount > 0

    def reset_publication(
        self,
        class_id: int,
        exam_type: ExamType,
        exam_year: int,
    ) -> int:
        """Return every record of a cohort to draft in one statement."""
        result = self.db.execute(
            update(Mark)
            .where(
                Mark.class_id == class_id,
                Mark.exam_type == exam_type,
                Mark.exam_year == exam_year,
            )
            .values(
                is_published=False,
                published_at=None,
                position=0,
                result=ResultStatus.NOT_PUBLISHED,
            )
        )
        self.db.flush()
        return result.rowcount

    @staticmethod
    def _apply_aggregate(mark: Mark, result: MarkAggregate) -> None:
        """Write subjects and every derived field from one aggregation."""
        mark.subjects = [s.model_dump(mode="json") for s in result.subjects]
        mark.total_obtained = result.total_obtained
        mark.total_full_marks = result.total_full_marks
        mark.percentage = result.percentage
        mark.gpa = result.gpa
        mark.grade = result.grade
