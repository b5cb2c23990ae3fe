"""Result publication for exam cohorts.

A cohort (class, exam type, exam year) is either draft or published.
Publishing ranks every record by percentage, stamps pass/fail and publish
metadata, then asks the notifier to tell each student. Re-publishing simply
recomputes everything.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from school_results.core.config import settings
from school_results.core.exceptions import NotFoundError
from school_results.models.mark import ExamType, Mark, ResultStatus
from school_results.schemas.mark import PublishFailure, PublishResult, UnpublishResult
from school_results.services.grading import aggregate
from school_results.services.mark_store import MarkStore
from school_results.services.notification import InAppNotifier, ResultNotifier

logger = logging.getLogger(__name__)

RESULT_NOTIFICATION_TYPE = "result"


def rank_by_percentage(marks: list[Mark]) -> list[Mark]:
    """Order marks best first.

    Equal percentages keep their incoming order and still receive distinct,
    consecutive positions.
    """
    return sorted(marks, key=lambda m: m.percentage or 0, reverse=True)


class ResultPublicationService:
    """Publishes and withdraws cohort results."""

    def __init__(self, db: Session, notifier: ResultNotifier | None = None):
        self.db = db
        self.store = MarkStore(db)
        self.notifier = notifier if notifier is not None else InAppNotifier(db)

    def publish(
        self,
        class_id: int,
        exam_type: ExamType,
        exam_year: int,
    ) -> PublishResult:
        """Rank and publish every record of a cohort."""
        marks = self.store.find_by_class_exam(class_id, exam_type, exam_year)
        if not marks:
            raise NotFoundError(
                "Marks",
                message="No marks found. Enter and save marks first.",
            )

        published_at = datetime.now(timezone.utc)
        published: list[Mark] = []
        failures: list[PublishFailure] = []

        for position, mark in enumerate(rank_by_percentage(marks), start=1):
            mark_id, student_id = mark.id, mark.student_id
            try:
                with self.db.begin_nested():
                    outcome = aggregate(mark.subjects or [])
                    mark.position = position
                    mark.result = ResultStatus.FAIL if outcome.has_failed else ResultStatus.PASS
                    mark.is_published = True
                    mark.published_at = published_at
                    self.db.flush()
                published.append(mark)
            except Exception as e:
                logger.error(f"[PUBLISH] Could not publish mark {mark_id}: {e}")
                failures.append(
                    PublishFailure(mark_id=mark_id, student_id=student_id, message=str(e))
                )

        notified_count = 0
        if settings.RESULT_NOTIFICATIONS_ENABLED:
            for mark in published:
                if self._notify(mark, exam_type, exam_year):
                    notified_count += 1

        logger.info(
            f"[PUBLISH] class_id={class_id} exam={exam_type.value}/{exam_year}: "
            f"{len(published)} published, {len(failures)} failed, {notified_count} notified"
        )

        message = f"Results published for {len(published)} students"
        if failures:
            message += f" ({len(failures)} could not be published)"

        return PublishResult(
            published_count=len(published),
            failed_count=len(failures),
            notified_count=notified_count,
            failures=failures,
            message=message,
        )

    def unpublish(
        self,
        class_id: int,
        exam_type: ExamType,
        exam_year: int,
    ) -> UnpublishResult:
        """Return a cohort to draft: clear positions, results and publish stamps."""
        count = self.store.reset_publication(class_id, exam_type, exam_year)
        logger.info(f"[UNPUBLISH] class_id={class_id} exam={exam_type.value}/{exam_year}: {count} records")
        return UnpublishResult(count=count, message=f"Unpublished {count} records")

    def _notify(self, mark: Mark, exam_type: ExamType, exam_year: int) -> bool:
        """Best-effort notification; never raises."""
        student = mark.student
        if student is None or student.user_id is None:
            return False
        try:
            self.notifier.send(
                recipient_user_id=student.user_id,
                notification_type=RESULT_NOTIFICATION_TYPE,
                title="Result Published!",
                message=(
                    f"Your {exam_type.label} {exam_year} result is now available. "
                    f"GPA: {mark.gpa}, Grade: {mark.grade}"
                ),
                link=settings.RESULT_NOTIFICATION_LINK,
                data={"mark_id": mark.id, "exam_type": exam_type.value, "exam_year": exam_year},
            )
        except Exception:
            logger.warning(
                f"[PUBLISH] Notification for student {mark.student_id} failed",
                exc_info=True,
            )
            return False
        return True
