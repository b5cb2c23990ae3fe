"""Grade calculation for exam marks.

Three layers, each pure:

* ``classify`` maps a percentage to a letter grade and grade point.
* ``compute_subject`` fills the derived fields of one subject's marks.
* ``aggregate`` rolls a student's subjects up into record-level totals.

The record grade is taken from the aggregate percentage, not from the
subject grades. A student with an A+ in one subject and an F in another can
still end up with an overall B, and ``has_failed`` will be true.
"""

import logging
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from school_results.schemas.mark import MarkAggregate, SubjectScore, SubjectScoreInput

logger = logging.getLogger(__name__)

# (minimum percentage, grade, grade point), highest band first
GRADE_TABLE: tuple[tuple[float, str, float], ...] = (
    (80, "A+", 5.0),
    (70, "A", 4.0),
    (60, "A-", 3.5),
    (50, "B", 3.0),
    (40, "C", 2.0),
    (33, "D", 1.0),
)
FAIL_GRADE = "F"
FAIL_GRADE_POINT = 0.0

# Full marks used when a subject has no component marks configured
DEFAULT_FULL_MARKS = 100.0

TWO_PLACES = Decimal("0.01")


def classify(percentage: float) -> tuple[str, float]:
    """Return ``(grade, grade_point)`` for a percentage.

    Defined for every input; anything below the lowest band (including
    negatives and NaN) is a fail.
    """
    for minimum, grade, grade_point in GRADE_TABLE:
        if percentage >= minimum:
            return grade, grade_point
    return FAIL_GRADE, FAIL_GRADE_POINT


def _two_places(value: float | Decimal) -> Decimal:
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def compute_subject(raw: SubjectScoreInput | Mapping[str, Any]) -> SubjectScore:
    """Return a copy of ``raw`` with totals, grade and grade point filled."""
    if not isinstance(raw, SubjectScoreInput):
        raw = SubjectScoreInput.model_validate(raw)

    full = raw.theory_full_marks + raw.practical_full_marks + raw.mcq_full_marks
    if full == 0:
        full = DEFAULT_FULL_MARKS

    if raw.is_absent:
        obtained = 0.0
        grade, grade_point = FAIL_GRADE, FAIL_GRADE_POINT
    else:
        obtained = raw.theory_obtained + raw.practical_obtained + raw.mcq_obtained
        if obtained > full:
            logger.warning(
                f"Obtained marks {obtained} exceed full marks {full} for "
                f"subject '{raw.subject_name or raw.subject_code}', clamping"
            )
            obtained = full
        percentage = (obtained / full) * 100 if full > 0 else 0.0
        grade, grade_point = classify(percentage)

    # A SubjectScore passed back in carries stale derived fields; keep only raw input
    return SubjectScore(
        **raw.model_dump(include=set(SubjectScoreInput.model_fields)),
        total_full_marks=full,
        total_obtained=obtained,
        grade=grade,
        grade_point=grade_point,
    )


def aggregate(subjects: Iterable[SubjectScoreInput | Mapping[str, Any]]) -> MarkAggregate:
    """Compute record-level totals, percentage, GPA and grade.

    Subject order is preserved. GPA is the unweighted mean of subject grade
    points; absent subjects contribute zero.
    """
    computed = [compute_subject(subject) for subject in subjects]

    # Totals are rounded once, after summing
    raw_obtained = sum((Decimal(str(s.total_obtained)) for s in computed), Decimal("0"))
    raw_full_marks = sum((Decimal(str(s.total_full_marks)) for s in computed), Decimal("0"))

    if raw_full_marks > 0:
        percentage = _two_places(raw_obtained / raw_full_marks * 100)
    else:
        percentage = Decimal("0.00")

    if computed:
        gp_sum = sum((Decimal(str(s.grade_point)) for s in computed), Decimal("0"))
        gpa = _two_places(gp_sum / len(computed))
    else:
        gpa = Decimal("0.00")

    grade, _ = classify(float(percentage))

    return MarkAggregate(
        subjects=computed,
        total_obtained=_two_places(raw_obtained),
        total_full_marks=_two_places(raw_full_marks),
        percentage=percentage,
        gpa=gpa,
        grade=grade,
        has_failed=any(s.grade == FAIL_GRADE for s in computed),
    )
