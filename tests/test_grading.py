"""Tests for grade classification and mark aggregation."""

from decimal import Decimal

import pytest

from helpers import subject
from school_results.schemas.mark import SubjectScoreInput
from school_results.services.grading import aggregate, classify, compute_subject


@pytest.mark.parametrize(
    "percentage, grade, grade_point",
    [
        (100, "A+", 5.0),
        (80, "A+", 5.0),
        (79.99, "A", 4.0),
        (70, "A", 4.0),
        (60, "A-", 3.5),
        (50, "B", 3.0),
        (40, "C", 2.0),
        (33, "D", 1.0),
        (32.99, "F", 0.0),
        (0, "F", 0.0),
        (-5, "F", 0.0),
        (float("nan"), "F", 0.0),
    ],
)
def test_classify_bands(percentage, grade, grade_point):
    assert classify(percentage) == (grade, grade_point)


def test_classify_grade_point_never_decreases():
    points = [classify(p / 4)[1] for p in range(0, 401)]
    assert points == sorted(points)


def test_compute_subject_fills_derived_fields():
    score = compute_subject(subject("Mathematics", 72))

    assert score.total_full_marks == 100
    assert score.total_obtained == 72
    assert score.grade == "A"
    assert score.grade_point == 4.0
    assert score.subject_name == "Mathematics"


def test_compute_subject_sums_components():
    score = compute_subject({
        "subject_name": "Physics",
        "theory_full_marks": 50,
        "theory_obtained": 30,
        "practical_full_marks": 25,
        "practical_obtained": 20,
        "mcq_full_marks": 25,
        "mcq_obtained": 15,
    })

    assert score.total_full_marks == 100
    assert score.total_obtained == 65
    assert score.grade == "A-"


def test_absent_subject_scores_zero_and_fails():
    score = compute_subject(subject("English", 95, is_absent=True))

    assert score.total_obtained == 0
    assert score.grade == "F"
    assert score.grade_point == 0.0
    # Entered marks are kept as typed
    assert score.theory_obtained == 95


def test_obtained_above_full_marks_is_clamped():
    score = compute_subject(subject("Biology", 120))

    assert score.total_obtained == 100
    assert score.grade == "A+"


def test_unconfigured_full_marks_default_to_hundred():
    score = compute_subject(subject("Art", 45, full=0))

    assert score.total_full_marks == 100
    assert score.grade == "C"


@pytest.mark.parametrize("raw, expected", [("abc", 0), (-5, 0), ("45", 45), (None, 0), ("", 0), (float("inf"), 0)])
def test_marks_are_coerced(raw, expected):
    entry = SubjectScoreInput.model_validate({"subject_name": "History", "theory_obtained": raw})
    assert entry.theory_obtained == expected


def test_caller_supplied_derived_fields_are_ignored():
    score = compute_subject(subject("Chemistry", 30, grade="A+", grade_point=5, total_obtained=99))

    assert score.grade == "F"
    assert score.total_obtained == 30


def test_aggregate_two_subjects():
    result = aggregate([subject("Mathematics", 80), subject("English", 70)])

    assert result.total_obtained == Decimal("150")
    assert result.total_full_marks == Decimal("200")
    assert result.percentage == Decimal("75.00")
    assert [s.grade for s in result.subjects] == ["A+", "A"]
    assert result.gpa == Decimal("4.50")
    assert result.grade == "A"
    assert result.has_failed is False


def test_overall_grade_follows_percentage_not_subject_grades():
    result = aggregate([subject("Mathematics", 90), subject("English", 20)])

    assert [s.grade for s in result.subjects] == ["A+", "F"]
    assert result.percentage == Decimal("55.00")
    assert result.grade == "B"
    assert result.gpa == Decimal("2.50")
    assert result.has_failed is True


def test_absent_subject_marks_record_failed():
    result = aggregate([subject("Mathematics", 90), subject("English", 0, is_absent=True)])

    assert result.has_failed is True
    assert result.total_full_marks == Decimal("200")


def test_aggregate_preserves_subject_order():
    names = ["Science", "Bangla", "Mathematics"]
    result = aggregate([subject(n, 50) for n in names])

    assert [s.subject_name for s in result.subjects] == names


def test_aggregate_is_idempotent():
    first = aggregate([subject("Mathematics", 66.5), subject("English", 120), subject("Art", 10, is_absent=True)])
    second = aggregate(first.subjects)

    assert second == first


def test_aggregate_of_no_subjects():
    result = aggregate([])

    assert result.subjects == []
    assert result.total_full_marks == 0
    assert result.percentage == Decimal("0.00")
    assert result.gpa == Decimal("0.00")
    assert result.has_failed is False


def test_percentage_rounds_half_up():
    # 2 / 3 * 100 = 66.666...
    result = aggregate([subject("Mathematics", 2, full=3)])

    assert result.percentage == Decimal("66.67")


def test_eighty_five_and_sixty_five_follow_the_table():
    # 65% sits in the A- band, so the record still lands on A but the GPA is 4.25
    result = aggregate([subject("Mathematics", 85), subject("English", 65)])

    assert result.total_obtained == Decimal("150")
    assert result.percentage == Decimal("75.00")
    assert [s.grade for s in result.subjects] == ["A+", "A-"]
    assert result.grade == "A"
    assert result.gpa == Decimal("4.25")


def test_totals_are_rounded_after_summing():
    result = aggregate([subject("Mathematics", 10.005), subject("English", 10.005)])

    assert result.total_obtained == Decimal("20.01")
    assert result.percentage == Decimal("10.01")
