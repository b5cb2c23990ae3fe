"""Tests for mark entry, bulk submission and queries."""

from decimal import Decimal

import pytest

from helpers import subject
from school_results.core.exceptions import NotFoundError, ValidationError
from school_results.models.mark import ExamType, ResultStatus
from school_results.schemas.mark import BulkMarkEntry, MarkCreate
from school_results.services.mark import MarkService
from school_results.services.publication import ResultPublicationService

EXAM = ExamType.HALF_YEARLY
YEAR = 2025


@pytest.fixture
def school_class(make_class):
    return make_class("Class 9", "B")


@pytest.fixture
def students(school_class, make_student):
    return [
        make_student(school_class, "Anika", roll_number="1"),
        make_student(school_class, "Badal", roll_number="2"),
        make_student(school_class, "Chaity", roll_number="3"),
    ]


def test_save_mark_returns_computed_record(db, school_class, students, make_user):
    teacher = make_user("Teacher")
    service = MarkService(db)

    mark = service.save_mark(
        MarkCreate(
            student_id=students[0].id,
            class_id=school_class.id,
            exam_type=EXAM,
            exam_year=YEAR,
            subjects=[subject("Mathematics", 80), subject("English", 70)],
        ),
        teacher.id,
    )

    assert mark.student_name == "Anika"
    assert mark.roll_number == "1"
    assert mark.percentage == Decimal("75.00")
    assert mark.gpa == Decimal("4.50")
    assert mark.grade == "A"
    assert mark.result == ResultStatus.NOT_PUBLISHED
    assert mark.created_by == teacher.id


def test_save_mark_reports_all_missing_keys(db):
    with pytest.raises(ValidationError) as exc_info:
        MarkService(db).save_mark(MarkCreate(exam_type=EXAM), None)

    assert exc_info.value.details["missing_fields"] == ["student_id", "class_id", "exam_year"]


def test_save_mark_unknown_student(db, school_class):
    request = MarkCreate(student_id=999, class_id=school_class.id, exam_type=EXAM, exam_year=YEAR)

    with pytest.raises(NotFoundError):
        MarkService(db).save_mark(request, None)


def test_batch_isolates_failing_entry(db, school_class, students):
    service = MarkService(db)
    entries = [
        BulkMarkEntry(student_id=students[0].id, subjects=[subject("Mathematics", 90)]),
        BulkMarkEntry(student_id=9999, subjects=[subject("Mathematics", 50)]),
        BulkMarkEntry(student_id=students[1].id, subjects=["not a subject"]),
        BulkMarkEntry(student_id=students[2].id, subjects=[subject("Mathematics", 40)]),
    ]

    result = service.submit_batch(school_class.id, EXAM, YEAR, entries, None)

    assert result.saved_count == 2
    assert result.failed_count == 2
    assert {e.student_id for e in result.errors} == {9999, students[1].id}
    assert result.message == "Marks saved for 2 students (2 errors)"

    saved = service.list_class_marks(school_class.id, EXAM, YEAR)
    assert [m.student_id for m in saved] == [students[0].id, students[2].id]


def test_batch_skips_entries_without_student(db, school_class, students):
    entries = [
        BulkMarkEntry(student_id=None, subjects=[subject("Mathematics", 90)]),
        BulkMarkEntry(student_id=0, subjects=[subject("Mathematics", 90)]),
        BulkMarkEntry(student_id=students[0].id, subjects=[subject("Mathematics", 90)]),
    ]

    result = MarkService(db).submit_batch(school_class.id, EXAM, YEAR, entries, None)

    assert result.saved_count == 1
    assert result.failed_count == 0
    assert result.message == "Marks saved for 1 student"


def test_batch_for_unknown_class_fails_whole_operation(db):
    with pytest.raises(NotFoundError):
        MarkService(db).submit_batch(4040, EXAM, YEAR, [], None)


def test_batch_resubmission_updates_in_place(db, school_class, students):
    service = MarkService(db)
    entry = BulkMarkEntry(student_id=students[0].id, subjects=[subject("Mathematics", 90)])
    service.submit_batch(school_class.id, EXAM, YEAR, [entry], None)

    entry = BulkMarkEntry(student_id=students[0].id, subjects=[subject("Mathematics", 45)])
    service.submit_batch(school_class.id, EXAM, YEAR, [entry], None)

    marks = service.list_class_marks(school_class.id, EXAM, YEAR)
    assert len(marks) == 1
    assert marks[0].grade == "C"


def test_student_marks_hide_drafts_unless_requested(db, school_class, students):
    service = MarkService(db)
    entry = BulkMarkEntry(student_id=students[0].id, subjects=[subject("Mathematics", 90)])
    service.submit_batch(school_class.id, EXAM, YEAR, [entry], None)

    assert service.list_student_marks(students[0].id) == []
    assert len(service.list_student_marks(students[0].id, include_unpublished=True)) == 1


def test_result_sheet_in_merit_order(db, school_class, students):
    service = MarkService(db)
    entries = [
        BulkMarkEntry(student_id=students[0].id, subjects=[subject("Mathematics", 55)]),
        BulkMarkEntry(student_id=students[1].id, subjects=[subject("Mathematics", 95)]),
        BulkMarkEntry(student_id=students[2].id, subjects=[subject("Mathematics", 75)]),
    ]
    service.submit_batch(school_class.id, EXAM, YEAR, entries, None)
    ResultPublicationService(db).publish(school_class.id, EXAM, YEAR)

    sheet = service.get_result_sheet(school_class.id, EXAM, YEAR)
    assert [m.student_name for m in sheet] == ["Badal", "Chaity", "Anika"]
    assert [m.position for m in sheet] == [1, 2, 3]

    own = service.get_result_sheet(school_class.id, EXAM, YEAR, student_id=students[2].id)
    assert [m.student_id for m in own] == [students[2].id]


def test_cohort_summary(db, school_class, students):
    service = MarkService(db)
    entries = [
        BulkMarkEntry(student_id=students[0].id, subjects=[subject("Mathematics", 90)]),
        BulkMarkEntry(student_id=students[1].id, subjects=[subject("Mathematics", 20)]),
        BulkMarkEntry(student_id=students[2].id, subjects=[subject("Mathematics", 70)]),
    ]
    service.submit_batch(school_class.id, EXAM, YEAR, entries, None)
    ResultPublicationService(db).publish(school_class.id, EXAM, YEAR)

    summary = service.get_cohort_summary(school_class.id, EXAM, YEAR)

    assert summary.total == 3
    assert summary.published == 3
    assert summary.passed == 2
    assert summary.failed == 1
    assert summary.pass_rate == Decimal("66.7")
    assert summary.average_percentage == Decimal("60.00")
    assert summary.highest.student_name == "Anika"
    assert summary.lowest.student_name == "Badal"
    assert summary.grade_distribution == {"A+": 1, "F": 1, "A": 1}


def test_cohort_summary_without_marks(db, school_class):
    assert MarkService(db).get_cohort_summary(school_class.id, EXAM, YEAR) is None


def test_entry_grid_includes_saved_marks(db, school_class, students, make_subject):
    make_subject(school_class, "Mathematics", "math")
    service = MarkService(db)
    entry = BulkMarkEntry(student_id=students[1].id, subjects=[subject("Mathematics", 60)])
    service.submit_batch(school_class.id, EXAM, YEAR, [entry], None)

    grid = service.get_entry_grid(school_class.id, EXAM, YEAR)

    assert grid.total_students == 3
    assert [row.student.name for row in grid.students] == ["Anika", "Badal", "Chaity"]
    assert [row.existing_mark is not None for row in grid.students] == [False, True, False]
    assert grid.subjects[0].code == "MATH"


def test_delete_missing_mark(db):
    with pytest.raises(NotFoundError):
        MarkService(db).delete_mark(12345)
