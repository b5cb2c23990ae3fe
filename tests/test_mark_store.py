"""Tests for keyed mark persistence."""

import logging
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from helpers import subject
from school_results.core.exceptions import ConflictError, NotFoundError
from school_results.models.mark import ExamType, Mark, ResultStatus
from school_results.services.mark_store import MarkKey, MarkStore


@pytest.fixture
def cohort(make_class, make_student, make_user):
    school_class = make_class()
    student = make_student(school_class, "Rahim", roll_number="1")
    teacher = make_user("Teacher")
    return school_class, student, teacher


def _key(school_class, student, exam_type=ExamType.FIRST_TERM, exam_year=2025):
    return MarkKey(student.id, school_class.id, exam_type, exam_year)


def _count(db) -> int:
    return db.execute(select(func.count()).select_from(Mark)).scalar_one()


def test_create_stores_derived_fields(db, cohort):
    school_class, student, teacher = cohort
    store = MarkStore(db)

    mark = store.create(_key(school_class, student), [subject("Mathematics", 80)], teacher.id)

    assert mark.id is not None
    assert mark.percentage == Decimal("80.00")
    assert mark.grade == "A+"
    assert mark.created_by == teacher.id
    assert mark.result == ResultStatus.NOT_PUBLISHED
    assert mark.is_published is False
    assert mark.subjects[0]["grade"] == "A+"


def test_create_twice_for_same_key_conflicts(db, cohort):
    school_class, student, teacher = cohort
    store = MarkStore(db)
    store.create(_key(school_class, student), [subject("Mathematics", 80)], teacher.id)

    with pytest.raises(ConflictError):
        store.create(_key(school_class, student), [subject("Mathematics", 40)], teacher.id)

    # The session stays usable and the first record is untouched
    assert _count(db) == 1
    assert store.find_one(_key(school_class, student)).percentage == Decimal("80.00")


def test_upsert_replaces_subjects(db, cohort):
    school_class, student, teacher = cohort
    store = MarkStore(db)

    first = store.upsert(_key(school_class, student), [subject("Mathematics", 80), subject("English", 70)], None)
    second = store.upsert(_key(school_class, student), [subject("Mathematics", 30)], teacher.id)

    assert second.id == first.id
    assert _count(db) == 1
    assert [s["subject_name"] for s in second.subjects] == ["Mathematics"]
    assert second.total_full_marks == Decimal("100")
    assert second.grade == "F"
    assert second.updated_by == teacher.id


def test_upsert_with_same_input_is_stable(db, cohort):
    school_class, student, _ = cohort
    store = MarkStore(db)
    subjects = [subject("Mathematics", 66), subject("English", 41)]

    first = store.upsert(_key(school_class, student), subjects, None)
    snapshot = (first.subjects, first.total_obtained, first.percentage, first.gpa, first.grade)
    second = store.upsert(_key(school_class, student), subjects, None)

    assert (second.subjects, second.total_obtained, second.percentage, second.gpa, second.grade) == snapshot


def test_upsert_keeps_exams_apart(db, cohort):
    school_class, student, _ = cohort
    store = MarkStore(db)

    store.upsert(_key(school_class, student, ExamType.FIRST_TERM), [subject("Mathematics", 80)], None)
    store.upsert(_key(school_class, student, ExamType.ANNUAL), [subject("Mathematics", 60)], None)
    store.upsert(_key(school_class, student, ExamType.ANNUAL, 2026), [subject("Mathematics", 50)], None)

    assert _count(db) == 3


def test_find_by_student_filters_published(db, cohort):
    school_class, student, _ = cohort
    store = MarkStore(db)
    draft = store.upsert(_key(school_class, student, ExamType.FIRST_TERM), [subject("Mathematics", 80)], None)
    published = store.upsert(_key(school_class, student, ExamType.ANNUAL), [subject("Mathematics", 60)], None)
    published.is_published = True
    db.flush()

    assert {m.id for m in store.find_by_student(student.id)} == {draft.id, published.id}
    assert [m.id for m in store.find_by_student(student.id, published_only=True)] == [published.id]


def test_get_missing_raises_not_found(db):
    with pytest.raises(NotFoundError):
        MarkStore(db).get(404)


def test_delete(db, cohort):
    school_class, student, _ = cohort
    store = MarkStore(db)
    mark = store.upsert(_key(school_class, student), [subject("Mathematics", 80)], None)

    assert store.delete(mark.id) is True
    assert store.delete(mark.id) is False
    assert _count(db) == 0


def test_upsert_that_loses_create_race_updates_instead(db, cohort, monkeypatch, caplog):
    school_class, student, teacher = cohort
    store = MarkStore(db)
    key = _key(school_class, student)
    existing = store.create(key, [subject("Mathematics", 40)], None)

    # The first lookup misses, as if another writer inserted the row right after it
    real_find_one = store.find_one
    lookups = []

    def find_one(key, lock=False):
        lookups.append(key)
        if len(lookups) == 1:
            return None
        return real_find_one(key, lock=lock)

    monkeypatch.setattr(store, "find_one", find_one)

    with caplog.at_level(logging.INFO, logger="school_results.services.mark_store"):
        mark = store.upsert(key, [subject("Mathematics", 90), subject("English", 85)], teacher.id)

    assert len(lookups) == 2
    assert mark.id == existing.id
    assert _count(db) == 1
    assert [s["subject_name"] for s in mark.subjects] == ["Mathematics", "English"]
    assert mark.grade == "A+"
    assert mark.updated_by == teacher.id
    assert "created concurrently, updating instead" in caplog.text
