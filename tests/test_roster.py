"""Tests for class roster and subject resolution."""

import pytest

from school_results.core.exceptions import NotFoundError
from school_results.schemas.roster import CatalogSubject, ClassConfigSubject
from school_results.services.roster import RosterService


def test_catalog_subjects_take_precedence(db, make_class, make_subject):
    school_class = make_class(subjects=[{"name": "Ignored"}])
    make_subject(school_class, "Physics", "phy", theory_full_marks=50, practical_full_marks=25, mcq_full_marks=25, display_order=2)
    make_subject(school_class, "Mathematics", "math", display_order=1)
    make_subject(school_class, "Retired", "ret", is_active=False)

    subjects = RosterService(db).resolve_subjects(school_class)

    assert all(isinstance(s, CatalogSubject) for s in subjects)
    assert [s.code for s in subjects] == ["MATH", "PHY"]
    assert subjects[1].practical_full_marks == 25
    assert subjects[0].theory_full_marks == 100


def test_class_config_fallback(db, make_class):
    school_class = make_class(subjects=[{"name": "English", "code": "ENG1"}, {"name": ""}, "Science"])

    subjects = RosterService(db).resolve_subjects(school_class)

    assert all(isinstance(s, ClassConfigSubject) for s in subjects)
    assert [(s.index, s.name, s.code) for s in subjects] == [
        (0, "English", "ENG1"),
        (1, "Subject 2", "S2"),
        (2, "Science", "SCI"),
    ]
    assert subjects[0].theory_full_marks == 100


def test_class_without_subjects(db, make_class):
    assert RosterService(db).resolve_subjects(make_class()) == []


def test_cohort_roster_orders_students(db, make_class, make_student, make_user):
    school_class = make_class("Class 6", "C")
    user = make_user("Tania")
    make_student(school_class, "Zara", roll_number="2")
    make_student(school_class, "Tania", roll_number="1", user=user)

    roster = RosterService(db).get_cohort_roster(school_class.id)

    assert roster.class_name == "Class 6"
    assert [s.name for s in roster.students] == ["Tania", "Zara"]
    assert roster.students[0].user_id == user.id
    assert roster.students[0].section == "C"


def test_student_for_user(db, make_class, make_student, make_user):
    school_class = make_class()
    user = make_user("Rina")
    student = make_student(school_class, "Rina", user=user)
    service = RosterService(db)

    assert service.get_student_for_user(user.id).id == student.id
    with pytest.raises(NotFoundError):
        service.get_student_for_user(user.id + 100)


def test_unknown_class(db):
    with pytest.raises(NotFoundError):
        RosterService(db).get_class(77)


def test_numeric_roll_numbers_sort_numerically(db, make_class, make_student):
    school_class = make_class()
    for roll in ["10", "2", "1", "11"]:
        make_student(school_class, f"Roll {roll}", roll_number=roll)

    students = RosterService(db).get_class_students(school_class.id)

    assert [s.roll_number for s in students] == ["1", "2", "10", "11"]
