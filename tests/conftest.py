"""Shared fixtures: in-memory database, roster factories and an API client."""

import itertools
import os

# Must be set before the application settings are first loaded
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"

import pytest
from fastapi.testclient import TestClient

from school_results.core.database import Base, SessionLocal, engine, get_db
from school_results.core.security import create_access_token
from school_results.main import app
from school_results.models import SchoolClass, Student, Subject, User


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def db(schema):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(name: str = "Staff Member", username: str | None = None) -> User:
        user = User(name=name, username=username or f"user{next(counter)}")
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_class(db):
    def _make(name: str = "Class 8", section: str | None = "A", subjects: list | None = None) -> SchoolClass:
        school_class = SchoolClass(name=name, section=section, subjects=subjects)
        db.add(school_class)
        db.commit()
        return school_class

    return _make


@pytest.fixture
def make_subject(db):
    def _make(school_class: SchoolClass, name: str, code: str | None = None, **marks) -> Subject:
        subject = Subject(class_id=school_class.id, name=name, code=code, **marks)
        db.add(subject)
        db.commit()
        return subject

    return _make


@pytest.fixture
def make_student(db):
    def _make(
        school_class: SchoolClass,
        name: str,
        roll_number: str | None = None,
        user: User | None = None,
    ) -> Student:
        student = Student(
            class_id=school_class.id,
            student_name=name,
            roll_number=roll_number,
            user_id=user.id if user else None,
        )
        db.add(student)
        db.commit()
        return student

    return _make


@pytest.fixture
def client(db):
    """API client whose requests run on the test session."""

    def override_get_db():
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user: User, role: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id, role)}"}

    return _headers

