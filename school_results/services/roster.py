"""Class roster lookups for mark entry."""

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from school_results.core.exceptions import NotFoundError
from school_results.models.school_class import SchoolClass, Subject
from school_results.models.student import Student
from school_results.schemas.roster import (
    CatalogSubject,
    ClassConfigSubject,
    CohortRoster,
    RosterStudent,
    RosterSubject,
)


class RosterService:
    """Read-only view of classes, students and subjects."""

    def __init__(self, db: Session):
        self.db = db

    def get_class(self, class_id: int) -> SchoolClass:
        """Get class by ID."""
        school_class = self.db.get(SchoolClass, class_id)
        if not school_class:
            raise NotFoundError("Class", str(class_id))
        return school_class

    def get_student(self, student_id: int) -> Student:
        """Get student by ID."""
        student = self.db.get(Student, student_id)
        if not student:
            raise NotFoundError("Student", str(student_id))
        return student

    def get_student_for_user(self, user_id: int) -> Student:
        """Get the student profile linked to a user account."""
        result = self.db.execute(select(Student).where(Student.user_id == user_id))
        student = result.scalars().first()
        if not student:
            raise NotFoundError("Student profile", str(user_id))
        return student

    def get_class_students(self, class_id: int) -> list[Student]:
        """Students of a class ordered by roll number.

        Shorter roll numbers sort first, so numeric rolls run 1, 2, ..., 10.
        """
        result = self.db.execute(
            select(Student)
            .where(Student.class_id == class_id)
            .order_by(
                func.length(Student.roll_number),
                Student.roll_number,
                Student.student_name,
                Student.id,
            )
        )
        return list(result.scalars().all())

    def resolve_subjects(self, school_class: SchoolClass) -> list[RosterSubject]:
        """Subjects of a class.

        Active catalog subjects win; a class without any falls back to its
        embedded subject list.
        """
        result = self.db.execute(
            select(Subject)
            .where(Subject.class_id == school_class.id, Subject.is_active.is_(True))
            .order_by(Subject.display_order, Subject.id)
        )
        catalog = list(result.scalars().all())
        if catalog:
            return [
                CatalogSubject(
                    subject_id=s.id,
                    name=s.name,
                    code=(s.code or "").upper(),
                    theory_full_marks=float(s.theory_full_marks),
                    practical_full_marks=float(s.practical_full_marks),
                    mcq_full_marks=float(s.mcq_full_marks),
                    pass_marks=float(s.pass_marks),
                )
                for s in catalog
            ]

        subjects: list[RosterSubject] = []
        for i, entry in enumerate(school_class.subjects or []):
            entry = entry if isinstance(entry, dict) else {"name": str(entry)}
            name = entry.get("name") or ""
            code = entry.get("code") or (name[:3].upper() if name else f"S{i + 1}")
            subjects.append(
                ClassConfigSubject(
                    index=i,
                    name=name or f"Subject {i + 1}",
                    code=code,
                )
            )
        return subjects

    def get_cohort_roster(self, class_id: int) -> CohortRoster:
        """Students and subjects of a class, resolved once."""
        school_class = self.get_class(class_id)
        students = self.get_class_students(class_id)
        return CohortRoster(
            class_id=school_class.id,
            class_name=school_class.name,
            section=school_class.section,
            students=[
                RosterStudent(
                    id=s.id,
                    name=s.student_name,
                    roll_number=s.roll_number,
                    section=s.section or school_class.section,
                    user_id=s.user_id,
                )
                for s in students
            ],
            subjects=self.resolve_subjects(school_class),
        )
