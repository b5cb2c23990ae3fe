"""Database models package."""

from school_results.models.audit import AuditAction, AuditLog
from school_results.models.mark import ExamType, Mark, ResultStatus
from school_results.models.notification import Notification
from school_results.models.school_class import SchoolClass, Subject
from school_results.models.student import Student
from school_results.models.user import User

__all__ = [
    # User
    "User",
    # Roster
    "SchoolClass",
    "Subject",
    "Student",
    # Marks
    "Mark",
    "ExamType",
    "ResultStatus",
    # Audit
    "AuditLog",
    "AuditAction",
    # Notification
    "Notification",
]
