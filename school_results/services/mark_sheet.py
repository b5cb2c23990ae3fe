"""Excel mark sheets: template generation and upload processing."""

import logging
import re
from io import BytesIO
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from sqlalchemy.orm import Session

from school_results.core.exceptions import ValidationError
from school_results.models.mark import ExamType, Mark
from school_results.schemas.mark import BulkMarkEntry, MarkUploadError, MarkUploadResult
from school_results.schemas.roster import RosterSubject
from school_results.services.mark import MarkService
from school_results.services.mark_store import MarkStore
from school_results.services.roster import RosterService

logger = logging.getLogger(__name__)

FIXED_HEADERS = ["Student ID", "Roll No", "Student Name"]

# (field prefix, column label)
COMPONENTS = (
    ("theory", "Theory"),
    ("practical", "Practical"),
    ("mcq", "MCQ"),
)
ABSENT_LABEL = "Absent"

HEADER_PATTERN = re.compile(r"^(?P<label>.+?) - (?P<component>Theory|Practical|MCQ|Absent)\b", re.IGNORECASE)

ABSENT_MARKERS = {"1", "y", "yes", "true", "x", "ab", "absent"}


def _components_for(subject: RosterSubject) -> list[tuple[str, str, float]]:
    """Mark components a subject is entered with."""
    components = [
        (field, label, getattr(subject, f"{field}_full_marks"))
        for field, label in COMPONENTS
        if getattr(subject, f"{field}_full_marks") > 0
    ]
    if not components:
        # Unconfigured subjects are entered as plain theory out of 100
        components = [("theory", "Theory", 100.0)]
    return components


def _is_marked(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ABSENT_MARKERS


class MarkSheetService:
    """Spreadsheet intake for a class's exam marks."""

    def __init__(self, db: Session):
        self.db = db
        self.roster = RosterService(db)
        self.marks = MarkService(db)
        self.store = MarkStore(db)

    # ==========================================
    # Template Generation
    # ==========================================

    def generate_template(
        self,
        class_id: int,
        exam_type: ExamType,
        exam_year: int,
    ) -> bytes:
        """Generate an Excel entry sheet for a class and exam.

        One row per student, one column per configured mark component of
        each subject plus an Absent column. Saved marks are pre-filled.
        """
        roster = self.roster.get_cohort_roster(class_id)
        existing = {
            m.student_id: m
            for m in self.store.find_by_class_exam(class_id, exam_type, exam_year)
        }

        wb = Workbook()
        ws = wb.active
        ws.title = "Marks"

        # Styles
        title_font = Font(bold=True, size=14)
        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
        thin_border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )
        center_align = Alignment(horizontal='center', vertical='center')

        # Headers
        headers = list(FIXED_HEADERS)
        # (column index, subject, field or None for the absent column)
        subject_columns: list[tuple[int, RosterSubject, str | None]] = []
        for subject in roster.subjects:
            for field, label, full in _components_for(subject):
                headers.append(f"{subject.label} - {label} ({full:g})")
                subject_columns.append((len(headers), subject, field))
            headers.append(f"{subject.label} - {ABSENT_LABEL}")
            subject_columns.append((len(headers), subject, None))

        # Title row
        class_title = f"{roster.class_name}-{roster.section}" if roster.section else roster.class_name
        title_text = f"{class_title} - {exam_type.label} {exam_year} - Marks"
        ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(headers))
        title_cell = ws.cell(row=1, column=1, value=title_text)
        title_cell.font = title_font
        title_cell.alignment = center_align
        title_cell.fill = PatternFill(start_color="B4C6E7", end_color="B4C6E7", fill_type="solid")

        for col_idx, header in enumerate(headers, start=1):
            cell = ws.cell(row=2, column=col_idx, value=header)
            cell.font = header_font
            cell.fill = header_fill
            cell.border = thin_border
            cell.alignment = center_align

        for row_idx, student in enumerate(roster.students, start=3):
            ws.cell(row=row_idx, column=1, value=student.id).border = thin_border
            ws.cell(row=row_idx, column=2, value=student.roll_number or "").border = thin_border
            ws.cell(row=row_idx, column=3, value=student.name).border = thin_border

            saved = self._saved_subjects(existing.get(student.id))
            for col_idx, subject, field in subject_columns:
                previous = saved.get(subject.label.lower()) or saved.get(subject.name.lower())
                value: Any = ""
                if previous:
                    if field is None:
                        value = "Y" if previous.get("is_absent") else ""
                    else:
                        value = previous.get(f"{field}_obtained", "")
                ws.cell(row=row_idx, column=col_idx, value=value).border = thin_border

        # Column widths
        ws.column_dimensions['A'].width = 12
        ws.column_dimensions['B'].width = 10
        ws.column_dimensions['C'].width = 25
        for col_idx in range(len(FIXED_HEADERS) + 1, len(headers) + 1):
            ws.column_dimensions[get_column_letter(col_idx)].width = 18

        # Add instructions sheet
        instructions_ws = wb.create_sheet("Instructions")
        instructions_ws.column_dimensions['A'].width = 25
        instructions_ws.column_dimensions['B'].width = 60

        instructions = [
            ("MARK SHEET INSTRUCTIONS", ""),
            ("", ""),
            ("Student ID", "Do not change - identifies the student"),
            ("<Subject> - Theory (N)", "Theory marks obtained, out of N"),
            ("<Subject> - Practical (N)", "Practical marks obtained, out of N"),
            ("<Subject> - MCQ (N)", "MCQ marks obtained, out of N"),
            ("<Subject> - Absent", "Enter Y if the student was absent; marks are then ignored"),
            ("", ""),
            ("NOTES:", ""),
            ("Blank marks", "Counted as 0"),
            ("Grades", "Calculated automatically when the sheet is uploaded"),
        ]

        for row_idx, (col1, col2) in enumerate(instructions, start=1):
            cell1 = instructions_ws.cell(row=row_idx, column=1, value=col1)
            instructions_ws.cell(row=row_idx, column=2, value=col2)
            if row_idx == 1:
                cell1.font = Font(bold=True, size=14)
            elif col1 and col1.endswith(":"):
                cell1.font = Font(bold=True)

        output = BytesIO()
        wb.save(output)
        output.seek(0)
        return output.getvalue()

    @staticmethod
    def _saved_subjects(mark: Mark | None) -> dict[str, dict]:
        """Saved subject dicts of a mark, keyed by lower-cased code and name."""
        if mark is None:
            return {}
        saved: dict[str, dict] = {}
        for subject in mark.subjects or []:
            for key in (subject.get("subject_code"), subject.get("subject_name")):
                if key:
                    saved.setdefault(key.lower(), subject)
        return saved

    # ==========================================
    # Excel Upload Processing
    # ==========================================

    def process_excel_upload(
        self,
        class_id: int,
        exam_type: ExamType,
        exam_year: int,
        file_content: bytes,
        actor_id: int | None,
    ) -> MarkUploadResult:
        """Parse a filled-in mark sheet and save it as a bulk submission."""
        logger.info(f"[MARK UPLOAD] Starting - class_id={class_id}, file_size={len(file_content)} bytes")

        roster = self.roster.get_cohort_roster(class_id)

        try:
            wb = load_workbook(BytesIO(file_content), data_only=True)
            ws = wb.active
        except Exception as e:
            logger.error(f"[MARK UPLOAD] Failed to load Excel: {str(e)}")
            raise ValidationError(f"Invalid Excel file: {str(e)}")

        header_row, headers = self._find_header_row(ws)
        subjects_by_label: dict[str, RosterSubject] = {}
        for subject in roster.subjects:
            subjects_by_label.setdefault(subject.label.lower(), subject)
            subjects_by_label.setdefault(subject.name.lower(), subject)

        # subject label -> {"theory": col, ..., "absent": col}
        column_map: dict[str, dict[str, int]] = {}
        for idx, header in enumerate(headers):
            match = HEADER_PATTERN.match(header)
            if not match:
                continue
            subject = subjects_by_label.get(match.group("label").strip().lower())
            if subject is None:
                logger.warning(f"[MARK UPLOAD] Ignoring column '{header}': subject not in class")
                continue
            component = match.group("component").lower()
            field = "absent" if component == "absent" else component
            column_map.setdefault(subject.label, {})[field] = idx

        if not column_map:
            raise ValidationError("No subject columns found. Download the template first.")

        roster_ids = {s.id for s in roster.students}
        entries: list[BulkMarkEntry] = []
        rows_by_student: dict[int, int] = {}
        errors: list[MarkUploadError] = []
        skipped_rows = 0

        for row_num, row in enumerate(ws.iter_rows(min_row=header_row + 1, values_only=True), start=header_row + 1):
            if not any(v not in (None, "") for v in row):
                skipped_rows += 1
                continue

            raw_id = row[0] if row else None
            if raw_id in (None, ""):
                skipped_rows += 1
                continue

            try:
                student_id = int(raw_id)
            except (TypeError, ValueError):
                errors.append(MarkUploadError(
                    row=row_num,
                    column="Student ID",
                    message=f"Invalid student ID: '{raw_id}'",
                ))
                continue

            if student_id not in roster_ids:
                errors.append(MarkUploadError(
                    row=row_num,
                    student_id=student_id,
                    column="Student ID",
                    message=f"Student {student_id} is not in this class",
                ))
                continue

            if student_id in rows_by_student:
                errors.append(MarkUploadError(
                    row=row_num,
                    student_id=student_id,
                    message=f"Duplicate row for student {student_id} (first seen on row {rows_by_student[student_id]})",
                ))
                continue

            rows_by_student[student_id] = row_num
            entries.append(BulkMarkEntry(
                student_id=student_id,
                subjects=self._row_subjects(row, roster.subjects, column_map),
            ))

        batch = self.marks.submit_batch(class_id, exam_type, exam_year, entries, actor_id)
        for error in batch.errors:
            errors.append(MarkUploadError(
                row=rows_by_student.get(error.student_id, 0),
                student_id=error.student_id,
                message=error.message,
            ))

        failed_rows = len(errors)
        total = batch.saved_count + failed_rows + skipped_rows
        logger.info(
            f"[MARK UPLOAD] Completed: {batch.saved_count} OK, {failed_rows} failed, {skipped_rows} skipped"
        )

        return MarkUploadResult(
            total_rows=total,
            saved_count=batch.saved_count,
            failed_rows=failed_rows,
            skipped_rows=skipped_rows,
            errors=sorted(errors, key=lambda e: e.row),
            message=f"Saved marks for {batch.saved_count} students.",
        )

    @staticmethod
    def _find_header_row(ws) -> tuple[int, list[str]]:
        """Locate the header row (the template puts a title above it)."""
        for row_num, row in enumerate(ws.iter_rows(min_row=1, max_row=5, values_only=True), start=1):
            headers = [str(v).strip() if v is not None else "" for v in row]
            if headers and headers[0].lower() == FIXED_HEADERS[0].lower():
                return row_num, headers
        raise ValidationError(f"Header row with '{FIXED_HEADERS[0]}' not found")

    @staticmethod
    def _row_subjects(
        row: tuple,
        subjects: list[RosterSubject],
        column_map: dict[str, dict[str, int]],
    ) -> list[dict[str, Any]]:
        """Raw subject scores for one sheet row, in roster order."""
        scores = []
        for subject in subjects:
            columns = column_map.get(subject.label)
            if not columns:
                continue

            def cell(field: str) -> Any:
                idx = columns.get(field)
                return row[idx] if idx is not None and idx < len(row) else None

            score: dict[str, Any] = {
                "subject_name": subject.name,
                "subject_code": subject.code,
                "is_absent": _is_marked(cell("absent")),
            }
            for field, _, full in _components_for(subject):
                score[f"{field}_full_marks"] = full
                score[f"{field}_obtained"] = cell(field)
            for field, _ in COMPONENTS:
                score.setdefault(f"{field}_full_marks", 0)
                score.setdefault(f"{field}_obtained", 0)
            scores.append(score)
        return scores
