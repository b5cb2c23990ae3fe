"""Exam mark endpoints."""

from io import BytesIO
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from school_results.core.config import settings
from school_results.core.database import get_db
from school_results.core.dependencies import AdminActor, CurrentActor, StaffActor
from school_results.core.exceptions import NotFoundError, UploadError
from school_results.models.audit import AuditAction
from school_results.models.mark import ExamType
from school_results.schemas.common import ErrorResponse, MessageResponse, SuccessResponse
from school_results.schemas.mark import (
    BulkMarkCreate,
    BulkMarkResponse,
    CohortKey,
    MarkCreate,
    MarkResponse,
    MarkUploadResult,
    PublishResult,
    UnpublishResult,
)
from school_results.schemas.roster import EntryGrid
from school_results.services.audit import AuditService
from school_results.services.mark import MarkService
from school_results.services.mark_sheet import MarkSheetService
from school_results.services.publication import ResultPublicationService
from school_results.services.roster import RosterService

router = APIRouter(
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)


def _client_ip(http_request: Request) -> str | None:
    return http_request.client.host if http_request.client else None


# ────────────────────────────────────────────────────────────
# Specific routes come before the generic /{mark_id}
# ────────────────────────────────────────────────────────────

@router.put("/publish", response_model=PublishResult)
def publish_results(
    request: CohortKey,
    actor: AdminActor,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Rank a cohort by percentage and publish its results.
    Students are notified; notification failures do not affect the result.
    Requires admin role.
    """
    service = ResultPublicationService(db)
    result = service.publish(request.class_id, request.exam_type, request.exam_year)

    # Audit log
    audit = AuditService(db)
    audit.log(
        action=AuditAction.RESULTS_PUBLISHED,
        resource_type="mark_cohort",
        user_id=actor.user_id,
        description=f"Published {result.published_count} results for class {request.class_id} - {request.exam_type.value} {request.exam_year}",
        metadata={
            **request.model_dump(mode="json"),
            "published": result.published_count,
            "failed": result.failed_count,
            "notified": result.notified_count,
        },
        ip_address=_client_ip(http_request),
    )

    return result


@router.put("/unpublish", response_model=UnpublishResult)
def unpublish_results(
    request: CohortKey,
    actor: AdminActor,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Withdraw a cohort's results back to draft.
    Requires admin role.
    """
    service = ResultPublicationService(db)
    result = service.unpublish(request.class_id, request.exam_type, request.exam_year)

    # Audit log
    audit = AuditService(db)
    audit.log(
        action=AuditAction.RESULTS_UNPUBLISHED,
        resource_type="mark_cohort",
        user_id=actor.user_id,
        description=f"Unpublished {result.count} results for class {request.class_id} - {request.exam_type.value} {request.exam_year}",
        metadata={**request.model_dump(mode="json"), "count": result.count},
        ip_address=_client_ip(http_request),
    )

    return result


@router.post("/bulk", response_model=BulkMarkResponse)
def save_bulk_marks(
    request: BulkMarkCreate,
    actor: StaffActor,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Save marks for a whole class at once.
    Each student's entry is saved independently; failures are listed in `errors`.
    Requires admin or teacher role.
    """
    service = MarkService(db)
    result = service.submit_batch(
        request.class_id,
        request.exam_type,
        request.exam_year,
        request.entries,
        actor.user_id,
    )

    # Audit log
    if result.saved_count > 0:
        audit = AuditService(db)
        audit.log(
            action=AuditAction.MARKS_BULK_SAVED,
            resource_type="mark_bulk",
            user_id=actor.user_id,
            description=f"Bulk marks: {result.saved_count} records for class {request.class_id} - {request.exam_type.value} {request.exam_year}",
            metadata={
                "class_id": request.class_id,
                "exam_type": request.exam_type.value,
                "exam_year": request.exam_year,
                "saved": result.saved_count,
                "failed": result.failed_count,
            },
            ip_address=_client_ip(http_request),
        )

    return result


@router.post("", response_model=MarkResponse)
def save_mark(
    request: MarkCreate,
    actor: StaffActor,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Save one student's marks for an exam (created or replaced).
    Requires admin or teacher role.
    """
    service = MarkService(db)
    mark = service.save_mark(request, actor.user_id)

    # Audit log
    audit = AuditService(db)
    audit.log(
        action=AuditAction.MARK_SAVED,
        resource_type="mark",
        resource_id=str(mark.id),
        user_id=actor.user_id,
        description=f"Marks saved for student {mark.student_id}",
        ip_address=_client_ip(http_request),
    )

    return mark


@router.get("/template")
def download_mark_template(
    actor: StaffActor,
    db: Annotated[Session, Depends(get_db)],
    class_id: int = Query(...),
    exam_type: ExamType = Query(...),
    exam_year: int = Query(...),
):
    """
    Download an Excel mark sheet for a class, pre-filled with saved marks.
    Requires admin or teacher role.
    """
    service = MarkSheetService(db)
    content = service.generate_template(class_id, exam_type, exam_year)

    filename = f"marks_{class_id}_{exam_type.value}_{exam_year}.xlsx"

    return StreamingResponse(
        BytesIO(content),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.post("/upload", response_model=MarkUploadResult)
def upload_mark_sheet(
    actor: StaffActor,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
    class_id: int = Form(...),
    exam_type: ExamType = Form(...),
    exam_year: int = Form(...),
    file: UploadFile = File(...),
):
    """
    Upload a filled-in mark sheet.
    Download the template first to see the expected format.
    Requires admin or teacher role.
    """
    # Validate file
    if not file.filename:
        raise UploadError("No file provided")

    if not any(file.filename.endswith(ext) for ext in settings.ALLOWED_EXTENSIONS):
        raise UploadError("Only .xlsx files are allowed")

    content = file.file.read()
    if len(content) > settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024:
        raise UploadError(f"File size exceeds {settings.MAX_UPLOAD_SIZE_MB}MB limit")

    service = MarkSheetService(db)
    result = service.process_excel_upload(
        class_id=class_id,
        exam_type=exam_type,
        exam_year=exam_year,
        file_content=content,
        actor_id=actor.user_id,
    )

    # Audit log
    audit = AuditService(db)
    audit.log(
        action=AuditAction.MARKS_UPLOADED,
        resource_type="mark_upload",
        user_id=actor.user_id,
        description=f"Mark upload: {result.saved_count}/{result.total_rows} rows",
        metadata={
            "file_name": file.filename,
            "class_id": class_id,
            "exam_type": exam_type.value,
            "exam_year": exam_year,
            "saved": result.saved_count,
            "failed_rows": result.failed_rows,
            "skipped_rows": result.skipped_rows,
        },
        ip_address=_client_ip(http_request),
    )

    return result


@router.get("/class/{class_id}/students", response_model=EntryGrid)
def get_entry_grid(
    class_id: int,
    actor: StaffActor,
    db: Annotated[Session, Depends(get_db)],
    exam_type: ExamType | None = None,
    exam_year: int | None = None,
):
    """
    Get a class's students and subjects for mark entry.
    When exam_type and exam_year are given, saved marks are included.
    Requires admin or teacher role.
    """
    service = MarkService(db)
    return service.get_entry_grid(class_id, exam_type, exam_year)


@router.get("/class/{class_id}", response_model=list[MarkResponse])
def list_class_marks(
    class_id: int,
    actor: StaffActor,
    db: Annotated[Session, Depends(get_db)],
    exam_type: ExamType | None = None,
    exam_year: int | None = None,
):
    """
    List marks of a class, best percentage first.
    Requires admin or teacher role.
    """
    service = MarkService(db)
    return service.list_class_marks(class_id, exam_type, exam_year)


@router.get("/stats/{class_id}", response_model=SuccessResponse)
def get_mark_stats(
    class_id: int,
    actor: StaffActor,
    db: Annotated[Session, Depends(get_db)],
    exam_type: ExamType = Query(...),
    exam_year: int = Query(...),
):
    """
    Get a cohort summary (pass rate, averages, highest/lowest, grade counts).
    Requires admin or teacher role.
    """
    service = MarkService(db)
    summary = service.get_cohort_summary(class_id, exam_type, exam_year)
    if summary is None:
        return SuccessResponse(message="No marks yet", data=None)
    return SuccessResponse(data=summary.model_dump(mode="json"))


@router.get("/result-sheet/{class_id}", response_model=list[MarkResponse])
def get_result_sheet(
    class_id: int,
    actor: CurrentActor,
    db: Annotated[Session, Depends(get_db)],
    exam_type: ExamType = Query(...),
    exam_year: int = Query(...),
    student_id: int | None = None,
):
    """
    Get result sheets of a cohort in merit order.
    Students only receive their own published result.
    """
    service = MarkService(db)
    if actor.is_student:
        student_id = RosterService(db).get_student_for_user(actor.user_id).id

    return service.get_result_sheet(
        class_id,
        exam_type,
        exam_year,
        student_id=student_id,
        include_unpublished=actor.can_view_unpublished,
    )


@router.get("/student/{student_id}", response_model=list[MarkResponse])
def get_student_marks(
    student_id: int,
    actor: CurrentActor,
    db: Annotated[Session, Depends(get_db)],
    exam_type: ExamType | None = None,
    exam_year: int | None = None,
):
    """
    Get all marks of a student.
    Students only receive their own published results.
    """
    service = MarkService(db)
    if actor.is_student:
        student_id = RosterService(db).get_student_for_user(actor.user_id).id

    return service.list_student_marks(
        student_id,
        exam_type=exam_type,
        exam_year=exam_year,
        include_unpublished=actor.can_view_unpublished,
    )


@router.get("/{mark_id}", response_model=MarkResponse)
def get_mark(
    mark_id: int,
    actor: CurrentActor,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Get a mark record by ID.
    Students can only open their own published records.
    """
    service = MarkService(db)
    mark = service.get_mark(mark_id)
    if actor.is_student:
        own = RosterService(db).get_student_for_user(actor.user_id)
        if mark.student_id != own.id or not mark.is_published:
            raise NotFoundError("Mark", str(mark_id))
    return mark


@router.delete("/{mark_id}", response_model=MessageResponse)
def delete_mark(
    mark_id: int,
    actor: AdminActor,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Permanently delete a mark record.
    Requires admin role.
    """
    service = MarkService(db)
    service.delete_mark(mark_id)

    # Audit log
    audit = AuditService(db)
    audit.log(
        action=AuditAction.MARK_DELETED,
        resource_type="mark",
        resource_id=str(mark_id),
        user_id=actor.user_id,
        ip_address=_client_ip(http_request),
    )

    return MessageResponse(message="Mark deleted successfully")
