"""
Submission API Router - draft submissions, documents and submit.
"""
import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, File, HTTPException, Query, UploadFile, status

from app.core.actions import ActionResponse, success
from app.core.dependencies import AnyPortalUser, DbSession
from app.domains.submissions.models import SubmissionPurpose, SubmissionStatus
from app.domains.submissions.schemas import (
    AvailableNpiResponse,
    CreateSubmissionAction,
    DeleteFileAction,
    DeleteSubmissionAction,
    SubmissionAction,
    SubmissionDetailResponse,
    SubmissionDocumentResponse,
    SubmissionListResponse,
    SubmissionResponse,
    SubmitSubmissionAction,
)
from app.domains.submissions.service import SubmissionService

logger = logging.getLogger(__name__)

router = APIRouter()

SUBMISSIONS_PATH = "/customer/submissions"


@router.get("", response_model=SubmissionListResponse)
def list_submissions(
    db: DbSession,
    caller: AnyPortalUser,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    status_filter: SubmissionStatus | None = Query(None, alias="status"),
    purpose: SubmissionPurpose | None = None,
    search: str | None = None,
):
    """
    List submissions visible to the caller, newest first.

    Basic users see submissions for their assigned NPIs, provider group
    admins those for their group's providers, customer admins all of their
    customer's.
    """
    service = SubmissionService(db, caller)
    submissions, total = service.list_submissions(
        status=status_filter,
        purpose=purpose.value if purpose else None,
        search=search,
        skip=skip,
        limit=limit,
    )
    return SubmissionListResponse(
        items=[SubmissionResponse.model_validate(s) for s in submissions],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/available-npis", response_model=list[AvailableNpiResponse])
def list_available_npis(db: DbSession, caller: AnyPortalUser):
    """Providers the caller can create submissions for."""
    return SubmissionService(db, caller).available_providers()


@router.get("/{submission_id}", response_model=SubmissionDetailResponse)
def get_submission(submission_id: UUID, db: DbSession, caller: AnyPortalUser):
    submission = SubmissionService(db, caller).get_submission(submission_id)
    if not submission:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Submission not found")
    return submission


@router.post("", response_model=ActionResponse)
def submission_action(
    action: Annotated[SubmissionAction, Body(discriminator="intent")],
    db: DbSession,
    caller: AnyPortalUser,
):
    """
    Submission actions selected by `intent`:
    - create: new DRAFT submission for one of the caller's NPIs
    - delete-submission: remove a DRAFT and its documents
    - delete-file: remove one document from a DRAFT
    - submit: move a DRAFT with documents to SUBMITTED
    """
    service = SubmissionService(db, caller)

    if isinstance(action, CreateSubmissionAction):
        submission = service.create_submission(action)
        return success(
            "Submission created",
            f"{submission.title} has been created as a draft.",
            f"{SUBMISSIONS_PATH}/{submission.id}",
            submission_id=str(submission.id),
        )

    if isinstance(action, DeleteSubmissionAction):
        title = service.delete_submission(action)
        return success("Submission deleted", f"{title} has been deleted.", SUBMISSIONS_PATH)

    if isinstance(action, DeleteFileAction):
        file_name = service.delete_document(action)
        return success(
            "File deleted",
            f"{file_name} has been removed.",
            f"{SUBMISSIONS_PATH}/{action.submission_id}",
        )

    if isinstance(action, SubmitSubmissionAction):
        submission = service.submit(action)
        return success(
            "Submission submitted",
            f"{submission.title} has been submitted.",
            f"{SUBMISSIONS_PATH}/{submission.id}",
        )

    raise ValueError(f"Unhandled submission action: {action!r}")


@router.post("/{submission_id}/documents", response_model=SubmissionDocumentResponse)
async def upload_document(
    submission_id: UUID,
    db: DbSession,
    caller: AnyPortalUser,
    file: UploadFile | None = File(None, description="Document to attach"),
):
    """
    Attach a document to a draft submission.

    Only metadata is recorded (upload status PENDING); storing the bytes is
    left to object storage outside this service.
    """
    content = await file.read() if file is not None else b""
    service = SubmissionService(db, caller)
    return service.add_document(
        submission_id=submission_id,
        file_name=file.filename if file is not None else None,
        mime_type=file.content_type if file is not None else None,
        file_size=len(content),
    )
