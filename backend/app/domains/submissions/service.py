"""
Submission Service - documentation submissions tied to provider NPIs.

Only DRAFT submissions are editable: documents can be attached or removed and
the submission itself deleted. Submitting moves a draft to SUBMITTED, after
which the record is read-only here.
"""
import logging
import posixpath
from datetime import datetime, timezone
from uuid import UUID

from app.core.exceptions import InvariantViolation, ResourceNotFound, ValidationFailed
from app.core.scope import ScopedService
from app.domains.providers.models import Provider
from app.domains.submissions.models import (
    Submission,
    SubmissionDocument,
    SubmissionStatus,
    UploadStatus,
    can_transition,
)
from app.domains.submissions.schemas import (
    CreateSubmissionAction,
    DeleteFileAction,
    DeleteSubmissionAction,
    SubmitSubmissionAction,
)

logger = logging.getLogger(__name__)

NOT_FOUND = "Submission not found"


class SubmissionService(ScopedService):

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_submissions(
        self,
        status: SubmissionStatus | None = None,
        purpose: str | None = None,
        search: str | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> tuple[list[Submission], int]:
        query = self.scoped_query(Submission)
        if status is not None:
            query = query.filter(Submission.status == status.value)
        if purpose is not None:
            query = query.filter(Submission.purpose_of_submission == purpose)
        if search:
            query = query.filter(Submission.title.contains(search) | Submission.claim_id.contains(search))

        total = query.count()
        submissions = query.order_by(Submission.created_at.desc()).offset(skip).limit(limit).all()
        return submissions, total

    def get_submission(self, submission_id: UUID) -> Submission | None:
        return self.scoped_query(Submission).filter(Submission.id == submission_id).first()

    def available_providers(self) -> list[Provider]:
        """Active providers the caller may create submissions for."""
        return (
            self.scoped_query(Provider)
            .filter(Provider.active.is_(True))
            .order_by(Provider.npi)
            .all()
        )

    def _require_submission(self, submission_id: UUID) -> Submission:
        submission = self.get_submission(submission_id)
        if not submission:
            raise ResourceNotFound(NOT_FOUND)
        return submission

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _provider_denied_message(self) -> str:
        if self.caller.is_basic_user:
            return "You can only create submissions for your assigned NPIs"
        if self.caller.is_provider_group_admin:
            return "You can only create submissions for providers in your group"
        return "Invalid provider selection"

    def create_submission(self, action: CreateSubmissionAction) -> Submission:
        provider = (
            self.scoped_query(Provider)
            .filter(Provider.id == action.provider_id, Provider.active.is_(True))
            .first()
        )
        if not provider:
            logger.warning(f"User {self.user_id} tried to submit for provider {action.provider_id} outside scope")
            raise ValidationFailed.for_form(self._provider_denied_message())

        submission = Submission(
            title=action.title,
            purpose_of_submission=action.purpose_of_submission.value,
            category=action.category.value,
            recipient=action.recipient,
            claim_id=action.claim_id,
            case_id=action.case_id,
            comments=action.comments,
            auto_split=action.auto_split,
            send_in_x12=action.send_in_x12,
            threshold=action.threshold,
            status=SubmissionStatus.DRAFT.value,
            creator_id=self.user_id,
            provider_id=provider.id,
            customer_id=provider.customer_id,
        )
        self.db.add(submission)
        self.db.commit()
        self.db.refresh(submission)
        logger.info(f"Submission {submission.id} created for NPI {provider.npi} by {self.user_id}")
        return submission

    def delete_submission(self, action: DeleteSubmissionAction) -> str:
        """Delete a draft and its documents. Returns the deleted title."""
        submission = self._require_submission(action.submission_id)
        if not submission.is_draft:
            raise InvariantViolation("Only draft submissions can be deleted", title="Cannot delete submission")

        title = submission.title
        self.db.delete(submission)
        self.db.commit()
        logger.info(f"Submission {action.submission_id} deleted by {self.user_id}")
        return title

    def add_document(
        self,
        submission_id: UUID,
        file_name: str | None,
        mime_type: str | None,
        file_size: int,
    ) -> SubmissionDocument:
        """Record an uploaded file's metadata on a draft submission."""
        submission = self._require_submission(submission_id)
        if not submission.is_draft:
            raise InvariantViolation(
                "Files can only be uploaded to draft submissions",
                title="Cannot upload file",
            )

        safe_name = posixpath.basename((file_name or "").replace("\\", "/"))
        if not safe_name or file_size <= 0:
            raise ValidationFailed.for_field("file", "Please select a file to upload")

        document = SubmissionDocument(
            submission_id=submission.id,
            file_name=safe_name,
            original_file_name=file_name,
            file_size=file_size,
            mime_type=mime_type or "application/octet-stream",
            object_key=f"/temp/{submission.id}/{safe_name}",
            upload_status=UploadStatus.PENDING.value,
            uploader_id=self.user_id,
        )
        self.db.add(document)
        self.db.commit()
        self.db.refresh(document)
        logger.info(f"Document {document.id} ({safe_name}, {file_size} bytes) added to submission {submission.id}")
        return document

    def delete_document(self, action: DeleteFileAction) -> str:
        submission = self._require_submission(action.submission_id)
        if not submission.is_draft:
            raise InvariantViolation(
                "Files can only be deleted from draft submissions",
                title="Cannot delete file",
            )

        document = (
            self.db.query(SubmissionDocument)
            .filter(
                SubmissionDocument.id == action.document_id,
                SubmissionDocument.submission_id == submission.id,
            )
            .first()
        )
        if not document:
            raise ResourceNotFound("Document not found")

        file_name = document.original_file_name
        self.db.delete(document)
        self.db.commit()
        logger.info(f"Document {action.document_id} removed from submission {submission.id}")
        return file_name

    def submit(self, action: SubmitSubmissionAction) -> Submission:
        """Move a draft with at least one document to SUBMITTED."""
        submission = self._require_submission(action.submission_id)
        if not can_transition(submission.status, SubmissionStatus.SUBMITTED):
            raise InvariantViolation(
                "Only draft submissions can be submitted",
                title="Cannot submit",
            )
        if not submission.documents:
            raise InvariantViolation(
                "Add at least one document before submitting",
                title="Cannot submit",
            )

        submission.status = SubmissionStatus.SUBMITTED.value
        submission.submitted_at = datetime.now(timezone.utc)
        self.db.commit()
        self.db.refresh(submission)
        logger.info(f"Submission {submission.id} submitted by {self.user_id}")
        return submission
