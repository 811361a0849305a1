from datetime import datetime
from typing import Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.domains.submissions.models import SubmissionCategory, SubmissionPurpose, SubmissionStatus


# ============================================================================
# Actions (intent-tagged request bodies)
# ============================================================================


class CreateSubmissionAction(BaseModel):
    intent: Literal["create"]
    title: str = Field(..., min_length=1, max_length=255)
    purpose_of_submission: SubmissionPurpose
    recipient: str = Field(..., min_length=1, max_length=255)
    provider_id: UUID
    claim_id: str | None = Field(None, max_length=100)
    case_id: str | None = Field(None, max_length=32)
    comments: str | None = None
    category: SubmissionCategory = SubmissionCategory.DEFAULT
    auto_split: bool = False
    send_in_x12: bool = False
    threshold: int = Field(100, ge=1)

    @field_validator("claim_id", "case_id", "comments")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class DeleteSubmissionAction(BaseModel):
    intent: Literal["delete-submission"]
    submission_id: UUID


class DeleteFileAction(BaseModel):
    intent: Literal["delete-file"]
    submission_id: UUID
    document_id: UUID


class SubmitSubmissionAction(BaseModel):
    intent: Literal["submit"]
    submission_id: UUID


SubmissionAction = Union[
    CreateSubmissionAction,
    DeleteSubmissionAction,
    DeleteFileAction,
    SubmitSubmissionAction,
]


# ============================================================================
# Response Schemas
# ============================================================================


class SubmissionDocumentResponse(BaseModel):
    id: UUID
    file_name: str
    original_file_name: str
    file_size: int
    mime_type: str
    object_key: str
    upload_status: str
    uploader_id: UUID
    created_at: datetime

    class Config:
        from_attributes = True


class SubmissionResponse(BaseModel):
    id: UUID
    title: str
    purpose_of_submission: SubmissionPurpose
    category: SubmissionCategory
    status: SubmissionStatus
    recipient: str
    claim_id: str | None
    case_id: str | None
    comments: str | None
    author_type: str
    auto_split: bool
    send_in_x12: bool
    threshold: int
    submitted_at: datetime | None
    creator_id: UUID
    provider_id: UUID
    customer_id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SubmissionDetailResponse(SubmissionResponse):
    documents: list[SubmissionDocumentResponse] = []


class SubmissionListResponse(BaseModel):
    items: list[SubmissionResponse]
    total: int
    skip: int
    limit: int


class AvailableNpiResponse(BaseModel):
    id: UUID
    npi: str
    name: str | None
    provider_group_id: UUID | None

    class Config:
        from_attributes = True
