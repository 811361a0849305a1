import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class SubmissionPurpose(str, Enum):
    ADR = "ADR"
    UNSOLICITED_PWK_XDR = "UNSOLICITED_PWK_XDR"
    PA_AMBULANCE = "PA_AMBULANCE"
    HHPCR = "HHPCR"
    PA_DMEPOS = "PA_DMEPOS"
    HOPD = "HOPD"
    FIRST_APPEAL = "FIRST_APPEAL"
    SECOND_APPEAL = "SECOND_APPEAL"
    ADMC = "ADMC"
    RA_DISCUSSION = "RA_DISCUSSION"
    DME_DISCUSSION = "DME_DISCUSSION"


class SubmissionCategory(str, Enum):
    DEFAULT = "DEFAULT"
    MEDICAL_REVIEW = "MEDICAL_REVIEW"
    NON_MEDICAL_REVIEW = "NON_MEDICAL_REVIEW"
    RESPONSES_FOR_PA = "RESPONSES_FOR_PA"


class SubmissionStatus(str, Enum):
    """
    Lifecycle of a submission.

    DRAFT: editable; documents can be added and removed, or the whole
        submission deleted
    SUBMITTED: handed to the processing pipeline
    PROCESSING: being transmitted
    COMPLETED / REJECTED / ERROR: terminal outcomes
    """
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    ERROR = "ERROR"


class UploadStatus(str, Enum):
    PENDING = "PENDING"
    UPLOADED = "UPLOADED"
    FAILED = "FAILED"


ALLOWED_TRANSITIONS: dict[SubmissionStatus, set[SubmissionStatus]] = {
    SubmissionStatus.DRAFT: {SubmissionStatus.SUBMITTED},
    SubmissionStatus.SUBMITTED: {SubmissionStatus.PROCESSING},
    SubmissionStatus.PROCESSING: {
        SubmissionStatus.COMPLETED,
        SubmissionStatus.REJECTED,
        SubmissionStatus.ERROR,
    },
    SubmissionStatus.COMPLETED: set(),
    SubmissionStatus.REJECTED: set(),
    SubmissionStatus.ERROR: set(),
}


def can_transition(current: str, target: str) -> bool:
    return SubmissionStatus(target) in ALLOWED_TRANSITIONS[SubmissionStatus(current)]


class Submission(Base):
    __tablename__ = "submissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    # Stored as String, validated at application level via the enums above
    purpose_of_submission: Mapped[str] = mapped_column(String(50), nullable=False)
    category: Mapped[str] = mapped_column(String(50), default=SubmissionCategory.DEFAULT.value, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=SubmissionStatus.DRAFT.value, nullable=False, index=True
    )
    recipient: Mapped[str] = mapped_column(String(255), nullable=False)
    claim_id: Mapped[str | None] = mapped_column(String(100))
    case_id: Mapped[str | None] = mapped_column(String(32))
    comments: Mapped[str | None] = mapped_column(Text)
    author_type: Mapped[str] = mapped_column(String(50), default="Individual", nullable=False)
    auto_split: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    send_in_x12: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    threshold: Mapped[int] = mapped_column(Integer, default=100, nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    creator_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    provider_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("providers.id"), nullable=False, index=True)
    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("customers.id"), nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    creator = relationship("User")
    provider = relationship("Provider")
    customer = relationship("Customer")
    documents: Mapped[list["SubmissionDocument"]] = relationship(
        back_populates="submission",
        cascade="all, delete-orphan",
        order_by="SubmissionDocument.created_at",
    )

    @property
    def is_draft(self) -> bool:
        return self.status == SubmissionStatus.DRAFT


class SubmissionDocument(Base):
    """Metadata for a file attached to a submission. Bytes live in object storage."""
    __tablename__ = "submission_documents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    original_file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    object_key: Mapped[str] = mapped_column(String(500), nullable=False)
    upload_status: Mapped[str] = mapped_column(String(20), default=UploadStatus.PENDING.value, nullable=False)
    uploader_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    submission: Mapped[Submission] = relationship(back_populates="documents")
