from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from modules.documents.models import ApprovalStatus, DocumentStatus, SigningStatus, UpdateType


class Decision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class SignerOutcome(str, Enum):
    SIGNED = "signed"
    REJECTED = "rejected"


class ExternalSignerCreate(BaseModel):
    name: str
    designation: str


class DocumentCreate(BaseModel):
    title: str
    description: str = ""
    document_url: str
    approvers: List[int]
    external_signers: List[ExternalSignerCreate]
    submission_id: Optional[str] = Field(default=None, max_length=64)


class DecisionRequest(BaseModel):
    decision: Decision
    comments: Optional[str] = None


class SignerOutcomeRequest(BaseModel):
    outcome: SignerOutcome
    comments: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    message: str


class UploadResponse(BaseModel):
    document_url: str
    filename: str
    size: int


class SubmissionResponse(BaseModel):
    document_id: int
    status: DocumentStatus


class StatusChangeResponse(BaseModel):
    document_id: int
    status: DocumentStatus


class UserSummary(BaseModel):
    id: int
    full_name: str
    employee_code: str

    model_config = {"from_attributes": True}


class ApproverResponse(BaseModel):
    id: int
    user_id: int
    order: int
    status: ApprovalStatus
    comments: Optional[str] = None
    approved_at: Optional[datetime] = None
    user: Optional[UserSummary] = None

    model_config = {"from_attributes": True}


class ExternalSignerResponse(BaseModel):
    id: int
    name: str
    designation: str
    order: int
    status: SigningStatus
    comments: Optional[str] = None
    signed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class StatusUpdateResponse(BaseModel):
    id: int
    updated_by: int
    update_type: UpdateType
    message: str
    created_at: datetime
    user: Optional[UserSummary] = None

    model_config = {"from_attributes": True}


class DocumentSummary(BaseModel):
    id: int
    title: str
    description: str
    document_url: str
    status: DocumentStatus
    created_by: int
    created_at: datetime
    updated_at: datetime
    creator: Optional[UserSummary] = None

    model_config = {"from_attributes": True}


class DocumentView(DocumentSummary):
    approvers: List[ApproverResponse]
    external_signers: List[ExternalSignerResponse]
    status_updates: List[StatusUpdateResponse]
