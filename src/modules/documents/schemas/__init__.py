from .document_schemas import (
    Decision, SignerOutcome, ExternalSignerCreate, DocumentCreate,
    DecisionRequest, SignerOutcomeRequest, StatusUpdateRequest,
    UploadResponse, SubmissionResponse, StatusChangeResponse,
    UserSummary, ApproverResponse, ExternalSignerResponse,
    StatusUpdateResponse, DocumentSummary, DocumentView
)

__all__ = [
    'Decision', 'SignerOutcome', 'ExternalSignerCreate', 'DocumentCreate',
    'DecisionRequest', 'SignerOutcomeRequest', 'StatusUpdateRequest',
    'UploadResponse', 'SubmissionResponse', 'StatusChangeResponse',
    'UserSummary', 'ApproverResponse', 'ExternalSignerResponse',
    'StatusUpdateResponse', 'DocumentSummary', 'DocumentView'
]
