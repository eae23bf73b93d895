import mimetypes
from typing import List

from fastapi import APIRouter, Depends, File, Response, UploadFile, status
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from modules.auth.controllers.auth_controller import get_current_user
from modules.auth.dependencies import require_privileged
from modules.documents.models import User
from modules.documents.schemas import (
    DocumentCreate, DocumentSummary, DocumentView, StatusUpdateRequest,
    StatusUpdateResponse, SubmissionResponse, UploadResponse
)
from modules.documents.services import DocumentService, LocalBlobStore, validate_file

router = APIRouter(
    tags=["documents"]
)

_blob_store = LocalBlobStore(settings.upload_dir)

def get_blob_store() -> LocalBlobStore:
    return _blob_store

@router.post("/files", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    blob_store: LocalBlobStore = Depends(get_blob_store)
):
    """Stores the document file and returns the URL used on submission"""
    contents = await file.read()
    validate_file(
        contents, file.filename or "", file.content_type or "",
        settings.content_types, settings.max_file_size
    )
    url = blob_store.put(contents, file.content_type, file.filename)
    return UploadResponse(document_url=url, filename=file.filename, size=len(contents))

@router.post("", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
def submit_document(
    payload: DocumentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    document_id = DocumentService.submit_document(
        db,
        title=payload.title,
        description=payload.description,
        document_url=payload.document_url,
        creator_id=current_user.id,
        approver_ids=payload.approvers,
        signers=payload.external_signers,
        submission_id=payload.submission_id,
    )
    document = DocumentService.get_document(db, document_id)
    return SubmissionResponse(document_id=document.id, status=document.status)

@router.get("", response_model=List[DocumentSummary])
def list_documents(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return DocumentService.list_documents(db)

@router.get("/pending-approvals", response_model=List[DocumentSummary])
def list_pending_approvals(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_privileged)
):
    return DocumentService.list_pending_approvals(db, current_user.id)

@router.get("/{document_id}", response_model=DocumentView)
def get_document(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return DocumentService.get_document_view(db, document_id)

@router.get("/{document_id}/download")
def download_document(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    blob_store: LocalBlobStore = Depends(get_blob_store)
):
    document = DocumentService.get_document(db, document_id)
    data = blob_store.get(document.document_url)
    media_type, _ = mimetypes.guess_type(document.document_url)
    return Response(content=data, media_type=media_type or "application/octet-stream")

@router.post("/{document_id}/updates", response_model=StatusUpdateResponse, status_code=status.HTTP_201_CREATED)
def post_status_update(
    document_id: int,
    payload: StatusUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return DocumentService.post_status_update(db, document_id, current_user.id, payload.message)

@router.delete("/{document_id}")
def delete_document(
    document_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    blob_store: LocalBlobStore = Depends(get_blob_store)
):
    DocumentService.delete_document(db, document_id, current_user.id, blob_store)
    return {"message": "Document deleted", "document_id": document_id}
