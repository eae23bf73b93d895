from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from modules.auth.controllers.auth_controller import get_current_user
from modules.documents.models import User
from modules.documents.schemas import DecisionRequest, StatusChangeResponse
from modules.documents.services import DocumentService

router = APIRouter(
    tags=["approvals"]
)

@router.post("/{document_id}/approvers/{approver_id}/decision", response_model=StatusChangeResponse)
def record_decision(
    document_id: int,
    approver_id: int,
    payload: DecisionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Approve or reject on the caller's own approver assignment.
    """
    new_status = DocumentService.record_approver_decision(
        db, document_id, approver_id, current_user.id, payload.decision, payload.comments
    )
    return StatusChangeResponse(document_id=document_id, status=new_status)
