from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from modules.auth.controllers.auth_controller import get_current_user
from modules.documents.models import User
from modules.documents.schemas import SignerOutcomeRequest, StatusChangeResponse
from modules.documents.services import DocumentService

router = APIRouter(
    tags=["signatures"]
)

@router.post("/{document_id}/signers/{signer_id}/outcome", response_model=StatusChangeResponse)
def record_signer_outcome(
    document_id: int,
    signer_id: int,
    payload: SignerOutcomeRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Records that an external signer signed or refused. Creator or
    privileged members record it on the signer's behalf.
    """
    new_status = DocumentService.record_signer_outcome(
        db, document_id, signer_id, current_user.id, payload.outcome, payload.comments
    )
    return StatusChangeResponse(document_id=document_id, status=new_status)
