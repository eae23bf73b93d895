from typing import Iterable, Optional

from logger import get_logger
from modules.documents.exceptions import AuthorizationError, ConflictError
from modules.documents.models import (
    ApprovalStatus, Document, DocumentStatus, SigningStatus, TERMINAL_STATUSES
)
from modules.documents.repositories.document_repository import DocumentRepository

logger = get_logger(__name__)


class DocumentStateService:

    @staticmethod
    def derive_approval_status(statuses: Iterable[ApprovalStatus]) -> DocumentStatus:
        """
        Status of a document in the approval stage given all approver decisions
        """
        statuses = list(statuses)
        if any(s == ApprovalStatus.REJECTED for s in statuses):
            return DocumentStatus.REJECTED
        if statuses and all(s == ApprovalStatus.APPROVED for s in statuses):
            return DocumentStatus.IN_PROGRESS
        return DocumentStatus.PENDING_APPROVAL

    @staticmethod
    def derive_signing_status(statuses: Iterable[SigningStatus]) -> DocumentStatus:
        """
        Status of a document in the signing stage given all signer outcomes
        """
        statuses = list(statuses)
        if any(s == SigningStatus.REJECTED for s in statuses):
            return DocumentStatus.REJECTED
        if statuses and all(s == SigningStatus.SIGNED for s in statuses):
            return DocumentStatus.COMPLETED
        return DocumentStatus.IN_PROGRESS

    @staticmethod
    def derive_status(current: DocumentStatus,
                      approver_statuses: Iterable[ApprovalStatus] = (),
                      signer_statuses: Iterable[SigningStatus] = ()) -> DocumentStatus:
        """
        Single source of truth for the document status. Both the approver and
        the signer paths go through here.
        """
        if current in TERMINAL_STATUSES:
            return current
        if current == DocumentStatus.PENDING_APPROVAL:
            return DocumentStateService.derive_approval_status(approver_statuses)
        if current == DocumentStatus.IN_PROGRESS:
            return DocumentStateService.derive_signing_status(signer_statuses)
        return current

    @staticmethod
    def ensure_stage(document: Document, expected: DocumentStatus, action: str):
        """Rejects actions on documents that left the stage they belong to."""
        if document.status != expected:
            raise AuthorizationError(
                f"Cannot {action}: document is {document.status.value}, "
                f"expected {expected.value}",
                {"document_id": document.id, "status": document.status.value}
            )

    @staticmethod
    def apply_status(repo: DocumentRepository, document: Document,
                     new_status: DocumentStatus) -> Optional[DocumentStatus]:
        """
        Writes ``new_status`` with a compare-and-set on the status the caller
        read. Returns the previous status, or None when nothing changed.
        """
        previous = document.status
        if new_status == previous:
            return None

        if not repo.compare_and_set_status(document.id, previous, new_status):
            repo.rollback()
            logger.warning(
                "status_write_conflict",
                document_id=document.id,
                expected=previous.value,
                attempted=new_status.value,
            )
            raise ConflictError(
                f"Document {document.id} changed while it was being updated",
                {"document_id": document.id, "expected": previous.value}
            )

        logger.info(
            "document_status_changed",
            document_id=document.id,
            previous=previous.value,
            status=new_status.value,
        )
        return previous
