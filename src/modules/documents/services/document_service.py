from datetime import datetime
from typing import List, Optional, Sequence, Union

from sqlalchemy.orm import Session

from logger import get_logger
from modules.documents.exceptions import (
    AuthorizationError, ConflictError, NotFoundError, PersistenceError, ValidationError
)
from modules.documents.models import (
    ApprovalStatus, Approver, Document, DocumentStatus, ExternalSigner,
    SigningStatus, StatusUpdate, UpdateType, User
)
from modules.documents.repositories.document_repository import DocumentRepository
from modules.documents.schemas import DocumentView, ExternalSignerCreate
from modules.documents.services.blob_store import LocalBlobStore
from modules.documents.services.document_state_service import DocumentStateService
from modules.documents.services.permission import can_decide, can_perform_action

logger = get_logger(__name__)

# Bounded number of compare-and-set attempts when re-deriving a status
RECONCILE_ATTEMPTS = 3


class DocumentService:

    # --- submission ---

    @staticmethod
    def submit_document(
        session: Session,
        title: str,
        description: str,
        document_url: str,
        creator_id: int,
        approver_ids: Sequence[int],
        signers: Sequence[Union[ExternalSignerCreate, dict]],
        submission_id: Optional[str] = None,
    ) -> int:
        """
        Creates a document with its approvers, external signers and the
        ``created`` status update in one transaction.

        Re-submitting with the same ``submission_id`` returns the id of the
        document created the first time instead of writing new rows.
        """
        repo = DocumentRepository(session)
        submission_id = (submission_id or "").strip() or None

        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        if not document_url:
            raise ValidationError("A document file is required")
        approver_ids = list(approver_ids or [])
        if not approver_ids:
            raise ValidationError("At least one approver is required")
        if len(set(approver_ids)) != len(approver_ids):
            raise ValidationError("Approvers must be distinct", {"approvers": approver_ids})
        if not signers:
            raise ValidationError("At least one external signer is required")
        signer_fields = [DocumentService._signer_fields(s) for s in signers]

        if submission_id:
            existing = DocumentService._existing_submission(repo, submission_id, creator_id)
            if existing is not None:
                logger.info("submission_replayed", document_id=existing.id, submission_id=submission_id)
                return existing.id

        creator = repo.get_user(creator_id)
        if creator is None:
            raise NotFoundError("User", creator_id)

        users = {u.id: u for u in repo.get_users(approver_ids)}
        for approver_id in approver_ids:
            user = users.get(approver_id)
            if user is None:
                raise NotFoundError("User", approver_id)
            if not user.is_privileged:
                raise ValidationError(
                    f"User {user.full_name} cannot be assigned as an approver",
                    {"user_id": approver_id}
                )

        document = Document(
            title=title,
            description=description or "",
            document_url=document_url,
            created_by=creator.id,
            status=DocumentStatus.PENDING_APPROVAL,
            submission_id=submission_id,
        )
        approvers = [
            Approver(user_id=user_id, order=position, status=ApprovalStatus.PENDING)
            for position, user_id in enumerate(approver_ids, start=1)
        ]
        external_signers = [
            ExternalSigner(name=name, designation=designation, order=position, status=SigningStatus.PENDING)
            for position, (name, designation) in enumerate(signer_fields, start=1)
        ]
        event = StatusUpdate(
            updated_by=creator.id,
            update_type=UpdateType.CREATED,
            message="Document created and submitted for approval",
        )

        try:
            repo.add_submission(document, approvers, external_signers, event)
        except ConflictError:
            # A concurrent retry with the same key may have won the insert
            if submission_id:
                existing = DocumentService._existing_submission(repo, submission_id, creator_id)
                if existing is not None:
                    return existing.id
            raise

        logger.info(
            "document_submitted",
            document_id=document.id,
            subject_id=creator.id,
            approvers=len(approvers),
            signers=len(external_signers),
        )
        return document.id

    @staticmethod
    def _signer_fields(signer) -> tuple:
        if isinstance(signer, dict):
            name, designation = signer.get("name"), signer.get("designation")
        else:
            name, designation = signer.name, signer.designation
        name = (name or "").strip()
        designation = (designation or "").strip()
        if not name or not designation:
            raise ValidationError("External signers need a name and a designation")
        return name, designation

    @staticmethod
    def _existing_submission(repo: DocumentRepository, submission_id: str, creator_id: int) -> Optional[Document]:
        existing = repo.find_by_submission_id(submission_id)
        if existing is not None and existing.created_by != creator_id:
            raise ConflictError(
                "Submission id already used by another member",
                {"submission_id": submission_id}
            )
        return existing

    # --- approvals ---

    @staticmethod
    def record_approver_decision(
        session: Session,
        document_id: int,
        approver_id: int,
        acting_subject_id: int,
        decision,
        comments: Optional[str] = None,
    ) -> DocumentStatus:
        """Records an approver's decision and advances the document status."""
        repo = DocumentRepository(session)
        status = DocumentService._coerce(ApprovalStatus, decision,
                                         (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED))

        document = DocumentService._get_document(repo, document_id)
        approver = repo.get_approver(document_id, approver_id)
        if approver is None:
            raise NotFoundError("Approver", approver_id)
        actor = DocumentService._get_subject(repo, acting_subject_id)

        if not can_decide(actor, approver.user_id):
            raise AuthorizationError(
                "Only the assigned approver can record this decision",
                {"approver_id": approver_id, "subject_id": acting_subject_id}
            )
        DocumentStateService.ensure_stage(document, DocumentStatus.PENDING_APPROVAL, "record a decision")
        if approver.status != ApprovalStatus.PENDING:
            raise AuthorizationError(
                f"A decision was already recorded ({approver.status.value})",
                {"approver_id": approver_id}
            )

        approver.status = status
        approver.comments = comments
        approver.approved_at = datetime.utcnow() if status == ApprovalStatus.APPROVED else None

        new_status = DocumentStateService.derive_status(
            document.status, approver_statuses=repo.approver_statuses(document.id)
        )
        DocumentStateService.apply_status(repo, document, new_status)

        if new_status == DocumentStatus.REJECTED:
            summary = "Document rejected by one or more approvers"
        elif new_status == DocumentStatus.IN_PROGRESS:
            summary = "Document approved by all approvers and ready for signing"
        else:
            summary = f"Document {status.value} by {actor.full_name}"

        repo.add_event(StatusUpdate(
            document_id=document.id,
            updated_by=actor.id,
            update_type=UpdateType(status.value),
            message=comments or summary,
        ))
        repo.commit()
        logger.info(
            "approver_decision_recorded",
            document_id=document_id,
            approver_id=approver_id,
            subject_id=actor.id,
            decision=status.value,
        )
        return DocumentService._reconcile_after_commit(session, document_id, new_status)

    # --- signatures ---

    @staticmethod
    def record_signer_outcome(
        session: Session,
        document_id: int,
        signer_id: int,
        acting_subject_id: int,
        outcome,
        comments: Optional[str] = None,
    ) -> DocumentStatus:
        """Records an external signer's outcome on their behalf."""
        repo = DocumentRepository(session)
        status = DocumentService._coerce(SigningStatus, outcome,
                                         (SigningStatus.SIGNED, SigningStatus.REJECTED))

        document = DocumentService._get_document(repo, document_id)
        signer = repo.get_signer(document_id, signer_id)
        if signer is None:
            raise NotFoundError("External signer", signer_id)
        actor = DocumentService._get_subject(repo, acting_subject_id)

        if not can_perform_action(actor, document, "record_signature"):
            raise AuthorizationError(
                "Only the document creator or a privileged member can record signatures",
                {"document_id": document_id, "subject_id": acting_subject_id}
            )
        DocumentStateService.ensure_stage(document, DocumentStatus.IN_PROGRESS, "record a signature")
        if signer.status != SigningStatus.PENDING:
            raise AuthorizationError(
                f"An outcome was already recorded ({signer.status.value})",
                {"signer_id": signer_id}
            )

        signer.status = status
        signer.comments = comments
        signer.signed_at = datetime.utcnow() if status == SigningStatus.SIGNED else None

        new_status = DocumentStateService.derive_status(
            document.status, signer_statuses=repo.signer_statuses(document.id)
        )
        DocumentStateService.apply_status(repo, document, new_status)

        repo.add_event(StatusUpdate(
            document_id=document.id,
            updated_by=actor.id,
            update_type=UpdateType.SIGNATURE_RECEIVED if status == SigningStatus.SIGNED else UpdateType.REJECTED,
            message=comments or f"Signature {status.value} by {signer.name}",
        ))
        repo.commit()
        logger.info(
            "signer_outcome_recorded",
            document_id=document_id,
            signer_id=signer_id,
            subject_id=actor.id,
            outcome=status.value,
        )
        return DocumentService._reconcile_after_commit(session, document_id, new_status)

    # --- status repair ---

    @staticmethod
    def reconcile_status(session: Session, document_id: int) -> DocumentStatus:
        """
        Re-derives the status from the committed child rows and repairs the
        document if it disagrees. Covers two decisions that committed
        concurrently without seeing each other.
        """
        repo = DocumentRepository(session)
        document = DocumentService._get_document(repo, document_id)

        for _ in range(RECONCILE_ATTEMPTS):
            session.refresh(document)
            derived = DocumentStateService.derive_status(
                document.status,
                approver_statuses=repo.approver_statuses(document_id),
                signer_statuses=repo.signer_statuses(document_id),
            )
            if derived == document.status:
                return derived
            try:
                DocumentStateService.apply_status(repo, document, derived)
                repo.commit()
                logger.info("document_status_repaired", document_id=document_id, status=derived.value)
                return derived
            except ConflictError:
                continue

        session.refresh(document)
        return document.status

    @staticmethod
    def _reconcile_after_commit(session: Session, document_id: int, committed: DocumentStatus) -> DocumentStatus:
        # The action is already committed; a failed repair must not report it as failed
        try:
            return DocumentService.reconcile_status(session, document_id)
        except PersistenceError as e:
            logger.warning("status_repair_skipped", document_id=document_id, error=e.message)
            return committed

    # --- activity ---

    @staticmethod
    def post_status_update(session: Session, document_id: int, subject_id: int, message: str) -> StatusUpdate:
        """Appends a free-form ``general_update`` to the document history."""
        repo = DocumentRepository(session)
        message = (message or "").strip()
        if not message:
            raise ValidationError("Message is required")

        document = DocumentService._get_document(repo, document_id)
        actor = DocumentService._get_subject(repo, subject_id)
        if not (can_perform_action(actor, document, "post_update")
                or repo.is_assigned_approver(document_id, actor.id)):
            raise AuthorizationError("You are not involved in this document")

        event = repo.add_event(StatusUpdate(
            document_id=document.id,
            updated_by=actor.id,
            update_type=UpdateType.GENERAL_UPDATE,
            message=message,
        ))
        repo.commit()
        session.refresh(event)
        return event

    # --- reads ---

    @staticmethod
    def get_document_view(session: Session, document_id: int) -> DocumentView:
        """Document with ordered approvers, ordered signers and newest-first history."""
        repo = DocumentRepository(session)
        document = repo.get_document_view(document_id)
        if document is None:
            raise NotFoundError("Document", document_id)

        view = DocumentView.model_validate(document)
        view.approvers.sort(key=lambda a: (a.order, a.id))
        view.external_signers.sort(key=lambda s: (s.order, s.id))
        view.status_updates.sort(key=lambda u: (u.created_at, u.id), reverse=True)
        return view

    @staticmethod
    def list_documents(session: Session) -> List[Document]:
        return DocumentRepository(session).list_documents()

    @staticmethod
    def list_pending_approvals(session: Session, subject_id: int) -> List[Document]:
        """Documents waiting for this member's decision."""
        return DocumentRepository(session).list_pending_for(subject_id)

    @staticmethod
    def list_privileged_subjects(session: Session) -> List[User]:
        return DocumentRepository(session).list_privileged_users()

    @staticmethod
    def get_document(session: Session, document_id: int) -> Document:
        return DocumentService._get_document(DocumentRepository(session), document_id)

    # --- deletion ---

    @staticmethod
    def delete_document(session: Session, document_id: int, subject_id: int,
                        blob_store: Optional[LocalBlobStore] = None):
        """Deletes a document and, through the cascade, all of its rows."""
        repo = DocumentRepository(session)
        document = DocumentService._get_document(repo, document_id)
        actor = DocumentService._get_subject(repo, subject_id)
        if not can_perform_action(actor, document, "delete"):
            raise AuthorizationError("Only the creator or a privileged member can delete this document")

        document_url = document.document_url
        repo.delete(document)
        if blob_store is not None:
            try:
                blob_store.delete(document_url)
            except PersistenceError as e:
                logger.warning("orphaned_blob", document_id=document_id, url=document_url, error=e.message)
        logger.info("document_deleted", document_id=document_id, subject_id=subject_id)

    # --- helpers ---

    @staticmethod
    def _get_document(repo: DocumentRepository, document_id: int) -> Document:
        document = repo.get_document(document_id)
        if document is None:
            raise NotFoundError("Document", document_id)
        return document

    @staticmethod
    def _get_subject(repo: DocumentRepository, subject_id: int) -> User:
        user = repo.get_user(subject_id)
        if user is None:
            raise NotFoundError("User", subject_id)
        if not user.is_active:
            raise AuthorizationError("Inactive members cannot act on documents")
        return user

    @staticmethod
    def _coerce(enum_cls, value, allowed):
        raw = getattr(value, "value", value)
        try:
            member = enum_cls(raw)
        except ValueError:
            member = None
        if member not in allowed:
            raise ValidationError(
                f"Invalid value '{raw}', expected one of: {', '.join(a.value for a in allowed)}"
            )
        return member
