from contextlib import contextmanager
from typing import List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from logger import get_logger
from modules.documents.models import (
    Approver, ApprovalStatus, Document, DocumentStatus, ExternalSigner,
    SigningStatus, StatusUpdate, User
)
from modules.documents.exceptions import ConflictError, PersistenceError

logger = get_logger(__name__)


class DocumentRepository:
    """Row level access to documents and their children.

    Writes are staged on the session and only become visible on ``commit``.
    Database failures are re-raised as ``PersistenceError`` after a rollback.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    @contextmanager
    def _gateway(self, action: str):
        try:
            yield
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("integrity_violation", action=action, error=str(e.orig))
            raise ConflictError(f"Conflicting rows while {action}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("persistence_failed", action=action, error=str(e))
            raise PersistenceError(f"Database error while {action}") from e

    # --- reads ---

    def get_document(self, document_id: int) -> Optional[Document]:
        with self._gateway("loading document"):
            return self.db.get(Document, document_id)

    def get_document_view(self, document_id: int) -> Optional[Document]:
        with self._gateway("loading document view"):
            return (
                self.db.query(Document)
                .options(
                    joinedload(Document.creator),
                    selectinload(Document.approvers).joinedload(Approver.user),
                    selectinload(Document.external_signers),
                    selectinload(Document.status_updates).joinedload(StatusUpdate.user),
                )
                .filter(Document.id == document_id)
                .populate_existing()
                .first()
            )

    def find_by_submission_id(self, submission_id: str) -> Optional[Document]:
        with self._gateway("looking up submission"):
            return (
                self.db.query(Document)
                .filter(Document.submission_id == submission_id)
                .first()
            )

    def get_user(self, user_id: int) -> Optional[User]:
        with self._gateway("loading user"):
            return self.db.get(User, user_id)

    def get_users(self, user_ids: Sequence[int]) -> List[User]:
        with self._gateway("loading users"):
            return self.db.query(User).filter(User.id.in_(list(user_ids))).all()

    def list_privileged_users(self) -> List[User]:
        with self._gateway("listing approvers"):
            return (
                self.db.query(User)
                .filter(User.is_admin.is_(True), User.is_active.is_(True))
                .order_by(User.full_name)
                .all()
            )

    def get_approver(self, document_id: int, approver_id: int) -> Optional[Approver]:
        with self._gateway("loading approver"):
            return (
                self.db.query(Approver)
                .filter(Approver.id == approver_id, Approver.document_id == document_id)
                .first()
            )

    def get_signer(self, document_id: int, signer_id: int) -> Optional[ExternalSigner]:
        with self._gateway("loading signer"):
            return (
                self.db.query(ExternalSigner)
                .filter(ExternalSigner.id == signer_id, ExternalSigner.document_id == document_id)
                .first()
            )

    def is_assigned_approver(self, document_id: int, user_id: int) -> bool:
        with self._gateway("checking approver assignment"):
            return (
                self.db.query(Approver.id)
                .filter(Approver.document_id == document_id, Approver.user_id == user_id)
                .first()
            ) is not None

    def approver_statuses(self, document_id: int) -> List[ApprovalStatus]:
        """Re-reads the live approver statuses, including staged changes."""
        with self._gateway("reading approver statuses"):
            self.db.flush()
            rows = self.db.query(Approver.status).filter(Approver.document_id == document_id).all()
            return [row[0] for row in rows]

    def signer_statuses(self, document_id: int) -> List[SigningStatus]:
        """Re-reads the live signer statuses, including staged changes."""
        with self._gateway("reading signer statuses"):
            self.db.flush()
            rows = self.db.query(ExternalSigner.status).filter(ExternalSigner.document_id == document_id).all()
            return [row[0] for row in rows]

    def list_documents(self) -> List[Document]:
        with self._gateway("listing documents"):
            return (
                self.db.query(Document)
                .options(joinedload(Document.creator))
                .order_by(Document.created_at.desc(), Document.id.desc())
                .all()
            )

    def list_pending_for(self, user_id: int) -> List[Document]:
        with self._gateway("listing pending approvals"):
            return (
                self.db.query(Document)
                .join(Approver, Approver.document_id == Document.id)
                .options(joinedload(Document.creator))
                .filter(
                    Approver.user_id == user_id,
                    Approver.status == ApprovalStatus.PENDING,
                    Document.status == DocumentStatus.PENDING_APPROVAL,
                )
                .order_by(Document.created_at.desc(), Document.id.desc())
                .all()
            )

    # --- writes ---

    def add_submission(self, document: Document, approvers: List[Approver],
                       signers: List[ExternalSigner], event: StatusUpdate) -> Document:
        """Writes a document with all of its children in one transaction."""
        with self._gateway("saving submission"):
            self.db.add(document)
            self.db.flush()
            for child in [*approvers, *signers, event]:
                child.document_id = document.id
                self.db.add(child)
            self.db.commit()
            self.db.refresh(document)
            return document

    def compare_and_set_status(self, document_id: int, expected: DocumentStatus,
                               new_status: DocumentStatus) -> bool:
        """Moves the document to ``new_status`` only if it still holds ``expected``."""
        with self._gateway("updating document status"):
            result = self.db.execute(
                update(Document)
                .where(Document.id == document_id, Document.status == expected)
                .values(status=new_status)
                .execution_options(synchronize_session="fetch")
            )
            return result.rowcount == 1

    def add_event(self, event: StatusUpdate) -> StatusUpdate:
        with self._gateway("appending status update"):
            self.db.add(event)
            return event

    def delete(self, document: Document) -> None:
        with self._gateway("deleting document"):
            self.db.delete(document)
            self.db.commit()

    def commit(self) -> None:
        with self._gateway("committing"):
            self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
