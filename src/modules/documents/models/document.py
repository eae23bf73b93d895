from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum
from database import Base

class DocumentStatus(PyEnum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

TERMINAL_STATUSES = (DocumentStatus.REJECTED, DocumentStatus.COMPLETED)

class Document(Base):
    __tablename__ = 'documents'

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    document_url = Column(String, nullable=False)
    status = Column(Enum(DocumentStatus), nullable=False, default=DocumentStatus.PENDING_APPROVAL)
    # Caller supplied idempotency key for the submission
    submission_id = Column(String(64), unique=True, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    created_by = Column(Integer, ForeignKey('users.id'), nullable=False)
    creator = relationship("User", back_populates="documents")

    approvers = relationship("Approver", back_populates="document", order_by="Approver.order", cascade="all, delete-orphan")
    external_signers = relationship("ExternalSigner", back_populates="document", order_by="ExternalSigner.order", cascade="all, delete-orphan")
    status_updates = relationship(
        "StatusUpdate",
        back_populates="document",
        order_by="StatusUpdate.id.desc()",
        cascade="all, delete-orphan"
    )
