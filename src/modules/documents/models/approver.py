from sqlalchemy import Column, Integer, Text, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum
from database import Base

class ApprovalStatus(PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class Approver(Base):
    __tablename__ = "approvers"
    __table_args__ = (
        UniqueConstraint("document_id", "user_id", name="uq_approvers_document_user"),
    )

    id          = Column(Integer, primary_key=True)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    user_id     = Column(Integer, ForeignKey("users.id"), nullable=False)
    order       = Column(Integer, nullable=False)
    status      = Column(Enum(ApprovalStatus), nullable=False, default=ApprovalStatus.PENDING)
    comments    = Column(Text, nullable=True)
    approved_at = Column(DateTime, nullable=True)

    document = relationship("Document", back_populates="approvers")
    user     = relationship("User", back_populates="approvals")
