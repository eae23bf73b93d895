from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum
from database import Base

class SigningStatus(PyEnum):
    PENDING = "pending"
    SIGNED = "signed"
    REJECTED = "rejected"

class ExternalSigner(Base):
    """A signer outside the club; outcomes are recorded on their behalf."""
    __tablename__ = "external_signers"

    id          = Column(Integer, primary_key=True)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    name        = Column(String(255), nullable=False)
    designation = Column(String(255), nullable=False)
    order       = Column(Integer, nullable=False)
    status      = Column(Enum(SigningStatus), nullable=False, default=SigningStatus.PENDING)
    comments    = Column(Text, nullable=True)
    signed_at   = Column(DateTime, nullable=True)

    document = relationship("Document", back_populates="external_signers")
