from sqlalchemy import Column, Integer, Text, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum
from database import Base

class UpdateType(PyEnum):
    CREATED = "created"
    APPROVED = "approved"
    REJECTED = "rejected"
    SIGNING_STARTED = "signing_started"
    SIGNATURE_RECEIVED = "signature_received"
    COMPLETED = "completed"
    GENERAL_UPDATE = "general_update"

class StatusUpdate(Base):
    """Activity event. Rows are only ever inserted."""
    __tablename__ = 'status_updates'

    id = Column(Integer, primary_key=True)
    document_id = Column(Integer, ForeignKey('documents.id', ondelete="CASCADE"), nullable=False)
    updated_by = Column(Integer, ForeignKey('users.id'), nullable=False)
    update_type = Column(Enum(UpdateType), nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    document = relationship("Document", back_populates="status_updates")
    user = relationship("User")
