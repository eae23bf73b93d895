from .user import User
from .document import Document, DocumentStatus, TERMINAL_STATUSES
from .approver import Approver, ApprovalStatus
from .external_signer import ExternalSigner, SigningStatus
from .status_update import StatusUpdate, UpdateType

__all__ = [
    'User', 'Document', 'DocumentStatus', 'TERMINAL_STATUSES',
    'Approver', 'ApprovalStatus', 'ExternalSigner', 'SigningStatus',
    'StatusUpdate', 'UpdateType'
]
