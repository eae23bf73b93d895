from .blob_store import LocalBlobStore, validate_file
from .document_service import DocumentService
from .document_state_service import DocumentStateService

__all__ = ['LocalBlobStore', 'validate_file', 'DocumentService', 'DocumentStateService']
