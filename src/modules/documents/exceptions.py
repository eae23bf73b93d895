"""
Exceptions raised by the document workflow.

Every error carries the HTTP status the API answers with, so controllers
can let them propagate to the application level handler.
"""

from typing import Optional


class WorkflowError(Exception):
    """Base exception for all document workflow errors."""
    status_code = 400

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(WorkflowError):
    """Malformed or empty input. Not retried."""
    status_code = 400


class AuthorizationError(WorkflowError):
    """The acting subject may not perform the action."""
    status_code = 403


class NotFoundError(WorkflowError):
    """A referenced document, approver or signer row is absent."""
    status_code = 404

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} with ID {entity_id} not found", {"entity": entity, "id": entity_id})


class ConflictError(WorkflowError):
    """A conditional write lost a race; re-fetch before retrying."""
    status_code = 409


class PersistenceError(WorkflowError):
    """The database read or write failed. Safe to retry with the same submission id."""
    status_code = 503
