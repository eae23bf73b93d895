from modules.documents.models import Document, User

# Actions granted to every privileged member regardless of ownership
PRIVILEGED_ACTIONS = ["record_signature", "post_update", "delete"]
# Actions the creator may perform on their own document
CREATOR_ACTIONS = ["record_signature", "post_update", "delete"]


def can_perform_action(user: User, document: Document, action: str) -> bool:
    if user.is_privileged and action in PRIVILEGED_ACTIONS:
        return True
    return document.created_by == user.id and action in CREATOR_ACTIONS


def can_decide(user: User, approver_user_id: int) -> bool:
    """Approvers may only act on their own assignment."""
    return user.id == approver_user_id
