from fastapi import Depends, HTTPException, status
from modules.documents.models.user import User
from modules.auth.controllers.auth_controller import get_current_user

def require_privileged(current_user: User = Depends(get_current_user)):
    if not current_user.is_privileged:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only privileged members can perform this action"
        )
    return current_user
