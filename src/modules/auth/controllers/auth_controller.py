from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from database import get_db
from modules.auth.services.auth_service import AuthService, ACCESS_TOKEN_EXPIRE_MINUTES
from modules.auth.schemas.auth_schemas import (
    LoginRequest, TokenResponse, RegisterRequest, UserResponse, UserListResponse
)
from modules.documents.models.user import User
from modules.documents.services.document_service import DocumentService

router = APIRouter(prefix="/auth", tags=["authentication"])
security = HTTPBearer()

def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security), db: Session = Depends(get_db)):
    """Dependency para obtener usuario autenticado"""
    user = AuthService.get_current_user(db, credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user

@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register_user(user_data: RegisterRequest, db: Session = Depends(get_db)):
    """Self sign-up; the profile is readable as soon as this returns"""
    if db.query(User).filter(User.email == user_data.email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email is already registered"
        )
    if db.query(User).filter(User.employee_code == user_data.employee_code).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Employee code is already registered"
        )

    return AuthService.provision_user(
        db,
        email=user_data.email,
        password=user_data.password,
        employee_code=user_data.employee_code,
        full_name=user_data.full_name,
    )

@router.post("/login", response_model=TokenResponse)
def login(login_data: LoginRequest, db: Session = Depends(get_db)):
    """Endpoint de login"""
    user = AuthService.authenticate(db, login_data.email, login_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token_expires = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = AuthService.create_access_token(
        data={"sub": str(user.id)}, expires_delta=access_token_expires
    )

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user_id=user.id,
        full_name=user.full_name,
        is_admin=user.is_admin
    )

@router.get("/me", response_model=UserResponse)
def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Obtener información del usuario actual"""
    return current_user

@router.get("/users/approvers", response_model=UserListResponse)
def list_approvers(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Members that can be selected as approvers"""
    users = DocumentService.list_privileged_subjects(db)
    return UserListResponse(users=users, total=len(users))
