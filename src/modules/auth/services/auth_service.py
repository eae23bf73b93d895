from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from logger import get_logger
from modules.documents.exceptions import ValidationError
from modules.documents.models.user import User

logger = get_logger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = settings.access_token_expire_minutes

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

class AuthService:

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Verifica si la contraseña coincide con el hash"""
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def get_password_hash(password: str) -> str:
        """Genera hash de la contraseña"""
        return pwd_context.hash(password)

    @staticmethod
    def is_admin_code(employee_code: str) -> bool:
        return employee_code in settings.admin_codes

    @staticmethod
    def provision_user(db: Session, email: str, password: str, employee_code: str, full_name: str) -> User:
        """
        Creates the member profile and returns it once committed, so the
        caller never has to wait for it to show up.
        """
        user = User(
            email=email,
            employee_code=employee_code,
            full_name=full_name,
            password_hash=AuthService.get_password_hash(password),
            is_admin=AuthService.is_admin_code(employee_code),
            is_active=True
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent sign-up for the same email or code
            db.rollback()
            logger.warning("user_provision_conflict", employee_code=employee_code, error=str(e.orig))
            raise ValidationError("Email or employee code is already registered") from e
        db.refresh(user)
        logger.info("user_provisioned", subject_id=user.id, is_admin=user.is_admin)
        return user

    @staticmethod
    def authenticate(db: Session, email: str, password: str) -> Optional[User]:
        """Autentica usuario por email y contraseña"""
        user = db.query(User).filter(User.email == email).first()
        if not user:
            return None
        if not AuthService.verify_password(password, user.password_hash):
            return None
        if not user.is_active:
            return None
        return user

    @staticmethod
    def get_subject(db: Session, subject_id: int) -> Optional[dict]:
        """Identity attributes the workflow relies on"""
        user = db.get(User, subject_id)
        if user is None:
            return None
        return {"id": user.id, "is_privileged": user.is_privileged}

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
        """Crea token JWT"""
        to_encode = data.copy()
        if expires_delta:
            expire = datetime.utcnow() + expires_delta
        else:
            expire = datetime.utcnow() + timedelta(minutes=15)
        to_encode.update({"exp": expire})
        encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
        return encoded_jwt

    @staticmethod
    def verify_token(token: str) -> Optional[int]:
        """Verifica token JWT y retorna el id del usuario"""
        try:
            payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
            subject = payload.get("sub")
            if subject is None:
                return None
            return int(subject)
        except (JWTError, ValueError):
            return None

    @staticmethod
    def get_current_user(db: Session, token: str) -> Optional[User]:
        """Obtiene usuario actual desde token"""
        subject_id = AuthService.verify_token(token)
        if subject_id is None:
            return None
        user = db.get(User, subject_id)
        if user is None or not user.is_active:
            return None
        return user
