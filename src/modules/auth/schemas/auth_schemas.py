from datetime import datetime
from pydantic import BaseModel, EmailStr, Field
from typing import List

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str
    user_id: int
    full_name: str
    is_admin: bool

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    employee_code: str = Field(min_length=1, max_length=16)
    full_name: str = Field(min_length=1)

class UserResponse(BaseModel):
    id: int
    email: str
    employee_code: str
    full_name: str
    is_admin: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True

class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int
