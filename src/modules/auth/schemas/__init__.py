from .auth_schemas import (
    LoginRequest, TokenResponse, RegisterRequest, UserResponse,
    UserListResponse
)

__all__ = [
    'LoginRequest', 'TokenResponse', 'RegisterRequest', 'UserResponse',
    'UserListResponse'
]
