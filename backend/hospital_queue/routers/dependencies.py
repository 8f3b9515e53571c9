"""
Authentication and authorization dependencies.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..errors import PermissionDenied
from ..services.auth_service import AuthService
from ..models.user import Server, User, UserRole

security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> User:
    """Get current authenticated user from JWT token."""
    token = credentials.credentials
    user = await AuthService.get_current_user(token)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled"
        )

    return user


def require_role(*roles: UserRole):
    """Dependency factory for role-based access control."""
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {[r.value for r in roles]}"
            )
        return current_user
    return role_checker


def require_server(*roles: UserRole):
    """Like require_role, but hands the route a Server capability."""
    checker = require_role(*roles)

    async def server_checker(current_user: User = Depends(checker)) -> Server:
        try:
            return Server.from_user(current_user)
        except PermissionDenied as e:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
    return server_checker


# Pre-defined role dependencies
require_admin = require_role(UserRole.ADMIN)
require_staff = require_role(UserRole.RECEPTIONIST, UserRole.ADMIN)
require_doctor = require_server(UserRole.DOCTOR)
require_lab_technician = require_server(UserRole.LAB_TECHNICIAN)
require_any_server = require_server(UserRole.DOCTOR, UserRole.LAB_TECHNICIAN)
