"""
Authentication API routes.
"""

from fastapi import APIRouter, HTTPException, status, Depends

from ..models.user import UserCreate, UserLogin, User, Token
from ..services.auth_service import AuthService
from .dependencies import get_current_user, require_admin

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=User, response_model_by_alias=False, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, admin: User = Depends(require_admin)):
    """Create a staff account; only an admin may assign roles."""
    return await AuthService.create_user(user_data)


@router.post("/login", response_model=Token, response_model_by_alias=False)
async def login(credentials: UserLogin):
    """Login and get access token."""
    token = await AuthService.login(credentials.email, credentials.password)

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"}
        )

    return token


@router.get("/me", response_model=User, response_model_by_alias=False)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information."""
    return current_user
