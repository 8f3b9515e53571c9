"""
Authentication service with JWT token management.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from .. import clock
from ..config import get_settings
from ..database import Database
from ..errors import ConflictError
from ..models.user import UserCreate, User, Token, TokenData, UserRole

settings = get_settings()
logger = logging.getLogger(__name__)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def to_user(doc: dict) -> User:
    return User(
        _id=str(doc["_id"]),
        email=doc["email"],
        first_name=doc["first_name"],
        last_name=doc.get("last_name", ""),
        phone_number=doc.get("phone_number"),
        role=UserRole(doc["role"]),
        department=doc.get("department"),
        is_active=doc.get("is_active", True),
        created_at=doc["created_at"],
    )


class AuthService:
    """Authentication and staff user management service."""

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Verify password against hash."""
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def get_password_hash(password: str) -> str:
        """Hash a password."""
        return pwd_context.hash(password)

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Create JWT access token."""
        to_encode = data.copy()
        expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> Optional[TokenData]:
        """Decode and validate JWT token."""
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
            user_id: str = payload.get("sub")
            email: str = payload.get("email")
            role: str = payload.get("role")
            if user_id is None:
                return None
            return TokenData(user_id=user_id, email=email, role=UserRole(role))
        except (JWTError, ValueError):
            return None

    @classmethod
    async def get_user_by_email(cls, email: str) -> Optional[dict]:
        users = Database.get_collection("users")
        return await users.find_one({"email": email.lower()})

    @classmethod
    async def get_user_by_id(cls, user_id: str) -> Optional[dict]:
        users = Database.get_collection("users")
        try:
            return await users.find_one({"_id": ObjectId(user_id)})
        except InvalidId:
            return None

    @classmethod
    async def create_user(cls, user_data: UserCreate) -> User:
        """Create a new staff user."""
        users = Database.get_collection("users")

        user_doc = {
            "email": user_data.email.lower(),
            "first_name": user_data.first_name,
            "last_name": user_data.last_name,
            "phone_number": user_data.phone_number,
            "role": user_data.role.value,
            "department": user_data.department,
            "hashed_password": cls.get_password_hash(user_data.password),
            "is_active": True,
            "created_at": clock.now(),
        }

        try:
            result = await users.insert_one(user_doc)
        except DuplicateKeyError:
            raise ConflictError("User with this email already exists", {"email": user_data.email})
        user_doc["_id"] = result.inserted_id
        return to_user(user_doc)

    @classmethod
    async def ensure_admin(cls, email: str, password: str) -> User:
        """Create the admin account, or restore its role if it already exists."""
        users = Database.get_collection("users")
        existing = await users.find_one_and_update(
            {"email": email.lower()},
            {"$set": {"role": UserRole.ADMIN.value, "is_active": True}},
            return_document=ReturnDocument.AFTER,
        )
        if existing:
            return to_user(existing)

        logger.info("Creating admin account %s", email)
        return await cls.create_user(UserCreate(
            email=email,
            password=password,
            first_name="Admin",
            role=UserRole.ADMIN,
        ))

    @classmethod
    async def authenticate_user(cls, email: str, password: str) -> Optional[User]:
        """Authenticate user with email and password."""
        user = await cls.get_user_by_email(email)
        if not user:
            return None
        if not cls.verify_password(password, user["hashed_password"]):
            return None
        return to_user(user)

    @classmethod
    async def login(cls, email: str, password: str) -> Optional[Token]:
        """Login user and return access token."""
        user = await cls.authenticate_user(email, password)
        if not user:
            return None

        access_token = cls.create_access_token(
            data={
                "sub": user.id,
                "email": user.email,
                "role": user.role.value
            }
        )
        return Token(access_token=access_token, user=user)

    @classmethod
    async def get_current_user(cls, token: str) -> Optional[User]:
        """Get current user from token."""
        token_data = cls.decode_token(token)
        if not token_data:
            return None

        user = await cls.get_user_by_id(token_data.user_id)
        if not user:
            return None
        return to_user(user)
