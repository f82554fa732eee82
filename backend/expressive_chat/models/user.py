"""
User Model - Defines the user data structure.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserCredentials(BaseModel):
    """Signup / login request body."""
    email: EmailStr
    password: str = Field(..., min_length=1)


class User(BaseModel):
    """Public user representation."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str


class UserInDB(User):
    """User model as stored in database with hashed password."""
    password_hash: str
    created_at: Optional[datetime] = None


class AuthResponse(BaseModel):
    """Body returned by signup, login and /me."""
    user: User


class TokenData(BaseModel):
    """Validated session token claims."""
    user_id: int
    email: str
    issued_at: datetime
    expires_at: datetime


class LoginRequest(BaseModel):
    """Login body; the email is not format-checked so every miss is a 401."""
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
