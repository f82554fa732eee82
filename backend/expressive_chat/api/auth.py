"""
Authentication API endpoints.

The session token travels in an HTTP-only cookie. Logging out clears the
cookie only; tokens are not revoked server-side.
"""

import logging
from fastapi import APIRouter, Depends, Response

from ..models import AuthResponse, LoginRequest, SuccessResponse, TokenData, User, UserCredentials
from ..utils.auth import (
    clear_session_cookie,
    create_access_token,
    create_user,
    get_current_user,
    set_session_cookie,
    verify_user,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["authentication"])


@router.post("/signup", response_model=AuthResponse)
async def signup(credentials: UserCredentials, response: Response):
    """
    Register a new user and start a session.

    Raises:
        DuplicateEmail: If the email is already registered
    """
    user = await create_user(credentials.email, credentials.password)
    set_session_cookie(response, create_access_token(user.id, user.email))
    logger.info(f"User signed up: id={user.id}")
    return AuthResponse(user=user)


@router.post("/login", response_model=AuthResponse)
async def login(credentials: LoginRequest, response: Response):
    """
    Check credentials and start a session.

    Raises:
        InvalidCredentials: For an unknown email or a wrong password
    """
    user = await verify_user(credentials.email, credentials.password)
    set_session_cookie(response, create_access_token(user.id, user.email))
    logger.info(f"User logged in: id={user.id}")
    return AuthResponse(user=user)


@router.post("/logout", response_model=SuccessResponse)
async def logout(response: Response):
    """Clear the session cookie."""
    clear_session_cookie(response)
    return SuccessResponse()


@router.get("/me", response_model=AuthResponse)
async def me(current_user: TokenData = Depends(get_current_user)):
    """Return the user carried by the session token."""
    return AuthResponse(user=User(id=current_user.user_id, email=current_user.email))
