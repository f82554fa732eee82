"""
Authentication utilities - password hashing, account creation and
verification, and signed session tokens carried in a cookie.

Tokens are stateless: nothing is stored server-side, so logging out only
clears the client's cookie and a copied token stays valid until it expires.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from email_validator import EmailNotValidError, validate_email
from fastapi import Depends, Response
from fastapi.security import APIKeyCookie
from jose import JWTError, jwt

from ..config import settings
from ..core.errors import DuplicateEmail, InvalidCredentials, Unauthenticated
from ..models import TokenData, User
from ..storage.user_storage import get_user_storage

logger = logging.getLogger(__name__)

# Session cookie security
cookie_scheme = APIKeyCookie(name=settings.session_cookie_name, auto_error=False)

# bcrypt only looks at the first 72 bytes of a password
BCRYPT_MAX_PASSWORD_BYTES = 72

_dummy_hash: Optional[str] = None


def _password_bytes(password: str) -> bytes:
    return password.encode('utf-8')[:BCRYPT_MAX_PASSWORD_BYTES]


def get_password_hash(password: str, rounds: Optional[int] = None) -> str:
    """Hash a password with a fresh salt."""
    salt = bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds)
    hashed = bcrypt.hashpw(_password_bytes(password), salt)
    return hashed.decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), hashed_password.encode('utf-8'))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def normalize_email(email: str) -> str:
    """
    Canonical account key for an email, as stored at signup.
    Values that are not valid addresses are only stripped.
    """
    email = email.strip()
    try:
        return validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError:
        return email


def _get_dummy_hash() -> str:
    """Hash checked for unknown emails so both failures take the same time."""
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = get_password_hash("dummy-password-for-timing")
    return _dummy_hash


async def create_user(email: str, password: str) -> User:
    """
    Register a new account.

    Args:
        email: Unique email
        password: Plain text password, never stored

    Returns:
        User: The created user

    Raises:
        DuplicateEmail: If the email is already registered
    """
    email = normalize_email(email)
    storage = get_user_storage()
    if await storage.get_user_by_email(email) is not None:
        raise DuplicateEmail()

    password_hash = await asyncio.to_thread(get_password_hash, password)
    user = await storage.create_user(email, password_hash)
    return User(id=user.id, email=user.email)


async def verify_user(email: str, password: str) -> User:
    """
    Check an email / password pair.

    Returns:
        User: The matching user

    Raises:
        InvalidCredentials: For an unknown email or a wrong password alike
    """
    user = await get_user_storage().get_user_by_email(normalize_email(email))
    if user is None:
        dummy_hash = await asyncio.to_thread(_get_dummy_hash)
        await asyncio.to_thread(verify_password, password, dummy_hash)
        raise InvalidCredentials()

    if not await asyncio.to_thread(verify_password, password, user.password_hash):
        raise InvalidCredentials()
    return User(id=user.id, email=user.email)


def _epoch_seconds(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


def create_access_token(
    user_id: int,
    email: str,
    now: Optional[datetime] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a signed session token.

    Args:
        user_id: Subject of the token
        email: User's email, carried as a claim
        now: Issue time (defaults to the current time)
        expires_delta: Lifetime (defaults to access_token_expire_minutes)

    Returns:
        str: Encoded JWT token
    """
    issued_at = _epoch_seconds(now or datetime.now(timezone.utc))
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {
        "sub": str(user_id),
        "email": email,
        "iat": issued_at,
        "exp": issued_at + int(lifetime.total_seconds()),
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str, now: Optional[datetime] = None) -> TokenData:
    """
    Decode and verify a session token.

    A token is accepted up to and including its ``exp`` second.

    Args:
        token: JWT token string
        now: Validation time (defaults to the current time)

    Returns:
        TokenData: The validated claims

    Raises:
        Unauthenticated: If the token is malformed, badly signed or expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            options={"verify_exp": False},
        )
    except JWTError as e:
        raise Unauthenticated("Invalid token") from e

    try:
        user_id = int(payload["sub"])
        email = str(payload["email"])
        issued_at = int(payload["iat"])
        expires_at = int(payload["exp"])
    except (KeyError, TypeError, ValueError) as e:
        raise Unauthenticated("Invalid token") from e

    if _epoch_seconds(now or datetime.now(timezone.utc)) > expires_at:
        raise Unauthenticated("Token expired")

    return TokenData(
        user_id=user_id,
        email=email,
        issued_at=datetime.fromtimestamp(issued_at, tz=timezone.utc),
        expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc),
    )


async def get_current_user(token: Optional[str] = Depends(cookie_scheme)) -> TokenData:
    """
    Dependency to get the current user from the session cookie.

    Raises:
        Unauthenticated: If the cookie is missing or invalid
    """
    if not token:
        raise Unauthenticated()
    return decode_access_token(token)


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.access_token_expire_seconds,
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
    )
