"""
Domain errors and their HTTP mapping.
"""

from typing import Optional

from fastapi import status


class ChatAppError(Exception):
    """Base class for errors that map onto a client-visible response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "ServerError"
    message: str = "Server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message}


class DuplicateEmail(ChatAppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "DuplicateEmail"
    message = "Email already exists"


class InvalidCredentials(ChatAppError):
    # Same message for unknown email and wrong password.
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "InvalidCredentials"
    message = "Invalid credentials"


class Unauthenticated(ChatAppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "Unauthenticated"
    message = "Not authenticated"


class ChatNotFound(ChatAppError):
    """Raised for chats that do not exist or belong to someone else."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "NotFound"
    message = "Chat not found"


class InvalidImage(ChatAppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "InvalidImage"
    message = "Image must be a base64 data URI"


class ExternalModelFailure(ChatAppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "ExternalModelFailure"
    message = "The model could not produce a reply"


class InvalidTurn(ChatAppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "InvalidTurn"
    message = "A message needs text or an image"
