"""Core module - domain errors, localisation and the conversation orchestrator."""

from .errors import (
    ChatAppError, DuplicateEmail, InvalidCredentials, Unauthenticated,
    ChatNotFound, InvalidImage, InvalidTurn, ExternalModelFailure
)

__all__ = [
    'ChatAppError', 'DuplicateEmail', 'InvalidCredentials', 'Unauthenticated',
    'ChatNotFound', 'InvalidImage', 'InvalidTurn', 'ExternalModelFailure'
]
