from .email import EmailService
from .constants import AppConstants, ResponseMessages
from .locks import KeyedLock
from .validation import ValidationHelpers

__all__ = [
    "EmailService",
    "AppConstants",
    "ResponseMessages",
    "KeyedLock",
    "ValidationHelpers",
]
