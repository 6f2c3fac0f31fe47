# rsvp_app/dependencies/__init__.py

from .permissions import (
    get_current_user,
    get_optional_user,
    get_response_service,
)

__all__ = [
    "get_current_user",
    "get_optional_user",
    "get_response_service",
]
