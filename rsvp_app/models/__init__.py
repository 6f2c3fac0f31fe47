from .user import User
from .event import Event
from .response import ResponseRecord


__all__ = [
    "User",
    "Event",
    "ResponseRecord",
]
