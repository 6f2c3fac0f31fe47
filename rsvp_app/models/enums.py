from enum import Enum


class ResponseType(str, Enum):
    YUP = "yup"
    NOPE = "nope"
    MAYBE = "maybe"


class EventStatus(str, Enum):
    OPEN = "open"
    ACTIVE = "active"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class RsvpVisibility(str, Enum):
    PUBLIC = "public"
    INVITEES = "invitees"
    THRESHOLD = "threshold"


# Statuses that accept new or changed responses
ACCEPTING_STATUSES = (EventStatus.OPEN.value, EventStatus.ACTIVE.value)
