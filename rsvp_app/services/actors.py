from dataclasses import dataclass
from typing import Optional, Union
from ..utils.constants import AppConstants
from ..utils.validation import ValidationHelpers


@dataclass(frozen=True)
class UserActor:
    """Authenticated responder"""

    user_id: int
    name: str = ""

    @property
    def actor_key(self) -> str:
        return f"{AppConstants.USER_ACTOR_PREFIX}:{self.user_id}"


@dataclass(frozen=True)
class GuestActor:
    """Anonymous responder, identified by email"""

    name: str
    email: str
    phone: Optional[str] = None

    @property
    def normalized_email(self) -> str:
        return ValidationHelpers.normalize_email(self.email)

    @property
    def actor_key(self) -> str:
        return f"{AppConstants.GUEST_ACTOR_PREFIX}:{self.normalized_email}"


Actor = Union[UserActor, GuestActor]


def actor_from_user(user) -> UserActor:
    """Build the actor for an authenticated User row"""
    return UserActor(user_id=user.id, name=user.display_name or user.email)
