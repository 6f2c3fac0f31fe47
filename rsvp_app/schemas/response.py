from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime
from ..models.enums import ResponseType
from ..utils.constants import AppConstants


class ResponseSubmit(BaseModel):
    """Inbound RSVP body; guest fields are used only without a session"""

    model_config = ConfigDict(populate_by_name=True)

    response_type: ResponseType = Field(..., alias="responseType")
    guest_count: Optional[int] = Field(None, alias="guestCount")
    comments: Optional[str] = Field(None, max_length=AppConstants.MAX_COMMENT_LENGTH)
    guest_name: Optional[str] = Field(None, alias="guestName")
    guest_email: Optional[str] = Field(None, alias="guestEmail")
    guest_phone: Optional[str] = Field(None, alias="guestPhone")


class ResponseRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_id: int
    response_type: ResponseType
    guest_count: int
    comments: Optional[str] = None
    is_guest: bool
    user_id: Optional[int] = None
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    response_token: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class RosterEntry(BaseModel):
    """Roster row; omits guest contact details and tokens"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    response_type: ResponseType
    guest_count: int
    comments: Optional[str] = None
    is_guest: bool
    user_id: Optional[int] = None
    guest_name: Optional[str] = None
    updated_at: datetime

