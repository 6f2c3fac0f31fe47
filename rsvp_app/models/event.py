from rsvp_app.models.enums import EventStatus, RsvpVisibility
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Text,
    Boolean,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String, unique=True, index=True, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text)
    date = Column(DateTime, nullable=False)
    location = Column(String)
    status = Column(String, default=EventStatus.OPEN.value, nullable=False)

    # RSVP policy
    allow_guest_rsvp = Column(Boolean, default=True, nullable=False)
    allow_plus_one = Column(Boolean, default=True, nullable=False)
    max_guests_per_rsvp = Column(Integer, default=3, nullable=False)
    rsvp_visibility = Column(
        String, default=RsvpVisibility.PUBLIC.value, nullable=False
    )
    show_rsvps_to_invitees = Column(Boolean, default=True, nullable=False)
    rsvp_visibility_threshold = Column(Integer, default=5, nullable=False)

    host_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    host = relationship("User", back_populates="hosted_events", foreign_keys=[host_id])
    responses = relationship(
        "ResponseRecord", back_populates="event", cascade="all, delete-orphan"
    )
