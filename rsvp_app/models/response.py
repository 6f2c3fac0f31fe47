from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from ..database import Base


class ResponseRecord(Base):
    __tablename__ = "responses"

    id = Column(Integer, primary_key=True, index=True)
    response_type = Column(String, nullable=False)  # yup, nope, maybe
    guest_count = Column(Integer, default=1, nullable=False)
    comments = Column(Text)

    # "user:<id>" or "guest:<normalized email>"
    actor_key = Column(String, nullable=False)
    is_guest = Column(Boolean, default=False, nullable=False)

    # Guest identity
    guest_name = Column(String)
    guest_email = Column(String)
    guest_phone = Column(String)
    response_token = Column(String, unique=True, index=True)

    # Foreign Keys
    event_id = Column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )

    # Timestamps, set by the service so updates keep the original created_at
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("event_id", "actor_key", name="uq_response_event_actor"),
    )

    # Relationships
    event = relationship("Event", back_populates="responses")
    user = relationship("User", back_populates="responses", foreign_keys=[user_id])
