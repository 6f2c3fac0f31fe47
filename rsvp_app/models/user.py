from sqlalchemy import Column, Integer, String, Boolean, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    display_name = Column(String, nullable=False)

    supabase_id = Column(String, unique=True, index=True, nullable=True)

    # Host contact for RSVP notifications
    phone_number = Column(String, index=True)

    is_active = Column(Boolean, default=True)
    is_admin = Column(Boolean, default=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("supabase_id", name="uq_user_supabase_id"),
        UniqueConstraint("email", name="uq_user_email"),
    )

    hosted_events = relationship(
        "Event", back_populates="host", foreign_keys="Event.host_id"
    )
    responses = relationship("ResponseRecord", back_populates="user")

    @classmethod
    def create_from_supabase(cls, supabase_user, db_session):
        """Create new user from Supabase auth user"""
        user_metadata = supabase_user.user_metadata or {}

        user = cls(
            email=supabase_user.email,
            display_name=user_metadata.get("full_name")
            or user_metadata.get("name")
            or supabase_user.email.split("@")[0],
            supabase_id=supabase_user.id,
            phone_number=user_metadata.get("phone"),
            is_active=True,
        )

        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)

        return user
