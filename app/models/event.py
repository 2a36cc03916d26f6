"""
Event, activity and registration models
"""

import enum
import uuid

from sqlalchemy import Column, String, DateTime, Boolean, Integer, Text, ForeignKey, Enum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from database import Base


class AccessMethod(str, enum.Enum):
    """How a user obtained access to an activity"""
    EVENT = "event"
    PRODUCT = "product"
    TOKEN = "token"
    DIRECT = "direct"


class Event(Base):
    """Event model"""
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slug = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)

    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)

    # Visibility and blocking
    is_public = Column(Boolean, nullable=False, default=True)
    is_hidden = Column(Boolean, nullable=False, default=False)
    is_blocked = Column(Boolean, nullable=False, default=False)

    created_by = Column(String(36), ForeignKey("users.id"), nullable=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    activities = relationship("Activity", back_populates="event", cascade="all, delete-orphan")
    products = relationship("Product", back_populates="event", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Event(id='{self.id}', slug='{self.slug}')>"


class EventRegistration(Base):
    """A user's registration to an event"""
    __tablename__ = "event_registrations"

    event_id = Column(String(36), ForeignKey("events.id"), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), primary_key=True)

    # Product that granted access, i.e. a ticket
    product_id = Column(String(36), ForeignKey("products.id"), nullable=True)

    registered_at = Column(DateTime, server_default=func.now(), nullable=False)


class Activity(Base):
    """Scheduled activity, usually part of an event"""
    __tablename__ = "activities"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.id"), nullable=True, index=True)

    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    speaker = Column(String(200), nullable=True)
    location = Column(String(255), nullable=True)

    has_unlimited_capacity = Column(Boolean, nullable=False, default=False)
    max_capacity = Column(Integer, nullable=False, default=30)

    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)

    # Access control
    is_mandatory = Column(Boolean, nullable=False, default=False)  # Everyone attending the event is enrolled
    has_fee = Column(Boolean, nullable=False, default=False)  # Requires a token or a dedicated product

    # Visibility and blocking
    is_hidden = Column(Boolean, nullable=False, default=False)
    is_blocked = Column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    event = relationship("Event", back_populates="activities")

    @property
    def is_free_or_mandatory(self):
        """Whether event-level access covers this activity"""
        return bool(self.is_mandatory) or not self.has_fee

    def __repr__(self):
        return f"<Activity(id='{self.id}', name='{self.name}', mandatory={self.is_mandatory}, fee={self.has_fee})>"


class ActivityRegistration(Base):
    """A user's registration to an activity, unique per (activity, user)"""
    __tablename__ = "activity_registrations"

    activity_id = Column(String(36), ForeignKey("activities.id"), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), primary_key=True)

    # Access method tracking
    access_method = Column(Enum(AccessMethod), nullable=False, default=AccessMethod.DIRECT)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=True)
    token_id = Column(String(36), nullable=True)  # Which token was used, if any

    is_standalone_registration = Column(Boolean, nullable=False, default=False)
    attended_at = Column(DateTime, nullable=True)

    # Timestamps
    registered_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<ActivityRegistration(activity_id='{self.activity_id}', user_id='{self.user_id}', method='{self.access_method}')>"
