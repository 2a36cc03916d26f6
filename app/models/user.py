"""
User model

Accounts are created and authenticated by the auth service; this backend
only reads them to resolve buyers and gift recipients.
"""

import uuid

from sqlalchemy import Column, String, DateTime, Boolean
from sqlalchemy.sql import func

from database import Base


class User(Base):
    """User model"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")

    # Account flags
    is_active = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    is_super_user = Column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def full_name(self):
        return f"{self.name} {self.last_name}".strip()

    def __repr__(self):
        return f"<User(id='{self.id}', email='{self.email}')>"
