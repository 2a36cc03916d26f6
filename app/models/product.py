"""
Purchasable product catalog models
"""

import uuid

from sqlalchemy import Column, String, DateTime, Boolean, Integer, Text, ForeignKey, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from database import Base


class Product(Base):
    """Any purchasable item scoped to one event: tickets, tokens, merchandise or bundles"""
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price_int = Column(Integer, nullable=False)  # Minor currency units (centavos)

    max_ownable_quantity = Column(Integer, nullable=False, default=1)

    # Product type flags - a product can be multiple types
    is_event_access = Column(Boolean, nullable=False, default=False)
    is_activity_access = Column(Boolean, nullable=False, default=False)
    is_activity_token = Column(Boolean, nullable=False, default=False)
    is_physical_item = Column(Boolean, nullable=False, default=False)
    is_ticket_type = Column(Boolean, nullable=False, default=False)

    # Visibility and blocking
    is_public = Column(Boolean, nullable=False, default=False)
    is_hidden = Column(Boolean, nullable=False, default=False)
    is_blocked = Column(Boolean, nullable=False, default=False)

    # Tokens granted per unit purchased
    token_quantity = Column(Integer, nullable=False, default=0)

    # Stock management
    has_unlimited_quantity = Column(Boolean, nullable=False, default=False)
    quantity = Column(Integer, nullable=False, default=0)

    expires_at = Column(DateTime, nullable=False)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    event = relationship("Event", back_populates="products")
    access_targets = relationship("AccessTarget", back_populates="product", cascade="all, delete-orphan")

    @property
    def grants_tokens(self):
        return bool(self.is_activity_token) and (self.token_quantity or 0) > 0

    def total_price(self, quantity: int) -> int:
        """Price of `quantity` units in minor currency units"""
        return self.price_int * quantity

    def __repr__(self):
        return f"<Product(id='{self.id}', name='{self.name}', quantity={self.quantity}, unlimited={self.has_unlimited_quantity})>"


class AccessTarget(Base):
    """What a product unlocks: a whole event or a single activity"""
    __tablename__ = "access_targets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    target_id = Column(String(36), nullable=False, index=True)  # Event ID or Activity ID
    is_event = Column(Boolean, nullable=False, default=False)

    event_id = Column(String(36), ForeignKey("events.id"), nullable=True)  # For searching purposes

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    # Relationships
    product = relationship("Product", back_populates="access_targets")

    def __repr__(self):
        kind = "event" if self.is_event else "activity"
        return f"<AccessTarget(product_id='{self.product_id}', {kind}='{self.target_id}')>"
