"""
Read-only lookups over users, events, activities and products
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import desc, func, or_, and_
from sqlalchemy.orm import Session, selectinload

from app.models.user import User
from app.models.event import Event, EventRegistration, Activity
from app.models.product import Product
from app.models.purchase import Purchase, UserProduct, UserToken, PendingPixPurchase


def normalize_email(email: Optional[str]) -> str:
    """Trim and lower-case an email for lookups"""
    return (email or "").strip().lower()


class CatalogService:
    """Lookups used by the purchase flows"""

    @staticmethod
    def get_event_by_slug(db: Session, slug: str) -> Optional[Event]:
        return db.query(Event).filter(Event.slug == slug.lower()).first()

    @staticmethod
    def get_product_by_id(db: Session, product_id: str) -> Optional[Product]:
        """Get product with its access targets loaded"""
        return db.query(Product).options(
            selectinload(Product.access_targets)
        ).filter(Product.id == product_id).first()

    @staticmethod
    def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == normalize_email(email)).first()

    @staticmethod
    def is_user_registered_to_event(db: Session, user_id: str, event_id: str) -> bool:
        registration = db.query(EventRegistration).filter(
            EventRegistration.event_id == event_id,
            EventRegistration.user_id == user_id
        ).first()
        return registration is not None

    @staticmethod
    def get_all_activities_from_event(db: Session, event_id: str) -> List[Activity]:
        """Current activity list for an event, read fresh on every call"""
        return db.query(Activity).filter(
            Activity.event_id == event_id
        ).order_by(Activity.start_time).all()

    @staticmethod
    def get_user_products_by_user_and_product(db: Session, user_id: str, product_id: str) -> List[UserProduct]:
        return db.query(UserProduct).filter(
            UserProduct.user_id == user_id,
            UserProduct.product_id == product_id
        ).all()

    @staticmethod
    def get_open_pix_quantity(db: Session, product_id: str, now: datetime,
                              beneficiary: Optional[User] = None) -> int:
        """Units of a product held by unexpired Pix charges.

        With `beneficiary`, only charges that would entitle that user count:
        their own non-gift charges and gifts addressed to their email.
        """
        query = db.query(func.coalesce(func.sum(PendingPixPurchase.quantity), 0)).filter(
            PendingPixPurchase.product_id == product_id,
            PendingPixPurchase.expires_at > now
        )
        if beneficiary is not None:
            query = query.filter(or_(
                and_(PendingPixPurchase.is_gift.is_(False), PendingPixPurchase.user_id == beneficiary.id),
                and_(PendingPixPurchase.is_gift.is_(True),
                     PendingPixPurchase.gifted_to_email == normalize_email(beneficiary.email))
            ))
        return int(query.scalar() or 0)

    @staticmethod
    def get_user_purchases(db: Session, user_id: str) -> List[Purchase]:
        return db.query(Purchase).filter(
            Purchase.user_id == user_id
        ).order_by(desc(Purchase.purchased_at)).all()

    @staticmethod
    def get_user_tokens(db: Session, user_id: str, event_id: Optional[str] = None) -> List[UserToken]:
        query = db.query(UserToken).filter(UserToken.user_id == user_id)
        if event_id:
            query = query.filter(UserToken.event_id == event_id)
        return query.order_by(UserToken.created_at).all()

    @staticmethod
    def get_user_products(db: Session, user_id: str) -> List[UserProduct]:
        return db.query(UserProduct).filter(
            UserProduct.user_id == user_id
        ).order_by(desc(UserProduct.created_at)).all()
