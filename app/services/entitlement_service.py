"""
Entitlement issuer: ownership, activity tokens and access registrations
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.models.user import User
from app.models.event import Event, ActivityRegistration, AccessMethod
from app.models.product import Product
from app.models.purchase import Purchase, UserProduct, UserToken
from app.services.catalog_service import CatalogService, normalize_email
from app.services.purchase_errors import (
    PurchaseValidationError, RecipientNotFoundError, SelfGiftNotAllowedError
)

logger = logging.getLogger(__name__)


@dataclass
class EntitlementGrant:
    """Everything credited to the beneficiary by one purchase"""
    user_product: UserProduct
    tokens: List[UserToken] = field(default_factory=list)
    registrations: List[ActivityRegistration] = field(default_factory=list)


class EntitlementIssuer:
    """Credits ownership, tokens and activity access to a beneficiary"""

    @staticmethod
    def validate_gift(buyer: User, is_gift: bool, gifted_to_email: Optional[str]) -> None:
        """Gift fields must be coherent before any lookup happens"""
        if not is_gift:
            return

        email = normalize_email(gifted_to_email)
        if not email:
            raise PurchaseValidationError("gifted_to_email is required when gifting")
        if email == normalize_email(buyer.email):
            raise SelfGiftNotAllowedError("Cannot gift a product to yourself")

    @staticmethod
    def resolve_beneficiary(db: Session, buyer: User, is_gift: bool, gifted_to_email: Optional[str]) -> User:
        """Buyer, or the gift recipient looked up by normalised email"""
        if not is_gift:
            return buyer

        EntitlementIssuer.validate_gift(buyer, is_gift, gifted_to_email)

        recipient = CatalogService.get_user_by_email(db, gifted_to_email)
        if not recipient:
            raise RecipientNotFoundError("No user found with the gift recipient email")
        return recipient

    @staticmethod
    def register_activity(
        db: Session,
        user_id: str,
        activity_id: str,
        access_method: AccessMethod,
        product_id: Optional[str] = None,
        token_id: Optional[str] = None
    ) -> Tuple[ActivityRegistration, bool]:
        """Register a user to an activity; an existing registration is returned untouched.

        Returns (registration, created).
        """
        existing = db.get(ActivityRegistration, (activity_id, user_id))
        if existing is not None:
            return existing, False

        registration = ActivityRegistration(
            activity_id=activity_id,
            user_id=user_id,
            access_method=access_method,
            product_id=product_id,
            token_id=token_id
        )
        db.add(registration)
        db.flush()
        return registration, True

    @staticmethod
    def issue(
        db: Session,
        purchase: Purchase,
        product: Product,
        event: Event,
        buyer: User,
        beneficiary: User
    ) -> EntitlementGrant:
        """Create ownership, tokens and registrations inside the caller's transaction"""
        is_gift = beneficiary.id != buyer.id

        user_product = UserProduct(
            user_id=beneficiary.id,
            product_id=product.id,
            purchase_id=purchase.id,
            quantity=purchase.quantity,
            received_as_gift=is_gift,
            gifted_from_id=buyer.id if is_gift else None
        )
        db.add(user_product)
        db.flush()

        grant = EntitlementGrant(user_product=user_product)

        if product.grants_tokens:
            for _ in range(product.token_quantity * purchase.quantity):
                token = UserToken(
                    user_id=beneficiary.id,
                    event_id=event.id,
                    user_product_id=user_product.id,
                    product_id=product.id,
                    is_used=False
                )
                db.add(token)
                grant.tokens.append(token)
            db.flush()

        for target in product.access_targets:
            if target.is_event:
                # Activity list is read at fulfillment time, not when the product was created
                activities = CatalogService.get_all_activities_from_event(db, target.target_id)
                activity_ids = [a.id for a in activities if a.is_free_or_mandatory]
                access_method = AccessMethod.EVENT
            else:
                activity_ids = [target.target_id]
                access_method = AccessMethod.PRODUCT

            for activity_id in activity_ids:
                registration, created = EntitlementIssuer.register_activity(
                    db,
                    user_id=beneficiary.id,
                    activity_id=activity_id,
                    access_method=access_method,
                    product_id=product.id
                )
                if created:
                    grant.registrations.append(registration)

        logger.info(
            f"Issued entitlements for purchase {purchase.id}: user={beneficiary.id}, "
            f"tokens={len(grant.tokens)}, registrations={len(grant.registrations)}"
        )
        return grant
