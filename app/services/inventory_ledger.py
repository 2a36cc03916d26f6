"""
Inventory ledger: stock, expiry, blocking and per-user ownership caps
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.models.product import Product
from app.models.purchase import UserProduct
from app.services.purchase_errors import (
    PurchaseValidationError, OutOfStockError, ProductExpiredError,
    ProductBlockedError, OwnershipCapExceededError
)

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Checks and applies stock changes for products"""

    @staticmethod
    def reserve(product: Product, quantity: int, now: Optional[datetime] = None,
                held_quantity: int = 0) -> None:
        """Validate that `quantity` units can be sold right now.

        `held_quantity` is stock promised to open Pix charges and is not for sale.
        Nothing is mutated; the decrement happens in `commit` under a row lock.
        """
        if quantity < 1:
            raise PurchaseValidationError("Quantity must be at least 1")

        if product.is_blocked:
            raise ProductBlockedError("Product is blocked")

        now = now or datetime.utcnow()
        if product.expires_at is not None and now > product.expires_at:
            raise ProductExpiredError("Product has expired")

        if product.has_unlimited_quantity:
            return

        available = max(product.quantity - held_quantity, 0)
        if quantity > available:
            raise OutOfStockError(
                "Not enough stock for this product",
                details={"available": available, "requested": quantity}
            )

    @staticmethod
    def owned_quantity(user_products: Iterable[UserProduct]) -> int:
        """Total owned across every ownership row for one (user, product) pair"""
        return sum(up.quantity for up in user_products)

    @staticmethod
    def check_ownership_cap(product: Product, owned_quantity: int, requested_quantity: int) -> None:
        if requested_quantity > product.max_ownable_quantity:
            raise OwnershipCapExceededError(
                f"Cannot buy more than {product.max_ownable_quantity} of this product"
            )

        if owned_quantity + requested_quantity > product.max_ownable_quantity:
            raise OwnershipCapExceededError(
                f"Ownership limit reached for this product ({product.max_ownable_quantity})",
                details={"owned": owned_quantity, "requested": requested_quantity}
            )

    @staticmethod
    def lock(db: Session, product: Product) -> Product:
        """Re-read the product row under SELECT ... FOR UPDATE"""
        return db.query(Product).filter(
            Product.id == product.id
        ).with_for_update().populate_existing().one()

    @staticmethod
    def commit(db: Session, product: Product, quantity: int) -> Product:
        """Decrement stock inside the caller's transaction.

        The row is locked first so two buyers cannot both pass the stock
        check on the last unit.
        """
        locked = InventoryLedger.lock(db, product)

        if locked.has_unlimited_quantity:
            return locked

        if quantity > locked.quantity:
            logger.warning(
                f"Stock for product {locked.id} changed during purchase: "
                f"available={locked.quantity}, requested={quantity}"
            )
            raise OutOfStockError(
                "Not enough stock for this product",
                details={"available": locked.quantity, "requested": quantity}
            )

        locked.quantity = locked.quantity - quantity
        db.flush()
        return locked
