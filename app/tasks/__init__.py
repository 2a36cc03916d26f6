"""
Background tasks for EventPass
"""

from .purchase_tasks import (
    send_purchase_confirmation_task,
    finalize_pix_purchase_task,
    expire_pix_purchases_task
)

__all__ = [
    "send_purchase_confirmation_task",
    "finalize_pix_purchase_task",
    "expire_pix_purchases_task"
]
