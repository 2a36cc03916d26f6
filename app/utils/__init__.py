"""
Utility functions for EventPass backend
"""

from .security import get_current_user, get_current_active_user
from .dependencies import get_payment_gateway

__all__ = [
    "get_current_user",
    "get_current_active_user",
    "get_payment_gateway"
]
