"""
API routes for EventPass backend
"""

# Import all routers to make them available
from . import purchases, webhooks

__all__ = ["purchases", "webhooks"]
