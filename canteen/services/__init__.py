"""
                        Services Module

Business logic behind the API routes. Each service takes the request's
database session (and settings where it needs them).

Services:
    - orders: order creation, status pipeline, SMS cancellation
    - auth: vendor registration and login
    - menu: canteen-scoped menu catalog
    - analytics: dashboard aggregates
    - notifications: SMS providers and the fire-and-forget dispatcher
"""

from canteen.services.analytics import AnalyticsService
from canteen.services.auth import VendorAuthService
from canteen.services.menu import MenuService
from canteen.services.orders import OrderLifecycleManager

__all__ = ["AnalyticsService", "VendorAuthService", "MenuService", "OrderLifecycleManager"]
