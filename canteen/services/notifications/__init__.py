"""
Notification Service Factory

Returns Mock or Real notification service based on ENV_MODE, and the
dispatcher request handlers use to send SMS without waiting on them.

Version: 1.0.0
"""

import logging
from functools import lru_cache

from canteen.core.config import get_settings
from canteen.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)
from canteen.services.notifications.dispatcher import NotificationDispatcher
from canteen.services.notifications.mock import MockNotificationService
from canteen.services.notifications.real import RealNotificationService

logger = logging.getLogger(__name__)


@lru_cache()
def get_notification_service() -> BaseNotificationService:
    """Get the configured notification service."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Notification Service: Using MockNotificationService (development mode)")
        return MockNotificationService(failure_rate=settings.mock_sms_failure_rate)
    else:
        logger.info(f"Notification Service: Using RealNotificationService ({settings.env_mode.value} mode)")
        return RealNotificationService(settings)


@lru_cache()
def get_notification_dispatcher() -> NotificationDispatcher:
    """Get the process-wide SMS dispatcher."""
    settings = get_settings()
    return NotificationDispatcher(get_notification_service(), settings.sms_dispatch_mode)


def reset_notification_service() -> None:
    """Clear the cached service and dispatcher instances."""
    get_notification_dispatcher.cache_clear()
    get_notification_service.cache_clear()


__all__ = [
    "get_notification_service",
    "get_notification_dispatcher",
    "reset_notification_service",
    "BaseNotificationService",
    "NotificationDispatcher",
    "NotificationResult",
]
