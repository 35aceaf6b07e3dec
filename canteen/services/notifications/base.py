"""
Notification Service Abstract Base Class

Defines the interface for sending SMS notifications to students.
Supports both Mock (development) and Real (Twilio) implementations.

Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"


class BaseNotificationService(ABC):
    """Abstract base class for notification services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """
        Send an SMS message.

        Provider errors are reported through the result, not raised.
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass
