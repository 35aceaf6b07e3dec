"""
Real Notification Service

Production implementation using Twilio for SMS.

The Twilio client is synchronous; calls run in a worker thread so a slow
provider never stalls the event loop.

Version: 1.0.0
"""

import asyncio
import logging

from twilio.rest import Client as TwilioClient
from twilio.base.exceptions import TwilioException

from canteen.core.config import Settings
from canteen.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)

logger = logging.getLogger(__name__)


class RealNotificationService(BaseNotificationService):
    """Production notification service using Twilio."""

    def __init__(self, settings: Settings):
        if settings.twilio_account_sid and settings.twilio_auth_token:
            self.twilio_client = TwilioClient(
                settings.twilio_account_sid,
                settings.twilio_auth_token
            )
            self.twilio_from_number = settings.twilio_phone_number
            self.account_sid = settings.twilio_account_sid
        else:
            self.twilio_client = None
            logger.warning("Twilio credentials not configured")

        logger.info("RealNotificationService initialized")

    @property
    def provider_name(self) -> str:
        return "twilio"

    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Send SMS via Twilio."""
        if not self.twilio_client:
            return NotificationResult(
                success=False,
                error_message="Twilio not configured",
                provider="twilio"
            )

        try:
            result = await asyncio.to_thread(
                self.twilio_client.messages.create,
                body=message,
                from_=self.twilio_from_number,
                to=to_phone,
            )

            logger.info(f"SMS sent to {to_phone}: {result.sid}")

            return NotificationResult(
                success=True,
                message_id=result.sid,
                provider="twilio"
            )

        except TwilioException as e:
            logger.error(f"Twilio error: {e}")
            return NotificationResult(
                success=False,
                error_message=str(e),
                provider="twilio"
            )

    async def health_check(self) -> bool:
        """Check the Twilio account is reachable with these credentials."""
        if not self.twilio_client:
            return False
        try:
            await asyncio.to_thread(self.twilio_client.api.accounts(self.account_sid).fetch)
            return True
        except TwilioException as e:
            logger.warning(f"Twilio health check failed: {e}")
            return False
