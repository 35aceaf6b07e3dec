"""
Mock Notification Service

Simulates SMS sending for development.
No actual messages are sent - they are logged, and the most recent ones are
kept in an in-memory outbox.

Version: 1.0.0
"""

import asyncio
import random
import uuid
import logging
from collections import deque
from typing import Deque, Tuple

from canteen.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)

logger = logging.getLogger(__name__)


class MockNotificationService(BaseNotificationService):
    """Mock notification service for development."""

    OUTBOX_SIZE = 100

    def __init__(
        self,
        failure_rate: float = 0.05,
        min_latency: float = 0.1,
        max_latency: float = 0.3,
    ):
        self.outbox: Deque[Tuple[str, str]] = deque(maxlen=self.OUTBOX_SIZE)
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        logger.info(f"MockNotificationService initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> None:
        """Simulate network latency."""
        await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Simulate sending SMS."""
        await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"Mock SMS failed (simulated) to {to_phone}")
            return NotificationResult(
                success=False,
                error_message="Simulated SMS failure",
                provider="mock"
            )

        message_id = f"sms_mock_{uuid.uuid4().hex[:12]}"
        self.outbox.append((to_phone, message))
        logger.info(f"Mock SMS sent to {to_phone}: {message[:50]} (ID: {message_id})")

        return NotificationResult(
            success=True,
            message_id=message_id,
            provider="mock"
        )

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
