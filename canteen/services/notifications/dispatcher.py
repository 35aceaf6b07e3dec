"""
Fire-and-forget SMS dispatch.

Order handlers call dispatch() after their transaction has committed and
return straight away. Delivery happens elsewhere:

    - INLINE: an asyncio task in this process calls the notification service
    - CELERY: a deliver_sms task is queued for the worker

Nothing here raises to the caller. Failed sends, provider exceptions and
broker outages are logged and dropped; there is no retry.
"""

import asyncio
import logging
from typing import Optional, Set

from canteen.core.config import DispatchMode
from canteen.services.notifications.base import BaseNotificationService

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Sends SMS in the background on behalf of request handlers."""

    def __init__(
        self,
        service: BaseNotificationService,
        mode: DispatchMode = DispatchMode.INLINE,
    ):
        self.service = service
        self.mode = mode
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def dispatch(self, to_phone: str, message: str) -> None:
        """Queue an SMS for delivery and return immediately."""
        if self.mode == DispatchMode.CELERY:
            self._enqueue(to_phone, message)
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"SMS to {to_phone} dropped: no running event loop")
            return

        task = loop.create_task(self.deliver(to_phone, message))
        # Keep a strong reference until the task finishes
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _enqueue(self, to_phone: str, message: str) -> None:
        # Imported here so INLINE mode never needs the Celery app
        from canteen.tasks import deliver_sms

        try:
            deliver_sms.delay(to_phone, message)
            logger.debug(f"SMS to {to_phone} queued for worker delivery")
        except Exception as e:
            logger.error(f"❌ Could not queue SMS to {to_phone}: {e}")

    async def deliver(self, to_phone: str, message: str) -> Optional[bool]:
        """
        Send one SMS, logging the outcome.

        Returns True/False for provider success, None when the provider
        raised. Never raises.
        """
        try:
            result = await self.service.send_sms(to_phone, message)
        except Exception as e:
            logger.error(f"❌ SMS sending error to {to_phone}: {e}")
            return None

        if result.success:
            logger.info(f"✅ SMS sent to {to_phone}: \"{message}\"")
        else:
            logger.error(f"❌ SMS sending error to {to_phone}: {result.error_message}")
        return result.success

    async def drain(self, timeout: float = 10.0) -> None:
        """Wait for in-flight deliveries, e.g. on shutdown."""
        if not self._pending:
            return
        pending = list(self._pending)
        done, not_done = await asyncio.wait(pending, timeout=timeout)
        if not_done:
            logger.warning(f"{len(not_done)} SMS deliveries still running after {timeout}s")
