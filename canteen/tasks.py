"""
Celery Tasks
Background delivery of student SMS notifications.
"""

import asyncio
import logging
import time

from canteen.celery_worker import celery_app
from canteen.services.notifications import get_notification_dispatcher

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="canteen.deliver_sms")
def deliver_sms(self, to_phone: str, message: str) -> bool:
    """
    Deliver one SMS through the configured notification service.

    No retries: a failed send is logged and dropped, same as inline
    delivery.

    Args:
        to_phone: Destination phone number
        message: SMS body

    Returns:
        bool: Whether the provider accepted the message
    """
    task_id = self.request.id
    start_time = time.time()

    dispatcher = get_notification_dispatcher()
    sent = asyncio.run(dispatcher.deliver(to_phone, message))

    elapsed = round(time.time() - start_time, 3)
    logger.info(f"📨 Task {task_id}: SMS to {to_phone} {'sent' if sent else 'failed'} in {elapsed}s")
    return bool(sent)
