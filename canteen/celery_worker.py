"""
Celery Worker Configuration
Sets up Celery with Redis as message broker for SMS delivery.

Start a worker with:
    celery -A canteen.celery_worker worker --loglevel=info
"""

from celery import Celery

from canteen.core.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    'canteen_worker',
    broker=settings.redis_url,
    include=['canteen.tasks']  # Module containing our tasks
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer='json',
    accept_content=['json'],
    timezone='UTC',
    enable_utc=True,

    # SMS are fire-and-forget: nobody reads results
    task_ignore_result=True,

    # Worker settings
    worker_prefetch_multiplier=1,  # Process one task at a time
    worker_concurrency=4,  # Number of worker processes

    # Publishing must not hold up the API request when Redis is down
    task_publish_retry=False,
    broker_connection_timeout=2,
    broker_connection_retry_on_startup=True,
)


if __name__ == '__main__':
    celery_app.start()
