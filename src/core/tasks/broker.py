"""Taskiq broker + scheduler configuration."""

from taskiq import TaskiqScheduler
from taskiq.schedule_sources import LabelScheduleSource
from taskiq_redis import ListQueueBroker, ListRedisScheduleSource

from src.core.config import settings

broker = ListQueueBroker(url=settings.redis_url, queue_name=settings.queue_name)

# Delayed job re-attempts are stored here and picked up by the scheduler process
schedule_source = ListRedisScheduleSource(
    settings.redis_url, prefix=f"{settings.queue_name}:schedule"
)

scheduler = TaskiqScheduler(
    broker=broker,
    sources=[LabelScheduleSource(broker), schedule_source],
)
