# src/worker.py
# 启动方式: arq src.worker.WorkerSettings
import logging

from arq.connections import RedisSettings

from src.core.config import settings
from src.modules.notifications.tasks import send_appointment_notification

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


class WorkerSettings:
    functions = [send_appointment_notification]
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    max_tries = 3
