# src/modules/notifications/service.py
"""
Fire-and-forget appointment notifications.

Routers schedule ``enqueue_appointment_event`` as a FastAPI background task
after the transaction has committed. Any failure to reach the queue is logged
and swallowed: a notification must never fail or delay a booking.
"""

import logging
from enum import Enum
from typing import Optional

from arq.connections import ArqRedis

logger = logging.getLogger(__name__)

NOTIFICATION_JOB = "send_appointment_notification"


class AppointmentEvent(str, Enum):
    created = "created"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"
    rescheduled = "rescheduled"


async def enqueue_appointment_event(
    pool: Optional[ArqRedis],
    event: AppointmentEvent,
    appointment_uid: str,
) -> None:
    if pool is None:
        logger.debug("通知未启用，跳过 %s 事件 (预约 %s)", event.value, appointment_uid)
        return
    try:
        await pool.enqueue_job(NOTIFICATION_JOB, event.value, appointment_uid)
    except Exception as exc:  # noqa: BLE001 - 通知失败不影响主流程
        logger.warning("通知入队失败 %s (预约 %s): %s", event.value, appointment_uid, exc)
