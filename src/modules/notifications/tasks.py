# src/modules/notifications/tasks.py
import logging

from src.core.database import AsyncSessionLocal
from src.core.exceptions import NotFoundError
from src.modules.schedule import service as schedule_service

logger = logging.getLogger(__name__)

SUBJECTS = {
    "created": "Your appointment has been booked",
    "confirmed": "Your appointment is confirmed",
    "completed": "Thank you for visiting Aura Spa",
    "cancelled": "Your appointment has been cancelled",
    "rescheduled": "Your appointment has been rescheduled",
}


def compose_message(event: str, appointment) -> dict:
    technician_name = appointment.technician.name if appointment.technician else "Arranging"
    body = (
        f"Hello {appointment.customer.name},\n"
        f"Service: {appointment.service.name}\n"
        f"Technician: {technician_name}\n"
        f"Time: {appointment.start_time:%Y-%m-%d %H:%M} - {appointment.end_time:%H:%M}\n"
        f"Status: {appointment.status.value}"
    )
    return {
        "to_email": appointment.customer.email,
        "subject": SUBJECTS.get(event, "Appointment update"),
        "content": body,
    }


async def send_appointment_notification(ctx: dict, event: str, appointment_uid: str) -> dict:
    """
    arq 后台任务：组装预约通知。
    实际投递渠道 (邮件服务) 在外部，这里只负责组装并记录。
    """
    async with AsyncSessionLocal() as session:
        try:
            appointment = await schedule_service.get_appointment_detail(session, appointment_uid)
        except NotFoundError:
            logger.warning("通知任务找不到预约 %s，跳过", appointment_uid)
            return {"status": "skipped", "appointment_uid": appointment_uid}

    message = compose_message(event, appointment)
    if not message["to_email"]:
        logger.info("客户没有邮箱，跳过通知 (预约 %s)", appointment_uid)
        return {"status": "skipped", "appointment_uid": appointment_uid}

    logger.info("发送通知给 %s，主题: %s", message["to_email"], message["subject"])
    return {"status": "success", **message}
