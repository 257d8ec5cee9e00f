# src/modules/technician/router.py

from datetime import date
from typing import List, Optional

from arq.connections import ArqRedis
from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import get_db
from src.modules.absence import schemas as absence_schemas
from src.modules.absence import service as absence_service
from src.modules.auth.security import get_current_technician # 技师专用
from src.modules.notifications.service import AppointmentEvent, enqueue_appointment_event
from src.modules.schedule import cache
from src.modules.schedule import schemas as schedule_schemas
from src.modules.schedule import service as schedule_service
from src.modules.schedule.timeline import to_local
from src.shared.deps.arq import get_arq_pool
from src.shared.models.user_models import User

router = APIRouter(
    tags=["Technician"],
    responses={404: {"description": "Not found"}},
)


# --- 预约 ---

@router.patch(
    "/appointments/{appointment_uid}/confirm",
    response_model=schedule_schemas.AppointmentPublic,
    summary="技师确认预约"
)
async def confirm_my_appointment(
    appointment_uid: str,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_technician: User = Depends(get_current_technician),
    arq_pool: Optional[ArqRedis] = Depends(get_arq_pool),
):
    appointment = await schedule_service.confirm_appointment(db, appointment_uid, current_technician.uid)
    background_tasks.add_task(
        enqueue_appointment_event, arq_pool, AppointmentEvent.confirmed, appointment.uid
    )
    return schedule_schemas.AppointmentPublic.from_orm_simple(appointment)


@router.patch(
    "/appointments/{appointment_uid}/complete",
    response_model=schedule_schemas.AppointmentPublic,
    summary="技师标记预约完成"
)
async def complete_my_appointment(
    appointment_uid: str,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_technician: User = Depends(get_current_technician),
    arq_pool: Optional[ArqRedis] = Depends(get_arq_pool),
):
    appointment = await schedule_service.complete_appointment(db, appointment_uid, current_technician.uid)
    background_tasks.add_task(
        enqueue_appointment_event, arq_pool, AppointmentEvent.completed, appointment.uid
    )
    return schedule_schemas.AppointmentPublic.from_orm_simple(appointment)


@router.get(
    "/appointments",
    response_model=List[schedule_schemas.AppointmentDetail],
    summary="技师查看日期范围内的预约"
)
async def get_my_appointments(
    start_date: date = Query(..., description="开始日期 (YYYY-MM-DD)"),
    end_date: date = Query(..., description="结束日期 (含)"),
    db: AsyncSession = Depends(get_db),
    current_technician: User = Depends(get_current_technician),
):
    appointments = await schedule_service.list_technician_appointments(
        db, current_technician.uid, start_date, end_date
    )
    return [schedule_schemas.AppointmentDetail.from_orm_detail(appt) for appt in appointments]


# --- 请假 ---

@router.post(
    "/absences",
    response_model=absence_schemas.AbsencePublic,
    status_code=status.HTTP_201_CREATED,
    summary="技师提交请假申请"
)
async def submit_my_absence(
    payload: absence_schemas.AbsenceCreate,
    db: AsyncSession = Depends(get_db),
    current_technician: User = Depends(get_current_technician),
):
    """
    待审批的请假同样会占用该时段，提交后立即影响可预约时间。
    """
    absence = await absence_service.submit_absence(
        db,
        current_technician.uid,
        payload.start_time,
        payload.end_time,
        payload.reason,
    )
    await cache.clear_slots_between(to_local(absence.start_time).date(), to_local(absence.end_time).date())
    return absence


@router.get(
    "/absences",
    response_model=List[absence_schemas.AbsencePublic],
    summary="技师查看自己的请假记录"
)
async def get_my_absences(
    db: AsyncSession = Depends(get_db),
    current_technician: User = Depends(get_current_technician),
):
    return await absence_service.list_technician_absences(db, current_technician.uid)
