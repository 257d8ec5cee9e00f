# src/modules/schedule/router.py

from datetime import date, datetime
from typing import List, Optional

from arq.connections import ArqRedis
from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import get_db
from src.modules.auth.security import get_current_user # 普通登录用户即可 (以客户身份)
from src.modules.notifications.service import AppointmentEvent, enqueue_appointment_event
from src.shared.deps.arq import get_arq_pool
from src.shared.models.user_models import User
from . import cache
from . import schemas
from . import service as schedule_service
from .availability import available_technicians
from .slots import get_available_slots
from .timeline import to_local

router = APIRouter(
    tags=["Schedule (Customer)"],
    responses={404: {"description": "Not found"}},
)


@router.get(
    "/availability",
    response_model=schemas.AvailabilityResponse,
    summary="查询可用预约时间槽 (核心)"
)
async def get_availability(
    service_uid: str = Query(..., description="服务UID"),
    target_date: date = Query(..., description="查询日期 (YYYY-MM-DD)"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    (Customer Facing) 实时查询某服务某天可预约的开始时间。
    结果会短暂缓存在 Redis 中 (如已启用)，任何预约/请假变化都会清空当天缓存。
    """
    cached = await cache.get_cached_slots(service_uid, target_date)
    if cached is not None:
        return schemas.AvailabilityResponse(available_slots=cached)

    slots = await get_available_slots(db, service_uid, target_date)
    await cache.set_cached_slots(service_uid, target_date, slots)
    return schemas.AvailabilityResponse(available_slots=slots)


@router.get(
    "/technicians",
    response_model=List[schemas.TechnicianOption],
    summary="查询某时间点可选的技师"
)
async def get_available_technicians(
    service_uid: str = Query(..., description="服务UID"),
    start_time: datetime = Query(..., description="开始时间 (ISO 格式)"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    technicians = await available_technicians(db, service_uid, start_time)
    return [schemas.TechnicianOption(uid=tech.uid, name=tech.name) for tech in technicians]


@router.post(
    "/appointments",
    response_model=schemas.AppointmentPublic,
    status_code=status.HTTP_201_CREATED,
    summary="创建新预约 (核心)"
)
async def create_new_appointment(
    appointment_data: schemas.AppointmentCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    arq_pool: Optional[ArqRedis] = Depends(get_arq_pool),
):
    """
    (Customer Facing) 客户提交预约。

    服务器在同一事务中完成最终的可用性检查和写入（防止竞态条件）。
    冲突、资源不足等错误由全局异常处理器转换为对应的 HTTP 状态码。
    """
    new_appointment = await schedule_service.create_appointment(
        db,
        customer_uid=current_user.uid,
        service_uid=appointment_data.service_uid,
        start_time=appointment_data.start_time,
        technician_uid=appointment_data.technician_uid,
        note=appointment_data.note,
    )

    await cache.clear_slots_for_date(new_appointment.start_time.date())
    background_tasks.add_task(
        enqueue_appointment_event, arq_pool, AppointmentEvent.created, new_appointment.uid
    )
    return schemas.AppointmentPublic.from_orm_simple(new_appointment)


@router.put(
    "/appointments/{appointment_uid}/cancel",
    response_model=schemas.AppointmentPublic,
    summary="取消预约"
)
async def cancel_my_appointment(
    appointment_uid: str,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    arq_pool: Optional[ArqRedis] = Depends(get_arq_pool),
):
    appointment = await schedule_service.cancel_appointment(db, appointment_uid, current_user.uid)

    await cache.clear_slots_for_date(appointment.start_time.date())
    background_tasks.add_task(
        enqueue_appointment_event, arq_pool, AppointmentEvent.cancelled, appointment.uid
    )
    return schemas.AppointmentPublic.from_orm_simple(appointment)


@router.put(
    "/appointments/{appointment_uid}/reschedule",
    response_model=schemas.AppointmentPublic,
    summary="预约改期"
)
async def reschedule_my_appointment(
    appointment_uid: str,
    payload: schemas.RescheduleRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    arq_pool: Optional[ArqRedis] = Depends(get_arq_pool),
):
    appointment, original_start = await schedule_service.reschedule_appointment(
        db, appointment_uid, current_user.uid, payload.new_start_time
    )

    # 新旧两天的缓存都要清
    await cache.clear_slots_for_dates(
        {original_start.date(), to_local(appointment.start_time).date()}
    )
    background_tasks.add_task(
        enqueue_appointment_event, arq_pool, AppointmentEvent.rescheduled, appointment.uid
    )
    return schemas.AppointmentPublic.from_orm_simple(appointment)


@router.get(
    "/appointments/upcoming",
    response_model=List[schemas.AppointmentDetail],
    summary="我的即将到来的预约"
)
async def get_my_upcoming_appointments(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    appointments = await schedule_service.list_upcoming_appointments(db, current_user.uid)
    return [schemas.AppointmentDetail.from_orm_detail(appt) for appt in appointments]


@router.get(
    "/appointments/history",
    response_model=List[schemas.AppointmentDetail],
    summary="我的历史预约"
)
async def get_my_appointment_history(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    appointments = await schedule_service.list_appointment_history(db, current_user.uid)
    return [schemas.AppointmentDetail.from_orm_detail(appt) for appt in appointments]
