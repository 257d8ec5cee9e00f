# src/modules/schedule/service.py

import logging
from datetime import date, datetime, timedelta
from typing import NamedTuple, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.database import is_write_conflict
from src.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    SchedulingError,
    ValidationError,
)
from src.shared.models.appointment_models import Appointment, AppointmentResourceLink, AppointmentStatus
from src.shared.models.resource_models import Service
from src.shared.models.user_models import User

from . import business_rules
from .availability import (
    TECHNICIAN_BUSY,
    TECHNICIAN_ON_LEAVE,
    TECHNICIAN_UNQUALIFIED,
    load_service,
    load_snapshot,
)
from .business_rules import BookingPolicy, TechnicianSelector
from .resources import allocate
from .timeline import day_bounds, now_local, to_local

logger = logging.getLogger(__name__)

TECHNICIAN_CONFLICT_MESSAGES = {
    TECHNICIAN_UNQUALIFIED: "Selected technician is not qualified for this service.",
    TECHNICIAN_BUSY: "Technician is busy at the selected time.",
    TECHNICIAN_ON_LEAVE: "Technician is on leave at the selected time.",
}


class RescheduleResult(NamedTuple):
    appointment: Appointment
    # 改期前的开始时间，调用方据此清理原日期的缓存
    original_start: datetime


def _translate_storage_conflict(exc: Exception) -> ConflictError:
    """
    把并发写入触发的数据库异常统一翻译为 ConflictError。
    可能出现在开启事务 (SQLite BEGIN IMMEDIATE)、加锁读取 (FOR UPDATE) 或提交时。
    """
    logger.warning("预约写入冲突，已回滚: %s", exc)
    return ConflictError(
        "The selected time was just booked by someone else, please pick another slot.",
        reason=TECHNICIAN_BUSY,
    )


async def _get_appointment(db: AsyncSession, appointment_uid: str, *, lock: bool = True) -> Appointment:
    query = (
        select(Appointment)
        .options(selectinload(Appointment.resources_link))
        .where(Appointment.uid == appointment_uid)
    )
    if lock:
        query = query.with_for_update(of=Appointment)
    appointment = (await db.execute(query)).scalars().first()
    if not appointment:
        raise NotFoundError(f"Appointment not found with id: {appointment_uid}")
    return appointment


# --- 创建预约 (核心) ---

async def create_appointment(
    db: AsyncSession,
    *,
    customer_uid: str,
    service_uid: str,
    start_time: datetime,
    technician_uid: Optional[str] = None,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
    policy: Optional[BookingPolicy] = None,
    selector: Optional[TechnicianSelector] = None,
) -> Appointment:
    """
    创建预约：选定/自动分配技师，分配物理资源，在一个事务内写入预约及资源占用。

    可用性检查与写入在同一事务中完成，候选技师与资源行在检查前加锁，
    并发请求同一时段时只有一个能成功，其余得到 ConflictError。
    """
    policy = policy or BookingPolicy.from_settings()
    selector = selector or business_rules.default_selector
    now = to_local(now) if now else now_local()
    appt_start = to_local(start_time)

    try:
        if appt_start < now:
            raise ValidationError("Cannot book an appointment in the past.")

        # ----------------------------------------------------
        # 步骤 1: 获取服务详情并计算结束时间
        # ----------------------------------------------------
        db_service = await load_service(db, service_uid)
        appt_end = appt_start + timedelta(minutes=db_service.duration_minutes)

        if not policy.is_bookable_window(appt_start, appt_end):
            raise ValidationError("The requested time is outside business hours.")

        # ----------------------------------------------------
        # 步骤 2: 加锁读取当前窗口的占用情况
        # ----------------------------------------------------
        snapshot = await load_snapshot(
            db,
            db_service,
            appt_start,
            appt_end,
            technician_uid=technician_uid,
            lock=True,
        )
        candidates = snapshot.available_technicians(appt_start, appt_end)

        # ----------------------------------------------------
        # 步骤 3: 确定技师 (指定 或 自动分配)
        # ----------------------------------------------------
        if technician_uid:
            if not candidates:
                reason = snapshot.technician_conflict(technician_uid, appt_start, appt_end)
                raise ConflictError(TECHNICIAN_CONFLICT_MESSAGES[reason], reason=reason)
            technician = candidates[0]
        else:
            if not candidates:
                raise NotFoundError("No available technician for this time slot.")
            technician = selector.choose(candidates)

        # ----------------------------------------------------
        # 步骤 4: 分配资源 (任一类型不足则整体失败，不写入任何记录)
        # ----------------------------------------------------
        resource_uids = allocate(snapshot, snapshot.requirements, appt_start, appt_end)

        # ----------------------------------------------------
        # 步骤 5: 写入预约及资源占用 (同一事务)
        # ----------------------------------------------------
        new_appointment = Appointment(
            customer_id=customer_uid,
            technician_id=technician.uid,
            service_id=db_service.uid,
            start_time=appt_start,
            end_time=appt_end,
            status=policy.initial_status,
            note=note,
            final_price=db_service.price,
        )
        new_appointment.resources_link = [
            AppointmentResourceLink(resource_id=resource_uid) for resource_uid in resource_uids
        ]
        db.add(new_appointment)
        await db.commit()
    except SchedulingError:
        await db.rollback()
        raise
    except (IntegrityError, OperationalError) as exc:
        await db.rollback()
        if not is_write_conflict(exc):
            raise
        raise _translate_storage_conflict(exc) from exc

    logger.info(
        "预约已创建 %s: 技师=%s 服务=%s %s-%s 资源=%s",
        new_appointment.uid,
        technician.uid,
        db_service.uid,
        appt_start.isoformat(),
        appt_end.isoformat(),
        resource_uids,
    )
    return new_appointment


# --- 技师操作：确认 / 完成 ---

async def _transition_by_technician(
    db: AsyncSession,
    appointment_uid: str,
    technician_uid: str,
    *,
    expected: AppointmentStatus,
    target: AppointmentStatus,
) -> Appointment:
    try:
        appointment = await _get_appointment(db, appointment_uid)

        if appointment.technician_id != technician_uid:
            raise AuthorizationError("You are not allowed to operate on another technician's appointment.")

        if appointment.status != expected:
            raise InvalidStateError(
                f"Only appointments in {expected.value} status can be marked as {target.value}."
            )

        appointment.status = target
        await db.commit()
    except SchedulingError:
        await db.rollback()
        raise
    except (IntegrityError, OperationalError) as exc:
        await db.rollback()
        if not is_write_conflict(exc):
            raise
        raise _translate_storage_conflict(exc) from exc

    logger.info("预约 %s 状态变更: %s -> %s", appointment_uid, expected.value, target.value)
    return appointment


async def confirm_appointment(db: AsyncSession, appointment_uid: str, technician_uid: str) -> Appointment:
    return await _transition_by_technician(
        db,
        appointment_uid,
        technician_uid,
        expected=AppointmentStatus.PENDING,
        target=AppointmentStatus.CONFIRMED,
    )


async def complete_appointment(db: AsyncSession, appointment_uid: str, technician_uid: str) -> Appointment:
    return await _transition_by_technician(
        db,
        appointment_uid,
        technician_uid,
        expected=AppointmentStatus.CONFIRMED,
        target=AppointmentStatus.COMPLETED,
    )


# --- 客户操作：取消 / 改期 ---

async def cancel_appointment(
    db: AsyncSession,
    appointment_uid: str,
    customer_uid: str,
    *,
    now: Optional[datetime] = None,
    policy: Optional[BookingPolicy] = None,
) -> Appointment:
    """
    Rules:
    1. Must be the owner.
    2. Cannot cancel twice (a repeated cancel is a ConflictError, not a no-op).
    3. Cannot cancel within the deadline (30 minutes by default) before start.
    """
    policy = policy or BookingPolicy.from_settings()
    now = to_local(now) if now else now_local()

    try:
        appointment = await _get_appointment(db, appointment_uid)

        if appointment.customer_id != customer_uid:
            raise AuthorizationError("You are not the owner of this appointment.")

        if appointment.status == AppointmentStatus.CANCELLED:
            raise ConflictError("Appointment is already cancelled.", reason="already_cancelled")

        if appointment.status == AppointmentStatus.COMPLETED:
            raise InvalidStateError("A completed appointment cannot be cancelled.")

        deadline = now + timedelta(minutes=policy.cancel_deadline_minutes)
        if deadline > to_local(appointment.start_time):
            raise ValidationError(
                f"Cannot cancel appointment less than {policy.cancel_deadline_minutes} minutes before start time."
            )

        appointment.status = AppointmentStatus.CANCELLED
        await db.commit()
    except SchedulingError:
        await db.rollback()
        raise
    except (IntegrityError, OperationalError) as exc:
        await db.rollback()
        if not is_write_conflict(exc):
            raise
        raise _translate_storage_conflict(exc) from exc

    logger.info("预约 %s 已被客户 %s 取消", appointment_uid, customer_uid)
    return appointment


async def reschedule_appointment(
    db: AsyncSession,
    appointment_uid: str,
    customer_uid: str,
    new_start_time: datetime,
    *,
    now: Optional[datetime] = None,
    policy: Optional[BookingPolicy] = None,
) -> RescheduleResult:
    """
    改期：重新检查原技师在新时段是否空闲、是否请假，并重新分配资源。
    检查时排除本预约自身的占用；时间与资源占用在同一事务内更新。
    返回改期后的预约以及原开始时间。
    """
    policy = policy or BookingPolicy.from_settings()
    now = to_local(now) if now else now_local()
    new_start = to_local(new_start_time)

    try:
        appointment = await _get_appointment(db, appointment_uid)

        if appointment.customer_id != customer_uid:
            raise AuthorizationError("You are not the owner of this appointment.")

        if appointment.status in (AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED):
            raise InvalidStateError("Cannot reschedule a cancelled or completed appointment.")

        if new_start < now:
            raise ValidationError("Cannot reschedule to the past.")

        original_start = to_local(appointment.start_time)
        if now + timedelta(minutes=policy.reschedule_deadline_minutes) > original_start:
            raise ValidationError(
                f"Cannot reschedule less than {policy.reschedule_deadline_minutes} minutes "
                "before the original start time."
            )

        if new_start == original_start:
            await db.commit()
            return RescheduleResult(appointment, original_start)

        db_service = await load_service(db, appointment.service_id, require_active=False)
        new_end = new_start + timedelta(minutes=db_service.duration_minutes)

        if not policy.is_bookable_window(new_start, new_end):
            raise ValidationError("The requested time is outside business hours.")

        snapshot = await load_snapshot(
            db,
            db_service,
            new_start,
            new_end,
            technician_uid=appointment.technician_id,
            lock=True,
        )

        if appointment.technician_id:
            reason = snapshot.technician_conflict(
                appointment.technician_id, new_start, new_end, exclude_appointment_uid=appointment.uid
            )
            if reason:
                raise ConflictError(TECHNICIAN_CONFLICT_MESSAGES[reason], reason=reason)
        else:
            candidates = snapshot.available_technicians(new_start, new_end, exclude_appointment_uid=appointment.uid)
            if not candidates:
                raise NotFoundError("No available technician for this time slot.")
            appointment.technician_id = business_rules.default_selector.choose(candidates).uid

        resource_uids = allocate(
            snapshot,
            snapshot.requirements,
            new_start,
            new_end,
            exclude_appointment_uid=appointment.uid,
        )

        # 保留仍被使用的资源占用，其余释放，缺少的补上
        kept = [link for link in appointment.resources_link if link.resource_id in resource_uids]
        kept_uids = {link.resource_id for link in kept}
        appointment.resources_link = kept + [
            AppointmentResourceLink(resource_id=resource_uid)
            for resource_uid in resource_uids
            if resource_uid not in kept_uids
        ]
        appointment.start_time = new_start
        appointment.end_time = new_end
        await db.commit()
    except SchedulingError:
        await db.rollback()
        raise
    except (IntegrityError, OperationalError) as exc:
        await db.rollback()
        if not is_write_conflict(exc):
            raise
        raise _translate_storage_conflict(exc) from exc

    logger.info(
        "预约 %s 已改期: %s -> %s",
        appointment_uid,
        original_start.isoformat(),
        new_start.isoformat(),
    )
    return RescheduleResult(appointment, original_start)


# --- 查询 ---

def _with_details(query):
    return query.options(
        selectinload(Appointment.service),
        selectinload(Appointment.technician),
        selectinload(Appointment.customer),
    )


async def get_appointment_detail(db: AsyncSession, appointment_uid: str) -> Appointment:
    appointment = (await db.execute(
        _with_details(select(Appointment)).where(Appointment.uid == appointment_uid)
    )).scalars().first()
    if not appointment:
        raise NotFoundError(f"Appointment not found with id: {appointment_uid}")
    return appointment


async def list_upcoming_appointments(
    db: AsyncSession,
    customer_uid: str,
    *,
    now: Optional[datetime] = None,
) -> list[Appointment]:
    now = to_local(now) if now else now_local()
    result = await db.execute(
        _with_details(select(Appointment))
        .where(
            Appointment.customer_id == customer_uid,
            Appointment.start_time > now,
            Appointment.status != AppointmentStatus.CANCELLED,
        )
        .order_by(Appointment.start_time.asc())
    )
    return list(result.scalars().all())


async def list_appointment_history(
    db: AsyncSession,
    customer_uid: str,
    *,
    now: Optional[datetime] = None,
) -> list[Appointment]:
    now = to_local(now) if now else now_local()
    result = await db.execute(
        _with_details(select(Appointment))
        .where(
            Appointment.customer_id == customer_uid,
            Appointment.start_time < now,
        )
        .order_by(Appointment.start_time.desc())
    )
    return list(result.scalars().all())


async def list_technician_appointments(
    db: AsyncSession,
    technician_uid: str,
    start_date: date,
    end_date: date,
) -> list[Appointment]:
    if end_date < start_date:
        raise ValidationError("end_date must not be before start_date.")
    range_start, _ = day_bounds(start_date)
    _, range_end = day_bounds(end_date)
    result = await db.execute(
        _with_details(select(Appointment))
        .where(
            Appointment.technician_id == technician_uid,
            Appointment.status != AppointmentStatus.CANCELLED,
            Appointment.start_time < range_end,
            Appointment.end_time > range_start,
        )
        .order_by(Appointment.start_time.asc())
    )
    return list(result.scalars().all())


async def list_appointments_for_admin(
    db: AsyncSession,
    *,
    keyword: Optional[str] = None,
    status: Optional[AppointmentStatus] = None,
    page: int = 0,
    size: int = 20,
) -> tuple[list[Appointment], int]:
    criteria = []
    if status is not None:
        criteria.append(Appointment.status == status)
    if keyword:
        pattern = f"%{keyword.strip()}%"
        criteria.append(
            or_(
                User.name.ilike(pattern),
                User.email.ilike(pattern),
                Service.name.ilike(pattern),
            )
        )

    base = (
        select(Appointment)
        .join(User, User.uid == Appointment.customer_id)
        .join(Service, Service.uid == Appointment.service_id)
        .where(*criteria)
    )
    total = (await db.execute(
        select(func.count()).select_from(base.subquery())
    )).scalar_one()

    result = await db.execute(
        _with_details(base)
        .order_by(Appointment.start_time.desc())
        .offset(page * size)
        .limit(size)
    )
    return list(result.scalars().all()), total
