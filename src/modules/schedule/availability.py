# src/modules/schedule/availability.py
"""
Technician availability for a service over a time window.

All reads needed to answer "who is free" and "which units are free" for one
window are made once by ``load_snapshot``; the snapshot methods are pure and
are reused by the slot calculator (one snapshot per day) and by the booking
path (one snapshot per request, loaded under row locks).
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.exceptions import NotFoundError
from src.shared.models.appointment_models import Appointment, AppointmentResourceLink, AppointmentStatus
from src.shared.models.resource_models import Resource, Service, ServiceResourceRequirement
from src.shared.models.schedule_models import AbsenceRequest, BLOCKING_ABSENCE_STATUSES
from src.shared.models.user_models import User

from .timeline import is_overlap, to_local

# 技师不可用的原因
TECHNICIAN_UNQUALIFIED = "technician_unqualified"
TECHNICIAN_BUSY = "technician_busy"
TECHNICIAN_ON_LEAVE = "technician_on_leave"


@dataclass(frozen=True)
class BusyWindow:
    source_uid: str  # 占用来源：预约 uid 或请假 uid
    start_time: datetime
    end_time: datetime

    def blocks(self, start: datetime, end: datetime, exclude_uid: Optional[str] = None) -> bool:
        if exclude_uid is not None and self.source_uid == exclude_uid:
            return False
        return is_overlap(self.start_time, self.end_time, start, end)


@dataclass
class SchedulingSnapshot:
    service: Service
    window_start: datetime
    window_end: datetime
    technicians: list[User] = field(default_factory=list)
    technician_bookings: dict[str, list[BusyWindow]] = field(default_factory=lambda: defaultdict(list))
    technician_absences: dict[str, list[BusyWindow]] = field(default_factory=lambda: defaultdict(list))
    # 资源类型 -> 该类型下未删除的资源 uid (升序)
    resource_pool: dict[str, list[str]] = field(default_factory=dict)
    # 资源 uid -> 该资源在窗口内的占用
    resource_usage: dict[str, list[BusyWindow]] = field(default_factory=lambda: defaultdict(list))

    @property
    def requirements(self) -> list[ServiceResourceRequirement]:
        return list(self.service.resource_requirements)

    def technician_conflict(
        self,
        technician_uid: str,
        start: datetime,
        end: datetime,
        exclude_appointment_uid: Optional[str] = None,
    ) -> Optional[str]:
        """返回技师在 [start, end) 不可用的原因；可用时返回 None"""
        if not any(tech.uid == technician_uid for tech in self.technicians):
            return TECHNICIAN_UNQUALIFIED
        if any(
            booking.blocks(start, end, exclude_appointment_uid)
            for booking in self.technician_bookings.get(technician_uid, [])
        ):
            return TECHNICIAN_BUSY
        if any(absence.blocks(start, end) for absence in self.technician_absences.get(technician_uid, [])):
            return TECHNICIAN_ON_LEAVE
        return None

    def available_technicians(
        self,
        start: datetime,
        end: datetime,
        exclude_appointment_uid: Optional[str] = None,
    ) -> list[User]:
        return [
            tech for tech in self.technicians
            if self.technician_conflict(tech.uid, start, end, exclude_appointment_uid) is None
        ]


async def load_service(db: AsyncSession, service_uid: str, *, require_active: bool = True) -> Service:
    db_service = (await db.execute(
        select(Service)
        .options(selectinload(Service.resource_requirements))
        .where(Service.uid == service_uid)
    )).scalars().first()

    if not db_service:
        raise NotFoundError("Service not found")
    if require_active and not db_service.is_active:
        raise NotFoundError("Service is inactive")
    return db_service


async def load_snapshot(
    db: AsyncSession,
    service: Service,
    window_start: datetime,
    window_end: datetime,
    *,
    technician_uid: Optional[str] = None,
    lock: bool = False,
) -> SchedulingSnapshot:
    """
    一次性读取窗口内计算可用性所需的全部数据。

    lock=True 时对候选技师和所需类型的资源行加 FOR UPDATE 锁（按 uid 升序），
    使并发的 创建/改期 在 检查-写入 之间串行化。
    """
    snapshot = SchedulingSnapshot(service=service, window_start=window_start, window_end=window_end)

    # ----------------------------------------------------
    # 步骤 1: 具备该服务技能、账号启用的技师
    # ----------------------------------------------------
    tech_query = (
        select(User)
        .join(User.skills)
        .where(
            Service.uid == service.uid,
            User.role == "technician",
            User.is_active == True,  # noqa: E712
        )
        .order_by(User.uid)
    )
    if technician_uid:
        tech_query = tech_query.where(User.uid == technician_uid)
    if lock:
        tech_query = tech_query.with_for_update(of=User)
    snapshot.technicians = list((await db.execute(tech_query)).scalars().unique().all())
    tech_uids = [tech.uid for tech in snapshot.technicians]

    # ----------------------------------------------------
    # 步骤 2: 技师在窗口内的预约 (未取消) 和请假 (待审批/已批准)
    # ----------------------------------------------------
    if tech_uids:
        booking_rows = (await db.execute(
            select(Appointment.uid, Appointment.technician_id, Appointment.start_time, Appointment.end_time)
            .where(
                Appointment.technician_id.in_(tech_uids),
                Appointment.status != AppointmentStatus.CANCELLED,
                Appointment.start_time < window_end,
                Appointment.end_time > window_start,
            )
        )).all()
        for row in booking_rows:
            snapshot.technician_bookings[row.technician_id].append(
                BusyWindow(row.uid, to_local(row.start_time), to_local(row.end_time))
            )

        absence_rows = (await db.execute(
            select(AbsenceRequest.uid, AbsenceRequest.technician_id, AbsenceRequest.start_time, AbsenceRequest.end_time)
            .where(
                AbsenceRequest.technician_id.in_(tech_uids),
                AbsenceRequest.status.in_(BLOCKING_ABSENCE_STATUSES),
                AbsenceRequest.start_time < window_end,
                AbsenceRequest.end_time > window_start,
            )
        )).all()
        for row in absence_rows:
            snapshot.technician_absences[row.technician_id].append(
                BusyWindow(row.uid, to_local(row.start_time), to_local(row.end_time))
            )

    # ----------------------------------------------------
    # 步骤 3: 所需类型的资源池及其占用
    # ----------------------------------------------------
    required_types = sorted({req.resource_type for req in service.resource_requirements})
    if required_types:
        resource_query = (
            select(Resource.uid, Resource.type)
            .where(Resource.type.in_(required_types), Resource.is_deleted == False)  # noqa: E712
            .order_by(Resource.uid)
        )
        if lock:
            resource_query = resource_query.with_for_update()
        pool: dict[str, list[str]] = {resource_type: [] for resource_type in required_types}
        for row in (await db.execute(resource_query)).all():
            pool[row.type].append(row.uid)
        snapshot.resource_pool = pool

        resource_uids = [uid for uids in pool.values() for uid in uids]
        if resource_uids:
            usage_rows = (await db.execute(
                select(
                    AppointmentResourceLink.resource_id,
                    Appointment.uid,
                    Appointment.start_time,
                    Appointment.end_time,
                )
                .join(Appointment, Appointment.uid == AppointmentResourceLink.appointment_id)
                .where(
                    AppointmentResourceLink.resource_id.in_(resource_uids),
                    Appointment.status != AppointmentStatus.CANCELLED,
                    Appointment.start_time < window_end,
                    Appointment.end_time > window_start,
                )
            )).all()
            for row in usage_rows:
                snapshot.resource_usage[row.resource_id].append(
                    BusyWindow(row.uid, to_local(row.start_time), to_local(row.end_time))
                )

    return snapshot


async def available_technicians(
    db: AsyncSession,
    service_uid: str,
    window_start: datetime,
    window_end: Optional[datetime] = None,
) -> list[User]:
    """
    可为该服务在 [window_start, window_end) 提供服务的技师。
    未给出 window_end 时按服务时长计算。
    """
    db_service = await load_service(db, service_uid)
    window_start = to_local(window_start)
    if window_end is None:
        window_end = window_start + timedelta(minutes=db_service.duration_minutes)
    else:
        window_end = to_local(window_end)

    snapshot = await load_snapshot(db, db_service, window_start, window_end)
    return snapshot.available_technicians(window_start, window_end)
