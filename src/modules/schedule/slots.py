# src/modules/schedule/slots.py

from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .availability import load_service, load_snapshot
from .business_rules import BookingPolicy
from .resources import has_capacity
from .timeline import is_overlap, now_local, to_local


async def get_available_slots(
    db: AsyncSession,
    service_uid: str,
    target_date: date,
    *,
    now: Optional[datetime] = None,
    policy: Optional[BookingPolicy] = None,
) -> list[str]:
    """
    按固定步长扫描当天营业时间，返回可预约的开始时间 (HH:MM)。
    一个时间点可预约 = 至少一位技师空闲 且 所需资源数量足够。
    """
    policy = policy or BookingPolicy.from_settings()
    now = to_local(now) if now else now_local()

    # ----------------------------------------------------
    # 步骤 1: 获取服务详情 (不存在或已停用 -> NotFoundError)
    # ----------------------------------------------------
    db_service = await load_service(db, service_uid)
    duration = timedelta(minutes=db_service.duration_minutes)

    # ----------------------------------------------------
    # 步骤 2: 一次性读取当天营业时间内的全部数据
    # ----------------------------------------------------
    opening, closing = policy.business_window(target_date)
    snapshot = await load_snapshot(db, db_service, opening, closing)

    if not snapshot.technicians:
        return []  # 没有任何技师能做这个服务

    closed = policy.break_window(target_date)
    requirements = snapshot.requirements

    # ----------------------------------------------------
    # 步骤 3: 逐个候选时间点判断
    # ----------------------------------------------------
    available_slots: list[str] = []
    slot_start = opening
    while slot_start + duration <= closing:
        slot_end = slot_start + duration
        candidate = slot_start
        slot_start += policy.slot_step

        if closed and is_overlap(candidate, slot_end, closed[0], closed[1]):
            continue
        if candidate < now:
            continue
        if not snapshot.available_technicians(candidate, slot_end):
            continue
        if not has_capacity(snapshot, requirements, candidate, slot_end):
            continue

        available_slots.append(candidate.strftime('%H:%M'))

    return available_slots
