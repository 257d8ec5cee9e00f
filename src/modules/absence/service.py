# src/modules/absence/service.py

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import is_write_conflict
from src.core.exceptions import ConflictError, NotFoundError, SchedulingError, ValidationError
from src.modules.schedule.timeline import now_local, to_local
from src.shared.models.schedule_models import AbsenceRequest, AbsenceStatus, BLOCKING_ABSENCE_STATUSES
from src.shared.models.user_models import User

logger = logging.getLogger(__name__)

REVIEW_DECISIONS = (AbsenceStatus.APPROVED, AbsenceStatus.REJECTED)


def _translate_storage_conflict(exc: Exception) -> ConflictError:
    logger.warning("请假写入冲突，已回滚: %s", exc)
    return ConflictError(
        "The absence request was changed by someone else, please retry.",
        reason="write_conflict",
    )


def _overlapping_blocking_absences(technician_uid: str, start: datetime, end: datetime):
    return select(AbsenceRequest).where(
        AbsenceRequest.technician_id == technician_uid,
        AbsenceRequest.status.in_(BLOCKING_ABSENCE_STATUSES),
        AbsenceRequest.start_time < end,
        AbsenceRequest.end_time > start,
    )


async def submit_absence(
    db: AsyncSession,
    technician_uid: str,
    start_time: datetime,
    end_time: datetime,
    reason: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> AbsenceRequest:
    """
    技师提交请假申请 (状态为 PENDING)。

    与同一技师已有的 待审批/已批准 请假重叠时拒绝提交，
    不允许对同一时段重复占用。
    """
    now = to_local(now) if now else now_local()
    start = to_local(start_time)
    end = to_local(end_time)

    try:
        if start < now:
            raise ValidationError("Can't submit request because start date is before now.")
        if end <= start:
            raise ValidationError("Can't submit request because end date is not after start date.")

        # 锁定技师行，避免同一技师的两个申请并发通过重叠检查
        technician = (await db.execute(
            select(User)
            .where(User.uid == technician_uid, User.role == "technician")
            .with_for_update()
        )).scalars().first()
        if not technician:
            raise NotFoundError(f"Technician with id: {technician_uid} not found.")

        existing = (await db.execute(
            _overlapping_blocking_absences(technician_uid, start, end).limit(1)
        )).scalars().first()
        if existing:
            raise ConflictError(
                "An overlapping absence request already exists for this period.",
                reason="duplicate_absence",
            )

        absence = AbsenceRequest(
            technician_id=technician_uid,
            start_time=start,
            end_time=end,
            reason=reason,
            status=AbsenceStatus.PENDING,
        )
        db.add(absence)
        await db.commit()
    except SchedulingError:
        await db.rollback()
        raise
    except (IntegrityError, OperationalError) as exc:
        await db.rollback()
        if not is_write_conflict(exc):
            raise
        raise _translate_storage_conflict(exc) from exc

    logger.info("技师 %s 提交请假 %s: %s - %s", technician_uid, absence.uid, start.isoformat(), end.isoformat())
    return absence


async def review_absence(
    db: AsyncSession,
    request_uid: str,
    decision: AbsenceStatus,
    reviewer_uid: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> AbsenceRequest:
    """管理员审批。允许覆盖之前的审批结果 (例如把已驳回的改为批准)。"""
    try:
        if decision not in REVIEW_DECISIONS:
            raise ValidationError("Decision must be APPROVED or REJECTED.")

        request = (await db.execute(
            select(AbsenceRequest).where(AbsenceRequest.uid == request_uid).with_for_update(of=AbsenceRequest)
        )).scalars().first()
        if not request:
            raise NotFoundError(f"Cannot find request with id: {request_uid}")

        previous = request.status
        request.status = decision
        request.reviewed_by_user_id = reviewer_uid
        request.reviewed_at = to_local(now) if now else now_local()
        await db.commit()
    except SchedulingError:
        await db.rollback()
        raise
    except (IntegrityError, OperationalError) as exc:
        await db.rollback()
        if not is_write_conflict(exc):
            raise
        raise _translate_storage_conflict(exc) from exc

    logger.info("请假申请 %s 审批: %s -> %s (审批人 %s)", request_uid, previous.value, decision.value, reviewer_uid)
    return request


async def is_unavailable(
    db: AsyncSession,
    technician_uid: str,
    start_time: datetime,
    end_time: datetime,
) -> bool:
    """技师在 [start, end) 内是否有 待审批/已批准 的请假"""
    found = (await db.execute(
        _overlapping_blocking_absences(technician_uid, to_local(start_time), to_local(end_time))
        .with_only_columns(AbsenceRequest.uid)
        .limit(1)
    )).scalars().first()
    return found is not None


async def list_absences(
    db: AsyncSession,
    *,
    status: Optional[AbsenceStatus] = None,
    page: int = 0,
    size: int = 20,
) -> tuple[list[AbsenceRequest], int]:
    base = select(AbsenceRequest)
    if status is not None:
        base = base.where(AbsenceRequest.status == status)

    total = (await db.execute(
        select(func.count()).select_from(base.subquery())
    )).scalar_one()

    result = await db.execute(
        base.order_by(AbsenceRequest.created_at.desc(), AbsenceRequest.uid.desc())
        .offset(page * size)
        .limit(size)
    )
    return list(result.scalars().unique().all()), total


async def list_technician_absences(db: AsyncSession, technician_uid: str) -> list[AbsenceRequest]:
    result = await db.execute(
        select(AbsenceRequest)
        .where(AbsenceRequest.technician_id == technician_uid)
        .order_by(AbsenceRequest.start_time.desc())
    )
    return list(result.scalars().unique().all())
