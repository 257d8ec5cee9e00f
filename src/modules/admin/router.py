# src/modules/admin/router.py

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from src.core.database import get_db
from src.modules.absence import schemas as absence_schemas
from src.modules.absence import service as absence_service
from src.modules.auth.security import get_current_admin_user # 管理员依赖
from src.modules.schedule import cache
from src.modules.schedule import schemas as schedule_schemas
from src.modules.schedule import service as schedule_service
from src.modules.schedule.timeline import to_local
from src.shared.models.appointment_models import AppointmentStatus
from src.shared.models.schedule_models import AbsenceStatus
from src.shared.models.user_models import User

# 管理后台路由，不带 prefix，在 main.py 中统一添加
router = APIRouter(
    responses={
        404: {"description": "Not found"},
        403: {"description": "Operation not permitted"},
    }
)

# --- 请假审批 ---

@router.get(
    "/absences",
    response_model=absence_schemas.AbsencePage,
    summary="分页查看请假申请"
)
async def get_absence_requests(
    status: Optional[AbsenceStatus] = Query(None, description="按状态过滤"),
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    admin_user: User = Depends(get_current_admin_user)
):
    items, total = await absence_service.list_absences(db, status=status, page=page, size=size)
    return absence_schemas.AbsencePage(
        items=[absence_schemas.AbsenceAdminView.from_orm_with_technician(item) for item in items],
        total=total,
        page=page,
        size=size,
    )


@router.put(
    "/absences/{request_uid}/review",
    response_model=absence_schemas.AbsencePublic,
    summary="审批请假申请"
)
async def review_absence_request(
    request_uid: str,
    payload: absence_schemas.AbsenceReview,
    db: AsyncSession = Depends(get_db),
    admin_user: User = Depends(get_current_admin_user)
):
    """
    (Admin Only) 批准或驳回请假。驳回后该时段重新开放预约。
    """
    absence = await absence_service.review_absence(db, request_uid, payload.status, admin_user.uid)
    await cache.clear_slots_between(to_local(absence.start_time).date(), to_local(absence.end_time).date())
    return absence


# --- 预约查询 ---

@router.get(
    "/appointments",
    response_model=schedule_schemas.AppointmentPage,
    summary="分页查询全部预约"
)
async def get_all_appointments(
    keyword: Optional[str] = Query(None, description="按客户姓名/邮箱或服务名搜索"),
    status: Optional[AppointmentStatus] = Query(None, description="按状态过滤"),
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    admin_user: User = Depends(get_current_admin_user)
):
    items, total = await schedule_service.list_appointments_for_admin(
        db, keyword=keyword, status=status, page=page, size=size
    )
    return schedule_schemas.AppointmentPage(
        items=[schedule_schemas.AppointmentDetail.from_orm_detail(appt) for appt in items],
        total=total,
        page=page,
        size=size,
    )
