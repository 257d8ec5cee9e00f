# src/modules/absence/schemas.py

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime

from src.shared.models.schedule_models import AbsenceStatus


class AbsenceCreate(BaseModel):
    """
    技师提交请假申请
    """
    start_time: datetime
    end_time: datetime
    reason: Optional[str] = Field(default=None, max_length=500)


class AbsenceReview(BaseModel):
    """
    管理员审批 (只接受 APPROVED / REJECTED)
    """
    status: AbsenceStatus


class AbsencePublic(BaseModel):
    uid: str
    technician_uid: str = Field(validation_alias="technician_id")
    start_time: datetime
    end_time: datetime
    reason: Optional[str] = None
    status: AbsenceStatus
    reviewed_by_uid: Optional[str] = Field(default=None, validation_alias="reviewed_by_user_id")
    reviewed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class AbsenceAdminView(AbsencePublic):
    technician_name: Optional[str] = None

    @classmethod
    def from_orm_with_technician(cls, absence):
        view = cls.model_validate(absence)
        view.technician_name = absence.technician.name if absence.technician else None
        return view


class AbsencePage(BaseModel):
    items: List[AbsenceAdminView]
    total: int
    page: int
    size: int
