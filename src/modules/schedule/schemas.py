# src/modules/schedule/schemas.py

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime

from src.shared.models.appointment_models import AppointmentStatus


class AvailabilityResponse(BaseModel):
    """
    用于 '返回可用时间' 接口
    """
    available_slots: List[str] # ["09:00", "09:15"]


class TechnicianOption(BaseModel):
    uid: str
    name: str

    model_config = ConfigDict(from_attributes=True)


class AppointmentCreate(BaseModel):
    """
    用于 '创建预约' 接口 (客户提交)
    """
    service_uid: str
    # 不指定技师时由系统自动分配
    technician_uid: Optional[str] = None
    # 带时区的 ISO 时间会被换算成门店本地时间
    # 例如: "2025-10-24T09:00:00+07:00"
    start_time: datetime
    note: Optional[str] = Field(default=None, max_length=500)


class RescheduleRequest(BaseModel):
    new_start_time: datetime


class AppointmentPublic(BaseModel):
    """
    用于 '返回预约' 接口 (创建 / 取消 / 改期 / 状态变更)
    """
    uid: str
    status: AppointmentStatus
    start_time: datetime
    end_time: datetime
    service_uid: str
    technician_uid: Optional[str] = None
    note: Optional[str] = None
    final_price: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)

    # 只读取外键 UID，不触发关系加载
    @classmethod
    def from_orm_simple(cls, appt):
        return cls(
            uid=appt.uid,
            status=appt.status,
            start_time=appt.start_time,
            end_time=appt.end_time,
            service_uid=appt.service_id,
            technician_uid=appt.technician_id,
            note=appt.note,
            final_price=appt.final_price,
        )


class AppointmentDetail(AppointmentPublic):
    """
    列表接口使用，附带服务、技师、客户名称
    (service 层已 selectinload 相关关系)
    """
    service_name: str
    technician_name: Optional[str] = None
    customer_uid: str
    customer_name: str
    created_at: datetime

    @classmethod
    def from_orm_detail(cls, appt):
        return cls(
            **AppointmentPublic.from_orm_simple(appt).model_dump(),
            service_name=appt.service.name,
            technician_name=appt.technician.name if appt.technician else None,
            customer_uid=appt.customer_id,
            customer_name=appt.customer.name,
            created_at=appt.created_at,
        )


class AppointmentPage(BaseModel):
    items: List[AppointmentDetail]
    total: int
    page: int
    size: int
