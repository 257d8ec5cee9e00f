# src/shared/models/appointment_models.py

from __future__ import annotations
import datetime
from enum import Enum as PyEnum
from sqlalchemy import String, Integer, Enum, ForeignKey, DateTime, Index, func
from sqlalchemy.orm import relationship, Mapped, mapped_column
from src.core.database import Base
import ulid


class AppointmentStatus(str, PyEnum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


# 预约模型
class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_technician_window", "technician_id", "start_time"),
    )
    # 在同一事务内取回 created_at/updated_at，避免提交后再次懒加载
    __mapper_args__ = {"eager_defaults": True}

    uid: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.new()), index=True)
    customer_id: Mapped[str] = mapped_column(String(26), ForeignKey("users.uid"), index=True)
    technician_id: Mapped[str | None] = mapped_column(String(26), ForeignKey("users.uid"), nullable=True)
    service_id: Mapped[str] = mapped_column(String(26), ForeignKey("services.uid"))
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus, name="appointment_status_enum"),
        default=AppointmentStatus.PENDING,
        nullable=False,
    )
    start_time: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)
    # 由服务端根据服务时长计算，客户端不能提交
    end_time: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    final_price: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime.datetime | None] = mapped_column(DateTime, nullable=True, onupdate=func.now())

    customer: Mapped["User"] = relationship("User", foreign_keys=[customer_id], back_populates="appointments_as_customer")
    technician: Mapped["User"] = relationship("User", foreign_keys=[technician_id])
    service: Mapped["Service"] = relationship("Service")

    resources_link: Mapped[list["AppointmentResourceLink"]] = relationship(
        "AppointmentResourceLink", back_populates="appointment", cascade="all, delete-orphan"
    )


# 预约与资源的关联模型
class AppointmentResourceLink(Base):
    """
    记录预约对物理资源 (房间/床位/设备) 的占用。
    占用时段直接取自所属预约的 start_time/end_time，预约取消即视为释放。
    """
    __tablename__ = "appointment_resource_links"

    appointment_id: Mapped[str] = mapped_column(String(26), ForeignKey("appointments.uid"), primary_key=True)
    resource_id: Mapped[str] = mapped_column(String(26), ForeignKey("resources.uid"), primary_key=True, index=True)

    appointment: Mapped["Appointment"] = relationship("Appointment", back_populates="resources_link")
    resource: Mapped["Resource"] = relationship("Resource")
