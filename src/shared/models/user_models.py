# src/shared/models/user_models.py
from __future__ import annotations
import datetime
from sqlalchemy import (
    Column,
    String,
    Table,
    Enum,
    Boolean,
    DateTime,
    ForeignKey,
    func,
    )

from sqlalchemy.orm import relationship, Mapped, mapped_column
from src.core.database import Base  # <-- 导入 Base
import ulid
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .resource_models import Service
    from .appointment_models import Appointment

# 定义技师和服务的 多对多 关联表 (技师技能)
technician_service_link_table = Table(
    "technician_service_link",
    Base.metadata,
    Column("user_id", String(26), ForeignKey("users.uid"), primary_key=True),
    Column("service_id", String(26), ForeignKey("services.uid"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    uid: Mapped[str] = mapped_column(String(26), primary_key=True, unique=True, default=lambda: str(ulid.new()), index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="Guest")
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True)
    role: Mapped[str] = mapped_column(
        Enum("customer", "technician", "admin", name="user_role_enum"),
        default="customer",
        nullable=False,
    )
    # 账号启用标记；被禁用的技师不会出现在可用列表中
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # 技师与服务的 多对多 关系 (技能)
    skills: Mapped[list["Service"]] = relationship(
        secondary=technician_service_link_table,
        back_populates="technicians"
    )

    # 作为客户的预约关系
    appointments_as_customer: Mapped[list["Appointment"]] = relationship(
        "Appointment",
        foreign_keys="Appointment.customer_id",
        back_populates="customer"
    )

    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, onupdate=func.now(), server_default=func.now())
