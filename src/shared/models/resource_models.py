# src/shared/models/resource_models.py

from __future__ import annotations
from sqlalchemy import Boolean, CheckConstraint, Integer, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column
from src.core.database import Base
from .user_models import technician_service_link_table
import ulid


class Service(Base):
    __tablename__ = "services"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_service_duration_positive"),
    )

    uid: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.new()), index=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, comment="in minutes")
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="最终价格，单位：分")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    technicians: Mapped[list["User"]] = relationship(
        "User", secondary=technician_service_link_table, back_populates="skills"
    )
    resource_requirements: Mapped[list["ServiceResourceRequirement"]] = relationship(
        "ServiceResourceRequirement",
        back_populates="service",
        cascade="all, delete-orphan",
        order_by="ServiceResourceRequirement.resource_type",
    )


class ServiceResourceRequirement(Base):
    """
    服务对物理资源的需求：某种类型 (例如 ROOM) 需要几个单位。
    """
    __tablename__ = "service_resource_requirements"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_requirement_quantity_positive"),
        # 每个服务对同一种资源类型只有一条需求
        UniqueConstraint("service_id", "resource_type", name="uq_requirement_service_type"),
    )

    uid: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.new()), index=True)
    service_id: Mapped[str] = mapped_column(String(26), ForeignKey("services.uid"), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    service: Mapped["Service"] = relationship("Service", back_populates="resource_requirements")


class Resource(Base):
    __tablename__ = "resources"

    uid: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.new()), index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, comment="例如: 1号房间, 2号按摩床")
    # 类型由管理员自定义，不是固定枚举
    type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
