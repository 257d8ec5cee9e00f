# src/shared/models/schedule_models.py

from __future__ import annotations
import datetime
from enum import Enum as PyEnum
from sqlalchemy import String, ForeignKey, DateTime, Enum, Index, func
from sqlalchemy.orm import relationship, Mapped, mapped_column
from src.core.database import Base
import ulid


class AbsenceStatus(str, PyEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# 待审批和已批准的请假都会占用技师时间
BLOCKING_ABSENCE_STATUSES = (AbsenceStatus.PENDING, AbsenceStatus.APPROVED)


class AbsenceRequest(Base):
    """
    技师请假申请。由技师提交，管理员审批 (批准/驳回)。
    """
    __tablename__ = "absence_requests"
    __table_args__ = (
        Index("ix_absence_requests_technician_window", "technician_id", "start_time"),
    )
    __mapper_args__ = {"eager_defaults": True}

    uid: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.new()), index=True)

    # 关联到 User (技师)
    technician_id: Mapped[str] = mapped_column(String(26), ForeignKey("users.uid"), nullable=False)

    start_time: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, comment="请假开始时间")
    end_time: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, comment="请假结束时间")
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[AbsenceStatus] = mapped_column(
        Enum(AbsenceStatus, name="absence_status_enum"),
        nullable=False,
        default=AbsenceStatus.PENDING,
    )

    reviewed_by_user_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.uid"),
        nullable=True,
        comment="审批的管理员"
    )
    reviewed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime, nullable=True, comment="审批时间")

    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, server_default=func.now())

    # --- Relationships (使用字符串前向引用) ---
    technician: Mapped["User"] = relationship(
        "User",
        foreign_keys=[technician_id],
        lazy="joined"
    )
    reviewed_by: Mapped["User"] = relationship(
        "User",
        foreign_keys=[reviewed_by_user_id],
    )
