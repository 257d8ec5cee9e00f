"""Shared test fixtures and helpers."""

import os

# 必须在导入 src 之前设置，模块级 engine 会读取这些配置
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import date, datetime
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.database import build_engine
from src.modules.schedule.business_rules import BookingPolicy
from src.shared.models import (
    Appointment,
    AppointmentResourceLink,
    AppointmentStatus,
    AbsenceRequest,
    AbsenceStatus,
    Base,
    Resource,
    Service,
    ServiceResourceRequirement,
    User,
)

# 固定在未来的某一天，测试不依赖当前时间
BOOKING_DAY = date(2030, 6, 3)
NOW = datetime(2030, 6, 1, 8, 0)


def at(hour: int, minute: int = 0, day: date = BOOKING_DAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)


@pytest.fixture
def policy():
    """营业 09:00-21:00，无午休，15 分钟步长"""
    return BookingPolicy(break_start=None, break_end=None)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'scheduling.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest_asyncio.fixture
async def short_lock_factory(tmp_path):
    """写锁只等 0.2 秒的库，另一个事务占着写锁时很快得到 database is locked"""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'locked.db'}", lock_timeout=0.2)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


class FirstSelector:
    """确定性的技师选择：总是选 uid 最小的"""

    def __init__(self):
        self.seen: list[list[str]] = []

    def choose(self, candidates):
        self.seen.append([tech.uid for tech in candidates])
        return sorted(candidates, key=lambda tech: tech.uid)[0]


# --- 数据构造 ---
# 各 helper 提交后只返回 uid 字符串：业务函数失败时会回滚，
# 回滚后会话中的 ORM 对象全部过期，测试不应再读取它们的属性。

async def add_user(db: AsyncSession, name: str, role: str = "customer", *, is_active: bool = True,
                   email: Optional[str] = None) -> str:
    user = User(name=name, role=role, is_active=is_active, email=email)
    db.add(user)
    await db.commit()
    return user.uid


async def add_service(
    db: AsyncSession,
    name: str = "Aroma Massage",
    duration_minutes: int = 30,
    *,
    price: int = 350000,
    requirements: Optional[dict[str, int]] = None,
    technicians: Optional[list[str]] = None,
    is_active: bool = True,
) -> str:
    qualified = [await db.get(User, technician_uid) for technician_uid in technicians or []]
    service = Service(
        name=name,
        duration_minutes=duration_minutes,
        price=price,
        is_active=is_active,
        technicians=qualified,
        resource_requirements=[
            ServiceResourceRequirement(resource_type=resource_type, quantity=quantity)
            for resource_type, quantity in (requirements or {}).items()
        ],
    )
    db.add(service)
    await db.commit()
    return service.uid


async def add_resource(db: AsyncSession, name: str, resource_type: str = "ROOM", *, is_deleted: bool = False) -> str:
    resource = Resource(name=name, type=resource_type, is_deleted=is_deleted)
    db.add(resource)
    await db.commit()
    return resource.uid


async def add_appointment(
    db: AsyncSession,
    *,
    customer_uid: str,
    service_uid: str,
    technician_uid: Optional[str],
    start_time: datetime,
    end_time: datetime,
    status: AppointmentStatus = AppointmentStatus.CONFIRMED,
    resource_uids: Optional[list[str]] = None,
) -> str:
    appointment = Appointment(
        customer_id=customer_uid,
        service_id=service_uid,
        technician_id=technician_uid,
        start_time=start_time,
        end_time=end_time,
        status=status,
    )
    appointment.resources_link = [
        AppointmentResourceLink(resource_id=resource_uid) for resource_uid in resource_uids or []
    ]
    db.add(appointment)
    await db.commit()
    return appointment.uid


async def add_absence(
    db: AsyncSession,
    technician_uid: str,
    start_time: datetime,
    end_time: datetime,
    status: AbsenceStatus = AbsenceStatus.APPROVED,
) -> str:
    absence = AbsenceRequest(
        technician_id=technician_uid,
        start_time=start_time,
        end_time=end_time,
        status=status,
    )
    db.add(absence)
    await db.commit()
    return absence.uid
