"""Tests for the technician availability resolver and the resource allocator."""

import pytest
from sqlalchemy.exc import IntegrityError

from src.core.exceptions import InsufficientResourceError, NotFoundError
from src.modules.schedule.availability import (
    TECHNICIAN_BUSY,
    TECHNICIAN_ON_LEAVE,
    TECHNICIAN_UNQUALIFIED,
    available_technicians,
    load_service,
    load_snapshot,
)
from src.modules.schedule.resources import allocate, free_units, has_capacity
from src.shared.models import AbsenceStatus, AppointmentStatus, Service, ServiceResourceRequirement

from tests.conftest import add_absence, add_appointment, add_resource, add_service, add_user, at


class TestAvailableTechnicians:
    @pytest.mark.asyncio
    async def test_only_qualified_active_technicians(self, db):
        qualified = await add_user(db, "Linh", "technician")
        unqualified = await add_user(db, "Hoa", "technician")
        inactive = await add_user(db, "Tuan", "technician", is_active=False)
        service_uid = await add_service(db, technicians=[qualified, inactive])
        await add_service(db, "Foot Spa", technicians=[unqualified])

        result = await available_technicians(db, service_uid, at(10))

        assert [tech.uid for tech in result] == [qualified]

    @pytest.mark.asyncio
    async def test_busy_technician_is_excluded(self, db):
        busy = await add_user(db, "Linh", "technician")
        free = await add_user(db, "Hoa", "technician")
        customer = await add_user(db, "Mai")
        service_uid = await add_service(db, technicians=[busy, free])
        await add_appointment(
            db, customer_uid=customer, service_uid=service_uid, technician_uid=busy,
            start_time=at(10), end_time=at(10, 30),
        )

        result = await available_technicians(db, service_uid, at(10, 15))

        assert [tech.uid for tech in result] == [free]

    @pytest.mark.asyncio
    async def test_cancelled_appointment_does_not_block(self, db):
        tech = await add_user(db, "Linh", "technician")
        customer = await add_user(db, "Mai")
        service_uid = await add_service(db, technicians=[tech])
        await add_appointment(
            db, customer_uid=customer, service_uid=service_uid, technician_uid=tech,
            start_time=at(10), end_time=at(10, 30), status=AppointmentStatus.CANCELLED,
        )

        result = await available_technicians(db, service_uid, at(10))

        assert [t.uid for t in result] == [tech]

    @pytest.mark.asyncio
    async def test_pending_absence_blocks(self, db):
        tech = await add_user(db, "Linh", "technician")
        service_uid = await add_service(db, technicians=[tech])
        await add_absence(db, tech, at(9), at(12), AbsenceStatus.PENDING)

        assert await available_technicians(db, service_uid, at(11, 45)) == []
        assert [t.uid for t in await available_technicians(db, service_uid, at(12))] == [tech]

    @pytest.mark.asyncio
    async def test_inactive_service(self, db):
        tech = await add_user(db, "Linh", "technician")
        service_uid = await add_service(db, technicians=[tech], is_active=False)

        with pytest.raises(NotFoundError):
            await available_technicians(db, service_uid, at(10))

    @pytest.mark.asyncio
    async def test_unknown_service(self, db):
        with pytest.raises(NotFoundError):
            await available_technicians(db, "01HZZZZZZZZZZZZZZZZZZZZZZZ", at(10))


class TestTechnicianConflict:
    @pytest.mark.asyncio
    async def test_reasons(self, db):
        tech = await add_user(db, "Linh", "technician")
        outsider = await add_user(db, "Hoa", "technician")
        customer = await add_user(db, "Mai")
        service_uid = await add_service(db, technicians=[tech])
        appointment_uid = await add_appointment(
            db, customer_uid=customer, service_uid=service_uid, technician_uid=tech,
            start_time=at(10), end_time=at(10, 30),
        )
        await add_absence(db, tech, at(15), at(16))

        service = await load_service(db, service_uid)
        snapshot = await load_snapshot(db, service, at(9), at(21))

        assert snapshot.technician_conflict(outsider, at(9), at(9, 30)) == TECHNICIAN_UNQUALIFIED
        assert snapshot.technician_conflict(tech, at(10), at(10, 30)) == TECHNICIAN_BUSY
        assert snapshot.technician_conflict(tech, at(15, 30), at(16)) == TECHNICIAN_ON_LEAVE
        assert snapshot.technician_conflict(tech, at(10, 30), at(11)) is None
        # 改期时忽略预约自身的占用
        assert snapshot.technician_conflict(
            tech, at(10), at(10, 30), exclude_appointment_uid=appointment_uid
        ) is None


class TestResourceAllocator:
    @pytest.mark.asyncio
    async def test_allocates_lowest_free_units(self, db):
        tech = await add_user(db, "Linh", "technician")
        customer = await add_user(db, "Mai")
        rooms = sorted([await add_resource(db, f"Room {i}") for i in range(3)])
        service_uid = await add_service(db, technicians=[tech], requirements={"ROOM": 2})
        await add_appointment(
            db, customer_uid=customer, service_uid=service_uid, technician_uid=tech,
            start_time=at(10), end_time=at(11), resource_uids=[rooms[0]],
        )

        service = await load_service(db, service_uid)
        snapshot = await load_snapshot(db, service, at(9), at(21))

        assert free_units(snapshot, "ROOM", at(10), at(11)) == rooms[1:]
        assert allocate(snapshot, snapshot.requirements, at(10), at(11)) == rooms[1:]
        assert allocate(snapshot, snapshot.requirements, at(11), at(12)) == rooms[:2]

    @pytest.mark.asyncio
    async def test_insufficient_units_names_the_type(self, db):
        tech = await add_user(db, "Linh", "technician")
        await add_resource(db, "Room 1")
        await add_resource(db, "Bed 1", "BED")
        service_uid = await add_service(db, technicians=[tech], requirements={"BED": 1, "ROOM": 2})

        service = await load_service(db, service_uid)
        snapshot = await load_snapshot(db, service, at(9), at(21))

        assert not has_capacity(snapshot, snapshot.requirements, at(10), at(11))
        with pytest.raises(InsufficientResourceError) as exc_info:
            allocate(snapshot, snapshot.requirements, at(10), at(11))
        assert exc_info.value.resource_type == "ROOM"

    @pytest.mark.asyncio
    async def test_deleted_units_are_ignored(self, db):
        tech = await add_user(db, "Linh", "technician")
        await add_resource(db, "Room 1", is_deleted=True)
        service_uid = await add_service(db, technicians=[tech], requirements={"ROOM": 1})

        service = await load_service(db, service_uid)
        snapshot = await load_snapshot(db, service, at(9), at(21))

        assert snapshot.resource_pool == {"ROOM": []}
        assert not has_capacity(snapshot, snapshot.requirements, at(10), at(11))

    @pytest.mark.asyncio
    async def test_no_requirements_always_fits(self, db):
        tech = await add_user(db, "Linh", "technician")
        service_uid = await add_service(db, technicians=[tech])

        service = await load_service(db, service_uid)
        snapshot = await load_snapshot(db, service, at(9), at(21))

        assert has_capacity(snapshot, snapshot.requirements, at(10), at(11))
        assert allocate(snapshot, snapshot.requirements, at(10), at(11)) == []

    @pytest.mark.asyncio
    async def test_units_released_by_cancellation(self, db):
        tech = await add_user(db, "Linh", "technician")
        customer = await add_user(db, "Mai")
        room = await add_resource(db, "Room 1")
        service_uid = await add_service(db, technicians=[tech], requirements={"ROOM": 1})
        await add_appointment(
            db, customer_uid=customer, service_uid=service_uid, technician_uid=tech,
            start_time=at(10), end_time=at(11), resource_uids=[room],
            status=AppointmentStatus.CANCELLED,
        )

        service = await load_service(db, service_uid)
        snapshot = await load_snapshot(db, service, at(9), at(21))

        assert allocate(snapshot, snapshot.requirements, at(10), at(11)) == [room]


class TestServiceRequirements:
    @pytest.mark.asyncio
    async def test_one_requirement_per_resource_type(self, db):
        db.add(Service(
            name="Couple Massage",
            duration_minutes=60,
            price=900000,
            resource_requirements=[
                ServiceResourceRequirement(resource_type="ROOM", quantity=1),
                ServiceResourceRequirement(resource_type="ROOM", quantity=1),
            ],
        ))
        with pytest.raises(IntegrityError):
            await db.commit()
        await db.rollback()
