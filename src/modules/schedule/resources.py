# src/modules/schedule/resources.py

from datetime import datetime
from typing import Iterable, Optional

from src.core.exceptions import InsufficientResourceError
from src.shared.models.resource_models import ServiceResourceRequirement

from .availability import SchedulingSnapshot


def free_units(
    snapshot: SchedulingSnapshot,
    resource_type: str,
    start: datetime,
    end: datetime,
    exclude_appointment_uid: Optional[str] = None,
) -> list[str]:
    """该类型下在 [start, end) 内没有任何占用的资源 uid (升序)"""
    return [
        resource_uid
        for resource_uid in snapshot.resource_pool.get(resource_type, [])
        if not any(
            usage.blocks(start, end, exclude_appointment_uid)
            for usage in snapshot.resource_usage.get(resource_uid, [])
        )
    ]


def has_capacity(
    snapshot: SchedulingSnapshot,
    requirements: Iterable[ServiceResourceRequirement],
    start: datetime,
    end: datetime,
    exclude_appointment_uid: Optional[str] = None,
) -> bool:
    for requirement in requirements:
        available = free_units(snapshot, requirement.resource_type, start, end, exclude_appointment_uid)
        if len(available) < requirement.quantity:
            return False
    return True


def allocate(
    snapshot: SchedulingSnapshot,
    requirements: Iterable[ServiceResourceRequirement],
    start: datetime,
    end: datetime,
    exclude_appointment_uid: Optional[str] = None,
) -> list[str]:
    """
    贪心分配：逐个需求挑选 uid 最小的空闲单位，同一次分配中不重复使用。
    任一类型不足时抛出 InsufficientResourceError，并指明该类型。
    """
    selected: list[str] = []
    for requirement in requirements:
        candidates = [
            resource_uid
            for resource_uid in free_units(snapshot, requirement.resource_type, start, end, exclude_appointment_uid)
            if resource_uid not in selected
        ]
        if len(candidates) < requirement.quantity:
            raise InsufficientResourceError(requirement.resource_type)
        selected.extend(candidates[:requirement.quantity])
    return selected
