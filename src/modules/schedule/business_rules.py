"""
Scheduling policies and technician selection strategies.

Business-hour windows, deadlines and the initial appointment status are
frozen into a ``BookingPolicy`` built from settings so the core scheduling
functions stay declarative. Tests and tools pass their own policy instead of
patching configuration.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Protocol, Sequence

from src.core.config import settings
from src.shared.models.appointment_models import AppointmentStatus
from src.shared.models.user_models import User

from .timeline import combine_local, is_overlap, parse_clock


@dataclass(frozen=True)
class BookingPolicy:
    open_time: time = time(9, 0)
    close_time: time = time(21, 0)
    break_start: Optional[time] = time(12, 0)
    break_end: Optional[time] = time(14, 0)
    slot_interval_minutes: int = 15
    cancel_deadline_minutes: int = 30
    reschedule_deadline_minutes: int = 30
    auto_confirm: bool = False

    @classmethod
    def from_settings(cls) -> "BookingPolicy":
        break_start = parse_clock(settings.BREAK_START_TIME) if settings.BREAK_START_TIME else None
        break_end = parse_clock(settings.BREAK_END_TIME) if settings.BREAK_END_TIME else None
        return cls(
            open_time=parse_clock(settings.BUSINESS_OPEN_TIME),
            close_time=parse_clock(settings.BUSINESS_CLOSE_TIME),
            break_start=break_start,
            break_end=break_end,
            slot_interval_minutes=settings.SLOT_INTERVAL_MINUTES,
            cancel_deadline_minutes=settings.CANCEL_DEADLINE_MINUTES,
            reschedule_deadline_minutes=settings.RESCHEDULE_DEADLINE_MINUTES,
            auto_confirm=settings.AUTO_CONFIRM_APPOINTMENTS,
        )

    @property
    def slot_step(self) -> timedelta:
        return timedelta(minutes=self.slot_interval_minutes)

    @property
    def initial_status(self) -> AppointmentStatus:
        return AppointmentStatus.CONFIRMED if self.auto_confirm else AppointmentStatus.PENDING

    def business_window(self, target_date: date) -> tuple[datetime, datetime]:
        return combine_local(target_date, self.open_time), combine_local(target_date, self.close_time)

    def break_window(self, target_date: date) -> Optional[tuple[datetime, datetime]]:
        if self.break_start is None or self.break_end is None:
            return None
        return combine_local(target_date, self.break_start), combine_local(target_date, self.break_end)

    def is_bookable_window(self, start: datetime, end: datetime) -> bool:
        """窗口必须落在同一天的营业时间内，且不能与午休重叠"""
        opening, closing = self.business_window(start.date())
        if start < opening or end > closing:
            return False
        closed = self.break_window(start.date())
        if closed and is_overlap(start, end, closed[0], closed[1]):
            return False
        return True


class TechnicianSelector(Protocol):
    def choose(self, candidates: Sequence[User]) -> User:
        ...


class RandomTechnicianSelector:
    """Default auto-assignment: uniform random over the available technicians."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def choose(self, candidates: Sequence[User]) -> User:
        if not candidates:
            raise ValueError("no candidates to choose from")
        return self._rng.choice(list(candidates))


default_selector = RandomTechnicianSelector()
