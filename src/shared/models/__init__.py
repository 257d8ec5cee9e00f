# src/shared/models/__init__.py

from src.core.database import Base
from .user_models import User, technician_service_link_table
from .resource_models import Service, ServiceResourceRequirement, Resource
from .appointment_models import Appointment, AppointmentResourceLink, AppointmentStatus
from .schedule_models import AbsenceRequest, AbsenceStatus, BLOCKING_ABSENCE_STATUSES
