# Garante o registro de TODAS as models no mesmo registry
from booking_engine.db.base_class import Base  # noqa
from booking_engine.models.appointment import Appointment, AppointmentServiceLine  # noqa
from booking_engine.models.audit_log import AuditLog  # noqa
from booking_engine.models.blocked_time import BlockedTime  # noqa
from booking_engine.models.professional import Professional  # noqa
from booking_engine.models.reminder import AppointmentReminder  # noqa
from booking_engine.models.service import Service  # noqa
from booking_engine.models.tenant import Tenant  # noqa
from booking_engine.models.working_hours import WorkingHours  # noqa
