from .people import Supervisor, Student
from .shifts import ShiftDefinition, ScheduleOverride, OvertimeAuthorization
from .attendance import AttendancePunch, PunchKind, PunchStatus
from .ledger import LedgerEntry
from .communications import Notification

__all__ = [
    'Supervisor', 'Student',
    'ShiftDefinition', 'ScheduleOverride', 'OvertimeAuthorization',
    'AttendancePunch', 'PunchKind', 'PunchStatus',
    'LedgerEntry',
    'Notification',
]
