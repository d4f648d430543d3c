"""Human-readable rendering of actors and assignment status history."""
from typing import List, Optional

from shiftledger.config import settings
from shiftledger.models.audit import ShiftAssignmentLog

SYSTEM_ACTOR_LABEL = "System"


def actor_label(user=None, staff=None) -> str:
    """Display label for whoever performed a change."""
    if user is not None:
        return f"Manager {user.name}"
    if staff is not None:
        return f"Staff {staff.name}"
    return SYSTEM_ACTOR_LABEL


def _status(value) -> str:
    return getattr(value, "value", value)


def format_assignment_log(log: ShiftAssignmentLog, timestamp_format: Optional[str] = None) -> str:
    """
    Render one status log entry.

    Format: [timestamp] actor: previous → new - "message"
    The first transition reads "Status set: new"; the message part is
    omitted when there is no message.
    """
    timestamp = log.created_at.strftime(timestamp_format or settings.history_timestamp_format)
    actor = actor_label(log.changed_by_user, log.changed_by_staff_member)

    if log.previous_status:
        status_change = f"{_status(log.previous_status)} → {_status(log.new_status)}"
    else:
        status_change = f"Status set: {_status(log.new_status)}"

    line = f"[{timestamp}] {actor}: {status_change}"
    if log.message:
        line += f' - "{log.message}"'
    return line


def format_assignment_history(logs: List[ShiftAssignmentLog], timestamp_format: Optional[str] = None) -> List[str]:
    """Render status log entries one line each, in the order given."""
    return [format_assignment_log(log, timestamp_format) for log in logs]
