"""Enums for shiftledger - these define the valid values for statuses, actions and entity types."""
from enum import Enum


class EntityType(str, Enum):
    """Closed set of entity types an audit entry can refer to."""
    ORGANIZATION = "organization"
    USER = "user"
    ROLE = "role"
    STAFF = "staff"
    STAFF_ADDRESS = "staff_address"
    SHIFT = "shift"
    SHIFT_ASSIGNMENT = "shift_assignment"


class AuditAction(str, Enum):
    """The four kinds of mutation recorded in the audit log."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    STATUS_CHANGE = "status_change"


class ResponseStatus(str, Enum):
    """
    Staff response to a shift invitation.

    Any transition between the three is permitted; moving back to pending
    is a re-invitation.
    """
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class ShiftStatus(str, Enum):
    """Publication state of a shift."""
    DRAFT = "draft"
    PUBLISHED = "published"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


def enum_values(enum_cls):
    """Persist enum values (not member names) in the database."""
    return [member.value for member in enum_cls]
