"""
Domain models for the scheduling system.

Organizations, users, roles, staff, staff addresses and shifts are versioned
with SCD Type 2: every change produces a new row, the old row is retired.
Shift assignments are mutated in place; their status history lives in
ShiftAssignmentLog.
"""
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, JSON, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import declared_attr, relationship

from shiftledger.database import Base
from shiftledger.models.enums import ResponseStatus, ShiftStatus, enum_values


def new_id() -> str:
    return str(uuid.uuid4())


class VersionedMixin:
    """
    SCD Type 2 columns shared by every versioned table.

    Invariants:
    - Exactly one row per lineage has is_current = True
    - is_current is always equal to (valid_to is None)
    - previous_version_id is unique: a row has at most one successor
    - created_at is the lineage's creation time, copied onto every version
    """
    id = Column(String(36), primary_key=True, default=new_id)
    valid_from = Column(DateTime, nullable=False, default=datetime.utcnow)
    valid_to = Column(DateTime, nullable=True)  # NULL = still current
    is_current = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    @declared_attr
    def previous_version_id(cls):
        return Column(
            String(36),
            ForeignKey(f"{cls.__tablename__}.id"),
            nullable=True,
            unique=True,
            index=True
        )


# Columns managed by the version chain, never copied or overlaid from caller input
VERSION_COLUMNS = frozenset({
    "id", "previous_version_id", "valid_from", "valid_to", "is_current", "created_at", "updated_at"
})


class Organization(VersionedMixin, Base):
    """The organization (band, restaurant, agency...) that owns everything else."""
    __tablename__ = "organizations"

    name = Column(String(255), nullable=False)
    type = Column(String(100), nullable=True)  # e.g. 'band', 'restaurant', 'catering'
    description = Column(Text, nullable=True)
    settings = Column(JSON, nullable=True)


class User(VersionedMixin, Base):
    """Managers and organizers."""
    __tablename__ = "users"

    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    # Not unique: every version of a user carries the same email
    email = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    password_hash = Column(Text, nullable=False)
    role = Column(String(50), nullable=False, default="manager")  # manager, admin, viewer


class Role(VersionedMixin, Base):
    """A position staff can fill, e.g. waiter, cook, guitarist."""
    __tablename__ = "roles"

    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(7), nullable=True)  # Hex color for the UI
    is_active = Column(Boolean, nullable=False, default=True)


class Staff(VersionedMixin, Base):
    __tablename__ = "staff"

    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    primary_role_id = Column(String(36), ForeignKey("roles.id"), nullable=True)
    notes = Column(Text, nullable=True)
    extra_metadata = Column("metadata", JSON, nullable=True)  # Certificates, skills, etc.
    is_active = Column(Boolean, nullable=False, default=True)


class StaffAddress(VersionedMixin, Base):
    __tablename__ = "staff_addresses"

    staff_id = Column(String(36), ForeignKey("staff.id"), nullable=False, index=True)
    street = Column(String(255), nullable=True)
    house_number = Column(String(20), nullable=True)
    postal_code = Column(String(20), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)
    address_type = Column(String(50), nullable=True, default="primary")  # primary, billing, shipping


class StaffRole(Base):
    """Link table: a staff member may hold several roles."""
    __tablename__ = "staff_roles"

    id = Column(String(36), primary_key=True, default=new_id)
    staff_id = Column(String(36), ForeignKey("staff.id"), nullable=False)
    role_id = Column(String(36), ForeignKey("roles.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Shift(VersionedMixin, Base):
    """A shift, event or job staff get invited to."""
    __tablename__ = "shifts"

    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    shift_date = Column(DateTime, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    compensation = Column(String(100), nullable=True)
    status = Column(
        SQLEnum(ShiftStatus, values_callable=enum_values, name="shift_status"),
        nullable=False,
        default=ShiftStatus.DRAFT
    )
    required_staff_count = Column(String(50), nullable=True)  # e.g. "2 waiters, 1 cook"
    notes = Column(Text, nullable=True)
    extra_metadata = Column("metadata", JSON, nullable=True)


class ShiftAssignment(Base):
    """
    Invitation of one staff member to one shift.

    Not versioned: response_status changes go through the assignment status
    engine, which records every transition in ShiftAssignmentLog.
    """
    __tablename__ = "shift_assignments"

    id = Column(String(36), primary_key=True, default=new_id)
    shift_id = Column(String(36), ForeignKey("shifts.id"), nullable=False, index=True)
    staff_id = Column(String(36), ForeignKey("staff.id"), nullable=False, index=True)
    role_id = Column(String(36), ForeignKey("roles.id"), nullable=True)
    response_status = Column(
        SQLEnum(ResponseStatus, values_callable=enum_values, name="response_status"),
        nullable=False,
        default=ResponseStatus.PENDING
    )
    response_message = Column(Text, nullable=True)
    invited_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    responded_at = Column(DateTime, nullable=True)
    email_sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    shift = relationship("Shift")
    staff = relationship("Staff")
    # Status logs are append-only; the ORM never nulls or deletes them
    logs = relationship(
        "ShiftAssignmentLog",
        back_populates="assignment",
        order_by="ShiftAssignmentLog.created_at",
        passive_deletes="all"
    )
