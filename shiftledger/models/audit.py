"""
Append-only log models: the universal audit log and the assignment status log.

Neither table is ever updated or deleted from by the service layer.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, JSON, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship

from shiftledger.database import Base
from shiftledger.models.enums import AuditAction, EntityType, ResponseStatus, enum_values


class AuditLog(Base):
    """
    Immutable audit entry for one mutation of one entity.

    Invariants:
    - Once written, never edited or deleted
    - entity_id is the version id that resulted from the action
    - At most one of performed_by / performed_by_staff is set; neither = system
    """
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=True, index=True)
    entity_type = Column(
        SQLEnum(EntityType, values_callable=enum_values, name="entity_type"),
        nullable=False,
        index=True
    )
    entity_id = Column(String(36), nullable=False, index=True)
    action = Column(SQLEnum(AuditAction, values_callable=enum_values, name="audit_action"), nullable=False)
    performed_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    performed_by_staff = Column(String(36), ForeignKey("staff.id"), nullable=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    changed_fields = Column(JSON, nullable=True)  # list of attribute names
    ip_address = Column(String(45), nullable=True)  # IPv4 or IPv6
    user_agent = Column(Text, nullable=True)
    context_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # Actor identity, resolved on read
    performed_by_user = relationship("User", foreign_keys=[performed_by])
    performed_by_staff_member = relationship("Staff", foreign_keys=[performed_by_staff])


class ShiftAssignmentLog(Base):
    """
    Immutable record of one response-status transition of a shift assignment.

    Complements the universal audit log; every transition writes one of each.
    previous_status is NULL for the first status ever set.
    """
    __tablename__ = "shift_assignment_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    assignment_id = Column(String(36), ForeignKey("shift_assignments.id"), nullable=False, index=True)
    previous_status = Column(
        SQLEnum(ResponseStatus, values_callable=enum_values, name="response_status"),
        nullable=True
    )
    new_status = Column(
        SQLEnum(ResponseStatus, values_callable=enum_values, name="response_status"),
        nullable=False
    )
    changed_by = Column(String(36), ForeignKey("users.id"), nullable=True)  # Manager
    changed_by_staff = Column(String(36), ForeignKey("staff.id"), nullable=True)  # Staff member themselves
    message = Column(Text, nullable=True)
    context_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # Relationships
    assignment = relationship("ShiftAssignment", back_populates="logs")
    changed_by_user = relationship("User", foreign_keys=[changed_by])
    changed_by_staff_member = relationship("Staff", foreign_keys=[changed_by_staff])
